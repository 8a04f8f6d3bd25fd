"""
Patch Planning
Builds the smallest requests patch that moves a container to its recommendation
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from vpa_resizer.exceptions import ContainerNotFoundError
from vpa_resizer.models import ContainerRequests, WorkloadInstance
from vpa_resizer.quantity import (
    memory_request_quantity,
    parse_cpu_millicores,
    parse_memory_bytes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchPlan:
    """Fields to change on one container; both None means no change"""
    container_name: str
    cpu: Optional[str] = None
    memory: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.cpu is None and self.memory is None

    def requests(self) -> Dict[str, str]:
        requests = {}
        if self.cpu is not None:
            requests["cpu"] = self.cpu
        if self.memory is not None:
            requests["memory"] = self.memory
        return requests

    def to_patch_body(self) -> Dict:
        """Strategic merge body for the pod resize subresource (requests only)"""
        return {
            "spec": {
                "containers": [{
                    "name": self.container_name,
                    "resources": {
                        "requests": self.requests()
                    }
                }]
            }
        }


def plan_patch(
    pod: WorkloadInstance,
    container_name: str,
    desired_cpu: Optional[str],
    desired_memory: Optional[str],
) -> PatchPlan:
    """
    Compare current and desired requests in canonical units.

    A recommendation that does not parse to a positive quantity is ignored,
    never patched. CPU is patched with the recommended string verbatim.
    Memory is patched with a whole-Mi value derived from the recommended
    bytes, and is compared using that same value so that a second pass over the same recommendation
    finds nothing to change.

    Raises:
        ContainerNotFoundError: the pod has no container with that name.
    """
    if not pod.has_container(container_name):
        raise ContainerNotFoundError(
            f"Container {container_name} not found in pod {pod.name}"
        )

    current: ContainerRequests = pod.containers[container_name]
    cpu = None
    memory = None

    if desired_cpu is not None:
        desired_millicores = parse_cpu_millicores(desired_cpu)
        if desired_millicores == 0:
            logger.warning(f"Ignoring unparseable CPU recommendation {desired_cpu!r} for {pod.name}/{container_name}")
        elif desired_millicores != parse_cpu_millicores(current.cpu):
            cpu = desired_cpu

    if desired_memory is not None:
        desired_bytes = parse_memory_bytes(desired_memory)
        candidate = memory_request_quantity(desired_bytes)
        if desired_bytes == 0:
            logger.warning(f"Ignoring unparseable memory recommendation {desired_memory!r} for {pod.name}/{container_name}")
        elif parse_memory_bytes(candidate) != parse_memory_bytes(current.memory):
            memory = candidate

    return PatchPlan(container_name=container_name, cpu=cpu, memory=memory)
