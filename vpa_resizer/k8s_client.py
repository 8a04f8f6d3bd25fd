"""
Kubernetes Collaborator
Typed access to VPAs, pods and workloads, and the in-place resize call

Every object leaving this module is one of the dataclasses in
vpa_resizer.models; the rest of the package never touches raw API
responses.
"""

import json
import logging
import re
from typing import Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from vpa_resizer.exceptions import ClusterError, ResourceNotFoundError
from vpa_resizer.models import (
    ContainerRecommendation,
    ContainerRequests,
    RecommendationSource,
    ResourceBound,
    TargetRef,
    WorkloadInstance,
    WorkloadStatus,
)
from vpa_resizer.resilience import RateLimiter

logger = logging.getLogger(__name__)

VPA_GROUP = "autoscaling.k8s.io"
VPA_VERSION = "v1"
VPA_PLURAL = "verticalpodautoscalers"

FIELD_MANAGER = "vpa-resizer"
UNKNOWN_CLUSTER = "unknown-cluster"

SUPPORTED_KINDS = ("Deployment", "StatefulSet", "DaemonSet")


def load_kube_config() -> bool:
    """
    Load in-cluster config, falling back to the local kubeconfig.

    Returns True when running in-cluster.
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
        return True
    except ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes config")
        return False


def derive_cluster_name(context_name: Optional[str] = None) -> str:
    """
    File-name-safe cluster name from the current kubeconfig context.

    "arn:aws:eks:us-east-1:123:cluster/prod.eu" -> "prod_eu"
    """
    if context_name is None:
        try:
            _, current = config.list_kube_config_contexts()
            context_name = (current or {}).get("name")
        except (ConfigException, OSError) as e:
            logger.debug(f"Could not read kubeconfig contexts: {e}")
            context_name = None

    if not context_name:
        return UNKNOWN_CLUSTER

    name = context_name.rsplit("/", 1)[-1]
    name = re.sub(r"[^a-zA-Z0-9-]", "_", name)
    return name or UNKNOWN_CLUSTER


def api_error_message(error: ApiException) -> str:
    """Human-readable text of an API error, preferring the Status message"""
    body = getattr(error, "body", None)
    if body:
        try:
            status = json.loads(body)
            if isinstance(status, dict) and status.get("message"):
                return status["message"]
        except (TypeError, ValueError):
            return str(body).strip()
    reason = getattr(error, "reason", None) or str(error)
    return f"{error.status} {reason}".strip() if error.status else reason


def pod_from_api(pod) -> WorkloadInstance:
    """Convert a V1Pod into a WorkloadInstance"""
    metadata = pod.metadata
    status = pod.status
    spec = pod.spec

    ready = None
    ready_transition_time = None
    for condition in (status.conditions if status and status.conditions else []):
        if condition.type == "Ready":
            ready = condition.status == "True"
            ready_transition_time = condition.last_transition_time
            break

    containers: Dict[str, ContainerRequests] = {}
    for container in (spec.containers if spec and spec.containers else []):
        requests = {}
        if container.resources and container.resources.requests:
            requests = container.resources.requests
        containers[container.name] = ContainerRequests(
            cpu=str(requests.get("cpu", "0m")),
            memory=str(requests.get("memory", "0Mi")),
        )

    return WorkloadInstance(
        name=metadata.name,
        namespace=metadata.namespace,
        creation_time=metadata.creation_timestamp,
        phase=status.phase if status else None,
        start_time=status.start_time if status else None,
        ready=ready,
        ready_transition_time=ready_transition_time,
        containers=containers,
        labels=dict(metadata.labels or {}),
    )


def _bound_from_api(raw: Optional[Dict]) -> Optional[ResourceBound]:
    if not raw:
        return None
    cpu = raw.get("cpu")
    memory = raw.get("memory")
    return ResourceBound(
        cpu=str(cpu) if cpu is not None else None,
        memory=str(memory) if memory is not None else None,
    )


def source_from_api(obj: Dict) -> RecommendationSource:
    """Convert a VPA custom object into a RecommendationSource"""
    metadata = obj.get("metadata") or {}
    target = (obj.get("spec") or {}).get("targetRef") or {}
    recommendation = (obj.get("status") or {}).get("recommendation") or {}

    containers = tuple(
        ContainerRecommendation(
            container_name=entry.get("containerName", "N/A"),
            target=_bound_from_api(entry.get("target")),
            upper_bound=_bound_from_api(entry.get("upperBound")),
            lower_bound=_bound_from_api(entry.get("lowerBound")),
        )
        for entry in recommendation.get("containerRecommendations") or []
    )

    return RecommendationSource(
        namespace=metadata.get("namespace", ""),
        name=metadata.get("name", ""),
        target_ref=TargetRef(
            kind=target.get("kind", "N/A"),
            name=target.get("name", "N/A"),
        ),
        containers=containers,
    )


def _expressions_from_api(selector) -> tuple:
    expressions = getattr(selector, "match_expressions", None) or []
    return tuple(
        {"key": e.key, "operator": e.operator, "values": list(e.values or [])}
        for e in expressions
    )


class ClusterClient:
    """
    Thin typed wrapper over CoreV1Api, AppsV1Api and CustomObjectsApi.

    Every call passes a request timeout and goes through the shared rate
    limiter; ApiException is translated into ClusterError /
    ResourceNotFoundError.
    """

    def __init__(
        self,
        core_v1=None,
        apps_v1=None,
        custom_objects=None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 30.0,
    ):
        self.core_v1 = core_v1 or client.CoreV1Api()
        self.apps_v1 = apps_v1 or client.AppsV1Api()
        self.custom_objects = custom_objects or client.CustomObjectsApi()
        self.rate_limiter = rate_limiter or RateLimiter(max_calls=0)
        self.timeout = timeout

    def _call(self, what: str, func, *args, **kwargs):
        self.rate_limiter.acquire()
        try:
            return func(*args, _request_timeout=self.timeout, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(f"{what}: not found") from e
            raise ClusterError(api_error_message(e)) from e
        except Exception as e:
            raise ClusterError(f"{what}: {e}") from e

    def list_namespaces(self) -> List[str]:
        result = self._call("list namespaces", self.core_v1.list_namespace)
        return [ns.metadata.name for ns in result.items]

    def list_recommendation_sources(self, namespace: str) -> List[RecommendationSource]:
        result = self._call(
            f"list VPAs in {namespace}",
            self.custom_objects.list_namespaced_custom_object,
            VPA_GROUP, VPA_VERSION, namespace, VPA_PLURAL,
        )
        sources = []
        for item in result.get("items", []):
            source = source_from_api(item)
            if not source.namespace:
                source = RecommendationSource(
                    namespace=namespace,
                    name=source.name,
                    target_ref=source.target_ref,
                    containers=source.containers,
                )
            sources.append(source)
        return sources

    def list_pods(self, namespace: str, label_selector: Optional[str] = None) -> List[WorkloadInstance]:
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = self._call(
            f"list pods in {namespace}",
            self.core_v1.list_namespaced_pod,
            namespace,
            **kwargs,
        )
        return [pod_from_api(pod) for pod in result.items]

    def read_pod(self, namespace: str, name: str) -> WorkloadInstance:
        pod = self._call(
            f"pod {namespace}/{name}",
            self.core_v1.read_namespaced_pod,
            name, namespace,
        )
        return pod_from_api(pod)

    def read_workload(self, namespace: str, kind: str, name: str) -> WorkloadStatus:
        """Selector and replica counts of a workload; exists=False on 404"""
        readers = {
            "Deployment": self.apps_v1.read_namespaced_deployment,
            "StatefulSet": self.apps_v1.read_namespaced_stateful_set,
            "DaemonSet": self.apps_v1.read_namespaced_daemon_set,
        }
        reader = readers.get(kind)
        if reader is None:
            raise ClusterError(f"Unsupported workload kind: {kind}")

        try:
            workload = self._call(f"{kind} {namespace}/{name}", reader, name, namespace)
        except ResourceNotFoundError:
            return WorkloadStatus(kind=kind, name=name, exists=False)

        spec = workload.spec
        status = workload.status
        selector = spec.selector if spec else None

        if kind == "DaemonSet":
            replicas = status.desired_number_scheduled if status else None
            ready_replicas = status.number_ready if status else None
        else:
            replicas = spec.replicas if spec else None
            ready_replicas = (status.ready_replicas if status else None) or 0

        return WorkloadStatus(
            kind=kind,
            name=name,
            exists=True,
            replicas=replicas,
            ready_replicas=ready_replicas,
            match_labels=dict((selector.match_labels if selector else None) or {}),
            match_expressions=_expressions_from_api(selector),
        )

    def resize_pod(self, namespace: str, name: str, body: Dict):
        """Patch the resize subresource of a running pod"""
        self._call(
            f"resize pod {namespace}/{name}",
            self.core_v1.patch_namespaced_pod_resize,
            name, namespace, body,
            field_manager=FIELD_MANAGER,
        )
