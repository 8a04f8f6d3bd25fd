"""
Workload Pod Resolution
Maps a VPA target reference to the pods currently backing it

Label conventions differ between clusters, so several strategies are tried
in order and the first one that returns pods wins. The workload's own
selector is the last resort: it is authoritative but needs an extra read.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from vpa_resizer.exceptions import ClusterError
from vpa_resizer.k8s_client import SUPPORTED_KINDS
from vpa_resizer.models import TargetRef, WorkloadInstance, WorkloadStatus

logger = logging.getLogger(__name__)

STATEFULSET_POD_NAME_LABEL = "statefulset.kubernetes.io/pod-name"


@dataclass
class Resolution:
    """Pods found for a workload, or the reason none were"""
    target: TargetRef
    pods: List[WorkloadInstance] = field(default_factory=list)
    strategy: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.pods)


def format_selector(match_labels: Dict[str, str], match_expressions: Iterable[Dict] = ()) -> str:
    """Render a LabelSelector in kubectl -l syntax"""
    parts = [f"{key}={match_labels[key]}" for key in sorted(match_labels)]

    for expression in match_expressions:
        key = expression.get("key")
        operator = expression.get("operator")
        values = ",".join(expression.get("values") or [])
        if operator == "In":
            parts.append(f"{key} in ({values})")
        elif operator == "NotIn":
            parts.append(f"{key} notin ({values})")
        elif operator == "Exists":
            parts.append(key)
        elif operator == "DoesNotExist":
            parts.append(f"!{key}")

    return ",".join(parts)


class WorkloadPodResolver:
    """Resolves Deployment / StatefulSet / DaemonSet references to pods"""

    def __init__(self, cluster):
        self.cluster = cluster

    def resolve(self, namespace: str, target: TargetRef) -> Resolution:
        resolution = Resolution(target=target)

        if target.kind not in SUPPORTED_KINDS:
            resolution.diagnostics.append(
                f"Unsupported target kind {target.kind}; expected one of {', '.join(SUPPORTED_KINDS)}"
            )
            return resolution

        strategies = [
            ("app label", lambda: self._by_selector(namespace, f"app={target.name}")),
            ("app.kubernetes.io/name label",
             lambda: self._by_selector(namespace, f"app.kubernetes.io/name={target.name}")),
        ]
        if target.kind == "StatefulSet":
            strategies.append(
                ("statefulset pod-name label", lambda: self._by_statefulset_prefix(namespace, target.name))
            )

        for strategy, lookup in strategies:
            pods = lookup()
            if pods:
                resolution.pods = pods
                resolution.strategy = strategy
                logger.debug(f"{namespace}/{target.name} - Resolved {len(pods)} pods via {strategy}")
                return resolution

        status = self._read_workload(namespace, target, resolution)
        if status is None:
            return resolution

        if status.exists and (status.match_labels or status.match_expressions):
            selector = format_selector(status.match_labels, status.match_expressions)
            pods = self._by_selector(namespace, selector)
            if pods:
                resolution.pods = pods
                resolution.strategy = "workload selector"
                return resolution

        resolution.diagnostics.extend(self._diagnose(namespace, status))
        return resolution

    def _by_selector(self, namespace: str, selector: str) -> List[WorkloadInstance]:
        try:
            return self.cluster.list_pods(namespace, label_selector=selector)
        except ClusterError as e:
            logger.warning(f"Failed to list pods in {namespace} with selector {selector}: {e}")
            return []

    def _by_statefulset_prefix(self, namespace: str, name: str) -> List[WorkloadInstance]:
        prefix = f"{name}-"
        return [
            pod for pod in self._by_selector(namespace, STATEFULSET_POD_NAME_LABEL)
            if pod.name.startswith(prefix)
        ]

    def _read_workload(self, namespace: str, target: TargetRef, resolution: Resolution) -> Optional[WorkloadStatus]:
        try:
            return self.cluster.read_workload(namespace, target.kind, target.name)
        except ClusterError as e:
            resolution.diagnostics.append(f"Could not read {target.kind}/{target.name}: {e}")
            return None

    @staticmethod
    def _diagnose(namespace: str, status: WorkloadStatus) -> List[str]:
        if not status.exists:
            return [f"{status.kind}/{status.name} does not exist in namespace {namespace}"]

        replicas = "unknown" if status.replicas is None else status.replicas
        ready = 0 if status.ready_replicas is None else status.ready_replicas
        lines = [f"{status.kind} exists: replicas={replicas}, ready={ready}"]

        if status.match_labels or status.match_expressions:
            lines.append(
                f"Selector labels: {format_selector(status.match_labels, status.match_expressions)} "
                f"(no pods match)"
            )
        else:
            lines.append("Workload has no selector labels")
        return lines
