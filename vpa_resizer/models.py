"""
Data Model
Typed snapshots of recommender and cluster state used by the reconciler
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class BoundKind(Enum):
    """Which recommendation statistic becomes the new request"""
    TARGET = "target"
    UPPER_BOUND = "upperbound"
    LOWER_BOUND = "lowerbound"

    @property
    def status_field(self) -> str:
        """Field name inside a VPA containerRecommendations entry"""
        return {
            BoundKind.TARGET: "target",
            BoundKind.UPPER_BOUND: "upperBound",
            BoundKind.LOWER_BOUND: "lowerBound",
        }[self]

    @property
    def label(self) -> str:
        """Column prefix used in the audit ledger header"""
        return {
            BoundKind.TARGET: "Target",
            BoundKind.UPPER_BOUND: "UpperBound",
            BoundKind.LOWER_BOUND: "LowerBound",
        }[self]

    @classmethod
    def from_string(cls, value: str) -> "BoundKind":
        normalized = value.strip().lower().replace("-", "").replace("_", "")
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise ValueError(
            f"Invalid recommendation type: {value}. Must be one of target, upperbound, lowerbound"
        )


class ApplyStatus(Enum):
    """
    Outcome recorded for one (pod, container) attempt.

    SKIPPED marks a pod that was dispatched but not evaluated: its fresh read
    failed or it lacks the container.
    """
    NO_CHANGE = "No_Change"
    DRY_RUN = "Dry_Run"
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class TargetRef:
    """Workload a VPA points at"""
    kind: str
    name: str


@dataclass(frozen=True)
class ResourceBound:
    """One recommendation statistic; either resource may be absent"""
    cpu: Optional[str] = None
    memory: Optional[str] = None


@dataclass(frozen=True)
class ContainerRecommendation:
    """Per-container bounds from a VPA status"""
    container_name: str
    target: Optional[ResourceBound] = None
    upper_bound: Optional[ResourceBound] = None
    lower_bound: Optional[ResourceBound] = None


@dataclass(frozen=True)
class RecommendationSource:
    """A VPA object snapshot, never mutated after fetch"""
    namespace: str
    name: str
    target_ref: TargetRef
    containers: Tuple[ContainerRecommendation, ...] = ()


@dataclass(frozen=True)
class ContainerRequests:
    """Current requests of one container, as the API returned them"""
    cpu: str = "0m"
    memory: str = "0Mi"


@dataclass
class WorkloadInstance:
    """A running pod"""
    name: str
    namespace: str
    creation_time: Optional[datetime] = None
    phase: Optional[str] = None
    start_time: Optional[datetime] = None
    ready: Optional[bool] = None
    ready_transition_time: Optional[datetime] = None
    containers: Dict[str, ContainerRequests] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)

    def has_container(self, name: str) -> bool:
        return name in self.containers


@dataclass(frozen=True)
class WorkloadStatus:
    """What the cluster reports about a workload object, for diagnostics"""
    kind: str
    name: str
    exists: bool
    replicas: Optional[int] = None
    ready_replicas: Optional[int] = None
    match_labels: Dict[str, str] = field(default_factory=dict)
    match_expressions: Tuple[Dict, ...] = ()


@dataclass(frozen=True)
class ContainerUsage:
    """Observed usage, rendered the way `kubectl top` does"""
    cpu: str
    memory: str


@dataclass
class AuditRecord:
    """One ledger row"""
    timestamp: str
    namespace: str
    source_name: str
    target_kind: str
    target_name: str
    pod_name: str
    container_name: str
    current_cpu: str
    current_memory: str
    recommended_cpu: str
    recommended_memory: str
    recommended_memory_display: str
    status: ApplyStatus
    message: str
    actual_cpu: str = "N/A"
    actual_memory: str = "N/A"


@dataclass
class ApplySummary:
    """Per-status counts for a batch run"""
    counts: Dict[ApplyStatus, int] = field(default_factory=lambda: {s: 0 for s in ApplyStatus})

    def add(self, status: ApplyStatus):
        self.counts[status] = self.counts.get(status, 0) + 1

    def merge(self, other: "ApplySummary"):
        for status, count in other.counts.items():
            self.counts[status] = self.counts.get(status, 0) + count

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> Dict[str, int]:
        return {status.value: count for status, count in self.counts.items()}
