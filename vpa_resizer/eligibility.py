"""
Pod Eligibility
Decides which pods of a namespace may be resized during this pass
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Iterable, Optional

from vpa_resizer.models import WorkloadInstance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityWindow:
    """
    Pod selection policy.

    max_age_minutes wins over healthy_minutes when both are set; a healthy
    duration of 0 disables the health filter.
    """
    healthy_minutes: int = 0
    max_age_minutes: Optional[int] = None

    @property
    def mode(self) -> str:
        if self.max_age_minutes is not None:
            return "max_age"
        if self.healthy_minutes > 0:
            return "healthy"
        return "none"

    @property
    def is_active(self) -> bool:
        return self.mode != "none"

    def describe(self) -> str:
        if self.mode == "max_age":
            return f"created in the past {self.max_age_minutes} minutes"
        if self.mode == "healthy":
            return f"healthy for at least {self.healthy_minutes} minutes"
        return "no filter"


@dataclass(frozen=True)
class EligibleSet:
    """Immutable result of one namespace evaluation"""
    names: Optional[FrozenSet[str]] = None

    @property
    def unrestricted(self) -> bool:
        return self.names is None

    def allows(self, pod_name: str) -> bool:
        return self.names is None or pod_name in self.names

    def __len__(self) -> int:
        return 0 if self.names is None else len(self.names)


class EligibilityFilter:
    """Evaluates an EligibilityWindow against pod snapshots"""

    def __init__(self, window: EligibilityWindow, clock=None):
        self.window = window
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def is_eligible(self, pod: WorkloadInstance, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        mode = self.window.mode

        if mode == "none":
            return True

        if mode == "max_age":
            if pod.creation_time is None:
                return False
            return now - pod.creation_time < timedelta(minutes=self.window.max_age_minutes)

        required = timedelta(minutes=self.window.healthy_minutes)
        if pod.phase != "Running":
            return False
        if pod.start_time is None or now - pod.start_time < required:
            return False
        if pod.ready is not True or pod.ready_transition_time is None:
            return False
        return now - pod.ready_transition_time >= required

    def evaluate(self, pods: Iterable[WorkloadInstance]) -> EligibleSet:
        """
        Compute the eligible set once for a namespace.

        The same instant is used for every pod so the set is consistent
        within the pass.
        """
        if not self.window.is_active:
            return EligibleSet()

        now = self._clock()
        names = frozenset(pod.name for pod in pods if self.is_eligible(pod, now))
        return EligibleSet(names)
