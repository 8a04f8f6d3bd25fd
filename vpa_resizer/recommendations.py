"""
Recommendation Selection
Picks the configured bound out of a container recommendation
"""

from typing import Optional, Tuple

from vpa_resizer.models import BoundKind, ContainerRecommendation, ResourceBound

_BOUND_ATTRIBUTE = {
    BoundKind.TARGET: "target",
    BoundKind.UPPER_BOUND: "upper_bound",
    BoundKind.LOWER_BOUND: "lower_bound",
}


def select_bound(
    recommendation: ContainerRecommendation,
    kind: BoundKind
) -> Tuple[Optional[str], Optional[str]]:
    """
    Return the (cpu, memory) pair of the requested bound.

    There is no fallback between bounds: a container without an upper bound
    yields (None, None) in upper-bound mode even if a target exists.
    """
    bound: Optional[ResourceBound] = getattr(recommendation, _BOUND_ATTRIBUTE[kind])
    if bound is None:
        return None, None
    return _present(bound.cpu), _present(bound.memory)


def has_recommendation(cpu: Optional[str], memory: Optional[str]) -> bool:
    return cpu is not None or memory is not None


def _present(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None
