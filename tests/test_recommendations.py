"""
Tests for recommendation bound selection
"""

import pytest

from vpa_resizer.models import BoundKind, ContainerRecommendation, ResourceBound
from vpa_resizer.recommendations import has_recommendation, select_bound


def _rec(**kwargs):
    return ContainerRecommendation(container_name="app", **kwargs)


class TestSelectBound:
    """Test select_bound"""

    def test_each_kind(self):
        rec = _rec(
            target=ResourceBound("100m", "128Mi"),
            upper_bound=ResourceBound("300m", "256Mi"),
            lower_bound=ResourceBound("50m", "64Mi"),
        )
        assert select_bound(rec, BoundKind.TARGET) == ("100m", "128Mi")
        assert select_bound(rec, BoundKind.UPPER_BOUND) == ("300m", "256Mi")
        assert select_bound(rec, BoundKind.LOWER_BOUND) == ("50m", "64Mi")

    def test_no_fallback(self):
        """A missing upper bound is not replaced by the target"""
        rec = _rec(target=ResourceBound("100m", "128Mi"))
        assert select_bound(rec, BoundKind.UPPER_BOUND) == (None, None)

    def test_partial_bound(self):
        rec = _rec(target=ResourceBound(cpu="100m"))
        assert select_bound(rec, BoundKind.TARGET) == ("100m", None)

    def test_blank_values(self):
        rec = _rec(target=ResourceBound(cpu="  ", memory=""))
        assert select_bound(rec, BoundKind.TARGET) == (None, None)


class TestHasRecommendation:
    """Test has_recommendation"""

    def test_values(self):
        assert has_recommendation("100m", None)
        assert has_recommendation(None, "128Mi")
        assert not has_recommendation(None, None)


class TestBoundKind:
    """Test BoundKind parsing"""

    def test_from_string(self):
        assert BoundKind.from_string("upperbound") == BoundKind.UPPER_BOUND
        assert BoundKind.from_string("Upper-Bound") == BoundKind.UPPER_BOUND
        assert BoundKind.from_string("TARGET") == BoundKind.TARGET

    def test_invalid(self):
        with pytest.raises(ValueError):
            BoundKind.from_string("median")

    def test_labels(self):
        assert BoundKind.UPPER_BOUND.label == "UpperBound"
        assert BoundKind.LOWER_BOUND.status_field == "lowerBound"
