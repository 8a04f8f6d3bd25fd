"""
Tests for run metrics
"""

from unittest.mock import patch

from vpa_resizer.metrics import PUSH_JOB, ResizerMetrics
from vpa_resizer.models import ApplyStatus


class TestResizerMetrics:
    """Test ResizerMetrics"""

    def test_private_registries(self):
        """Two instances never share series"""
        first = ResizerMetrics()
        second = ResizerMetrics()
        first.record_decision("shop", ApplyStatus.SUCCESS)
        assert first.decision_count("shop", ApplyStatus.SUCCESS) == 1.0
        assert second.decision_count("shop", ApplyStatus.SUCCESS) == 0.0

    def test_batches_and_latency(self):
        metrics = ResizerMetrics()
        metrics.record_batch("shop")
        metrics.record_batch("shop")
        metrics.observe_patch(0.2)
        assert metrics.registry.get_sample_value('vpa_resizer_batches_total', {'namespace': 'shop'}) == 2.0
        assert metrics.registry.get_sample_value('vpa_resizer_patch_duration_seconds_count') == 1.0

    def test_push(self):
        metrics = ResizerMetrics()
        with patch('vpa_resizer.metrics.push_to_gateway') as push:
            assert metrics.push("http://gw:9091", grouping_key={"cluster": "prod"})
        push.assert_called_once_with(
            "http://gw:9091", job=PUSH_JOB, registry=metrics.registry, grouping_key={"cluster": "prod"}
        )

    def test_push_failure_not_fatal(self):
        metrics = ResizerMetrics()
        with patch('vpa_resizer.metrics.push_to_gateway', side_effect=OSError("connection refused")):
            assert metrics.push("http://gw:9091") is False
