"""
Prometheus Metrics
Run metrics for the resizer, optionally pushed to a Pushgateway

A CLI run is too short-lived to be scraped, so metrics live on a private
registry and are pushed once at the end of the run.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

from vpa_resizer.models import ApplyStatus

logger = logging.getLogger(__name__)

PUSH_JOB = "vpa_resizer"


class ResizerMetrics:
    """Counters for per-pod decisions and batches"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.decisions = Counter(
            'vpa_resizer_decisions',
            'Per-pod resize decisions by outcome',
            ['namespace', 'status'],
            registry=self.registry
        )

        self.batches = Counter(
            'vpa_resizer_batches',
            'Concurrent batches processed',
            ['namespace'],
            registry=self.registry
        )

        self.patch_duration = Histogram(
            'vpa_resizer_patch_duration_seconds',
            'Latency of pod resize subresource patches',
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry
        )

    def record_decision(self, namespace: str, status: ApplyStatus):
        self.decisions.labels(namespace=namespace, status=status.value).inc()

    def record_batch(self, namespace: str):
        self.batches.labels(namespace=namespace).inc()

    def observe_patch(self, seconds: float):
        self.patch_duration.observe(seconds)

    def decision_count(self, namespace: str, status: ApplyStatus) -> float:
        value = self.registry.get_sample_value(
            'vpa_resizer_decisions_total', {'namespace': namespace, 'status': status.value}
        )
        return value or 0.0

    def push(self, gateway: str, grouping_key: Optional[Dict[str, str]] = None) -> bool:
        """Push all metrics; a failed push is logged, never fatal"""
        try:
            push_to_gateway(gateway, job=PUSH_JOB, registry=self.registry, grouping_key=grouping_key)
            logger.info(f"Pushed metrics to {gateway}")
            return True
        except Exception as e:
            logger.warning(f"Failed to push metrics to {gateway}: {e}")
            return False
