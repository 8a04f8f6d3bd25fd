"""
Observed Usage
Best-effort current CPU/memory usage per container, for the audit ledger

Usage is read after the patch decision and is not atomic with it. It is
recorded for operators only and never influences what gets patched. Any
failure degrades to "not available".
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from kubernetes import client
from prometheus_api_client import PrometheusConnect

from vpa_resizer.models import ContainerUsage
from vpa_resizer.quantity import MI, parse_cpu_millicores, parse_memory_bytes
from vpa_resizer.resilience import RateLimiter

logger = logging.getLogger(__name__)

METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"

_SUB_MILLI = {"n": Decimal(10) ** -6, "u": Decimal(10) ** -3}


def usage_cpu_millicores(value: str) -> int:
    """metrics-server reports CPU in nanocores ("1234567n"); accept m/u too"""
    value = str(value).strip()
    if value and value[-1] in _SUB_MILLI:
        try:
            return int(Decimal(value[:-1]) * _SUB_MILLI[value[-1]])
        except InvalidOperation:
            return 0
    return parse_cpu_millicores(value)


def render_usage(millicores: int, num_bytes: int) -> ContainerUsage:
    """Same shape as `kubectl top --containers`"""
    return ContainerUsage(cpu=f"{millicores}m", memory=f"{num_bytes // MI}Mi")


class UsageProvider:
    """Interface: returns None when usage is unavailable"""

    def get_usage(self, namespace: str, pod: str, container: str) -> Optional[ContainerUsage]:
        return None


class MetricsServerUsage(UsageProvider):
    """Reads PodMetrics from metrics-server"""

    def __init__(self, custom_objects=None, rate_limiter: Optional[RateLimiter] = None, timeout: float = 10.0):
        self.custom_objects = custom_objects or client.CustomObjectsApi()
        self.rate_limiter = rate_limiter or RateLimiter(max_calls=0)
        self.timeout = timeout

    def get_usage(self, namespace: str, pod: str, container: str) -> Optional[ContainerUsage]:
        try:
            self.rate_limiter.acquire()
            metrics = self.custom_objects.get_namespaced_custom_object(
                METRICS_GROUP, METRICS_VERSION, namespace, "pods", pod,
                _request_timeout=self.timeout,
            )
        except Exception as e:
            logger.debug(f"Usage unavailable for {namespace}/{pod}: {e}")
            return None

        for entry in metrics.get("containers") or []:
            if entry.get("name") == container:
                usage = entry.get("usage") or {}
                if "cpu" not in usage and "memory" not in usage:
                    return None
                return render_usage(
                    usage_cpu_millicores(usage.get("cpu", "0")),
                    parse_memory_bytes(usage.get("memory", "0")),
                )
        return None


class PrometheusUsage(UsageProvider):
    """Reads cAdvisor series from Prometheus"""

    def __init__(self, prometheus_url: str, rate_window: str = "5m", prom: Optional[PrometheusConnect] = None,
                 timeout: float = 10.0):
        self.prometheus_url = prometheus_url
        self.rate_window = rate_window
        self.prom = prom or PrometheusConnect(url=prometheus_url, disable_ssl=True, timeout=timeout)

    def _scalar(self, query: str) -> Optional[float]:
        result = self.prom.custom_query(query=query)
        if not result:
            return None
        return float(result[0]["value"][1])

    def get_usage(self, namespace: str, pod: str, container: str) -> Optional[ContainerUsage]:
        labels = f'namespace="{namespace}",pod="{pod}",container="{container}"'
        try:
            cores = self._scalar(
                f"sum(rate(container_cpu_usage_seconds_total{{{labels}}}[{self.rate_window}]))"
            )
            memory = self._scalar(f"sum(container_memory_working_set_bytes{{{labels}}})")
        except Exception as e:
            logger.debug(f"Prometheus usage query failed for {namespace}/{pod}/{container}: {e}")
            return None

        if cores is None and memory is None:
            return None
        return render_usage(int((cores or 0.0) * 1000), int(memory or 0))


def create_usage_provider(prometheus_url: Optional[str], rate_limiter: Optional[RateLimiter] = None,
                          timeout: float = 10.0) -> UsageProvider:
    if prometheus_url:
        logger.info(f"Observed usage from Prometheus at {prometheus_url}")
        return PrometheusUsage(prometheus_url, timeout=timeout)
    return MetricsServerUsage(rate_limiter=rate_limiter, timeout=timeout)
