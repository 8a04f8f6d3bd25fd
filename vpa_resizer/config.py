"""
Configuration
One explicit configuration object, built once at entry

Values come from command-line flags first, then environment variables,
then defaults. Every value is validated before any cluster call is made.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from vpa_resizer.config_validator import ConfigValidator
from vpa_resizer.eligibility import EligibilityWindow
from vpa_resizer.models import BoundKind

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "my-app"
DEFAULT_HEALTHY_MINUTES = 5
DEFAULT_BATCH_SIZE = 10
DEFAULT_API_TIMEOUT = 30.0
DEFAULT_RATE_LIMIT = 20

# Namespaces never touched in all-namespaces mode
SYSTEM_NAMESPACES = frozenset({
    "kube-system",
    "kube-public",
    "kube-node-lease",
    "gke-managed-system",
    "gke-managed-volumepopulator",
    "asm-system",
    "istio-system",
    "istio-operator",
})


@dataclass
class ResizerConfig:
    """Resizer configuration"""
    bound_kind: BoundKind = BoundKind.UPPER_BOUND
    namespace: str = DEFAULT_NAMESPACE
    all_namespaces: bool = False
    exclude_default_namespace: bool = False
    dry_run: bool = False
    pod_healthy_duration: int = DEFAULT_HEALTHY_MINUTES
    not_older_than: Optional[int] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    api_timeout: float = DEFAULT_API_TIMEOUT
    k8s_api_rate_limit: int = DEFAULT_RATE_LIMIT
    output_dir: str = "."
    log_level: str = "INFO"
    log_format: str = "text"
    prometheus_url: Optional[str] = None
    pushgateway_url: Optional[str] = None

    @property
    def window(self) -> EligibilityWindow:
        return EligibilityWindow(
            healthy_minutes=self.pod_healthy_duration,
            max_age_minutes=self.not_older_than,
        )

    @property
    def batch_timeout(self) -> float:
        """Upper bound on one batch: fresh read, patch and usage lookup per pod"""
        return self.api_timeout * 4

    def excluded_namespaces(self) -> frozenset:
        if self.exclude_default_namespace:
            return SYSTEM_NAMESPACES | {self.namespace}
        return SYSTEM_NAMESPACES


def _pick(args, attr: str, environ: Mapping[str, str], env_name: str, default=None):
    value = getattr(args, attr, None) if args is not None else None
    if value is not None:
        return value
    value = environ.get(env_name)
    if value is not None and str(value).strip() != "":
        return value
    return default


def load_config(args=None, environ: Optional[Mapping[str, str]] = None) -> ResizerConfig:
    """
    Build and validate a ResizerConfig.

    Args:
        args: argparse.Namespace; attributes left as None fall through to env
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ValueError: when any value is invalid
    """
    environ = os.environ if environ is None else environ

    bound = getattr(args, "bound", None) if args is not None else None
    bound_kind = BoundKind.from_string(bound) if bound else BoundKind.UPPER_BOUND

    namespace = ConfigValidator.validate_namespace(
        _pick(args, "namespace", environ, "DEFAULT_NAMESPACE", DEFAULT_NAMESPACE)
    )

    dry_run = bool(getattr(args, "dry_run", False)) or ConfigValidator.parse_bool(
        environ.get("DRY_RUN", "false")
    )

    healthy = ConfigValidator.validate_minutes(
        _pick(args, "pod_healthy_duration", environ, "POD_HEALTHY_DURATION", DEFAULT_HEALTHY_MINUTES),
        "POD_HEALTHY_DURATION",
    )
    not_older_than = _pick(args, "not_older_than", environ, "NOT_OLDER_THAN")
    if not_older_than is not None:
        not_older_than = ConfigValidator.validate_minutes(not_older_than, "NOT_OLDER_THAN")

    cfg = ResizerConfig(
        bound_kind=bound_kind,
        namespace=namespace,
        all_namespaces=bool(getattr(args, "all_namespaces", False)),
        exclude_default_namespace=bool(getattr(args, "exclude_default_namespace", False)),
        dry_run=dry_run,
        pod_healthy_duration=healthy,
        not_older_than=not_older_than,
        batch_size=ConfigValidator.validate_batch_size(
            _pick(args, "batch_size", environ, "BATCH_SIZE", DEFAULT_BATCH_SIZE)
        ),
        api_timeout=ConfigValidator.validate_api_timeout(
            _pick(args, "api_timeout", environ, "API_TIMEOUT", DEFAULT_API_TIMEOUT)
        ),
        k8s_api_rate_limit=ConfigValidator.validate_rate_limit(
            _pick(args, "rate_limit", environ, "K8S_API_RATE_LIMIT", DEFAULT_RATE_LIMIT)
        ),
        output_dir=str(_pick(args, "output_dir", environ, "OUTPUT_DIR", ".")),
        log_level=ConfigValidator.validate_log_level(
            _pick(args, "log_level", environ, "LOG_LEVEL", "INFO")
        ),
        log_format=ConfigValidator.validate_log_format(
            _pick(args, "log_format", environ, "LOG_FORMAT", "text")
        ),
        prometheus_url=ConfigValidator.validate_url(
            _pick(args, "prometheus_url", environ, "PROMETHEUS_URL"), "PROMETHEUS_URL"
        ),
        pushgateway_url=ConfigValidator.validate_url(
            _pick(args, "pushgateway_url", environ, "PUSHGATEWAY_URL"), "PUSHGATEWAY_URL"
        ),
    )

    if cfg.not_older_than is not None and cfg.pod_healthy_duration > 0:
        logger.debug("NOT_OLDER_THAN is set; pod healthy duration is ignored")

    return cfg
