"""
Command-line entry point

Usage:
    vpa-resizer [--target|--upperbound|--lowerbound] [namespace] [--all-namespaces]
                [--dry-run] [--pod-healthy-duration MIN] [--not-older-than MIN]
                [--exclude-default-namespace] [--batch-size N] [--api-timeout SEC]
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional, Tuple

from kubernetes.config import ConfigException

from vpa_resizer import __version__
from vpa_resizer.applier import ConcurrentApplier
from vpa_resizer.audit_ledger import AuditLedger
from vpa_resizer.config import ResizerConfig, load_config
from vpa_resizer.k8s_client import ClusterClient, derive_cluster_name, load_kube_config
from vpa_resizer.logging_config import add_run_log_file, get_logger, setup_structured_logging
from vpa_resizer.metrics import ResizerMetrics
from vpa_resizer.models import BoundKind
from vpa_resizer.reconciler import Reconciler
from vpa_resizer.resilience import RateLimiter
from vpa_resizer.usage import create_usage_provider

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vpa-resizer",
        description="Set running pod resource requests from VPA recommendations using in-place resize",
    )

    bound = parser.add_mutually_exclusive_group()
    bound.add_argument("--target", dest="bound", action="store_const", const=BoundKind.TARGET.value,
                       help="Use the VPA target recommendation")
    bound.add_argument("--upperbound", dest="bound", action="store_const", const=BoundKind.UPPER_BOUND.value,
                       help="Use the VPA upper bound (default)")
    bound.add_argument("--lowerbound", dest="bound", action="store_const", const=BoundKind.LOWER_BOUND.value,
                       help="Use the VPA lower bound")

    parser.add_argument("namespace", nargs="?", default=None,
                        help="Namespace to process (default: $DEFAULT_NAMESPACE or my-app)")
    parser.add_argument("--all-namespaces", action="store_true",
                        help="Process every user namespace")
    parser.add_argument("--exclude-default-namespace", "--exclude-my-app", dest="exclude_default_namespace",
                        action="store_true",
                        help="With --all-namespaces, skip the default namespace")
    parser.add_argument("--dry-run", action="store_true", default=False,
                        help="Show what would change without patching")
    parser.add_argument("--pod-healthy-duration", metavar="MINUTES", default=None,
                        help="Only pods Running and Ready for at least this long (default 5, 0 disables)")
    parser.add_argument("--not-older-than", metavar="MINUTES", default=None,
                        help="Only pods created within this many minutes (overrides --pod-healthy-duration)")
    parser.add_argument("--batch-size", default=None,
                        help="Pods patched concurrently per batch (default 10)")
    parser.add_argument("--api-timeout", metavar="SECONDS", default=None,
                        help="Kubernetes API request timeout (default 30)")
    parser.add_argument("--rate-limit", metavar="CALLS", default=None,
                        help="Kubernetes API calls per second, 0 disables (default 20)")
    parser.add_argument("--output-dir", default=None,
                        help="Directory for the CSV ledger and run log (default: current directory)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", default=None, help="text or json")
    parser.add_argument("--prometheus-url", default=None,
                        help="Read observed usage from Prometheus instead of metrics-server")
    parser.add_argument("--pushgateway-url", default=None,
                        help="Push run metrics to this Prometheus Pushgateway")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def output_paths(cluster_name: str, kind: BoundKind, output_dir: str,
                 now: Optional[datetime] = None) -> Tuple[str, str]:
    """(csv ledger path, run log path) for this run"""
    stamp = (now or datetime.now()).strftime("%m-%d-%H-%M")
    csv_name = f"{cluster_name}_set-requests-from-vpa-{kind.value}-{stamp}.csv"
    log_name = f"{cluster_name}_vpa-{kind.value}-requests-{stamp}.log"
    return os.path.join(output_dir, csv_name), os.path.join(output_dir, log_name)


def run(cfg: ResizerConfig, cluster: ClusterClient, cluster_name: str,
        csv_path: str, log_path: str, usage=None, metrics: Optional[ResizerMetrics] = None) -> int:
    kind = cfg.bound_kind
    log = get_logger(__name__, {"component": "cli", "bound": kind.value})

    log.info(f"=== VPA {kind.value} Resource Request Setter Started ===")
    log.info(f"Cluster: {cluster_name}")
    log.info(f"Recommendation Type: {kind.value}")
    if cfg.window.is_active:
        log.info(f"Pod filter: only pods {cfg.window.describe()}")
    log.info(f"CSV output will be written to: {csv_path}")

    with AuditLedger(csv_path, kind) as ledger:
        applier = ConcurrentApplier(
            cluster,
            ledger,
            kind,
            dry_run=cfg.dry_run,
            batch_size=cfg.batch_size,
            batch_timeout=cfg.batch_timeout,
            usage=usage,
            metrics=metrics,
        )
        summary = Reconciler(cfg, cluster, applier).run()
        counts = ledger.counts()

    totals = ", ".join(f"{status.value}={count}" for status, count in counts.items())
    log.info(f"Results: {totals}")
    if summary.skipped_namespaces:
        log.info(f"Namespaces skipped (no eligible pods): {' '.join(summary.skipped_namespaces)}")
    if summary.failed_namespaces:
        log.warning(f"Namespaces with errors: {' '.join(summary.failed_namespaces)}")

    if metrics and cfg.pushgateway_url:
        metrics.push(cfg.pushgateway_url, grouping_key={"cluster": cluster_name, "bound": kind.value})

    log.info(f"=== VPA {kind.value} Resource Request Setter Completed ===")
    log.info(f"Log file: {log_path}")
    log.info(f"CSV file: {csv_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, validate, and run one reconciliation pass"""
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args)
    except ValueError as e:
        setup_structured_logging("INFO")
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_structured_logging(cfg.log_level, json_format=cfg.log_format == "json")

    try:
        in_cluster = load_kube_config()
    except (ConfigException, OSError) as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        return 1

    cluster_name = derive_cluster_name()
    if in_cluster and cluster_name == "unknown-cluster":
        cluster_name = os.getenv("CLUSTER_NAME", cluster_name)

    os.makedirs(cfg.output_dir, exist_ok=True)
    csv_path, log_path = output_paths(cluster_name, cfg.bound_kind, cfg.output_dir)
    add_run_log_file(log_path, cfg.log_level)

    limiter = RateLimiter(max_calls=cfg.k8s_api_rate_limit)
    cluster = ClusterClient(rate_limiter=limiter, timeout=cfg.api_timeout)
    usage = None
    if cfg.bound_kind == BoundKind.UPPER_BOUND:
        usage = create_usage_provider(cfg.prometheus_url, rate_limiter=limiter, timeout=cfg.api_timeout)

    try:
        return run(cfg, cluster, cluster_name, csv_path, log_path, usage=usage, metrics=ResizerMetrics())
    except KeyboardInterrupt:
        logger.warning("Interrupted; ledger rows written so far are kept")
        return 130


if __name__ == "__main__":
    sys.exit(main())
