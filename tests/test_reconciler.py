"""
Tests for the namespace -> VPA -> container -> pods reconciler
"""

import csv
import io
import logging
from unittest.mock import Mock

import pytest

from conftest import NOW, make_pod

from vpa_resizer.applier import ConcurrentApplier
from vpa_resizer.audit_ledger import AuditLedger
from vpa_resizer.config import ResizerConfig
from vpa_resizer.eligibility import EligibilityFilter
from vpa_resizer.exceptions import ClusterError
from vpa_resizer.models import (
    ApplyStatus,
    BoundKind,
    ContainerRecommendation,
    RecommendationSource,
    ResourceBound,
    TargetRef,
)
from vpa_resizer.reconciler import Reconciler


def _source(name="web-vpa", namespace="my-app", target="web", containers=None):
    if containers is None:
        containers = (
            ContainerRecommendation(
                container_name="app",
                target=ResourceBound("200m", "256Mi"),
                upper_bound=ResourceBound("400m", "512Mi"),
            ),
        )
    return RecommendationSource(
        namespace=namespace, name=name, target_ref=TargetRef("Deployment", target), containers=containers,
    )


@pytest.fixture
def stream():
    return io.StringIO()


def _reconciler(cluster, stream, **config):
    cfg = ResizerConfig(**{"bound_kind": BoundKind.TARGET, "pod_healthy_duration": 0, **config})
    ledger = AuditLedger(None, cfg.bound_kind, stream=stream)
    applier = ConcurrentApplier(cluster, ledger, cfg.bound_kind, dry_run=cfg.dry_run, batch_size=cfg.batch_size)
    return Reconciler(cfg, cluster, applier, eligibility=EligibilityFilter(cfg.window, clock=lambda: NOW))


def _rows(stream):
    return list(csv.DictReader(io.StringIO(stream.getvalue())))


class TestReconciler:
    """Test Reconciler.run"""

    def test_applies_target(self, cluster, stream):
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_pod(make_pod("web-2", labels={"app": "web"}))
        cluster.add_source(_source())

        summary = _reconciler(cluster, stream).run()

        assert summary.outcomes.counts[ApplyStatus.SUCCESS] == 2
        assert summary.sources == 1
        assert summary.containers == 1
        assert {body["spec"]["containers"][0]["resources"]["requests"]["cpu"]
                for _, _, body in cluster.resize_calls} == {"200m"}

    def test_upper_bound_selected(self, cluster, stream):
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_source(_source())
        _reconciler(cluster, stream, bound_kind=BoundKind.UPPER_BOUND).run()
        assert cluster.resize_calls[0][2]["spec"]["containers"][0]["resources"]["requests"] == {
            "cpu": "400m", "memory": "512Mi"
        }

    def test_idempotent_run(self, cluster, stream):
        """A second run changes nothing"""
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_source(_source())
        _reconciler(cluster, stream).run()
        second = _reconciler(cluster, io.StringIO()).run()
        assert second.outcomes.counts[ApplyStatus.NO_CHANGE] == 1
        assert len(cluster.resize_calls) == 1

    def test_no_recommendation_skipped(self, cluster, stream):
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_source(_source(containers=(ContainerRecommendation(container_name="app"),)))
        summary = _reconciler(cluster, stream).run()
        assert summary.outcomes.total == 0
        assert _rows(stream) == []

    def test_no_pods_found(self, cluster, stream, caplog):
        cluster.namespaces.append("my-app")
        cluster.add_source(_source(target="ghost"))
        with caplog.at_level(logging.INFO):
            summary = _reconciler(cluster, stream).run()
        assert summary.outcomes.total == 0
        assert "No pods found for Deployment/ghost" in caplog.text
        assert "does not exist in namespace my-app" in caplog.text

    def test_source_error_contained(self, cluster, stream):
        """A failure in one VPA does not stop the next"""
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_source(_source(name="broken"))
        cluster.add_source(_source(name="good"))
        reconciler = _reconciler(cluster, stream)

        resolver = Mock(wraps=reconciler.resolver)
        resolver.resolve.side_effect = [RuntimeError("boom"), reconciler.resolver.resolve("my-app", TargetRef("Deployment", "web"))]
        reconciler.resolver = resolver

        summary = reconciler.run()
        assert summary.outcomes.counts[ApplyStatus.SUCCESS] == 1
        assert summary.sources == 2

    def test_namespace_error_contained(self, stream):
        cluster = Mock()
        cluster.list_namespaces.return_value = ["a", "b"]
        cluster.list_recommendation_sources.side_effect = [ClusterError("forbidden"), []]
        summary = _reconciler(cluster, stream, all_namespaces=True).run()
        assert summary.failed_namespaces == ["a"]
        assert summary.namespaces == ["a", "b"]

    def test_dry_run(self, cluster, stream):
        cluster.add_pod(make_pod("web-1", labels={"app": "web"}))
        cluster.add_source(_source())
        summary = _reconciler(cluster, stream, dry_run=True).run()
        assert summary.outcomes.counts[ApplyStatus.DRY_RUN] == 1
        assert cluster.resize_calls == []


class TestNamespaces:
    """Test namespace selection"""

    def test_single_namespace(self, cluster, stream):
        reconciler = _reconciler(cluster, stream, namespace="shop")
        assert reconciler.target_namespaces() == ["shop"]

    def test_all_namespaces_excludes_system(self, stream):
        cluster = Mock()
        cluster.list_namespaces.return_value = ["kube-system", "shop", "istio-system", "my-app", "billing"]
        reconciler = _reconciler(cluster, stream, all_namespaces=True)
        assert reconciler.target_namespaces() == ["billing", "my-app", "shop"]

    def test_exclude_default_namespace(self, stream):
        cluster = Mock()
        cluster.list_namespaces.return_value = ["shop", "my-app"]
        reconciler = _reconciler(cluster, stream, all_namespaces=True, exclude_default_namespace=True)
        assert reconciler.target_namespaces() == ["shop"]

    def test_list_namespaces_failure(self, stream):
        cluster = Mock()
        cluster.list_namespaces.side_effect = ClusterError("unauthorized")
        summary = _reconciler(cluster, stream, all_namespaces=True).run()
        assert summary.namespaces == []


class TestEligibilityIntegration:
    """Test the eligible set narrowing resolved pods"""

    def test_max_age_overrides_health(self, cluster, stream):
        """With max age 30 and health 5, only young pods are patched"""
        cluster.add_pod(make_pod("web-young", labels={"app": "web"}, age_minutes=10, ready=False, phase="Pending"))
        cluster.add_pod(make_pod("web-old", labels={"app": "web"}, age_minutes=240))
        cluster.add_source(_source())

        summary = _reconciler(cluster, stream, pod_healthy_duration=5, not_older_than=30).run()

        assert [name for _, name, _ in cluster.resize_calls] == ["web-young"]
        assert summary.ineligible_pods == 1
        assert [r["Pod_Name"] for r in _rows(stream)] == ["web-young"]

    def test_health_filter(self, cluster, stream):
        cluster.add_pod(make_pod("web-stable", labels={"app": "web"}, age_minutes=60, ready_minutes=30))
        cluster.add_pod(make_pod("web-flapping", labels={"app": "web"}, age_minutes=60, ready_minutes=1))
        cluster.add_source(_source())

        _reconciler(cluster, stream, pod_healthy_duration=5).run()
        assert [name for _, name, _ in cluster.resize_calls] == ["web-stable"]

    def test_empty_eligible_set_skips_namespace(self, cluster, stream):
        cluster.add_pod(make_pod("web-old", labels={"app": "web"}, age_minutes=240))
        cluster.add_source(_source())
        summary = _reconciler(cluster, stream, not_older_than=30).run()
        assert summary.skipped_namespaces == ["my-app"]
        assert summary.sources == 0

    def test_no_filter_processes_all(self, cluster, stream):
        cluster.add_pod(make_pod("web-new", labels={"app": "web"}, age_minutes=1, ready=False))
        cluster.add_source(_source())
        summary = _reconciler(cluster, stream, pod_healthy_duration=0).run()
        assert summary.outcomes.counts[ApplyStatus.SUCCESS] == 1
