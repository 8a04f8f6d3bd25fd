"""
Reconciler
Namespace -> VPA -> container -> pods control flow

Namespaces are processed one after another. Within a namespace the eligible
pod set is computed once and read-only for the rest of the pass; each
container recommendation is then resolved to pods and handed to the
ConcurrentApplier. Failures are contained at the namespace, VPA and
container boundaries so one bad object never stops the run.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from vpa_resizer.applier import ApplyContext, ConcurrentApplier
from vpa_resizer.config import ResizerConfig
from vpa_resizer.eligibility import EligibilityFilter, EligibleSet
from vpa_resizer.exceptions import ClusterError
from vpa_resizer.models import ApplySummary, RecommendationSource
from vpa_resizer.pod_resolver import WorkloadPodResolver
from vpa_resizer.recommendations import has_recommendation, select_bound

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What one run did, for the final log lines and exit status"""
    namespaces: List[str] = field(default_factory=list)
    skipped_namespaces: List[str] = field(default_factory=list)
    failed_namespaces: List[str] = field(default_factory=list)
    sources: int = 0
    containers: int = 0
    ineligible_pods: int = 0
    outcomes: ApplySummary = field(default_factory=ApplySummary)


class Reconciler:
    """Walks namespaces and drives the applier for every recommendation"""

    def __init__(
        self,
        config: ResizerConfig,
        cluster,
        applier: ConcurrentApplier,
        resolver: Optional[WorkloadPodResolver] = None,
        eligibility: Optional[EligibilityFilter] = None,
    ):
        self.config = config
        self.cluster = cluster
        self.applier = applier
        self.resolver = resolver or WorkloadPodResolver(cluster)
        self.eligibility = eligibility or EligibilityFilter(config.window)

    def target_namespaces(self) -> List[str]:
        """Namespaces to process: the configured one, or every user namespace"""
        if not self.config.all_namespaces:
            return [self.config.namespace]

        excluded = self.config.excluded_namespaces()
        namespaces = sorted(ns for ns in self.cluster.list_namespaces() if ns not in excluded)
        if namespaces:
            logger.info(f"Found {len(namespaces)} user namespaces: {' '.join(namespaces)}")
        else:
            logger.info("No user namespaces found to process.")
        if self.config.exclude_default_namespace:
            logger.info(f"Note: '{self.config.namespace}' namespace is excluded from processing")
        return namespaces

    def run(self) -> RunSummary:
        summary = RunSummary()

        if self.config.all_namespaces:
            logger.info("Mode: Processing ALL user namespaces")
        else:
            logger.info(f"Mode: Processing single namespace: {self.config.namespace}")
        if self.config.dry_run:
            logger.info("DRY RUN MODE - No changes will be made")

        try:
            namespaces = self.target_namespaces()
        except ClusterError as e:
            logger.error(f"Failed to list namespaces: {e}")
            return summary

        for namespace in namespaces:
            try:
                self.process_namespace(namespace, summary)
            except Exception as e:
                logger.error(f"✗ Failed processing namespace {namespace}: {e}", exc_info=True)
                summary.failed_namespaces.append(namespace)

        if self.config.all_namespaces:
            logger.info("Completed processing all namespaces")
        return summary

    def eligible_pods(self, namespace: str) -> EligibleSet:
        window = self.config.window
        if not window.is_active:
            return EligibleSet()

        logger.info(f"Filtering pods {window.describe()}...")
        pods = self.cluster.list_pods(namespace)
        eligible = self.eligibility.evaluate(pods)
        logger.info(f"Found {len(eligible)} eligible pods in namespace {namespace}")
        return eligible

    def process_namespace(self, namespace: str, summary: RunSummary):
        eligible = self.eligible_pods(namespace)
        if not eligible.unrestricted and len(eligible) == 0:
            logger.info(f"No eligible pods found in namespace {namespace}, skipping.")
            summary.skipped_namespaces.append(namespace)
            return

        logger.info(f"=== Processing namespace: {namespace} ===")
        summary.namespaces.append(namespace)

        sources = self.cluster.list_recommendation_sources(namespace)
        if not sources:
            logger.info(f"No VPA objects found in namespace {namespace}")

        for source in sources:
            summary.sources += 1
            try:
                self.process_source(source, eligible, summary)
            except Exception as e:
                logger.error(f"  ✗ Failed processing VPA {source.name}: {e}", exc_info=True)

        logger.info(f"=== Completed processing namespace: {namespace} ===")

    def process_source(self, source: RecommendationSource, eligible: EligibleSet, summary: RunSummary):
        logger.info(f"Processing VPA: {source.name}")
        logger.info(f"  Target: {source.target_ref.kind}/{source.target_ref.name}")

        if not source.containers:
            logger.info(f"  ✗ No container recommendations found for VPA {source.name}")
            return

        for recommendation in source.containers:
            summary.containers += 1
            try:
                self.process_container(source, recommendation, eligible, summary)
            except Exception as e:
                logger.error(
                    f"    ✗ Failed processing container {recommendation.container_name} "
                    f"of VPA {source.name}: {e}",
                    exc_info=True,
                )

    def process_container(self, source: RecommendationSource, recommendation, eligible: EligibleSet,
                          summary: RunSummary):
        kind = self.config.bound_kind
        container = recommendation.container_name
        cpu, memory = select_bound(recommendation, kind)

        logger.info(f"    Container: {container}")
        logger.info(f"      {kind.label} CPU: {cpu or 'N/A'}, Memory: {memory or 'N/A'}")

        if not has_recommendation(cpu, memory):
            logger.info(f"      ✗ No {kind.value} recommendations available for container {container}")
            return

        resolution = self.resolver.resolve(source.namespace, source.target_ref)
        if not resolution.found:
            logger.info(f"      ✗ No pods found for {source.target_ref.kind}/{source.target_ref.name}")
            for line in resolution.diagnostics:
                logger.info(f"      → {line}")
            return

        pod_names = []
        for pod in resolution.pods:
            if eligible.allows(pod.name):
                pod_names.append(pod.name)
            else:
                summary.ineligible_pods += 1
                logger.info(f"      Skipping pod {pod.name} ({self._ineligible_reason()})")

        if not pod_names:
            logger.info(f"      No eligible pods for {source.target_ref.kind}/{source.target_ref.name}")
            return

        context = ApplyContext(
            namespace=source.namespace,
            source_name=source.name,
            target=source.target_ref,
            container_name=container,
            recommended_cpu=cpu,
            recommended_memory=memory,
        )
        summary.outcomes.merge(self.applier.apply(context, pod_names))

    def _ineligible_reason(self) -> str:
        window = self.config.window
        if window.mode == "max_age":
            return f"older than {window.max_age_minutes} minutes"
        return "not healthy for required duration"
