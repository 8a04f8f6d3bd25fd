"""
Concurrent Applier
Applies patch plans to pods in fixed-size concurrent batches

Every pod of a batch runs on its own worker thread; the next batch starts
only after every pod of the batch has an outcome. One failing pod never affects the
others, and every dispatched (pod, container) pair produces exactly one
ledger row.

A batch waits at most `batch_timeout` seconds. Pods that have not sent
their patch by then are recorded as timed out and are never patched
afterwards; a patch already in flight is waited for and recorded with its
real result.
"""

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from vpa_resizer.audit_ledger import AuditLedger
from vpa_resizer.exceptions import ClusterError, ContainerNotFoundError
from vpa_resizer.models import (
    ApplyStatus,
    ApplySummary,
    AuditRecord,
    BoundKind,
    ContainerUsage,
    TargetRef,
)
from vpa_resizer.patch_planner import plan_patch
from vpa_resizer.quantity import NOT_AVAILABLE, display_memory
from vpa_resizer.usage import UsageProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


@dataclass(frozen=True)
class ApplyContext:
    """What is being applied, shared by every pod of one container recommendation"""
    namespace: str
    source_name: str
    target: TargetRef
    container_name: str
    recommended_cpu: Optional[str]
    recommended_memory: Optional[str]


class _Attempt:
    """
    Lifecycle of one pod within a batch.

    The batch deadline may expire an attempt only before its patch has been
    sent. Once the patch is in flight the attempt can no longer expire, and
    the batch waits for the call's real outcome, which is bounded by the API
    request timeout.
    """

    PENDING = "pending"
    PATCHING = "patching"
    DONE = "done"
    EXPIRED = "expired"

    def __init__(self, pod_name: str):
        self.pod_name = pod_name
        self._lock = threading.Lock()
        self._state = self.PENDING

    def begin_patch(self) -> bool:
        """False if the deadline already expired this attempt; nothing may be sent"""
        with self._lock:
            if self._state == self.EXPIRED:
                return False
            self._state = self.PATCHING
            return True

    def finish(self) -> bool:
        """False if the outcome was already recorded as timed out"""
        with self._lock:
            if self._state == self.EXPIRED:
                return False
            self._state = self.DONE
            return True

    def expire(self) -> bool:
        """False if the patch is in flight or the attempt already finished"""
        with self._lock:
            if self._state != self.PENDING:
                return False
            self._state = self.EXPIRED
            return True


class ConcurrentApplier:
    """Drives fresh read -> plan -> patch for each pod and records the outcome"""

    def __init__(
        self,
        cluster,
        ledger: AuditLedger,
        bound_kind: BoundKind,
        dry_run: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_timeout: Optional[float] = None,
        usage: Optional[UsageProvider] = None,
        metrics=None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.cluster = cluster
        self.ledger = ledger
        self.bound_kind = bound_kind
        self.dry_run = dry_run
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self.usage = usage
        self.metrics = metrics

    def apply(self, context: ApplyContext, pod_names: List[str]) -> ApplySummary:
        """Process pods in FIFO batches; returns counts per status"""
        summary = ApplySummary()
        if not pod_names:
            return summary

        total = len(pod_names)
        for batch_number, start in enumerate(range(0, total, self.batch_size), start=1):
            batch = pod_names[start:start + self.batch_size]
            logger.info(
                f"      Processing batch {batch_number} "
                f"(pods {start + 1}-{start + len(batch)} of {total})"
            )
            summary.merge(self._run_batch(context, batch))
            if self.metrics:
                self.metrics.record_batch(context.namespace)
            logger.info(f"      Completed batch {batch_number}")

        return summary

    def _run_batch(self, context: ApplyContext, batch: List[str]) -> ApplySummary:
        # A fresh pool per batch, so a worker stuck past the deadline never
        # holds a slot needed by the next batch.
        summary = ApplySummary()
        attempts = {}
        executor = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="resize")
        try:
            for pod_name in batch:
                attempt = _Attempt(pod_name)
                future = executor.submit(self._process_pod, context, attempt)
                attempts[future] = attempt

            done, not_done = wait(attempts, timeout=self.batch_timeout)

            for future in done:
                status = future.result()
                if status is not None:
                    summary.add(status)

            for future in not_done:
                attempt = attempts[future]
                future.cancel()
                if attempt.expire():
                    message = (
                        f"Timed out after {self.batch_timeout}s waiting for pod {attempt.pod_name}; "
                        f"no patch was sent"
                    )
                    logger.error(f"        ✗ {message}")
                    self._write(self._record(context, attempt.pod_name, ApplyStatus.FAILED, message))
                    summary.add(ApplyStatus.FAILED)
                    continue

                logger.warning(f"        Batch deadline passed with the patch for pod {attempt.pod_name} in flight; "
                               f"waiting for its result")
                status = future.result()
                if status is not None:
                    summary.add(status)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return summary

    def _process_pod(self, context: ApplyContext, attempt: _Attempt) -> Optional[ApplyStatus]:
        try:
            record = self.apply_to_pod(context, attempt.pod_name, attempt)
        except Exception as e:
            logger.error(f"        ✗ Unexpected error processing pod {attempt.pod_name}: {e}", exc_info=True)
            record = self._record(context, attempt.pod_name, ApplyStatus.FAILED, str(e))

        if record is None or not attempt.finish():
            logger.warning(f"        Pod {attempt.pod_name} was recorded as timed out; it was not patched")
            return None

        self._write(record)
        return record.status

    def apply_to_pod(self, context: ApplyContext, pod_name: str,
                     attempt: Optional[_Attempt] = None) -> Optional[AuditRecord]:
        """
        Evaluate and apply one pod. Returns the ledger record, does not write it.

        The pod is read fresh here, never reused from resolution, so the diff
        reflects the state at apply time. Returns None without patching when
        the attempt has already expired.
        """
        namespace = context.namespace
        container = context.container_name
        logger.info(f"      Processing pod: {pod_name}")

        try:
            pod = self.cluster.read_pod(namespace, pod_name)
        except ClusterError as e:
            logger.error(f"        ✗ Failed to get pod spec for {pod_name}: {e}")
            return self._record(context, pod_name, ApplyStatus.SKIPPED, f"Failed to get pod: {e}")

        try:
            plan = plan_patch(pod, container, context.recommended_cpu, context.recommended_memory)
        except ContainerNotFoundError as e:
            logger.error(f"        ✗ {e}")
            return self._record(context, pod_name, ApplyStatus.SKIPPED, str(e))

        current = pod.containers[container]
        logger.info(f"        Current requests - CPU: {current.cpu}, Memory: {current.memory}")
        kind = self.bound_kind.value

        if plan.cpu is not None:
            logger.info(f"        Will update CPU: {current.cpu} -> {plan.cpu}")
        elif context.recommended_cpu is not None:
            logger.info(f"        CPU already matches {kind} recommendation: {context.recommended_cpu}")
        if plan.memory is not None:
            logger.info(f"        Will update Memory: {current.memory} -> {plan.memory}")
        elif context.recommended_memory is not None:
            logger.info(f"        Memory already matches {kind} recommendation: {context.recommended_memory}")

        def record(status: ApplyStatus, message: str) -> AuditRecord:
            return self._record(
                context, pod_name, status, message,
                current_cpu=current.cpu,
                current_memory=current.memory,
                usage=self._observed_usage(namespace, pod_name, container),
            )

        if plan.is_empty:
            logger.info("        ✓ No changes needed - resources already match recommendations")
            return record(ApplyStatus.NO_CHANGE, "Resources already match recommendations")

        body = plan.to_patch_body()
        patch_json = json.dumps(body, separators=(",", ":"))

        if self.dry_run:
            logger.info(f"        [DRY RUN] Would patch pod {pod_name} with: {patch_json}")
            return record(ApplyStatus.DRY_RUN, f"Would apply patch: {patch_json}")

        if attempt is not None and not attempt.begin_patch():
            return None

        logger.info(f"        Patching pod {pod_name}...")
        started = time.monotonic()
        try:
            self.cluster.resize_pod(namespace, pod_name, body)
        except ClusterError as e:
            logger.error(f"        ✗ Failed to update resource requests for container {container} in pod {pod_name}")
            logger.error(f"        Error: {e}")
            return record(ApplyStatus.FAILED, str(e))
        finally:
            if self.metrics:
                self.metrics.observe_patch(time.monotonic() - started)

        logger.info(f"        ✓ Successfully updated resource requests for container {container} in pod {pod_name}")
        return record(ApplyStatus.SUCCESS, "Resource requests updated successfully")

    def _observed_usage(self, namespace: str, pod_name: str, container: str) -> Optional[ContainerUsage]:
        if self.bound_kind != BoundKind.UPPER_BOUND or self.usage is None:
            return None
        try:
            return self.usage.get_usage(namespace, pod_name, container)
        except Exception as e:
            logger.debug(f"Usage lookup failed for {namespace}/{pod_name}: {e}")
            return None

    def _record(
        self,
        context: ApplyContext,
        pod_name: str,
        status: ApplyStatus,
        message: str,
        current_cpu: str = NOT_AVAILABLE,
        current_memory: str = NOT_AVAILABLE,
        usage: Optional[ContainerUsage] = None,
    ) -> AuditRecord:
        return AuditRecord(
            timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            namespace=context.namespace,
            source_name=context.source_name,
            target_kind=context.target.kind,
            target_name=context.target.name,
            pod_name=pod_name,
            container_name=context.container_name,
            current_cpu=current_cpu,
            current_memory=current_memory,
            actual_cpu=usage.cpu if usage else NOT_AVAILABLE,
            actual_memory=usage.memory if usage else NOT_AVAILABLE,
            recommended_cpu=context.recommended_cpu or NOT_AVAILABLE,
            recommended_memory=context.recommended_memory or NOT_AVAILABLE,
            recommended_memory_display=display_memory(context.recommended_memory),
            status=status,
            message=message,
        )

    def _write(self, record: AuditRecord):
        self.ledger.append(record)
        if self.metrics:
            self.metrics.record_decision(record.namespace, record.status)
