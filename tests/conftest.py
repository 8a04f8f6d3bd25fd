"""
Shared fixtures: an in-memory cluster standing in for ClusterClient
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from vpa_resizer.exceptions import ClusterError, ResourceNotFoundError
from vpa_resizer.models import ContainerRequests, WorkloadInstance, WorkloadStatus

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


def make_pod(name, namespace="my-app", cpu="100m", memory="128Mi", container="app",
             labels=None, age_minutes=60, phase="Running", ready=True, ready_minutes=None,
             started_minutes=None, extra_containers=None):
    """Build a WorkloadInstance relative to NOW"""
    created = NOW - timedelta(minutes=age_minutes)
    started = NOW - timedelta(minutes=started_minutes if started_minutes is not None else age_minutes)
    ready_at = NOW - timedelta(minutes=ready_minutes if ready_minutes is not None else age_minutes)
    containers = {container: ContainerRequests(cpu=cpu, memory=memory)}
    containers.update(extra_containers or {})
    return WorkloadInstance(
        name=name,
        namespace=namespace,
        creation_time=created,
        phase=phase,
        start_time=started,
        ready=ready,
        ready_transition_time=ready_at,
        containers=containers,
        labels=dict(labels or {}),
    )


class FakeCluster:
    """
    In-memory ClusterClient.

    resize_pod applies the patch to the stored pod, so a second pass sees the
    new requests. Failures and hangs can be injected per pod: `hang_read`
    blocks before the patch is sent, `hang` blocks inside the patch call.
    """

    def __init__(self):
        self.namespaces = []
        self.pods = {}
        self.sources = {}
        self.workloads = {}
        self.resize_calls = []
        self.read_calls = []
        self.fail_resize = {}
        self.fail_read = set()
        self.hang = {}
        self.hang_read = {}
        self._lock = threading.Lock()

    def add_pod(self, pod):
        self.pods[(pod.namespace, pod.name)] = pod
        if pod.namespace not in self.namespaces:
            self.namespaces.append(pod.namespace)
        return pod

    def add_source(self, source):
        self.sources.setdefault(source.namespace, []).append(source)

    def list_namespaces(self):
        return list(self.namespaces)

    def list_recommendation_sources(self, namespace):
        return list(self.sources.get(namespace, []))

    def list_pods(self, namespace, label_selector=None):
        pods = [p for (ns, _), p in sorted(self.pods.items()) if ns == namespace]
        if not label_selector:
            return pods
        return [p for p in pods if _matches(p.labels, label_selector)]

    def read_pod(self, namespace, name):
        with self._lock:
            self.read_calls.append(name)
        event = self.hang_read.get(name)
        if event is not None:
            event.wait(5)
        if name in self.fail_read:
            raise ClusterError(f"pod {namespace}/{name}: connection reset")
        if (namespace, name) not in self.pods:
            raise ResourceNotFoundError(f"pod {namespace}/{name}: not found")
        return self.pods[(namespace, name)]

    def read_workload(self, namespace, kind, name):
        status = self.workloads.get((namespace, kind, name))
        if status is None:
            return WorkloadStatus(kind=kind, name=name, exists=False)
        return status

    def resize_pod(self, namespace, name, body):
        event = self.hang.get(name)
        if event is not None:
            event.wait(5)
        with self._lock:
            self.resize_calls.append((namespace, name, body))
        if name in self.fail_resize:
            raise ClusterError(self.fail_resize[name])

        container = body["spec"]["containers"][0]
        requests = container["resources"]["requests"]
        pod = self.pods[(namespace, name)]
        current = pod.containers[container["name"]]
        pod.containers[container["name"]] = ContainerRequests(
            cpu=requests.get("cpu", current.cpu),
            memory=requests.get("memory", current.memory),
        )


def _matches(labels, selector):
    for term in selector.split(","):
        if "=" in term:
            key, value = term.split("=", 1)
            if labels.get(key) != value:
                return False
        elif term not in labels:
            return False
    return True


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def now():
    return NOW
