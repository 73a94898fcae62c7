"""
Fixtures compartilhadas: relógio falso e um cluster roteirizado que
substitui o ClusterClient nos testes do probe, do harness e da CLI.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pod_recovery.cluster.client import ReplicaStatus
from pod_recovery.core.base import EventType, PodEvent, PodRef
from pod_recovery.core.config import HarnessConfig
from pod_recovery.core.errors import NotFoundError

OWNER = "web-7d4b9c"
LABELS = {"app": "web", "pod-template-hash": "7d4b9c"}
BASE_TIME = datetime(2025, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Relógio monotônico controlado pelo teste"""

    def __init__(self, start: float = 1000.0):
        self.value = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float):
        self.value += seconds

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.advance(seconds)

    def wall(self) -> datetime:
        return BASE_TIME + timedelta(seconds=self.value)


def make_pod(name, uid=None, ready=True, phase="Running", labels=None, owner=OWNER,
             terminating=False, created=None, namespace="default"):
    return PodRef(
        name=name,
        namespace=namespace,
        uid=uid or f"uid-{name}",
        labels=dict(LABELS if labels is None else labels),
        owner=owner,
        phase=phase,
        ready=ready,
        terminating=terminating,
        created=created,
    )


def event(pod, event_type=EventType.MODIFIED):
    return PodEvent(pod=pod, phase=pod.phase, timestamp=BASE_TIME, event_type=event_type)


def replacement_script(name, pending_after=0.5, ready_after=1.0):
    """Um substituto que aparece Pending e depois fica Ready"""
    pending = make_pod(name, ready=False, phase="Pending")
    ready = make_pod(name, ready=True, phase="Running")
    return [
        (pending_after, event(pending, EventType.ADDED)),
        (ready_after, event(ready)),
    ]


class FakeCluster:
    """
    Cluster roteirizado. Cada chamada de watch_pods consome o próximo roteiro
    de ``watch_scripts``: uma lista de (atraso em segundos, evento ou exceção).
    Um roteiro esgotado bloqueia até o prazo do watch, como o servidor real.
    """

    def __init__(self, clock, pods=None, desired=3, ready=None):
        self.clock = clock
        self.pods = list(pods or [])
        self.desired = desired
        self.ready = desired if ready is None else ready
        self.watch_scripts = []
        self.watch_calls = []
        self.closed_watches = 0
        self.deleted = []
        self.delete_error = None
        self.list_error = None
        self.missing_deployment = False
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def list_pods(self, namespace, label_selector):
        if self.list_error:
            raise self.list_error
        return list(self.pods)

    def delete_pod(self, pod, graceful=True):
        self.deleted.append((pod, graceful))
        if self.delete_error:
            raise self.delete_error
        self.pods = [p for p in self.pods if p.uid != pod.uid]

    def watch_pods(self, namespace, label_selector, timeout):
        self.watch_calls.append(timeout)
        script = self.watch_scripts.pop(0) if self.watch_scripts else []
        return self._stream(script, timeout)

    def _stream(self, script, timeout):
        deadline = self.clock() + timeout
        try:
            for delay, item in script:
                self.clock.advance(delay)
                if self.clock() > deadline:
                    self.clock.value = deadline
                    return
                if isinstance(item, BaseException):
                    raise item
                self._track(item)
                yield item
            self.clock.advance(max(0.0, deadline - self.clock()))
        finally:
            self.closed_watches += 1

    def _track(self, pod_event):
        pods = [p for p in self.pods if p.uid != pod_event.pod.uid]
        if pod_event.event_type is not EventType.DELETED:
            pods.append(pod_event.pod)
        self.pods = pods

    def get_replica_status(self, deployment_name, namespace=None):
        if self.missing_deployment:
            raise NotFoundError("Deployment", deployment_name, namespace)
        return ReplicaStatus(desired=self.desired, ready=self.ready)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pods():
    return [make_pod("web-a"), make_pod("web-b"), make_pod("web-c")]


@pytest.fixture
def cluster(clock, pods):
    return FakeCluster(clock, pods=pods)


@pytest.fixture
def config():
    return HarnessConfig(
        namespace="default",
        label_selector="app=web",
        deployment="web",
        count=1,
        strategy="first",
        watch_timeout=5.0,
        convergence_timeout=3.0,
        poll_interval=1.0,
    )
