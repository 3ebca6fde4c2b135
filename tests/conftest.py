"""Shared fixtures and fakes for dfirlab tests."""

from types import SimpleNamespace

import pytest
from kubernetes.client.rest import ApiException

from dfirlab.config import Settings
from dfirlab.core.models import ServiceDescriptor


def make_pod(name, phase="Running", ready=(True,), init_statuses=None):
    """Minimal stand-in for a V1Pod."""
    containers = [
        SimpleNamespace(name=f"c{i}", ready=r, restart_count=0)
        for i, r in enumerate(ready)
    ]
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        status=SimpleNamespace(
            phase=phase,
            container_statuses=containers or None,
            init_container_statuses=init_statuses,
        ),
    )


def init_status(name, terminated=False):
    state = SimpleNamespace(
        running=None if terminated else SimpleNamespace(),
        terminated=SimpleNamespace(exit_code=0) if terminated else None,
    )
    return SimpleNamespace(name=name, state=state)


class FakeK8s:
    """In-memory replacement for K8sClientManager.

    ``pod_lists`` is consumed one entry per unselected ``list_pods`` call;
    the last entry repeats. Entries that are exceptions are raised.
    """

    def __init__(
        self, pod_lists=None, services=(), secrets=None, model_pods=(), logs="", reachable=True
    ):
        self.pod_lists = list(pod_lists or [[]])
        self.services = set(services)
        self.secrets = dict(secrets or {})
        self.model_pods = list(model_pods)
        self.logs = logs
        self.reachable = reachable
        self.list_calls = 0

    def test_connection(self):
        return self.reachable

    def list_pods(self, namespace, label_selector=None):
        if label_selector:
            return self.model_pods
        self.list_calls += 1
        entry = self.pod_lists.pop(0) if len(self.pod_lists) > 1 else self.pod_lists[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    def service_exists(self, name, namespace):
        return name in self.services

    def read_secret(self, name, namespace):
        value = self.secrets.get(name)
        if isinstance(value, Exception):
            raise value
        return value

    def read_container_log(self, pod_name, namespace, container=None, tail_lines=20):
        if isinstance(self.logs, Exception):
            raise self.logs
        return self.logs


class FakeClock:
    """Virtual monotonic clock; sleeping advances it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProcess:
    """Stand-in for a long-running subprocess.Popen."""

    _next_pid = 1000

    def __init__(self, cmd, **kwargs):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.cmd = cmd
        self.kwargs = kwargs
        self.returncode = None
        self.terminated = False

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode

    def die(self, code=1):
        self.returncode = code


@pytest.fixture
def settings(tmp_path):
    tf_dir = tmp_path / "terraform"
    tf_dir.mkdir()
    return Settings(release_name="lab", namespace="osdfir", terraform_dir=tf_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def descriptors():
    return [
        ServiceDescriptor(name="timesketch", service="lab-timesketch", local_port=5000, remote_port=5000),
        ServiceDescriptor(name="yeti", service="lab-yeti", local_port=9000, remote_port=80),
        ServiceDescriptor(name="ollama", service="ollama", local_port=11434, remote_port=11434),
    ]


@pytest.fixture
def api_error():
    return ApiException(status=500, reason="Internal Server Error")
