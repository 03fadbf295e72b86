import sys
from typing import Callable, Dict, List

import pytest

from kubepulse.kubectl import KubectlClient
from kubepulse.models import ClusterSummary, Phase, WorkloadRecord


class FakeClient(KubectlClient):
    """KubectlClient that answers from memory instead of running kubectl."""

    def __init__(self):
        super().__init__()
        self.workloads: List[WorkloadRecord] = []
        self.summary = ClusterSummary(node_count=1)
        self.namespaces: List[str] = ["default"]
        self.events: List[dict] = []
        self.log_text = ""
        self.manifest_text = "apiVersion: v1\nkind: Pod\n"
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]

    def fetch_workloads(self):
        self._record("fetch_workloads")
        return list(self.workloads)

    def fetch_cluster_summary(self):
        self._record("fetch_cluster_summary")
        return self.summary

    def list_namespaces(self):
        self._record("list_namespaces")
        return sorted(self.namespaces)

    def list_events(self, namespace, name):
        self._record("list_events", namespace, name)
        return list(self.events)

    def logs(self, namespace, name, container="", tail=100):
        self._record("logs", namespace, name, container, tail)
        return self.log_text

    def manifest(self, namespace, name):
        self._record("manifest", namespace, name)
        return self.manifest_text

    def delete_pod(self, namespace, name):
        self._record("delete_pod", namespace, name)

    def delete_all_pods(self, namespace):
        self._record("delete_all_pods", namespace)


class BinaryLogClient(KubectlClient):
    """Runs a real child process whose output is not valid UTF-8."""

    SCRIPT = "import sys; sys.stdout.buffer.write(b'ok line\\n\\xff\\xfe junk\\n')"

    def base_argv(self):
        return [sys.executable, "-c", self.SCRIPT]


class InlineExecutor:
    """Executor that runs submitted work on the calling thread."""

    def __init__(self):
        self.submitted = 0
        self.shut_down = False

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        fn(*args, **kwargs)

    def shutdown(self, wait=True, cancel_futures=False):
        self.shut_down = True


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def binary_log_client() -> BinaryLogClient:
    return BinaryLogClient()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def make_workload() -> Callable[..., WorkloadRecord]:
    """Healthy single-container Running pod unless overridden."""

    def factory(name: str = "web-1", namespace: str = "default", **overrides) -> WorkloadRecord:
        values = dict(
            namespace=namespace,
            name=name,
            phase=Phase.RUNNING,
            ready_count=1,
            total_count=1,
            ready=True,
            restarts=0,
            cpu_millicores=10,
            memory_bytes=64 * 1024 * 1024,
            node_name="node-1",
            pod_ip="10.0.0.5",
            port=8000,
            age_seconds=600.0,
            containers=("app",),
            note="[OK]",
        )
        values.update(overrides)
        return WorkloadRecord(**values)

    return factory
