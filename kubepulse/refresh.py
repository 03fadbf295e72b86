"""
Background fetches. Each task runs on a worker thread and reports back by
putting exactly one event on the shared queue; the event loop is the only
consumer, so state is never touched off the main thread.
"""

import logging
import queue
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Optional

from kubepulse import diagnosis
from kubepulse.events import (
    WORKLOADS_CATEGORY,
    ActionCompleted,
    FetchFailed,
    NamespacesFetched,
    SummaryFetched,
    ViewerContentFetched,
    WorkloadsFetched,
)
from kubepulse.kubectl import KubectlClient, KubectlError
from kubepulse.models import SessionState, WorkloadRecord

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 6


class RefreshTimer:
    """Fires immediately, then once every `interval` seconds."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._next: Optional[float] = None

    def due(self) -> bool:
        now = self._clock()
        if self._next is None or now >= self._next:
            self._next = now + self.interval
            return True
        return False


class RefreshPipeline:
    """
    Fire-and-forget fetches. Nothing is cancelled: whichever result arrives
    last for a category is the one the reducer applies.
    """

    def __init__(
        self,
        client: KubectlClient,
        events: "queue.Queue[Any]",
        log_tail: int = 100,
        executor: Optional[Executor] = None,
    ):
        self.client = client
        self.events = events
        self.log_tail = log_tail
        self._executor = executor or ThreadPoolExecutor(
            max_workers=DEFAULT_WORKERS, thread_name_prefix="kubepulse-fetch"
        )

    def _submit(self, task: Callable[[], Any], on_error: Callable[[Exception], Any]) -> None:
        self._executor.submit(self._run, task, on_error)

    def _run(self, task: Callable[[], Any], on_error: Callable[[Exception], Any]) -> None:
        try:
            event = task()
        except KubectlError as e:
            event = on_error(e)
        except Exception as e:
            # Unexpected failures still answer with exactly one event
            logger.exception("Unexpected error in background fetch")
            event = on_error(e)
        self.events.put(event)

    @staticmethod
    def _failed(category: str) -> Callable[[Exception], FetchFailed]:
        def on_error(e: Exception) -> FetchFailed:
            logger.warning("%s fetch failed: %s", category, e)
            return FetchFailed(category, str(e))

        return on_error

    # --- periodic ---

    def refresh_all(self) -> None:
        self.refresh_workloads()
        self.refresh_summary()
        self.refresh_namespaces()

    def refresh_workloads(self) -> None:
        self._submit(
            lambda: WorkloadsFetched(tuple(self.client.fetch_workloads())),
            self._failed(WORKLOADS_CATEGORY),
        )

    def refresh_summary(self) -> None:
        self._submit(
            lambda: SummaryFetched(self.client.fetch_cluster_summary()),
            self._failed("Nodes"),
        )

    def refresh_namespaces(self) -> None:
        self._submit(
            lambda: NamespacesFetched(tuple(self.client.list_namespaces())),
            self._failed("Namespaces"),
        )

    # --- one-shot viewer content ---

    def _viewer_error(
        self, kind: SessionState, workload: WorkloadRecord, what: str, container: str = ""
    ):
        def on_error(e: Exception) -> ViewerContentFetched:
            logger.warning("Fetching %s for %s failed: %s", what, workload.key, e)
            return ViewerContentFetched(
                kind, workload.key, f"Error fetching {what}: {e}", container
            )

        return on_error

    def fetch_logs(self, workload: WorkloadRecord, container: str) -> None:
        kind = SessionState.LOG_VIEW
        self._submit(
            lambda: ViewerContentFetched(
                kind,
                workload.key,
                self.client.logs(
                    workload.namespace, workload.name, container, tail=self.log_tail
                ),
                container,
            ),
            self._viewer_error(kind, workload, "logs", container),
        )

    def fetch_diagnosis(self, workload: WorkloadRecord) -> None:
        kind = SessionState.DIAGNOSIS_VIEW
        self._submit(
            lambda: ViewerContentFetched(
                kind, workload.key, diagnosis.build_report(self.client, workload)
            ),
            self._viewer_error(kind, workload, "diagnosis"),
        )

    def fetch_manifest(self, workload: WorkloadRecord) -> None:
        kind = SessionState.MANIFEST_VIEW
        self._submit(
            lambda: ViewerContentFetched(
                kind, workload.key, self.client.manifest(workload.namespace, workload.name)
            ),
            self._viewer_error(kind, workload, "YAML"),
        )

    # --- destructive ---

    def delete_workload(self, workload: WorkloadRecord, restart: bool = False) -> None:
        verb = "Restart" if restart else "Delete"

        def task() -> ActionCompleted:
            self.client.delete_pod(workload.namespace, workload.name)
            return ActionCompleted("Pod restarted." if restart else "Pod deleted.")

        def on_error(e: Exception) -> ActionCompleted:
            logger.warning("%s of %s failed: %s", verb, workload.key, e)
            return ActionCompleted(f"{verb} failed: {e}", ok=False)

        self._submit(task, on_error)

    def cleanse_namespace(self, namespace: str) -> None:
        def task() -> ActionCompleted:
            self.client.delete_all_pods(namespace)
            return ActionCompleted(f"ALL PODS IN '{namespace}' HAVE BEEN DELETED.")

        def on_error(e: Exception) -> ActionCompleted:
            logger.warning("Cleanse of %s failed: %s", namespace, e)
            return ActionCompleted(f"Cleanse failed: {e}", ok=False)

        self._submit(task, on_error)

    def shutdown(self) -> None:
        # In-flight kubectl calls are left to finish on their own
        self._executor.shutdown(wait=False, cancel_futures=True)
