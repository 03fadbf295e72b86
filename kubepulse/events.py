"""
Typed events consumed by the reducer and typed effects it hands back.

Events are the only way anything reaches the application state: key
presses, timer ticks and results of background fetches all go through one
queue. Effects describe work the runtime should do next.
"""

from dataclasses import dataclass
from typing import Tuple

from kubepulse.models import (
    ClusterSummary,
    ForwardKey,
    SessionState,
    WorkloadRecord,
)

# --- events ---

WORKLOADS_CATEGORY = "Pods"


@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class WorkloadsFetched:
    records: Tuple[WorkloadRecord, ...]


@dataclass(frozen=True)
class SummaryFetched:
    summary: ClusterSummary


@dataclass(frozen=True)
class NamespacesFetched:
    names: Tuple[str, ...]


@dataclass(frozen=True)
class FetchFailed:
    category: str
    message: str


@dataclass(frozen=True)
class ViewerContentFetched:
    """Logs, diagnosis or manifest text for the overlay `kind`."""

    kind: SessionState
    key: ForwardKey
    text: str
    # only set for logs
    container: str = ""


@dataclass(frozen=True)
class ActionCompleted:
    message: str
    ok: bool = True


@dataclass(frozen=True)
class ForwardChanged:
    key: ForwardKey
    active: bool
    message: str


@dataclass(frozen=True)
class StatusMessage:
    message: str
    ok: bool = True


# --- effects ---


@dataclass(frozen=True)
class RefreshAll:
    pass


@dataclass(frozen=True)
class RefreshWorkloads:
    pass


@dataclass(frozen=True)
class FetchLogs:
    workload: WorkloadRecord
    container: str


@dataclass(frozen=True)
class FetchDiagnosis:
    workload: WorkloadRecord


@dataclass(frozen=True)
class FetchManifest:
    workload: WorkloadRecord


@dataclass(frozen=True)
class DeleteWorkload:
    workload: WorkloadRecord
    restart: bool = False


@dataclass(frozen=True)
class CleanseNamespace:
    namespace: str


@dataclass(frozen=True)
class OpenShell:
    workload: WorkloadRecord
    container: str


@dataclass(frozen=True)
class TogglePortForward:
    workload: WorkloadRecord


@dataclass(frozen=True)
class Quit:
    pass
