"""
Data model for the dashboard: workload records, cluster summary, view
configuration and the immutable application state snapshot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, NamedTuple, Optional, Tuple

ALL_NAMESPACES = "all"


class Phase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Phase":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class SortMode(str, Enum):
    DEFAULT = "default"
    CPU = "cpu"
    MEMORY = "memory"


class SessionState(str, Enum):
    LIST = "list"
    LOG_VIEW = "logs"
    DIAGNOSIS_VIEW = "diagnosis"
    MANIFEST_VIEW = "manifest"
    CONTAINER_PICKER = "container-picker"
    DELETE_CONFIRM = "delete-confirm"
    RESTART_CONFIRM = "restart-confirm"
    CLEANSE_CONFIRM = "cleanse-confirm"


VIEWER_STATES = frozenset(
    {SessionState.LOG_VIEW, SessionState.DIAGNOSIS_VIEW, SessionState.MANIFEST_VIEW}
)


class ActionKind(str, Enum):
    VIEW_LOGS = "logs"
    OPEN_SHELL = "shell"


class ForwardKey(NamedTuple):
    """Identity of a workload: (namespace, name)."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class WorkloadRecord:
    namespace: str
    name: str
    phase: Phase = Phase.UNKNOWN
    ready_count: int = 0
    total_count: int = 0
    ready: bool = False
    restarts: int = 0
    # None means no metrics sample exists for this workload
    cpu_millicores: Optional[int] = None
    memory_bytes: Optional[int] = None
    node_name: str = ""
    pod_ip: str = ""
    port: int = 0
    age_seconds: float = 0.0
    containers: Tuple[str, ...] = ()
    note: str = ""

    @property
    def key(self) -> ForwardKey:
        return ForwardKey(self.namespace, self.name)

    @property
    def ready_display(self) -> str:
        return f"{self.ready_count}/{self.total_count}"

    @property
    def cpu_display(self) -> str:
        if self.cpu_millicores is None:
            return "-"
        return f"{self.cpu_millicores}m"

    @property
    def memory_display(self) -> str:
        if self.memory_bytes is None:
            return "-"
        return f"{self.memory_bytes // (1024 * 1024)}Mi"


@dataclass(frozen=True)
class ClusterSummary:
    """Aggregate node capacity and usage from the latest poll."""

    node_count: int = 0
    cpu_capacity_millicores: int = 0
    memory_capacity_bytes: int = 0
    cpu_usage_millicores: int = 0
    memory_usage_bytes: int = 0
    # per-node CPU% of allocatable, ordered by node name
    node_cpu_percent: Tuple[float, ...] = ()

    @property
    def cpu_percent(self) -> int:
        if self.cpu_capacity_millicores <= 0:
            return 0
        return int(self.cpu_usage_millicores / self.cpu_capacity_millicores * 100)

    @property
    def memory_percent(self) -> int:
        if self.memory_capacity_bytes <= 0:
            return 0
        return int(self.memory_usage_bytes / self.memory_capacity_bytes * 100)


@dataclass(frozen=True)
class ViewFilterConfig:
    namespace: str = ALL_NAMESPACES
    issues_only: bool = False
    search: str = ""
    sort: SortMode = SortMode.DEFAULT


@dataclass(frozen=True)
class PendingAction:
    """Action waiting on the container picker."""

    target: WorkloadRecord
    action: ActionKind
    containers: Tuple[str, ...]


@dataclass(frozen=True)
class AppState:
    """
    Immutable snapshot of the whole dashboard. Every event produces a new
    AppState via kubepulse.state.reduce; nothing mutates one in place.
    """

    workloads: Tuple[WorkloadRecord, ...] = ()
    # derived from workloads + filters, recomputed on every relevant change
    view: Tuple[WorkloadRecord, ...] = ()
    summary: ClusterSummary = field(default_factory=ClusterSummary)
    namespaces: Tuple[str, ...] = (ALL_NAMESPACES,)
    filters: ViewFilterConfig = field(default_factory=ViewFilterConfig)
    session: SessionState = SessionState.LIST
    cursor: int = 0
    searching: bool = False
    pending: Optional[PendingAction] = None
    picker_cursor: int = 0
    # delete/restart target while a confirmation is open
    staged: Optional[WorkloadRecord] = None
    # workload whose logs/diagnosis/manifest are shown in the viewer
    viewer_target: Optional[WorkloadRecord] = None
    viewer_container: str = ""
    viewer_lines: Tuple[str, ...] = ()
    viewer_offset: int = 0
    forwards: FrozenSet[ForwardKey] = frozenset()
    message: str = ""
    # message reports a failure
    alert: bool = False
    loading: bool = True
    width: int = 120
    height: int = 40

    @property
    def selected(self) -> Optional[WorkloadRecord]:
        if not self.view:
            return None
        return self.view[self.cursor]
