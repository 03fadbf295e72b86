"""
Filter, sort and pagination of the workload table.

Everything here is a pure function of its arguments so the reducer can call
it after every state change and tests can call it without a terminal.
"""

from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from kubepulse.models import (
    ALL_NAMESPACES,
    Phase,
    SortMode,
    ViewFilterConfig,
    WorkloadRecord,
)

# Rows consumed by header, context bar, column titles and footer
CHROME_HEIGHT = 12
MIN_PAGE_SIZE = 5
# Viewer overlays only carry a title and a footer
VIEWER_CHROME_HEIGHT = 6


class RowStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"
    SELECTED = "selected"


def is_healthy(workload: WorkloadRecord) -> bool:
    return (
        workload.phase in (Phase.RUNNING, Phase.SUCCEEDED)
        and workload.restarts == 0
        and workload.ready
    )


def matches(workload: WorkloadRecord, filters: ViewFilterConfig) -> bool:
    """True when the workload passes every active predicate."""
    if filters.namespace != ALL_NAMESPACES and workload.namespace != filters.namespace:
        return False
    if filters.issues_only and is_healthy(workload):
        return False
    term = filters.search.lower()
    if term and term not in workload.name.lower():
        return False
    return True


def filter_workloads(
    workloads: Iterable[WorkloadRecord], filters: ViewFilterConfig
) -> List[WorkloadRecord]:
    return [w for w in workloads if matches(w, filters)]


def sort_workloads(
    workloads: Iterable[WorkloadRecord], mode: SortMode
) -> List[WorkloadRecord]:
    """
    Default order puts anything not Running first, then by name. CPU and
    memory modes sort descending on top of that order, so ties keep it.
    """
    # sorted() is stable, reverse=True included
    ordered = sorted(workloads, key=lambda w: (w.phase is Phase.RUNNING, w.name))
    if mode is SortMode.CPU:
        ordered = sorted(ordered, key=lambda w: w.cpu_millicores or 0, reverse=True)
    elif mode is SortMode.MEMORY:
        ordered = sorted(ordered, key=lambda w: w.memory_bytes or 0, reverse=True)
    return ordered


def select_view(
    workloads: Iterable[WorkloadRecord], filters: ViewFilterConfig
) -> Tuple[WorkloadRecord, ...]:
    return tuple(sort_workloads(filter_workloads(workloads, filters), filters.sort))


def clamp_cursor(cursor: int, count: int) -> int:
    if count <= 0:
        return 0
    return max(0, min(cursor, count - 1))


def page_capacity(terminal_height: int) -> int:
    return max(MIN_PAGE_SIZE, terminal_height - CHROME_HEIGHT)


def viewer_page_size(terminal_height: int) -> int:
    return max(MIN_PAGE_SIZE, terminal_height - VIEWER_CHROME_HEIGHT)


def paginate(count: int, cursor: int, capacity: int) -> Tuple[int, int]:
    """
    Window (start, end) over a list of `count` rows. The first page stays put
    until the cursor leaves it; after that the cursor rides the bottom edge.
    """
    if count <= capacity:
        return 0, count
    start = cursor - capacity + 1 if cursor >= capacity else 0
    start = max(0, start)
    return start, min(start + capacity, count)


def visible_rows(
    view: Sequence[WorkloadRecord], cursor: int, terminal_height: int
) -> List[Tuple[int, WorkloadRecord]]:
    """(index, workload) pairs for the rows that fit on screen."""
    start, end = paginate(len(view), cursor, page_capacity(terminal_height))
    return [(i, view[i]) for i in range(start, end)]


def classify_row(workload: WorkloadRecord, selected: bool) -> RowStatus:
    if selected:
        return RowStatus.SELECTED
    if workload.phase not in (Phase.RUNNING, Phase.SUCCEEDED) or not workload.ready:
        return RowStatus.ERROR
    if workload.restarts > 0:
        return RowStatus.WARNING
    return RowStatus.OK


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 2] + ".."
    return text
