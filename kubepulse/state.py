"""
Action router: the reducer that turns (state, event) into a new state plus
the effects the runtime should perform.

It is the only code that produces AppState values. Nothing here does I/O;
cluster calls, subprocesses and port-forwards are requested through effects
from kubepulse.events and executed by kubepulse.app.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Tuple

from kubepulse import events as ev
from kubepulse.models import (
    ALL_NAMESPACES,
    VIEWER_STATES,
    ActionKind,
    AppState,
    PendingAction,
    SessionState,
    SortMode,
    WorkloadRecord,
)
from kubepulse.view import clamp_cursor, select_view, viewer_page_size

logger = logging.getLogger(__name__)

Effects = List[Any]
Result = Tuple[AppState, Effects]

UP_KEYS = ("UP", "k")
DOWN_KEYS = ("DOWN", "j")
CANCEL_KEYS = ("ESC", "q")
CONFIRM_KEYS = ("y", "Y")
DECLINE_KEYS = ("n", "N", "ESC", "q")
SEARCH_EXIT_KEYS = ("ENTER", "ESC")
BACKSPACE = "BACKSPACE"
CTRL_U = "\x15"


def refilter(state: AppState, **changes: Any) -> AppState:
    """Apply `changes` and recompute the visible view and cursor."""
    state = replace(state, **changes)
    view = select_view(state.workloads, state.filters)
    return replace(state, view=view, cursor=clamp_cursor(state.cursor, len(view)))


def _max_viewer_offset(state: AppState) -> int:
    return max(0, len(state.viewer_lines) - viewer_page_size(state.height))


# --- background results ---


def _on_tick(state: AppState, event: ev.Tick) -> Result:
    return state, [ev.RefreshAll()]


def _on_resized(state: AppState, event: ev.Resized) -> Result:
    state = replace(state, width=event.width, height=event.height)
    return replace(state, viewer_offset=min(state.viewer_offset, _max_viewer_offset(state))), []


def _on_workloads(state: AppState, event: ev.WorkloadsFetched) -> Result:
    return refilter(state, workloads=tuple(event.records), loading=False), []


def _on_summary(state: AppState, event: ev.SummaryFetched) -> Result:
    return replace(state, summary=event.summary), []


def _on_namespaces(state: AppState, event: ev.NamespacesFetched) -> Result:
    names = (ALL_NAMESPACES,) + tuple(sorted(event.names))
    return replace(state, namespaces=names), []


def _on_fetch_failed(state: AppState, event: ev.FetchFailed) -> Result:
    state = replace(
        state, message=f"{event.category} refresh failed: {event.message}", alert=True
    )
    if event.category == ev.WORKLOADS_CATEGORY:
        state = replace(state, loading=False)
    return state, []


def _on_viewer_content(state: AppState, event: ev.ViewerContentFetched) -> Result:
    target = state.viewer_target
    if (
        state.session is not event.kind
        or target is None
        or target.key != event.key
        or state.viewer_container != event.container
    ):
        logger.debug("Dropping stale %s content for %s", event.kind.value, event.key)
        return state, []
    state = replace(state, viewer_lines=tuple(event.text.split("\n")))
    # Logs open at the newest line, reports at the top
    offset = _max_viewer_offset(state) if event.kind is SessionState.LOG_VIEW else 0
    return replace(state, viewer_offset=offset), []


def _on_action_completed(state: AppState, event: ev.ActionCompleted) -> Result:
    return replace(state, message=event.message, alert=not event.ok), [ev.RefreshWorkloads()]


def _on_forward_changed(state: AppState, event: ev.ForwardChanged) -> Result:
    if event.active:
        forwards = state.forwards | {event.key}
    else:
        forwards = state.forwards - {event.key}
    return replace(state, forwards=forwards, message=event.message), []


def _on_status(state: AppState, event: ev.StatusMessage) -> Result:
    return replace(state, message=event.message, alert=not event.ok), []


# --- keyboard ---


def _initiate(state: AppState, workload: WorkloadRecord, action: ActionKind) -> Result:
    """Logs/shell: ask for a container only when there is a real choice."""
    if len(workload.containers) > 1:
        pending = PendingAction(workload, action, workload.containers)
        state = replace(
            state,
            session=SessionState.CONTAINER_PICKER,
            pending=pending,
            picker_cursor=0,
        )
        return state, []
    container = workload.containers[0] if workload.containers else ""
    return _resolve(state, workload, action, container)


def _resolve(
    state: AppState, workload: WorkloadRecord, action: ActionKind, container: str
) -> Result:
    if action is ActionKind.VIEW_LOGS:
        state = _open_viewer(
            state, SessionState.LOG_VIEW, workload, f"Logs: {workload.name}", container
        )
        return state, [ev.FetchLogs(workload, container)]
    state = replace(state, session=SessionState.LIST, pending=None, picker_cursor=0)
    return state, [ev.OpenShell(workload, container)]


def _open_viewer(
    state: AppState,
    kind: SessionState,
    workload: WorkloadRecord,
    message: str,
    container: str = "",
) -> AppState:
    return replace(
        state,
        session=kind,
        pending=None,
        picker_cursor=0,
        viewer_target=workload,
        viewer_container=container,
        viewer_lines=(),
        viewer_offset=0,
        message=message,
    )


def _search_key(state: AppState, key: str) -> Result:
    term = state.filters.search
    if key in SEARCH_EXIT_KEYS:
        return replace(state, searching=False), []
    if key == BACKSPACE:
        term = term[:-1]
    elif key == CTRL_U:
        term = ""
    elif len(key) == 1 and key.isprintable():
        term += key
    else:
        return state, []
    return refilter(state, filters=replace(state.filters, search=term), cursor=0), []


def _cycle_namespace(state: AppState) -> Result:
    if len(state.namespaces) <= 1:
        return state, []
    current = state.filters.namespace
    index = state.namespaces.index(current) if current in state.namespaces else -1
    namespace = state.namespaces[(index + 1) % len(state.namespaces)]
    filters = replace(state.filters, namespace=namespace, sort=SortMode.DEFAULT)
    return refilter(state, filters=filters, cursor=0, message=f"Namespace: {namespace}"), []


def _list_key(state: AppState, key: str) -> Result:
    if key == "q":
        return state, [ev.Quit()]
    if key in UP_KEYS:
        return replace(state, cursor=max(0, state.cursor - 1)), []
    if key in DOWN_KEYS:
        return replace(state, cursor=clamp_cursor(state.cursor + 1, len(state.view))), []
    if key == "/":
        return replace(state, searching=True), []
    if key == "c":
        filters = replace(state.filters, sort=SortMode.CPU)
        return refilter(state, filters=filters, message="Sort: CPU Usage"), []
    if key == "m":
        filters = replace(state.filters, sort=SortMode.MEMORY)
        return refilter(state, filters=filters, message="Sort: Memory Usage"), []
    if key == "n":
        return _cycle_namespace(state)
    if key == "TAB":
        issues_only = not state.filters.issues_only
        message = "Filter: Issues Only" if issues_only else "Filter: Showing All"
        filters = replace(state.filters, issues_only=issues_only)
        return refilter(state, filters=filters, cursor=0, message=message), []
    if key == "C":
        if state.filters.namespace == ALL_NAMESPACES:
            return replace(state, message="Cannot cleanse 'all'. Select a namespace first."), []
        return replace(state, session=SessionState.CLEANSE_CONFIRM), []

    selected = state.selected
    if selected is None:
        return state, []
    if key == "ENTER":
        return _initiate(state, selected, ActionKind.VIEW_LOGS)
    if key == "s":
        return _initiate(state, selected, ActionKind.OPEN_SHELL)
    if key == "?":
        state = _open_viewer(
            state, SessionState.DIAGNOSIS_VIEW, selected, f"Diagnosing {selected.name}..."
        )
        return state, [ev.FetchDiagnosis(selected)]
    if key == "y":
        state = _open_viewer(state, SessionState.MANIFEST_VIEW, selected, "Fetching YAML...")
        return state, [ev.FetchManifest(selected)]
    if key == "r":
        return replace(state, session=SessionState.RESTART_CONFIRM, staged=selected), []
    if key == "d":
        return replace(state, session=SessionState.DELETE_CONFIRM, staged=selected), []
    if key == "f":
        return state, [ev.TogglePortForward(selected)]
    return state, []


def _picker_key(state: AppState, key: str) -> Result:
    pending = state.pending
    if pending is None:
        return replace(state, session=SessionState.LIST), []
    if key in CANCEL_KEYS:
        state = replace(
            state, session=SessionState.LIST, pending=None, picker_cursor=0, message="Cancelled"
        )
        return state, []
    if key in UP_KEYS:
        return replace(state, picker_cursor=max(0, state.picker_cursor - 1)), []
    if key in DOWN_KEYS:
        cursor = min(len(pending.containers) - 1, state.picker_cursor + 1)
        return replace(state, picker_cursor=cursor), []
    if key == "ENTER":
        container = pending.containers[state.picker_cursor]
        return _resolve(state, pending.target, pending.action, container)
    return state, []


def _confirm_key(state: AppState, key: str) -> Result:
    session = state.session
    if key in CONFIRM_KEYS:
        if session is SessionState.CLEANSE_CONFIRM:
            namespace = state.filters.namespace
            state = replace(state, session=SessionState.LIST, message=f"Cleansing {namespace}...")
            return state, [ev.CleanseNamespace(namespace), ev.RefreshWorkloads()]
        target = state.staged
        if target is None:
            return replace(state, session=SessionState.LIST), []
        restart = session is SessionState.RESTART_CONFIRM
        verb = "Restarting" if restart else "Deleting"
        state = replace(
            state, session=SessionState.LIST, staged=None, message=f"{verb} {target.name}..."
        )
        return state, [ev.DeleteWorkload(target, restart=restart), ev.RefreshWorkloads()]
    if key in DECLINE_KEYS:
        message = {
            SessionState.DELETE_CONFIRM: "Delete cancelled.",
            SessionState.RESTART_CONFIRM: "Restart cancelled.",
            SessionState.CLEANSE_CONFIRM: "Cleanse cancelled.",
        }[session]
        return replace(state, session=SessionState.LIST, staged=None, message=message), []
    return state, []


def _viewer_key(state: AppState, key: str) -> Result:
    if key in CANCEL_KEYS:
        state = replace(
            state,
            session=SessionState.LIST,
            viewer_target=None,
            viewer_container="",
            viewer_lines=(),
            viewer_offset=0,
            message="Dashboard",
        )
        return state, []
    page = viewer_page_size(state.height)
    offset = state.viewer_offset
    if key in UP_KEYS:
        offset -= 1
    elif key in DOWN_KEYS:
        offset += 1
    elif key == "PGUP":
        offset -= page
    elif key in ("PGDN", " "):
        offset += page
    elif key == "g":
        offset = 0
    elif key == "G":
        offset = _max_viewer_offset(state)
    return replace(state, viewer_offset=max(0, min(offset, _max_viewer_offset(state)))), []


_CONFIRM_STATES = (
    SessionState.DELETE_CONFIRM,
    SessionState.RESTART_CONFIRM,
    SessionState.CLEANSE_CONFIRM,
)


def _on_key(state: AppState, event: ev.KeyPressed) -> Result:
    key = event.key
    logger.debug("Key %r in %s (searching=%s)", key, state.session.value, state.searching)
    if state.searching:
        return _search_key(state, key)
    if state.session is SessionState.LIST:
        return _list_key(state, key)
    if state.session is SessionState.CONTAINER_PICKER:
        return _picker_key(state, key)
    if state.session in _CONFIRM_STATES:
        return _confirm_key(state, key)
    if state.session in VIEWER_STATES:
        return _viewer_key(state, key)
    return state, []


# Events whose handlers decide `alert` themselves
_ALERTING = (ev.FetchFailed, ev.ActionCompleted, ev.StatusMessage)

_HANDLERS: Dict[type, Callable[[AppState, Any], Result]] = {
    ev.KeyPressed: _on_key,
    ev.Tick: _on_tick,
    ev.Resized: _on_resized,
    ev.WorkloadsFetched: _on_workloads,
    ev.SummaryFetched: _on_summary,
    ev.NamespacesFetched: _on_namespaces,
    ev.FetchFailed: _on_fetch_failed,
    ev.ViewerContentFetched: _on_viewer_content,
    ev.ActionCompleted: _on_action_completed,
    ev.ForwardChanged: _on_forward_changed,
    ev.StatusMessage: _on_status,
}


def reduce(state: AppState, event: Any) -> Result:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        logger.debug("Ignoring unknown event %r", event)
        return state, []
    new_state, effects = handler(state, event)
    if new_state.message != state.message and not isinstance(event, _ALERTING):
        new_state = replace(new_state, alert=False)
    return new_state, effects
