import pytest

from kubepulse import events as ev
from kubepulse.models import (
    ALL_NAMESPACES,
    ActionKind,
    AppState,
    ClusterSummary,
    ForwardKey,
    Phase,
    SessionState,
    SortMode,
    ViewFilterConfig,
)
from kubepulse.state import reduce, refilter


def press(state, *keys):
    """Feed keys through the reducer, collecting every effect."""
    effects = []
    for key in keys:
        state, produced = reduce(state, ev.KeyPressed(key))
        effects.extend(produced)
    return state, effects


@pytest.fixture
def loaded(make_workload):
    """A list-state dashboard with three pods in two namespaces."""
    workloads = (
        make_workload(name="api", namespace="shop", containers=("app",)),
        make_workload(name="db", namespace="shop", containers=("postgres", "exporter")),
        make_workload(name="job", namespace="batch", containers=()),
    )
    state = AppState(namespaces=(ALL_NAMESPACES, "batch", "shop"))
    state, _ = reduce(state, ev.WorkloadsFetched(workloads))
    return state


def select(state, name):
    index = [w.name for w in state.view].index(name)
    return refilter(state, cursor=index)


# --- refresh events ---


def test_tick_requests_full_refresh() -> None:
    state, effects = reduce(AppState(), ev.Tick())
    assert effects == [ev.RefreshAll()]


def test_workloads_fetched_builds_view(loaded) -> None:
    assert loaded.loading is False
    assert [w.name for w in loaded.view] == ["api", "db", "job"]


def test_snapshot_update_clamps_cursor(loaded, make_workload) -> None:
    state = refilter(loaded, cursor=2)
    state, _ = reduce(state, ev.WorkloadsFetched((make_workload(name="only"),)))
    assert state.cursor == 0

    state, _ = reduce(state, ev.WorkloadsFetched(()))
    assert state.cursor == 0
    assert state.selected is None


def test_fetch_failure_keeps_previous_snapshot(loaded) -> None:
    state, effects = reduce(loaded, ev.FetchFailed("Pods", "connection reset"))
    assert state.workloads == loaded.workloads
    assert state.view == loaded.view
    assert "connection reset" in state.message
    assert effects == []


def test_namespaces_fetched_are_sorted_with_all_first() -> None:
    state, _ = reduce(AppState(), ev.NamespacesFetched(("zeta", "alpha")))
    assert state.namespaces == (ALL_NAMESPACES, "alpha", "zeta")


def test_summary_fetched_replaces_summary() -> None:
    summary = ClusterSummary(node_count=3)
    state, _ = reduce(AppState(), ev.SummaryFetched(summary))
    assert state.summary is summary


def test_action_completed_shows_message_and_refreshes() -> None:
    state, effects = reduce(AppState(), ev.ActionCompleted("Delete failed: nope", ok=False))
    assert state.message == "Delete failed: nope"
    assert effects == [ev.RefreshWorkloads()]


# --- list navigation and filters ---


def test_cursor_stays_in_bounds(loaded) -> None:
    state, _ = press(loaded, "UP")
    assert state.cursor == 0
    state, _ = press(state, "DOWN", "j", "DOWN", "DOWN")
    assert state.cursor == 2
    state, _ = press(state, "k")
    assert state.cursor == 1


def test_namespace_cycle_resets_cursor_and_sort(loaded) -> None:
    state = refilter(loaded, cursor=2, filters=ViewFilterConfig(sort=SortMode.CPU))
    state, _ = press(state, "n")
    assert state.filters.namespace == "batch"
    assert state.filters.sort is SortMode.DEFAULT
    assert state.cursor == 0
    assert [w.name for w in state.view] == ["job"]

    state, _ = press(state, "n", "n")
    assert state.filters.namespace == ALL_NAMESPACES


def test_issues_toggle(loaded, make_workload) -> None:
    broken = make_workload(name="broken", phase=Phase.PENDING, ready=False)
    state, _ = reduce(loaded, ev.WorkloadsFetched(loaded.workloads + (broken,)))

    state, _ = press(state, "TAB")
    assert state.filters.issues_only is True
    assert state.message == "Filter: Issues Only"
    assert [w.name for w in state.view] == ["broken"]

    state, _ = press(state, "TAB")
    assert state.message == "Filter: Showing All"
    assert len(state.view) == 4


def test_sort_keys(loaded) -> None:
    state, _ = press(loaded, "c")
    assert state.filters.sort is SortMode.CPU
    assert state.message == "Sort: CPU Usage"
    state, _ = press(state, "m")
    assert state.filters.sort is SortMode.MEMORY


def test_quit_key_requests_quit(loaded) -> None:
    _, effects = press(loaded, "q")
    assert effects == [ev.Quit()]


def test_action_keys_ignored_on_empty_view() -> None:
    state = AppState(loading=False)
    for key in ("ENTER", "s", "?", "y", "r", "d", "f"):
        new_state, effects = press(state, key)
        assert new_state.session is SessionState.LIST
        assert effects == []


# --- search ---


def test_search_filters_live_and_keeps_term(loaded) -> None:
    state, _ = press(loaded, "/")
    assert state.searching

    state, effects = press(state, "D", "b")
    assert [w.name for w in state.view] == ["db"]
    assert effects == []

    state, _ = press(state, "ENTER")
    assert not state.searching
    assert state.filters.search == "Db"
    assert [w.name for w in state.view] == ["db"]


def test_search_swallows_command_keys(loaded) -> None:
    state, effects = press(loaded, "/", "q", "d")
    assert effects == []
    assert state.filters.search == "qd"
    assert state.session is SessionState.LIST


def test_search_editing_and_escape(loaded) -> None:
    state, _ = press(loaded, "/", "a", "p", "x", "BACKSPACE")
    assert state.filters.search == "ap"
    state, _ = press(state, "\x15")
    assert state.filters.search == ""
    state, _ = press(state, "j", "ESC")
    assert not state.searching
    assert state.filters.search == "j"


# --- container disambiguation ---


def test_single_container_logs_resolve_immediately(loaded) -> None:
    state, effects = press(select(loaded, "api"), "ENTER")
    assert state.session is SessionState.LOG_VIEW
    assert state.pending is None
    assert effects == [ev.FetchLogs(state.viewer_target, "app")]


def test_zero_containers_use_empty_designator(loaded) -> None:
    state, effects = press(select(loaded, "job"), "s")
    assert state.session is SessionState.LIST
    assert effects == [ev.OpenShell(state.view[state.cursor], "")]


def test_multi_container_enters_picker(loaded) -> None:
    state, effects = press(select(loaded, "db"), "s")
    assert state.session is SessionState.CONTAINER_PICKER
    assert effects == []
    assert state.pending.action is ActionKind.OPEN_SHELL
    assert state.pending.containers == ("postgres", "exporter")


def test_picker_confirm_uses_chosen_container(loaded) -> None:
    state, _ = press(select(loaded, "db"), "ENTER")
    state, effects = press(state, "DOWN", "DOWN", "ENTER")

    assert state.session is SessionState.LOG_VIEW
    assert state.pending is None
    assert effects == [ev.FetchLogs(state.viewer_target, "exporter")]


def test_picker_shell_returns_to_list(loaded) -> None:
    state, _ = press(select(loaded, "db"), "s")
    state, effects = press(state, "ENTER")
    assert state.session is SessionState.LIST
    assert state.pending is None
    assert isinstance(effects[0], ev.OpenShell)
    assert effects[0].container == "postgres"


def test_picker_cancel(loaded) -> None:
    state, _ = press(select(loaded, "db"), "ENTER")
    state, effects = press(state, "ESC")
    assert state.session is SessionState.LIST
    assert state.pending is None
    assert state.message == "Cancelled"
    assert effects == []


# --- confirmations ---


def test_delete_confirm_and_accept(loaded) -> None:
    state, effects = press(select(loaded, "api"), "d")
    assert state.session is SessionState.DELETE_CONFIRM
    assert state.staged.name == "api"
    assert effects == []

    target = state.staged
    state, effects = press(state, "y")
    assert state.session is SessionState.LIST
    assert state.staged is None
    assert effects == [ev.DeleteWorkload(target, restart=False), ev.RefreshWorkloads()]


def test_restart_uses_delete_operation(loaded) -> None:
    state, _ = press(select(loaded, "api"), "r")
    assert state.session is SessionState.RESTART_CONFIRM
    state, effects = press(state, "Y")
    assert effects[0].restart is True
    assert state.message == "Restarting api..."


@pytest.mark.parametrize("key", ["n", "N", "ESC", "q"])
def test_delete_decline_has_no_side_effect(loaded, key) -> None:
    state, _ = press(loaded, "d")
    state, effects = press(state, key)
    assert state.session is SessionState.LIST
    assert state.staged is None
    assert state.message == "Delete cancelled."
    assert effects == []


def test_confirm_ignores_unrelated_keys(loaded) -> None:
    state, _ = press(loaded, "r")
    state, effects = press(state, "x", "DOWN")
    assert state.session is SessionState.RESTART_CONFIRM
    assert effects == []


def test_cleanse_refused_for_all_namespaces(loaded) -> None:
    state, effects = press(loaded, "C")
    assert state.session is SessionState.LIST
    assert effects == []
    assert "Cannot cleanse" in state.message
    assert state.view == loaded.view


def test_cleanse_specific_namespace(loaded) -> None:
    state, _ = press(loaded, "n")
    state, effects = press(state, "C")
    assert state.session is SessionState.CLEANSE_CONFIRM
    assert effects == []

    state, effects = press(state, "y")
    assert state.session is SessionState.LIST
    assert effects == [ev.CleanseNamespace("batch"), ev.RefreshWorkloads()]


def test_cleanse_cancel(loaded) -> None:
    state, _ = press(loaded, "n", "C", "ESC")
    assert state.session is SessionState.LIST
    assert state.message == "Cleanse cancelled."


# --- viewers ---


def test_diagnosis_flow(loaded) -> None:
    state, effects = press(select(loaded, "api"), "?")
    assert state.session is SessionState.DIAGNOSIS_VIEW
    assert effects == [ev.FetchDiagnosis(state.viewer_target)]
    assert state.message == "Diagnosing api..."

    key = state.viewer_target.key
    state, _ = reduce(state, ev.ViewerContentFetched(SessionState.DIAGNOSIS_VIEW, key, "a\nb"))
    assert state.viewer_lines == ("a", "b")
    assert state.viewer_offset == 0


def test_manifest_key_fetches_yaml(loaded) -> None:
    state, effects = press(loaded, "y")
    assert state.session is SessionState.MANIFEST_VIEW
    assert isinstance(effects[0], ev.FetchManifest)


def test_logs_open_scrolled_to_bottom(loaded) -> None:
    state = refilter(loaded, height=20)
    state, _ = press(select(state, "api"), "ENTER")
    text = "\n".join(f"line {i}" for i in range(100))
    key = state.viewer_target.key
    state, _ = reduce(state, ev.ViewerContentFetched(SessionState.LOG_VIEW, key, text, "app"))
    assert state.viewer_offset == 100 - 14


def test_stale_viewer_content_is_dropped(loaded) -> None:
    state, _ = press(select(loaded, "api"), "?")
    other = ForwardKey("shop", "db")
    state, _ = reduce(state, ev.ViewerContentFetched(SessionState.DIAGNOSIS_VIEW, other, "x"))
    assert state.viewer_lines == ()

    wrong_kind = ev.ViewerContentFetched(SessionState.LOG_VIEW, state.viewer_target.key, "x")
    state, _ = reduce(state, wrong_kind)
    assert state.viewer_lines == ()


def test_viewer_scrolls_without_leaving(loaded) -> None:
    state = refilter(loaded, height=20)
    state, _ = press(state, "y")
    text = "\n".join(str(i) for i in range(50))
    state, _ = reduce(
        state, ev.ViewerContentFetched(SessionState.MANIFEST_VIEW, state.viewer_target.key, text)
    )

    state, effects = press(state, "DOWN", "DOWN", "d", "r")
    assert state.session is SessionState.MANIFEST_VIEW
    assert state.viewer_offset == 2
    assert effects == []

    state, _ = press(state, "G")
    assert state.viewer_offset == 50 - 14
    state, _ = press(state, "PGDN")
    assert state.viewer_offset == 50 - 14
    state, _ = press(state, "g", "UP")
    assert state.viewer_offset == 0


@pytest.mark.parametrize("key", ["ESC", "q"])
def test_viewer_exit(loaded, key) -> None:
    state, _ = press(loaded, "ENTER")
    state, effects = press(state, key)
    assert state.session is SessionState.LIST
    assert state.viewer_target is None
    assert state.message == "Dashboard"
    assert effects == []


# --- port-forward ---


def test_port_forward_key_delegates_without_transition(loaded) -> None:
    state, effects = press(select(loaded, "api"), "f")
    assert state.session is SessionState.LIST
    assert effects == [ev.TogglePortForward(state.selected)]


def test_forward_changed_tracks_keys() -> None:
    key = ForwardKey("shop", "api")
    state, _ = reduce(AppState(), ev.ForwardChanged(key, True, "Forwarding api -> :8080"))
    assert key in state.forwards
    assert state.message == "Forwarding api -> :8080"

    state, _ = reduce(state, ev.ForwardChanged(key, False, "Stopped forwarding api"))
    assert key not in state.forwards


def test_pending_never_set_in_list_state(loaded) -> None:
    sequences = [
        ("ENTER",),
        ("s",),
        ("ENTER", "ESC"),
        ("s", "ENTER"),
        ("ENTER", "ENTER", "ESC"),
    ]
    for keys in sequences:
        state, _ = press(select(loaded, "db"), *keys)
        if state.session is SessionState.LIST:
            assert state.pending is None


def test_resize_clamps_viewer_offset(loaded) -> None:
    state = refilter(loaded, height=20)
    state, _ = press(state, "y")
    text = "\n".join(str(i) for i in range(30))
    state, _ = reduce(
        state, ev.ViewerContentFetched(SessionState.MANIFEST_VIEW, state.viewer_target.key, text)
    )
    state, _ = press(state, "G")
    state, _ = reduce(state, ev.Resized(100, 40))
    assert state.viewer_offset == 0
    assert (state.width, state.height) == (100, 40)


def test_unknown_event_is_ignored() -> None:
    state = AppState()
    assert reduce(state, object()) == (state, [])


def test_failed_first_pod_fetch_stops_loading() -> None:
    state, _ = reduce(AppState(), ev.FetchFailed("Nodes", "timeout"))
    assert state.loading is True

    state, _ = reduce(state, ev.FetchFailed("Pods", "Unable to connect to the server"))
    assert state.loading is False
    assert state.workloads == ()
    assert state.alert is True


def test_logs_for_previous_container_are_dropped(loaded) -> None:
    state, _ = press(select(loaded, "db"), "ENTER", "ENTER")
    key = state.viewer_target.key
    assert state.viewer_container == "postgres"

    state, _ = press(state, "ESC", "ENTER", "DOWN", "ENTER")
    assert state.viewer_container == "exporter"

    late = ev.ViewerContentFetched(SessionState.LOG_VIEW, key, "postgres says hi", "postgres")
    state, _ = reduce(state, late)
    assert state.viewer_lines == ()

    fresh = ev.ViewerContentFetched(SessionState.LOG_VIEW, key, "exporter up", "exporter")
    state, _ = reduce(state, fresh)
    assert state.viewer_lines == ("exporter up",)


def test_failure_messages_raise_alert_until_replaced(loaded) -> None:
    state, _ = reduce(loaded, ev.ActionCompleted("Delete failed: forbidden", ok=False))
    assert state.alert is True

    state, _ = press(state, "DOWN")
    assert state.alert is True

    state, _ = press(state, "c")
    assert state.message == "Sort: CPU Usage"
    assert state.alert is False

    state, _ = reduce(state, ev.StatusMessage("Forward failed: no kubectl", ok=False))
    assert state.alert is True
    state, _ = reduce(state, ev.ActionCompleted("Pod deleted."))
    assert state.alert is False
