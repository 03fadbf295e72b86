"""
Rich renderables for the dashboard and its overlays.

Rendering only reads AppState; row selection and classification come from
kubepulse.view so the table never decides what is visible on its own.
"""

from typing import Optional

import sparklines
from rich.align import Align
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from kubepulse.diagnosis import SECTION_HEADERS
from kubepulse.kubectl import format_age
from kubepulse.models import AppState, ClusterSummary, SessionState
from kubepulse.view import RowStatus, classify_row, truncate, viewer_page_size, visible_rows

PRIMARY = "#326CE5"
SECONDARY = "#D8DEE9"
DIM = "#687182"
GREEN = "#4CAF50"
ORANGE = "#FFC107"
RED = "#F44336"
CYAN = "#00BCD4"
YELLOW = "#EBCB8B"

ROW_STYLES = {
    RowStatus.OK: SECONDARY,
    RowStatus.WARNING: ORANGE,
    RowStatus.ERROR: RED,
    RowStatus.SELECTED: "bold white on #3E4451",
}

HELP = (
    "[Tab] Filter ({issues})  [n] NS  [c/m] Sort  [/] Search  [Enter] Logs  [s] Shell  "
    "[?] Doctor  [y] YAML  [r] Restart  [d] Delete  [f] Port-Fwd  [C] Cleanse NS  [q] Quit"
)


def node_load_strip(summary: ClusterSummary) -> str:
    """One glyph per node, height proportional to its CPU%."""
    if not summary.node_cpu_percent:
        return ""
    try:
        return sparklines.sparklines(list(summary.node_cpu_percent), minimum=0, maximum=100)[0]
    except ValueError:
        return ""


def render_header(state: AppState) -> Text:
    summary = state.summary
    header = Text.assemble(
        (" KUBE-PULSE ", f"bold white on {PRIMARY}"),
        (
            f"  Nodes: {summary.node_count}  |  CPU: {summary.cpu_percent}%"
            f"  |  MEMORY: {summary.memory_percent}%",
            SECONDARY,
        ),
    )
    strip = node_load_strip(summary)
    if strip:
        header.append("  ")
        header.append(strip, style=GREEN)
    if state.loading:
        header.append("  loading...", style=DIM)
    return header


def render_context(state: AppState) -> Text:
    namespace = state.filters.namespace
    selected = state.selected
    if selected is None:
        return Text(f"  NS: {namespace}  |  No pods found.", style=DIM)
    port = str(selected.port) if selected.port > 0 else "N/A"
    return Text(
        f"  Namespace: {namespace}  |  NODE: {selected.node_name}"
        f"  |  IP: {selected.pod_ip}  |  PORT: {port}",
        style=f"bold {CYAN}",
    )


def render_table(state: AppState, local_port: int = 8080) -> Table:
    table = Table(
        show_header=True,
        header_style=f"bold {DIM}",
        box=None,
        expand=True,
        pad_edge=False,
    )
    table.add_column("NAMESPACE", no_wrap=True)
    table.add_column("NAME", no_wrap=True)
    table.add_column("FWD", no_wrap=True)
    table.add_column("READY", justify="right")
    table.add_column("STATUS")
    table.add_column("RST", justify="right")
    table.add_column("CPU", justify="right")
    table.add_column("MEM", justify="right")
    table.add_column("NODE", no_wrap=True)
    table.add_column("AGE", justify="right")
    table.add_column("NOTES", no_wrap=True)

    for index, workload in visible_rows(state.view, state.cursor, state.height):
        status = classify_row(workload, selected=index == state.cursor)
        fwd: RenderableType = Text("-")
        if workload.key in state.forwards:
            fwd_style = None if status is RowStatus.SELECTED else GREEN
            fwd = Text(f"● {local_port}", style=fwd_style)
        table.add_row(
            truncate(workload.namespace, 25),
            truncate(workload.name, 55),
            fwd,
            workload.ready_display,
            workload.phase.value,
            str(workload.restarts),
            workload.cpu_display,
            workload.memory_display,
            truncate(workload.node_name, 15),
            format_age(workload.age_seconds),
            truncate(workload.note, 20),
            style=ROW_STYLES[status],
        )
    return table


def render_footer(state: AppState) -> RenderableType:
    if state.searching:
        return Text(f" SEARCH: {state.filters.search}_ ", style=f"{CYAN} reverse")
    issues = "on" if state.filters.issues_only else "off"
    lines = [Text(HELP.format(issues=issues), style=DIM)]
    if state.filters.search:
        lines.append(Text(f"  search: '{state.filters.search}'", style=DIM))
    lines.append(Text(f"  {state.message}", style=RED if state.alert else PRIMARY))
    return Group(*lines)


def render_dashboard(state: AppState, local_port: int = 8080) -> RenderableType:
    return Group(
        render_header(state),
        Text(""),
        render_context(state),
        Text(""),
        render_table(state, local_port),
        Text(""),
        render_footer(state),
    )


def _centered(state: AppState, panel: Panel) -> RenderableType:
    return Group(Text("\n" * (state.height // 3)), Align.center(panel))


def render_container_picker(state: AppState) -> RenderableType:
    body = Text()
    containers = state.pending.containers if state.pending else ()
    for index, name in enumerate(containers):
        if index == state.picker_cursor:
            body.append(f"> {name}\n", style=f"bold {CYAN}")
        else:
            body.append(f"  {name}\n", style=SECONDARY)
    body.append("\n[Enter] Select  [Esc] Cancel", style=DIM)
    return _centered(
        state,
        Panel(body, title=" SELECT CONTAINER ", border_style=RED, padding=(1, 4)),
    )


def render_confirm(state: AppState) -> RenderableType:
    session = state.session
    target = state.staged.name if state.staged else ""
    if session is SessionState.CLEANSE_CONFIRM:
        title, color = "NUCLEAR WARNING", RED
        body = Text.assemble(
            ("This will DELETE ALL PODS in:\n", SECONDARY),
            (f"Namespace: {state.filters.namespace}", f"bold {RED}"),
        )
        accept = "[y] DESTROY ALL"
    elif session is SessionState.RESTART_CONFIRM:
        title, color = "[!] RESTART POD", ORANGE
        body = Text.assemble(("Confirm restart of:\n", SECONDARY), (target, "bold"))
        accept = "[y] Confirm"
    else:
        title, color = "[!] DELETE POD", RED
        body = Text.assemble(("Confirm deletion of:\n", SECONDARY), (target, "bold"))
        accept = "[y] Confirm"
    body.append("\n\n")
    body.append(accept, style=f"bold {GREEN}")
    body.append(" / ")
    body.append("[n] Cancel", style=DIM)
    return _centered(
        state,
        Panel(
            Align.center(body),
            title=Text(title, style=f"bold {color}"),
            border_style=color,
            padding=(1, 4),
        ),
    )


VIEWER_TITLES = {
    SessionState.LOG_VIEW: (" LOGS: {name} ", f"bold white on {PRIMARY}"),
    SessionState.DIAGNOSIS_VIEW: (" [DIAGNOSIS]: {name} ", f"bold white on {DIM}"),
    SessionState.MANIFEST_VIEW: (" [YAML]: {name} ", f"bold black on {YELLOW}"),
}


def render_viewer(state: AppState) -> RenderableType:
    template, style = VIEWER_TITLES[state.session]
    name = state.viewer_target.name if state.viewer_target else ""
    page = viewer_page_size(state.height)

    body = Text()
    if not state.viewer_lines:
        body.append("Loading...", style=DIM)
    window = state.viewer_lines[state.viewer_offset : state.viewer_offset + page]
    report = state.session is SessionState.DIAGNOSIS_VIEW
    for line in window:
        if report and line in SECTION_HEADERS:
            body.append(line + "\n", style=f"bold {PRIMARY}")
        elif report and line.startswith(("[!]", "* ")):
            body.append(line + "\n", style=RED)
        else:
            body.append(line + "\n")

    total = len(state.viewer_lines)
    position = ""
    if total > page:
        position = f"  {state.viewer_offset + 1}-{min(state.viewer_offset + page, total)} of {total}"
    return Group(
        Text(template.format(name=name), style=style),
        Text(""),
        body,
        Text(f"  [Esc] Back  ↑/↓ PgUp/PgDn g/G scroll{position}", style=DIM),
    )


def render(state: AppState, local_port: int = 8080) -> RenderableType:
    session = state.session
    if session in (
        SessionState.DELETE_CONFIRM,
        SessionState.RESTART_CONFIRM,
        SessionState.CLEANSE_CONFIRM,
    ):
        return render_confirm(state)
    if session is SessionState.CONTAINER_PICKER:
        return render_container_picker(state)
    if session in VIEWER_TITLES:
        return render_viewer(state)
    return render_dashboard(state, local_port)


def render_error(message: str, title: Optional[str] = "Error") -> Panel:
    return Panel(Text(message, style="red"), title=title, border_style="red")
