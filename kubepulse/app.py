"""
Runtime for the dashboard: one event loop that reads keys, fires the refresh
timer, drains the event queue through the reducer and performs the effects
it returns.
"""

import logging
import queue
import sys
from typing import Any, Optional, Sequence

from rich.console import Console, RenderableType
from rich.live import Live

from kubepulse import events as ev
from kubepulse.config import Settings, configure_logging, parse_args
from kubepulse.kubectl import ClusterConnectionError, KubectlClient
from kubepulse.models import AppState, WorkloadRecord
from kubepulse.processes import ProcessRegistry, ProcessSpawnError, open_shell
from kubepulse.refresh import RefreshPipeline, RefreshTimer
from kubepulse.render import render, render_error
from kubepulse.state import reduce
from kubepulse.terminal import Terminal

logger = logging.getLogger(__name__)

KEY_POLL_SECONDS = 0.05
DEFAULT_REMOTE_PORT = 80


class Dashboard:
    def __init__(
        self,
        settings: Settings,
        client: Optional[KubectlClient] = None,
        registry: Optional[ProcessRegistry] = None,
        pipeline: Optional[RefreshPipeline] = None,
        console: Optional[Console] = None,
        terminal: Optional[Terminal] = None,
    ):
        self.settings = settings
        self.console = console or Console()
        self.client = client or KubectlClient(
            settings.kubeconfig, settings.context, settings.request_timeout
        )
        self.events: "queue.Queue[Any]" = queue.Queue()
        self.registry = registry or ProcessRegistry()
        self.pipeline = pipeline or RefreshPipeline(
            self.client, self.events, log_tail=settings.tail_lines
        )
        self.terminal = terminal or Terminal()
        self.timer = RefreshTimer(settings.interval)

        width, height = self.console.size
        self.state = AppState(width=width, height=height)
        self.running = False
        self._stopped = False
        self._dirty = True
        self._live: Optional[Live] = None

    # --- event handling ---

    def post(self, event: Any) -> None:
        self.events.put(event)

    def dispatch(self, event: Any) -> None:
        self.state, effects = reduce(self.state, event)
        self._dirty = True
        for effect in effects:
            self.perform(effect)

    def drain(self) -> int:
        """Feed every queued event through the reducer, in arrival order."""
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            self.dispatch(event)
            handled += 1

    def perform(self, effect: Any) -> None:
        if isinstance(effect, ev.RefreshAll):
            self.pipeline.refresh_all()
        elif isinstance(effect, ev.RefreshWorkloads):
            self.pipeline.refresh_workloads()
        elif isinstance(effect, ev.FetchLogs):
            self.pipeline.fetch_logs(effect.workload, effect.container)
        elif isinstance(effect, ev.FetchDiagnosis):
            self.pipeline.fetch_diagnosis(effect.workload)
        elif isinstance(effect, ev.FetchManifest):
            self.pipeline.fetch_manifest(effect.workload)
        elif isinstance(effect, ev.DeleteWorkload):
            self.pipeline.delete_workload(effect.workload, restart=effect.restart)
        elif isinstance(effect, ev.CleanseNamespace):
            self.pipeline.cleanse_namespace(effect.namespace)
        elif isinstance(effect, ev.TogglePortForward):
            self.toggle_port_forward(effect.workload)
        elif isinstance(effect, ev.OpenShell):
            self.open_shell(effect.workload, effect.container)
        elif isinstance(effect, ev.Quit):
            self.shutdown()
        else:
            logger.warning("Unhandled effect %r", effect)

    # --- long-lived processes ---

    def toggle_port_forward(self, workload: WorkloadRecord) -> None:
        key = workload.key
        if key in self.registry:
            self.registry.stop(key)
            self.post(ev.ForwardChanged(key, False, f"Stopped forwarding {workload.name}"))
            return

        remote_port = workload.port or DEFAULT_REMOTE_PORT
        argv = self.client.port_forward_argv(
            workload.namespace, workload.name, self.settings.local_port, remote_port
        )
        try:
            self.registry.start(key, argv)
        except ProcessSpawnError as e:
            self.post(ev.StatusMessage(f"Forward failed: {e}", ok=False))
            return
        self.post(
            ev.ForwardChanged(
                key, True, f"Forwarding {workload.name} -> :{self.settings.local_port}"
            )
        )

    def open_shell(self, workload: WorkloadRecord, container: str) -> None:
        """Hand the terminal to `kubectl exec` until the shell exits."""
        argv = self.client.exec_argv(workload.namespace, workload.name, container)
        self._suspend()
        try:
            open_shell(argv)
            status = ev.StatusMessage(f"Shell closed: {workload.name}")
        except ProcessSpawnError as e:
            status = ev.StatusMessage(f"Shell failed: {e}", ok=False)
        finally:
            self._resume()
        self.post(status)

    def _suspend(self) -> None:
        if self._live is not None:
            self._live.stop()
        self.terminal.disable_raw_mode()
        self.console.clear()

    def _resume(self) -> None:
        self.terminal.enable_raw_mode()
        if self._live is not None:
            self._live.start()
        self._dirty = True

    def shutdown(self) -> None:
        """Stop every port-forward and leave the loop. Runs once."""
        self.running = False
        if self._stopped:
            return
        self._stopped = True
        stopped = self.registry.stop_all()
        logger.info("Shutting down, stopped %d background process(es)", stopped)
        self.pipeline.shutdown()

    # --- loop ---

    def render(self) -> RenderableType:
        return render(self.state, self.settings.local_port)

    def _check_resize(self) -> None:
        width, height = self.console.size
        if (width, height) != (self.state.width, self.state.height):
            self.post(ev.Resized(width, height))

    def step(self) -> None:
        if self.timer.due():
            self.post(ev.Tick())
        self._check_resize()
        key = self.terminal.read_key(timeout=KEY_POLL_SECONDS)
        if key:
            self.post(ev.KeyPressed(key))
        self.drain()

    def run(self) -> None:
        self.running = True
        try:
            with Live(
                self.render(), console=self.console, screen=True, auto_refresh=False
            ) as live:
                self._live = live
                self.terminal.enable_raw_mode()
                while self.running:
                    self.step()
                    if self._dirty and self.running:
                        live.update(self.render(), refresh=True)
                        self._dirty = False
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.shutdown()
            self.terminal.disable_raw_mode()
            self._live = None


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = parse_args(argv)
    configure_logging(settings)
    console = Console()

    client = KubectlClient(settings.kubeconfig, settings.context, settings.request_timeout)
    try:
        client.check_connection()
    except ClusterConnectionError as e:
        logger.error("Cannot reach cluster: %s", e)
        console.print(render_error(str(e), title="Cannot reach the cluster"))
        return 1

    Dashboard(settings, client=client, console=console).run()
    console.print("[yellow]Exiting...[/yellow]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
