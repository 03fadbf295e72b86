"""
Cluster access through the kubectl binary.

Every call shells out to ``kubectl ... -o json`` (or ``kubectl top``) and
parses the output; failures surface as KubectlError so callers can decide
whether they are fatal, degraded or just worth a status line.
"""

import json
import logging
import subprocess
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from kubepulse.models import ClusterSummary, Phase, WorkloadRecord

logger = logging.getLogger(__name__)

BINARY_UNITS = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "Ei": 1024**6,
}
DECIMAL_UNITS = {
    "k": 10**3,
    "K": 10**3,
    "M": 10**6,
    "G": 10**9,
    "T": 10**12,
    "P": 10**15,
    "E": 10**18,
}

UsageSample = Tuple[int, int]  # (cpu millicores, memory bytes)


class KubectlError(RuntimeError):
    """A kubectl invocation failed, timed out or returned garbage."""


class ClusterConnectionError(KubectlError):
    """The cluster could not be reached at startup."""


def parse_cpu_millicores(raw: str) -> int:
    """Parse a CPU quantity like '250m', '2', '500000000n' into millicores."""
    raw = raw.strip()
    if raw.endswith("n"):
        return int(float(raw[:-1]) / 1_000_000)
    if raw.endswith("u"):
        return int(float(raw[:-1]) / 1_000)
    if raw.endswith("m"):
        return int(float(raw[:-1]))
    return int(float(raw) * 1000)


def parse_memory_bytes(raw: str) -> int:
    """Parse a memory quantity like '5947Mi', '8Gi', '1G' or '1024' into bytes."""
    raw = raw.strip()
    for unit, factor in BINARY_UNITS.items():
        if raw.endswith(unit):
            return int(float(raw[: -len(unit)]) * factor)
    if raw and raw[-1] in DECIMAL_UNITS:
        return int(float(raw[:-1]) * DECIMAL_UNITS[raw[-1]])
    return int(float(raw))


def format_age(seconds: float) -> str:
    """Compact age like '3d', '5h', '12m' or '40s'."""
    hours = seconds / 3600
    if hours > 24:
        return f"{int(hours / 24)}d"
    if hours > 1:
        return f"{int(hours)}h"
    if seconds / 60 > 1:
        return f"{int(seconds / 60)}m"
    return f"{int(max(seconds, 0))}s"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_note(
    phase: Phase, statuses: Iterable[dict], fully_ready: bool, fallback: str
) -> str:
    """
    One-line status note. Priority: waiting reason, then terminated reason
    (with non-zero exit code), then '[OK]' for a fully ready Running pod,
    then 'Completed' for a Succeeded pod, then the fallback.
    """
    waiting_reason = ""
    terminated_note = ""
    for cs in statuses:
        state = cs.get("state", {}) or {}
        waiting = state.get("waiting") or {}
        terminated = state.get("terminated") or {}
        if waiting.get("reason"):
            waiting_reason = waiting["reason"]
        elif terminated.get("reason"):
            terminated_note = terminated["reason"]
            exit_code = terminated.get("exitCode", 0) or 0
            if exit_code != 0:
                terminated_note = f"{terminated_note} ({exit_code})"

    if waiting_reason:
        return waiting_reason
    if terminated_note:
        return terminated_note
    if phase is Phase.RUNNING and fully_ready:
        return "[OK]"
    if phase is Phase.SUCCEEDED:
        return "Completed"
    return fallback


def build_workload_record(
    item: dict, usage: Optional[UsageSample], now: datetime
) -> WorkloadRecord:
    meta = item.get("metadata", {}) or {}
    spec = item.get("spec", {}) or {}
    status = item.get("status", {}) or {}

    phase = Phase.parse(status.get("phase"))
    statuses = status.get("containerStatuses", []) or []

    restarts = sum(int(cs.get("restartCount", 0) or 0) for cs in statuses)
    ready_count = sum(1 for cs in statuses if cs.get("ready"))
    total = len(statuses)
    all_ready = ready_count == total
    ready = (all_ready and total > 0) or phase is Phase.SUCCEEDED

    spec_containers = spec.get("containers", []) or []
    containers = tuple(c.get("name", "") for c in spec_containers)
    port = 0
    if spec_containers:
        ports = spec_containers[0].get("ports", []) or []
        if ports:
            port = int(ports[0].get("containerPort", 0) or 0)

    age = 0.0
    created = parse_timestamp(meta.get("creationTimestamp"))
    if created is not None:
        age = (now - created).total_seconds()

    fallback = status.get("reason") or phase.value
    cpu, memory = usage if usage is not None else (None, None)

    return WorkloadRecord(
        namespace=meta.get("namespace", ""),
        name=meta.get("name", ""),
        phase=phase,
        ready_count=ready_count,
        total_count=total,
        ready=ready,
        restarts=restarts,
        cpu_millicores=cpu,
        memory_bytes=memory,
        node_name=spec.get("nodeName", "") or "",
        pod_ip=status.get("podIP", "") or "",
        port=port,
        age_seconds=age,
        containers=containers,
        note=resolve_note(phase, statuses, all_ready, fallback),
    )


def build_workload_records(
    items: Iterable[dict],
    metrics: Dict[Tuple[str, str], UsageSample],
    now: Optional[datetime] = None,
) -> List[WorkloadRecord]:
    """Merge pod objects with per-pod usage samples keyed by (namespace, name)."""
    now = now or datetime.now(timezone.utc)
    records = []
    for item in items:
        meta = item.get("metadata", {}) or {}
        usage = metrics.get((meta.get("namespace", ""), meta.get("name", "")))
        records.append(build_workload_record(item, usage, now))
    return records


def build_cluster_summary(
    nodes: List[dict], metrics: Dict[str, UsageSample]
) -> ClusterSummary:
    cpu_capacity = 0
    memory_capacity = 0
    per_node: List[Tuple[str, float]] = []
    for item in nodes:
        name = (item.get("metadata", {}) or {}).get("name", "")
        allocatable = (item.get("status", {}) or {}).get("allocatable", {}) or {}
        try:
            node_cpu = parse_cpu_millicores(str(allocatable.get("cpu", "0")))
            node_memory = parse_memory_bytes(str(allocatable.get("memory", "0")))
        except ValueError:
            logger.warning("Unparsable allocatable on node %s: %s", name, allocatable)
            continue
        cpu_capacity += node_cpu
        memory_capacity += node_memory
        if name in metrics and node_cpu > 0:
            per_node.append((name, metrics[name][0] / node_cpu * 100.0))

    return ClusterSummary(
        node_count=len(nodes),
        cpu_capacity_millicores=cpu_capacity,
        memory_capacity_bytes=memory_capacity,
        cpu_usage_millicores=sum(v[0] for v in metrics.values()),
        memory_usage_bytes=sum(v[1] for v in metrics.values()),
        node_cpu_percent=tuple(pct for _, pct in sorted(per_node)),
    )


class KubectlClient:
    """Thin wrapper around the kubectl CLI."""

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        timeout: int = 10,
    ):
        self.kubeconfig = kubeconfig
        self.context = context
        self.timeout = timeout

    def base_argv(self) -> List[str]:
        argv = ["kubectl"]
        if self.kubeconfig:
            argv.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            argv.extend(["--context", self.context])
        return argv

    def _run(self, args: Sequence[str], timeout: Optional[int] = None) -> str:
        argv = self.base_argv() + list(args)
        logger.debug("Running %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise KubectlError(f"kubectl {args[0]} timed out")
        except OSError as e:
            raise KubectlError(f"Could not run kubectl: {e}")
        if result.returncode != 0:
            raise KubectlError(
                (result.stderr or "").strip() or f"kubectl {args[0]} failed"
            )
        return result.stdout

    def _run_json(self, args: Sequence[str]) -> dict:
        stdout = self._run(args)
        try:
            return json.loads(stdout)
        except ValueError as e:
            raise KubectlError(f"Failed to parse kubectl {args[0]} JSON: {e}")

    def check_connection(self) -> None:
        """Raise ClusterConnectionError unless the API server answers."""
        try:
            data = self._run_json(["version", "-o", "json"])
        except KubectlError as e:
            raise ClusterConnectionError(str(e)) from e
        if not data.get("serverVersion"):
            raise ClusterConnectionError("No server version reported by the cluster")

    # --- listing ---

    def list_pods(self) -> List[dict]:
        return self._run_json(["get", "pods", "-A", "-o", "json"]).get("items", [])

    def list_nodes(self) -> List[dict]:
        return self._run_json(["get", "nodes", "-o", "json"]).get("items", [])

    def list_namespaces(self) -> List[str]:
        items = self._run_json(["get", "namespaces", "-o", "json"]).get("items", [])
        return sorted(
            item.get("metadata", {}).get("name", "")
            for item in items
            if item.get("metadata", {}).get("name")
        )

    def list_events(self, namespace: str, name: str) -> List[dict]:
        selector = f"involvedObject.name={name},involvedObject.kind=Pod"
        return self._run_json(
            ["get", "events", "-n", namespace, "--field-selector", selector, "-o", "json"]
        ).get("items", [])

    # --- metrics ---

    def pod_metrics(self) -> Dict[Tuple[str, str], UsageSample]:
        """Per-pod usage from `kubectl top pods`. Format: NAMESPACE POD CPU MEMORY."""
        stdout = self._run(["top", "pods", "-A", "--no-headers", "--containers=false"])
        metrics: Dict[Tuple[str, str], UsageSample] = {}
        for line_text in stdout.strip().split("\n"):
            parts = line_text.split()
            if len(parts) < 4:
                continue
            ns, pod, cpu_raw, mem_raw = parts[0], parts[1], parts[2], parts[3]
            try:
                metrics[(ns, pod)] = (
                    parse_cpu_millicores(cpu_raw),
                    parse_memory_bytes(mem_raw),
                )
            except ValueError:
                continue
        return metrics

    def node_metrics(self) -> Dict[str, UsageSample]:
        """Per-node usage from `kubectl top nodes`."""
        stdout = self._run(["top", "nodes", "--no-headers"])
        metrics: Dict[str, UsageSample] = {}
        mem_units = tuple(BINARY_UNITS) + tuple(DECIMAL_UNITS)
        for line_text in stdout.strip().split("\n"):
            parts = line_text.split()
            if len(parts) < 3:
                continue
            node_name, tokens = parts[0], parts[1:]
            # Column layout differs between kubectl versions: locate by suffix
            cpu_raw = next(
                (t for t in tokens if not t.endswith("%") and not t.endswith(mem_units)),
                None,
            )
            mem_raw = next((t for t in tokens if t.endswith(mem_units)), None)
            if cpu_raw is None or mem_raw is None:
                continue
            try:
                metrics[node_name] = (
                    parse_cpu_millicores(cpu_raw),
                    parse_memory_bytes(mem_raw),
                )
            except ValueError:
                # '<unknown>' for nodes the metrics server has not scraped yet
                continue
        return metrics

    # --- aggregate fetches used by the refresh pipeline ---

    def fetch_workloads(self) -> List[WorkloadRecord]:
        items = self.list_pods()
        try:
            metrics = self.pod_metrics()
        except KubectlError as e:
            logger.warning("Pod metrics unavailable: %s", e)
            metrics = {}
        return build_workload_records(items, metrics)

    def fetch_cluster_summary(self) -> ClusterSummary:
        nodes = self.list_nodes()
        try:
            metrics = self.node_metrics()
        except KubectlError as e:
            logger.warning("Node metrics unavailable: %s", e)
            metrics = {}
        return build_cluster_summary(nodes, metrics)

    # --- one-shot reads ---

    def logs(self, namespace: str, name: str, container: str = "", tail: int = 100) -> str:
        args = ["logs", "-n", namespace, name, f"--tail={tail}"]
        if container:
            args.extend(["-c", container])
        return self._run(args)

    def manifest(self, namespace: str, name: str) -> str:
        return self._run(["get", "pod", name, "-n", namespace, "-o", "yaml"])

    # --- destructive ---

    def delete_pod(self, namespace: str, name: str) -> None:
        logger.info("Deleting pod %s/%s", namespace, name)
        self._run(["delete", "pod", name, "-n", namespace, "--wait=false"])

    def delete_all_pods(self, namespace: str) -> None:
        logger.info("Deleting all pods in %s", namespace)
        self._run(["delete", "pods", "--all", "-n", namespace, "--wait=false"])

    # --- argv for long-lived processes ---

    def exec_argv(self, namespace: str, name: str, container: str = "") -> List[str]:
        argv = self.base_argv() + ["exec", "-it", "-n", namespace, name]
        if container:
            argv.extend(["-c", container])
        return argv + ["--", "/bin/sh", "-c", "bash || sh"]

    def port_forward_argv(
        self, namespace: str, name: str, local_port: int, remote_port: int
    ) -> List[str]:
        return self.base_argv() + [
            "port-forward",
            "-n",
            namespace,
            name,
            f"{local_port}:{remote_port}",
        ]
