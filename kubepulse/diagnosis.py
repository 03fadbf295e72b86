"""Pod doctor: warning events, rule-based hints and a short log tail."""

import logging
from datetime import datetime, timezone
from typing import List

from kubepulse.kubectl import KubectlClient, KubectlError, parse_timestamp
from kubepulse.models import Phase, WorkloadRecord

logger = logging.getLogger(__name__)

EVENTS_HEADER = "[EVENTS]"
ANALYSIS_HEADER = "[ANALYSIS]"
LOGS_HEADER = "[LOGS]"
SECTION_HEADERS = (EVENTS_HEADER, ANALYSIS_HEADER, LOGS_HEADER)

HIGH_RESTART_THRESHOLD = 5
DIAGNOSIS_LOG_TAIL = 15

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _event_time(event: dict) -> datetime:
    return (
        parse_timestamp(event.get("lastTimestamp"))
        or parse_timestamp(event.get("eventTime"))
        or parse_timestamp(event.get("firstTimestamp"))
        or parse_timestamp(event.get("metadata", {}).get("creationTimestamp"))
        or _EPOCH
    )


def warning_lines(events: List[dict]) -> List[str]:
    """Warning events, most recent first, as '* Reason: message'."""
    warnings = [e for e in events if e.get("type") == "Warning"]
    warnings.sort(key=_event_time, reverse=True)
    return [f"* {e.get('reason', '')}: {e.get('message', '')}".rstrip() for e in warnings]


def analyze(workload: WorkloadRecord) -> List[str]:
    hints = []
    if workload.restarts > HIGH_RESTART_THRESHOLD:
        hints.append("[!] High Restarts: App likely crashing on init.")
    if workload.phase is Phase.PENDING:
        hints.append("[!] Pending: Check Node Capacity / PVC binding.")
    if workload.phase is Phase.RUNNING and not workload.ready:
        hints.append(
            "[!] Running but Not Ready: Readiness probe failing or app still starting."
        )
    return hints


def build_report(client: KubectlClient, workload: WorkloadRecord) -> str:
    """
    Assemble the three report sections. A failing section degrades to an
    explanatory line; the rest of the report is still produced.
    """
    lines = [EVENTS_HEADER]
    try:
        events = warning_lines(client.list_events(workload.namespace, workload.name))
    except KubectlError as e:
        logger.warning("Events unavailable for %s: %s", workload.key, e)
        lines.append(f"Events unavailable: {e}")
    else:
        lines.extend(events or ["No critical events."])

    lines.extend(["", ANALYSIS_HEADER])
    lines.extend(analyze(workload) or ["No obvious problems detected."])

    lines.extend(["", LOGS_HEADER])
    container = workload.containers[0] if workload.containers else ""
    try:
        tail = client.logs(
            workload.namespace, workload.name, container, tail=DIAGNOSIS_LOG_TAIL
        )
    except KubectlError as e:
        logger.warning("Logs unavailable for %s: %s", workload.key, e)
        lines.append(f"Logs unavailable: {e}")
    else:
        lines.extend(tail.rstrip("\n").split("\n") if tail.strip() else ["(no output)"])

    return "\n".join(lines)
