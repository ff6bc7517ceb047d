"""
RunSnapshot — the compact per-run view every anomaly heuristic works on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from legator.core.resources import LegatorRun, RunPhase, RunTrigger

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class RunSnapshot:
    namespace: str
    run_name: str
    agent: str
    timestamp: datetime
    action_count: int = 0
    target_classes: list[str] = field(default_factory=list)  # sorted, unique


def normalize_target_class(target: str) -> str:
    """Reduce a raw action target to a coarse class.

    "pods -n backstage" → "pods", "-n kube-system" → "kube-system",
    "deployment/api" → "deployment", "db:orders" → "db".
    """
    fields = target.strip().lower().split()
    if not fields:
        return ""

    first = fields[0]
    if first.startswith("-") and len(fields) > 1:
        first = fields[1]
    idx = first.find("/")
    if idx > 0:
        first = first[:idx]
    idx = first.find(":")
    if idx > 0:
        first = first[:idx]
    return first


def summarize_run(run: LegatorRun) -> RunSnapshot:
    timestamp = run.status.start_time or run.metadata.creation_timestamp or _EPOCH

    classes = {normalize_target_class(a.target) for a in run.status.actions}
    classes.discard("")

    return RunSnapshot(
        namespace=run.namespace,
        run_name=run.name,
        agent=run.spec.agent_ref,
        timestamp=timestamp,
        action_count=len(run.status.actions),
        target_classes=sorted(classes),
    )


def is_candidate(run: LegatorRun) -> bool:
    """Manual runs that have finished.

    Scheduled runs are periodic by design, so their cadence says nothing.
    """
    if run.spec.trigger != RunTrigger.MANUAL:
        return False
    return run.status.phase is not None and RunPhase(run.status.phase).is_terminal
