"""
AnomalyDetector — periodic scan of run history for behavioural drift.

Every scan rebuilds per-agent history from the store (no cursor is
kept between ticks), replays manual runs in creation order, and emits
an AgentEvent for each positive signal. Re-scanning the same history is
idempotent: each (namespace, run, signal type) is published at most once,
keyed by a label on the event.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel

from legator.anomaly.signals import AnomalySignal, detect_anomalies
from legator.anomaly.snapshot import RunSnapshot, is_candidate, summarize_run
from legator.core import AnomalyConfig
from legator.core.resources import (
    LABEL_ANOMALY_KEY,
    LABEL_ANOMALY_TYPE,
    LABEL_EVENT_TYPE,
    LABEL_SEVERITY,
    LABEL_SOURCE_AGENT,
    AgentEvent,
    AgentEventSpec,
    EventPhase,
    LegatorRun,
    ObjectMeta,
)
from legator.runtime import Runnable, wait_for_tick
from legator.store import ObjectStore

if TYPE_CHECKING:
    from legator.notifications.router import NotificationRouter

logger = logging.getLogger(__name__)

ANOMALY_EVENT_TYPE = "anomaly"

_MAX_LABEL_VALUE = 63
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def anomaly_key(namespace: str, run_name: str, signal_type: str) -> str:
    return f"{namespace}/{run_name}/{signal_type}"


def anomaly_key_label(key: str) -> str:
    """Label-safe form of an anomaly key ('/' is not allowed in label values)."""
    value = key.replace("/", ".")
    if len(value) > _MAX_LABEL_VALUE:
        value = hashlib.sha256(key.encode()).hexdigest()[:_MAX_LABEL_VALUE]
    return value


class ScanResult(BaseModel):
    runs_considered: int = 0
    events_emitted: int = 0
    events_skipped: int = 0
    errors: int = 0


class AnomalyDetector(Runnable):
    """Leader-only runnable that emits anomaly events from run history."""

    name = "anomaly-detector"
    needs_leader_election = True

    def __init__(
        self,
        store: ObjectStore,
        config: AnomalyConfig | None = None,
        *,
        notifier: NotificationRouter | None = None,
    ) -> None:
        self.store = store
        self.config = (config or AnomalyConfig()).with_defaults()
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def start(self, stop_event: asyncio.Event) -> None:
        """Scan now, then once per interval until stop_event is set.

        A failed scan is logged; the loop keeps going.
        """
        logger.info(
            "Anomaly detector starting: namespace=%s interval=%s",
            self.config.namespace,
            self.config.scan_interval,
        )
        first = True
        while True:
            try:
                await self.scan_once()
            except Exception:
                logger.exception("Initial anomaly scan failed" if first else "Anomaly scan failed")
            first = False

            if not await wait_for_tick(stop_event, self.config.scan_interval.total_seconds()):
                logger.info("Anomaly detector stopping")
                return

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan_once(self) -> ScanResult:
        """One full pass over the namespace's run history."""
        runs = await self.store.list(LegatorRun, namespace=self.config.namespace)
        runs.sort(key=lambda r: r.metadata.creation_timestamp or _EPOCH)

        result = ScanResult()
        history_by_agent: dict[str, list[RunSnapshot]] = defaultdict(list)

        for run in runs:
            if not is_candidate(run):
                continue
            result.runs_considered += 1

            snapshot = summarize_run(run)
            history = history_by_agent[snapshot.agent]

            for signal in detect_anomalies(snapshot, history, self.config):
                try:
                    created = await self.record_anomaly_event(run, signal)
                except Exception:
                    logger.exception(
                        "Failed to record anomaly event: run=%s type=%s", run.name, signal.type
                    )
                    result.errors += 1
                    continue
                if created:
                    result.events_emitted += 1
                else:
                    result.events_skipped += 1

            # only now: a run never sees itself or later runs as history
            history.append(snapshot)

        if result.events_emitted:
            logger.info("Anomaly scan completed: events_emitted=%d", result.events_emitted)
        return result

    async def record_anomaly_event(self, run: LegatorRun, signal: AnomalySignal) -> bool:
        """Create the event for a signal unless one already exists.

        Returns True if an event was created. The existence check and the
        create are not atomic; two concurrent scanners can both create.
        """
        key = anomaly_key(run.namespace, run.name, signal.type)
        key_label = anomaly_key_label(key)

        existing = await self.store.list(
            AgentEvent, namespace=run.namespace, labels={LABEL_ANOMALY_KEY: key_label}
        )
        if existing:
            return False

        agent = run.spec.agent_ref
        labels = {
            LABEL_SOURCE_AGENT: agent,
            LABEL_EVENT_TYPE: ANOMALY_EVENT_TYPE,
            LABEL_SEVERITY: signal.severity.value,
            LABEL_ANOMALY_TYPE: signal.type,
            LABEL_ANOMALY_KEY: key_label,
        }
        labels.update(signal.labels)

        event = AgentEvent(
            metadata=ObjectMeta(
                generate_name=f"{agent}-anomaly-",
                namespace=run.namespace,
                labels=labels,
            ),
            spec=AgentEventSpec(
                source_agent=agent,
                source_run=run.name,
                event_type=ANOMALY_EVENT_TYPE,
                severity=signal.severity,
                summary=signal.summary,
                detail=signal.detail,
                labels=dict(signal.labels),
                ttl=self.config.event_ttl,
            ),
        )
        event = await self.store.create(event)

        event.status.phase = EventPhase.NEW.value
        try:
            event = await self.store.update_status(event)
        except Exception:
            logger.exception("Failed to set initial status on anomaly event %s", event.name)

        logger.info(
            "Anomaly event emitted: name=%s agent=%s run=%s type=%s severity=%s",
            event.name,
            agent,
            run.name,
            signal.type,
            signal.severity.value,
        )

        if self.notifier is not None:
            try:
                await self.notifier.dispatch(event)
            except Exception:
                logger.exception("Failed to dispatch notification for event %s", event.name)
        return True
