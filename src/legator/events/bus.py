"""
EventBus — agent coordination on top of the object store.

Agents publish AgentEvent objects when they discover something
noteworthy; other agents poll for events addressed to them and
acknowledge the ones they act on. There is no broker process: all state
lives in the store, so events survive restarts and every controller
replica sees the same picture.

Event lifecycle: New → Consumed (per consumer) → TTL expiry → deleted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel, Field

from legator.core.durations import parse_duration
from legator.core.resources import (
    LABEL_EVENT_TYPE,
    LABEL_SEVERITY,
    LABEL_SOURCE_AGENT,
    AgentEvent,
    AgentEventSpec,
    EventConsumer,
    EventPhase,
    EventSeverity,
    ObjectMeta,
)
from legator.store import ConflictError, ObjectStore

if TYPE_CHECKING:
    from legator.notifications.router import NotificationRouter

logger = logging.getLogger(__name__)

CONSUME_ATTEMPTS = 3

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class PublishParams(BaseModel):
    """What a publisher supplies for a new event."""

    source_agent: str
    namespace: str
    event_type: str
    severity: EventSeverity = EventSeverity.INFO
    summary: str = ""
    detail: str = ""
    target_agent: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    ttl: str = ""


class SubscribeParams(BaseModel):
    """Criteria a consumer polls with. Empty filters match everything."""

    namespace: str
    consumer_agent: str
    event_type: str = ""
    source_agent: str = ""
    min_severity: Optional[EventSeverity] = None


def severity_meets(actual: EventSeverity, minimum: EventSeverity) -> bool:
    """True if actual is at or above minimum (info < warning < critical)."""
    return EventSeverity(actual).rank >= EventSeverity(minimum).rank


def event_ttl(event: AgentEvent) -> Optional[timedelta]:
    """The event's own TTL, or None if unset or unparseable."""
    if not event.spec.ttl:
        return None
    try:
        return parse_duration(event.spec.ttl)
    except ValueError:
        return None


class EventBus:
    """Publish, find, consume and expire AgentEvents."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        notifier: NotificationRouter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(self, params: PublishParams) -> AgentEvent:
        """Create a new event and mark it New.

        The store's create path drops status, so the phase is written by
        a second status update. If that write fails the event still
        exists with an empty phase, which readers treat as New.
        """
        event = AgentEvent(
            metadata=ObjectMeta(
                generate_name=f"{params.source_agent}-event-",
                namespace=params.namespace,
                labels={
                    LABEL_SOURCE_AGENT: params.source_agent,
                    LABEL_EVENT_TYPE: params.event_type,
                    LABEL_SEVERITY: EventSeverity(params.severity).value,
                },
            ),
            spec=AgentEventSpec(
                source_agent=params.source_agent,
                event_type=params.event_type,
                severity=params.severity,
                summary=params.summary,
                detail=params.detail,
                target_agent=params.target_agent,
                labels=dict(params.labels),
                ttl=params.ttl,
            ),
        )

        event = await self.store.create(event)

        event.status.phase = EventPhase.NEW.value
        try:
            event = await self.store.update_status(event)
        except Exception:
            logger.exception("Failed to set initial status on event %s", event.name)

        logger.info(
            "AgentEvent published: name=%s source=%s type=%s severity=%s summary=%r",
            event.name,
            params.source_agent,
            params.event_type,
            EventSeverity(params.severity).value,
            params.summary,
        )

        await self._notify(event)
        return event

    # ------------------------------------------------------------------
    # Consume
    # ------------------------------------------------------------------

    async def consume(
        self, event_name: str, namespace: str, agent: str, run_name: str = ""
    ) -> AgentEvent:
        """Record that ``agent`` consumed the event, optionally via ``run_name``.

        Read-modify-write on the status, retried on a stale write. An
        agent already listed in consumed_by is not listed twice.
        """
        if not agent:
            raise ValueError("consuming agent name is required")

        attempt = 0
        while True:
            attempt += 1
            event = await self.store.get(AgentEvent, namespace, event_name)

            if not event.was_consumed_by(agent):
                event.status.consumed_by.append(
                    EventConsumer(agent=agent, consumed_at=self._clock())
                )
            if run_name and run_name not in event.status.triggered_runs:
                event.status.triggered_runs.append(run_name)
            event.status.phase = EventPhase.CONSUMED.value

            try:
                return await self.store.update_status(event)
            except ConflictError:
                if attempt >= CONSUME_ATTEMPTS:
                    raise
                logger.debug(
                    "Conflict consuming event %s (attempt %d), retrying", event_name, attempt
                )

    # ------------------------------------------------------------------
    # Find
    # ------------------------------------------------------------------

    async def find_new_events(self, params: SubscribeParams) -> list[AgentEvent]:
        """Events visible to the consumer that it has not consumed yet.

        A full scan of the namespace; event volumes are low enough that
        the label index is not worth the extra round trips here.
        """
        events = await self.store.list(AgentEvent, namespace=params.namespace)
        now = self._clock()

        matched = [e for e in events if self._visible(e, params, now)]
        matched.sort(key=lambda e: e.metadata.creation_timestamp or _EPOCH)
        return matched

    def _visible(self, event: AgentEvent, params: SubscribeParams, now: datetime) -> bool:
        spec = event.spec

        if event.status.phase == EventPhase.EXPIRED.value:
            return False
        if params.event_type and spec.event_type != params.event_type:
            return False
        if params.source_agent and spec.source_agent != params.source_agent:
            return False
        if spec.target_agent and spec.target_agent != params.consumer_agent:
            return False
        if params.min_severity and not severity_meets(spec.severity, params.min_severity):
            return False
        if event.was_consumed_by(params.consumer_agent):
            return False

        # Objects without a creation time (fixtures) never age out
        created = event.metadata.creation_timestamp
        ttl = event_ttl(event)
        if ttl is not None and created is not None and now - created > ttl:
            return False

        return True

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def clean_expired(self, namespace: str, default_ttl: timedelta) -> int:
        """Delete events older than their TTL (or ``default_ttl``).

        A failed delete is logged and skipped; the sweep carries on.
        Returns the number of events deleted.
        """
        events = await self.store.list(AgentEvent, namespace=namespace)
        now = self._clock()

        deleted = 0
        for event in events:
            created = event.metadata.creation_timestamp
            if created is None:
                continue
            ttl = event_ttl(event)
            if ttl is None:
                ttl = default_ttl
            if now - created <= ttl:
                continue
            try:
                await self.store.delete(event)
            except Exception:
                logger.exception("Failed to delete expired event %s", event.name)
                continue
            deleted += 1

        if deleted:
            logger.info("Deleted %d expired events in namespace %s", deleted, namespace)
        return deleted

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _notify(self, event: AgentEvent) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.dispatch(event)
        except Exception:
            logger.exception("Failed to dispatch notification for event %s", event.name)
