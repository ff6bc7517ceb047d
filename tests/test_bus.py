"""Tests for the AgentEvent bus: publish, find, consume, expiry."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW
from legator.core.resources import (
    LABEL_EVENT_TYPE,
    LABEL_SEVERITY,
    LABEL_SOURCE_AGENT,
    AgentEvent,
    AgentEventSpec,
    EventPhase,
    EventSeverity,
    ObjectMeta,
)
from legator.events import EventBus, PublishParams, SubscribeParams, severity_meets
from legator.store import ConflictError, NotFoundError, StoreError


def _params(**kwargs) -> PublishParams:
    defaults = {
        "source_agent": "watchman-light",
        "namespace": "agents",
        "event_type": "pod-crash-loop",
        "severity": EventSeverity.CRITICAL,
        "summary": "Pod backstage-dev-abc is CrashLoopBackOff",
        "detail": "OOMKilled 3 times in 10 minutes",
        "ttl": "1h",
    }
    defaults.update(kwargs)
    return PublishParams(**defaults)


def _subscribe(consumer: str, **kwargs) -> SubscribeParams:
    return SubscribeParams(namespace="agents", consumer_agent=consumer, **kwargs)


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_sets_phase_and_spec(self, bus):
        event = await bus.publish(_params(labels={"pod": "backstage-dev-abc"}))

        assert event.name.startswith("watchman-light-event-")
        assert len(event.name) > len("watchman-light-event-")
        assert event.status.phase == EventPhase.NEW.value
        assert event.spec.source_agent == "watchman-light"
        assert event.spec.event_type == "pod-crash-loop"
        assert event.spec.severity == EventSeverity.CRITICAL
        assert event.spec.summary == "Pod backstage-dev-abc is CrashLoopBackOff"
        assert event.spec.detail == "OOMKilled 3 times in 10 minutes"
        assert event.spec.labels == {"pod": "backstage-dev-abc"}
        assert event.spec.ttl == "1h"
        assert event.metadata.creation_timestamp == NOW

    @pytest.mark.asyncio
    async def test_publish_seeds_index_labels(self, bus):
        event = await bus.publish(_params())
        assert event.metadata.labels == {
            LABEL_SOURCE_AGENT: "watchman-light",
            LABEL_EVENT_TYPE: "pod-crash-loop",
            LABEL_SEVERITY: "critical",
        }

    @pytest.mark.asyncio
    async def test_published_event_is_persisted_as_new(self, bus, store):
        event = await bus.publish(_params())
        stored = await store.get(AgentEvent, "agents", event.name)
        assert stored.status.phase == "New"

    @pytest.mark.asyncio
    async def test_status_failure_is_not_fatal(self, bus, store):
        store.update_status = AsyncMock(side_effect=StoreError("status down"))

        event = await bus.publish(_params())

        assert event.effective_phase == EventPhase.NEW
        stored = await store.get(AgentEvent, "agents", event.name)
        assert stored.status.phase == ""
        assert stored.effective_phase == EventPhase.NEW

    @pytest.mark.asyncio
    async def test_create_failure_propagates(self, bus, store):
        store.create = AsyncMock(side_effect=StoreError("store down"))
        with pytest.raises(StoreError):
            await bus.publish(_params())

    @pytest.mark.asyncio
    async def test_publish_notifies(self, store, clock):
        notifier = AsyncMock()
        bus = EventBus(store, notifier=notifier, clock=clock)

        event = await bus.publish(_params())

        notifier.dispatch.assert_awaited_once()
        assert notifier.dispatch.call_args[0][0].name == event.name

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_publish(self, store, clock):
        notifier = AsyncMock()
        notifier.dispatch.side_effect = RuntimeError("boom")
        bus = EventBus(store, notifier=notifier, clock=clock)

        event = await bus.publish(_params())
        assert event.name


# ---------------------------------------------------------------------------
# FindNewEvents
# ---------------------------------------------------------------------------


class TestFindNewEvents:
    @pytest.mark.asyncio
    async def test_filters_by_event_type(self, bus):
        await bus.publish(_params(event_type="pod-crash-loop"))
        await bus.publish(_params(event_type="cert-expiry", severity=EventSeverity.WARNING))

        found = await bus.find_new_events(_subscribe("forge", event_type="pod-crash-loop"))
        assert [e.spec.event_type for e in found] == ["pod-crash-loop"]

        everything = await bus.find_new_events(_subscribe("forge"))
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_filters_by_source_agent(self, bus):
        await bus.publish(_params(source_agent="watchman-light"))
        await bus.publish(_params(source_agent="tribune"))

        found = await bus.find_new_events(_subscribe("forge", source_agent="tribune"))
        assert [e.spec.source_agent for e in found] == ["tribune"]

    @pytest.mark.asyncio
    async def test_severity_filter(self, bus):
        await bus.publish(_params(severity=EventSeverity.INFO, summary="info"))
        await bus.publish(_params(severity=EventSeverity.WARNING, summary="warning"))
        await bus.publish(_params(severity=EventSeverity.CRITICAL, summary="critical"))

        found = await bus.find_new_events(
            _subscribe("forge", min_severity=EventSeverity.WARNING)
        )
        assert sorted(e.spec.summary for e in found) == ["critical", "warning"]

        unfiltered = await bus.find_new_events(_subscribe("forge"))
        assert len(unfiltered) == 3

    @pytest.mark.asyncio
    async def test_target_agent_routing(self, bus):
        await bus.publish(_params(target_agent="forge"))

        assert len(await bus.find_new_events(_subscribe("forge"))) == 1
        assert await bus.find_new_events(_subscribe("tribune")) == []

    @pytest.mark.asyncio
    async def test_consumed_by_one_agent_still_visible_to_others(self, bus):
        event = await bus.publish(_params())
        await bus.consume(event.name, "agents", "forge", "forge-run-1")

        assert await bus.find_new_events(_subscribe("forge")) == []
        others = await bus.find_new_events(_subscribe("tribune"))
        assert [e.name for e in others] == [event.name]

    @pytest.mark.asyncio
    async def test_expired_phase_is_hidden(self, bus, store):
        event = await bus.publish(_params())
        event.status.phase = EventPhase.EXPIRED.value
        await store.update_status(event)

        assert await bus.find_new_events(_subscribe("forge")) == []

    @pytest.mark.asyncio
    async def test_ttl_elapsed_is_hidden(self, bus, clock):
        await bus.publish(_params(ttl="1h"))
        clock.advance(timedelta(minutes=59))
        assert len(await bus.find_new_events(_subscribe("forge"))) == 1

        clock.advance(timedelta(minutes=2))
        assert await bus.find_new_events(_subscribe("forge")) == []

    @pytest.mark.asyncio
    async def test_unparseable_ttl_never_hides(self, bus, clock):
        await bus.publish(_params(ttl="soon"))
        clock.advance(timedelta(days=30))
        assert len(await bus.find_new_events(_subscribe("forge"))) == 1

    @pytest.mark.asyncio
    async def test_missing_creation_timestamp_skips_ttl_check(self, bus, store):
        store.seed(AgentEvent(
            metadata=ObjectMeta(name="fixture-event", namespace="agents"),
            spec=AgentEventSpec(source_agent="watchman", event_type="x", ttl="1s"),
        ))
        found = await bus.find_new_events(_subscribe("forge"))
        assert [e.name for e in found] == ["fixture-event"]

    @pytest.mark.asyncio
    async def test_other_namespaces_ignored(self, bus):
        await bus.publish(_params(namespace="staging"))
        assert await bus.find_new_events(_subscribe("forge")) == []

    @pytest.mark.asyncio
    async def test_results_in_creation_order(self, bus, clock):
        first = await bus.publish(_params(summary="first"))
        clock.advance(timedelta(seconds=5))
        second = await bus.publish(_params(summary="second"))

        found = await bus.find_new_events(_subscribe("forge"))
        assert [e.name for e in found] == [first.name, second.name]


# ---------------------------------------------------------------------------
# Consume
# ---------------------------------------------------------------------------


class TestConsume:
    @pytest.mark.asyncio
    async def test_consume_records_agent_and_run(self, bus, store, clock):
        event = await bus.publish(_params())
        await bus.consume(event.name, "agents", "forge", "forge-run-1")

        stored = await store.get(AgentEvent, "agents", event.name)
        assert stored.status.phase == EventPhase.CONSUMED.value
        assert [c.agent for c in stored.status.consumed_by] == ["forge"]
        assert stored.status.consumed_by[0].consumed_at == clock.now
        assert stored.status.triggered_runs == ["forge-run-1"]

    @pytest.mark.asyncio
    async def test_consume_without_run(self, bus, store):
        event = await bus.publish(_params())
        await bus.consume(event.name, "agents", "forge")

        stored = await store.get(AgentEvent, "agents", event.name)
        assert stored.status.triggered_runs == []

    @pytest.mark.asyncio
    async def test_multiple_consumers_append(self, bus, store):
        event = await bus.publish(_params())
        await bus.consume(event.name, "agents", "forge", "forge-run-1")
        await bus.consume(event.name, "agents", "tribune", "tribune-run-1")

        stored = await store.get(AgentEvent, "agents", event.name)
        assert [c.agent for c in stored.status.consumed_by] == ["forge", "tribune"]
        assert stored.status.triggered_runs == ["forge-run-1", "tribune-run-1"]

    @pytest.mark.asyncio
    async def test_same_agent_listed_once(self, bus, store):
        event = await bus.publish(_params())
        await bus.consume(event.name, "agents", "forge", "forge-run-1")
        await bus.consume(event.name, "agents", "forge", "forge-run-2")

        stored = await store.get(AgentEvent, "agents", event.name)
        assert [c.agent for c in stored.status.consumed_by] == ["forge"]
        assert stored.status.triggered_runs == ["forge-run-1", "forge-run-2"]

    @pytest.mark.asyncio
    async def test_missing_event_raises_not_found(self, bus):
        with pytest.raises(NotFoundError):
            await bus.consume("nope", "agents", "forge")

    @pytest.mark.asyncio
    async def test_empty_agent_rejected(self, bus):
        event = await bus.publish(_params())
        with pytest.raises(ValueError):
            await bus.consume(event.name, "agents", "")

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, bus, store):
        event = await bus.publish(_params())
        real_update = store.update_status
        calls = []

        async def flaky(obj):
            calls.append(obj)
            if len(calls) == 1:
                raise ConflictError("stale")
            return await real_update(obj)

        store.update_status = flaky
        await bus.consume(event.name, "agents", "forge")

        assert len(calls) == 2
        stored = await store.get(AgentEvent, "agents", event.name)
        assert [c.agent for c in stored.status.consumed_by] == ["forge"]

    @pytest.mark.asyncio
    async def test_conflict_gives_up_after_retries(self, bus, store):
        event = await bus.publish(_params())
        store.update_status = AsyncMock(side_effect=ConflictError("stale"))

        with pytest.raises(ConflictError):
            await bus.consume(event.name, "agents", "forge")
        assert store.update_status.await_count == 3


# ---------------------------------------------------------------------------
# CleanExpired
# ---------------------------------------------------------------------------


class TestCleanExpired:
    @pytest.mark.asyncio
    async def test_deletes_expired_then_nothing(self, bus, store, clock):
        await bus.publish(_params(ttl="1h", summary="short"))
        await bus.publish(_params(ttl="48h", summary="long"))
        clock.advance(timedelta(hours=2))

        assert await bus.clean_expired("agents", timedelta(hours=24)) == 1
        assert await bus.clean_expired("agents", timedelta(hours=24)) == 0

        remaining = await store.list(AgentEvent, namespace="agents")
        assert [e.spec.summary for e in remaining] == ["long"]

    @pytest.mark.asyncio
    async def test_default_ttl_applies_without_own_ttl(self, bus, clock):
        await bus.publish(_params(ttl=""))
        await bus.publish(_params(ttl="garbage"))
        clock.advance(timedelta(hours=3))

        assert await bus.clean_expired("agents", timedelta(hours=4)) == 0
        assert await bus.clean_expired("agents", timedelta(hours=2)) == 2

    @pytest.mark.asyncio
    async def test_delete_failure_is_skipped(self, bus, store, clock):
        await bus.publish(_params(summary="a"))
        await bus.publish(_params(summary="b"))
        clock.advance(timedelta(hours=2))

        real_delete = store.delete
        attempts = []

        async def flaky_delete(obj):
            attempts.append(obj.name)
            if len(attempts) == 1:
                raise StoreError("stuck")
            await real_delete(obj)

        store.delete = flaky_delete
        assert await bus.clean_expired("agents", timedelta(hours=24)) == 1
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_list_failure_propagates(self, bus, store):
        store.list = AsyncMock(side_effect=StoreError("down"))
        with pytest.raises(StoreError):
            await bus.clean_expired("agents", timedelta(hours=1))


class TestSeverityMeets:
    @pytest.mark.parametrize(
        "actual,minimum,expected",
        [
            ("info", "info", True),
            ("info", "warning", False),
            ("warning", "warning", True),
            ("critical", "warning", True),
            ("warning", "critical", False),
            ("critical", "critical", True),
        ],
    )
    def test_ordering(self, actual, minimum, expected):
        assert severity_meets(EventSeverity(actual), EventSeverity(minimum)) is expected
