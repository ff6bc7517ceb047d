"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from legator.core.resources import (
    ActionRecord,
    LegatorRun,
    ObjectMeta,
    RunPhase,
    RunSpec,
    RunStatus,
    RunTrigger,
)
from legator.events import EventBus
from legator.store.memory import InMemoryObjectStore

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by the store and the component under test."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def make_run(
    name: str,
    created: datetime,
    actions: int = 2,
    *,
    agent: str = "watchman",
    namespace: str = "agents",
    targets: list[str] | None = None,
    trigger: RunTrigger = RunTrigger.MANUAL,
    phase: RunPhase = RunPhase.SUCCEEDED,
    start_time: datetime | None = None,
) -> LegatorRun:
    """Build a run with `actions` tool calls cycling through `targets`."""
    targets = targets or ["pod/default"]
    records = [
        ActionRecord(
            seq=i + 1,
            timestamp=created + timedelta(seconds=i),
            tool="kubectl.get",
            target=targets[i % len(targets)],
        )
        for i in range(actions)
    ]
    return LegatorRun(
        metadata=ObjectMeta(name=name, namespace=namespace, creation_timestamp=created),
        spec=RunSpec(agent_ref=agent, environment_ref="dev-lab", trigger=trigger),
        status=RunStatus(phase=phase, start_time=start_time, actions=records),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryObjectStore(clock=clock)


@pytest.fixture
def bus(store, clock):
    return EventBus(store, clock=clock)
