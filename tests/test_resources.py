"""Tests for resource models and their wire form."""

from conftest import NOW
from legator.core.resources import (
    API_VERSION,
    KINDS,
    AgentEvent,
    AgentEventSpec,
    AgentEventStatus,
    EventConsumer,
    EventPhase,
    EventSeverity,
    LegatorRun,
    ObjectMeta,
    RunPhase,
)


def _event(**status) -> AgentEvent:
    return AgentEvent(
        metadata=ObjectMeta(name="watchman-event-abc12", namespace="agents"),
        spec=AgentEventSpec(source_agent="watchman", event_type="finding"),
        status=AgentEventStatus(**status),
    )


class TestEnvelope:
    def test_kind_and_api_version(self):
        event = _event()
        assert event.kind == "AgentEvent"
        assert event.api_version == API_VERSION
        assert event.name == "watchman-event-abc12"
        assert event.namespace == "agents"

    def test_kinds_registry(self):
        assert KINDS == {"AgentEvent": AgentEvent, "LegatorRun": LegatorRun}


class TestWireFormat:
    def test_camel_case_keys(self):
        event = _event(phase="New")
        event.spec.target_agent = "forge"
        event.metadata.creation_timestamp = NOW
        wire = event.to_wire()

        assert wire["apiVersion"] == API_VERSION
        assert wire["spec"]["sourceAgent"] == "watchman"
        assert wire["spec"]["targetAgent"] == "forge"
        assert wire["metadata"]["creationTimestamp"].startswith("2026-10-19T12:00:00")
        assert wire["status"]["phase"] == "New"

    def test_parse_from_wire(self):
        event = AgentEvent.model_validate(
            {
                "apiVersion": API_VERSION,
                "kind": "AgentEvent",
                "metadata": {"name": "e1", "namespace": "agents", "resourceVersion": "7"},
                "spec": {"sourceAgent": "watchman", "eventType": "finding", "severity": "critical"},
                "status": {
                    "phase": "Consumed",
                    "consumedBy": [{"agent": "forge", "consumedAt": "2026-10-19T12:00:00Z"}],
                    "triggeredRuns": ["forge-run-1"],
                },
            }
        )
        assert event.metadata.resource_version == "7"
        assert event.spec.severity == EventSeverity.CRITICAL
        assert event.status.consumed_by[0].consumed_at == NOW
        assert event.status.triggered_runs == ["forge-run-1"]

    def test_run_phase_parsed(self):
        run = LegatorRun.model_validate(
            {"metadata": {"name": "r"}, "spec": {"agentRef": "watchman"}, "status": {"phase": "Failed"}}
        )
        assert run.status.phase == RunPhase.FAILED


class TestAgentEvent:
    def test_unset_phase_reads_as_new(self):
        assert _event().effective_phase == EventPhase.NEW

    def test_effective_phase(self):
        assert _event(phase="Expired").effective_phase == EventPhase.EXPIRED

    def test_was_consumed_by(self):
        event = _event(consumed_by=[EventConsumer(agent="forge", consumed_at=NOW)])
        assert event.was_consumed_by("forge")
        assert not event.was_consumed_by("tribune")


def test_severity_rank_order():
    assert EventSeverity.INFO.rank < EventSeverity.WARNING.rank < EventSeverity.CRITICAL.rank


def test_terminal_phases():
    assert {p for p in RunPhase if p.is_terminal} == {
        RunPhase.SUCCEEDED,
        RunPhase.FAILED,
        RunPhase.ESCALATED,
        RunPhase.BLOCKED,
    }
