"""
Resource models — the declarative objects kept in the object store.

AgentEvent is the unit of agent coordination; LegatorRun is the record
of one agent execution that the anomaly detector replays. Both follow
the usual metadata / spec / status envelope, serialised with camelCase
keys on the wire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

API_GROUP = "legator.io"
API_VERSION = f"{API_GROUP}/v1alpha1"

# Label keys used as a secondary index on AgentEvent objects
LABEL_SOURCE_AGENT = f"{API_GROUP}/source-agent"
LABEL_EVENT_TYPE = f"{API_GROUP}/event-type"
LABEL_SEVERITY = f"{API_GROUP}/severity"
LABEL_ANOMALY_TYPE = f"{API_GROUP}/anomaly-type"
LABEL_ANOMALY_KEY = f"{API_GROUP}/anomaly-key"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    EventSeverity.INFO: 0,
    EventSeverity.WARNING: 1,
    EventSeverity.CRITICAL: 2,
}


class EventPhase(str, Enum):
    NEW = "New"
    DELIVERED = "Delivered"
    CONSUMED = "Consumed"
    EXPIRED = "Expired"


class RunTrigger(str, Enum):
    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class RunPhase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ESCALATED = "Escalated"
    BLOCKED = "Blocked"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RunPhase.SUCCEEDED,
            RunPhase.FAILED,
            RunPhase.ESCALATED,
            RunPhase.BLOCKED,
        )


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ObjectMeta(_WireModel):
    """Generic object envelope supplied by the store."""

    name: str = ""
    generate_name: str = ""
    namespace: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    uid: str = ""
    resource_version: str = ""
    creation_timestamp: Optional[datetime] = None


class Resource(_WireModel):
    """Base for every stored kind. Subclasses set KIND and PLURAL."""

    KIND: ClassVar[str] = ""
    PLURAL: ClassVar[str] = ""

    api_version: str = API_VERSION
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    def model_post_init(self, __context: Any) -> None:
        if not self.kind:
            self.kind = self.KIND

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace


# ---------------------------------------------------------------------------
# AgentEvent
# ---------------------------------------------------------------------------


class AgentEventSpec(_WireModel):
    source_agent: str
    source_run: str = ""
    event_type: str
    severity: EventSeverity = EventSeverity.INFO
    summary: str = ""
    detail: str = ""
    target_agent: str = ""  # empty = broadcast
    labels: dict[str, str] = Field(default_factory=dict)
    ttl: str = ""


class EventConsumer(_WireModel):
    agent: str
    consumed_at: datetime


class AgentEventStatus(_WireModel):
    # "" is the zero value left behind when the initial status write fails
    phase: str = ""
    consumed_by: list[EventConsumer] = Field(default_factory=list)
    triggered_runs: list[str] = Field(default_factory=list)


class AgentEvent(Resource):
    """A published finding that other agents may act upon."""

    KIND: ClassVar[str] = "AgentEvent"
    PLURAL: ClassVar[str] = "agentevents"

    spec: AgentEventSpec
    status: AgentEventStatus = Field(default_factory=AgentEventStatus)

    @property
    def effective_phase(self) -> EventPhase:
        """The status phase, with the unset zero value read as New."""
        if not self.status.phase:
            return EventPhase.NEW
        return EventPhase(self.status.phase)

    def was_consumed_by(self, agent: str) -> bool:
        return any(c.agent == agent for c in self.status.consumed_by)


# ---------------------------------------------------------------------------
# LegatorRun
# ---------------------------------------------------------------------------


class ActionRecord(_WireModel):
    """A single tool call attempted during a run."""

    seq: int
    timestamp: datetime
    tool: str
    target: str = ""  # e.g. "pods -n backstage"
    tier: str = "read"
    status: str = "executed"
    result: str = ""


class RunSpec(_WireModel):
    agent_ref: str
    environment_ref: str = ""
    # unset never counts as manual
    trigger: Optional[RunTrigger] = None
    model_used: str = ""


class RunStatus(_WireModel):
    phase: Optional[RunPhase] = None
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    actions: list[ActionRecord] = Field(default_factory=list)
    report: str = ""


class LegatorRun(Resource):
    """The recorded execution of one agent."""

    KIND: ClassVar[str] = "LegatorRun"
    PLURAL: ClassVar[str] = "legatorruns"

    spec: RunSpec
    status: RunStatus = Field(default_factory=RunStatus)


KINDS: dict[str, type[Resource]] = {
    AgentEvent.KIND: AgentEvent,
    LegatorRun.KIND: LegatorRun,
}
