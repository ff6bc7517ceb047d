"""
Agent coordination event bus.

Agents publish AgentEvent objects when they find something noteworthy
and poll for events addressed to them. Everything is stored in the
object store, so the bus needs no broker and is safe across replicas.
"""

from legator.events.bus import (
    EventBus,
    PublishParams,
    SubscribeParams,
    severity_meets,
)
from legator.events.reaper import EventReaper

__all__ = [
    "EventBus",
    "EventReaper",
    "PublishParams",
    "SubscribeParams",
    "severity_meets",
]
