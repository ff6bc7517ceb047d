"""
NotificationChannel — abstract base class for all notification channels.

Each channel implementation (console, webhook, Slack) inherits from
this ABC and implements `send()`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from legator.core.resources import AgentEvent


class NotificationChannel(ABC):
    """Base class for notification channels."""

    name: str = "unnamed"

    @abstractmethod
    async def send(self, event: AgentEvent) -> None:
        """Deliver an event to this channel."""
        ...

    async def connect(self) -> None:
        """Establish connection. No-op by default."""

    async def disconnect(self) -> None:
        """Tear down connection. No-op by default."""
