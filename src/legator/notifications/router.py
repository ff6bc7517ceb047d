"""
NotificationRouter — dispatches published events to registered channels.

Handles fan-out (send to all matching channels), per-channel event type
and minimum severity filters, and an optional per-agent rate limit so a
misbehaving agent cannot flood the channels.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Callable, Optional

from legator.core.resources import AgentEvent, EventSeverity
from legator.notifications.channel import NotificationChannel
from legator.notifications.config import NotificationsConfig

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window counter keyed by source agent."""

    def __init__(
        self,
        max_per_window: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_per_window = max_per_window
        self.window = window
        self._clock = clock
        self._sent: dict[str, deque[float]] = defaultdict(deque)

    def allow(self, key: str) -> bool:
        now = self._clock()
        sent = self._sent[key]
        while sent and now - sent[0] >= self.window:
            sent.popleft()
        if len(sent) >= self.max_per_window:
            return False
        sent.append(now)
        return True


class NotificationRouter:
    """Dispatches events to registered channels with filtering."""

    def __init__(self, limiter: RateLimiter | None = None) -> None:
        self.channels: list[NotificationChannel] = []
        self.filters: dict[str, list[str]] = {}  # channel_name → subscribed event types
        self.min_severity: dict[str, EventSeverity] = {}
        self.limiter = limiter

    def register(
        self,
        channel: NotificationChannel,
        events: list[str] | None = None,
        min_severity: Optional[EventSeverity | str] = None,
    ) -> None:
        """Register a channel with optional event type and severity filters."""
        self.channels.append(channel)
        self.filters[channel.name] = events or ["*"]
        if min_severity:
            self.min_severity[channel.name] = EventSeverity(min_severity)

    def _matches(self, channel: NotificationChannel, event: AgentEvent) -> bool:
        """Check if a channel is subscribed to this event."""
        subscribed = self.filters.get(channel.name, ["*"])
        if "*" not in subscribed and event.spec.event_type not in subscribed:
            return False
        minimum = self.min_severity.get(channel.name)
        if minimum is not None and EventSeverity(event.spec.severity).rank < minimum.rank:
            return False
        return True

    async def dispatch(self, event: AgentEvent) -> None:
        """Fan-out event to all matching channels concurrently."""
        targets = [ch for ch in self.channels if self._matches(ch, event)]
        if not targets:
            return

        if self.limiter is not None and not self.limiter.allow(event.spec.source_agent):
            logger.info("Notification rate-limited for agent %s", event.spec.source_agent)
            return

        await asyncio.gather(*(self._safe_send(ch, event) for ch in targets))

    async def connect_all(self) -> None:
        """Connect all registered channels."""
        for ch in self.channels:
            try:
                await ch.connect()
            except Exception:
                logger.exception("Failed to connect channel %s", ch.name)

    async def disconnect_all(self) -> None:
        """Disconnect all registered channels."""
        for ch in self.channels:
            try:
                await ch.disconnect()
            except Exception:
                logger.exception("Failed to disconnect channel %s", ch.name)

    async def _safe_send(self, channel: NotificationChannel, event: AgentEvent) -> None:
        """Send with error handling so one channel failure doesn't break others."""
        try:
            await channel.send(event)
        except Exception:
            logger.exception("Failed to send to channel %s", channel.name)


def build_router(notif_config: NotificationsConfig) -> NotificationRouter:
    """Build the notification router from config."""
    limiter = None
    if notif_config.rate_limit > 0:
        limiter = RateLimiter(notif_config.rate_limit, notif_config.rate_window.total_seconds())
    router = NotificationRouter(limiter)

    if not notif_config.enabled:
        return router

    for ch_cfg in notif_config.channels:
        if not ch_cfg.enabled:
            continue

        channel: NotificationChannel | None = None
        extras = {
            k: v
            for k, v in ch_cfg.model_dump().items()
            if k not in ("type", "enabled", "events", "min_severity")
        }

        if ch_cfg.type == "console":
            from legator.notifications.channels.console import ConsoleChannel

            channel = ConsoleChannel()
        elif ch_cfg.type == "webhook":
            from legator.notifications.channels.webhook import WebhookChannel

            channel = WebhookChannel(
                url=extras.get("url", ""),
                secret=extras.get("secret", ""),
                headers=extras.get("headers"),
            )
        elif ch_cfg.type == "slack":
            from legator.notifications.channels.slack import SlackChannel

            channel = SlackChannel(
                webhook_url=extras.get("webhook_url", ""),
                channel=extras.get("channel", ""),
            )
        else:
            logger.warning("Unknown notification channel type '%s'", ch_cfg.type)

        if channel:
            router.register(channel, ch_cfg.events, ch_cfg.min_severity)

    return router
