"""
Notification system for Legator.

Routes published AgentEvents to external channels (console, webhooks,
Slack) filtered by event type and minimum severity.
"""

from legator.notifications.channel import NotificationChannel
from legator.notifications.config import ChannelConfig, NotificationsConfig
from legator.notifications.router import NotificationRouter, RateLimiter, build_router

__all__ = [
    "NotificationChannel",
    "NotificationRouter",
    "RateLimiter",
    "ChannelConfig",
    "NotificationsConfig",
    "build_router",
]
