"""
Configuration models for the notification system.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict

from legator.core.durations import Duration


class ChannelConfig(BaseModel):
    """Configuration for a single notification channel."""

    type: str  # console, webhook, slack
    enabled: bool = True
    events: list[str] = ["*"]  # event type filter, "*" = all
    min_severity: Optional[str] = None  # info, warning, critical

    # Channel-specific fields stored as extras
    model_config = ConfigDict(extra="allow")


class NotificationsConfig(BaseModel):
    """Top-level notifications configuration."""

    enabled: bool = False
    rate_limit: int = 0  # notifications per source agent per window, 0 = unlimited
    rate_window: Duration = timedelta(hours=1)
    channels: list[ChannelConfig] = []
