"""
Core configuration and utilities for Legator.

Provides:
- Path constants (LEGATOR_HOME, LEGATOR_CONFIG_FILE)
- Configuration models (LegatorConfig, StoreConfig, EventsConfig, AnomalyConfig)
- Config loading/saving functions
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from legator.core.durations import Duration
from legator.notifications.config import NotificationsConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

LEGATOR_HOME: Path = Path.home() / ".legator"
LEGATOR_CONFIG_FILE: Path = LEGATOR_HOME / "config.yaml"


def config_path() -> Path:
    """Config file location, honouring the LEGATOR_CONFIG override."""
    override = os.environ.get("LEGATOR_CONFIG", "")
    return Path(override) if override else LEGATOR_CONFIG_FILE


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Where objects live."""

    backend: str = "memory"  # memory, http
    url: str = ""
    token: str = ""
    verify_tls: bool = True
    timeout: float = 30.0


class EventsConfig(BaseModel):
    namespace: str = "agents"
    default_ttl: Duration = timedelta(hours=24)
    gc_interval: Duration = timedelta(minutes=10)


class AnomalyConfig(BaseModel):
    """Tunables for the periodic anomaly scan."""

    namespace: str = "agents"
    scan_interval: Duration = timedelta(minutes=2)
    lookback: Duration = timedelta(hours=24)
    frequency_window: Duration = timedelta(minutes=30)
    frequency_threshold: int = 6
    scope_spike_multiplier: float = 2.5
    min_scope_spike_delta: int = 5
    target_drift_min_samples: int = 5
    event_ttl: str = "24h"

    def with_defaults(self) -> AnomalyConfig:
        """Replace empty or non-positive values with the defaults.

        This is a convenience, not validation: bad values never raise.
        """
        defaults = AnomalyConfig()
        updates: dict[str, Any] = {}
        if not self.namespace:
            updates["namespace"] = defaults.namespace
        if not self.event_ttl:
            updates["event_ttl"] = defaults.event_ttl
        for name in (
            "scan_interval",
            "lookback",
            "frequency_window",
            "frequency_threshold",
            "scope_spike_multiplier",
            "min_scope_spike_delta",
            "target_drift_min_samples",
        ):
            value = getattr(self, name)
            positive = value > timedelta(0) if isinstance(value, timedelta) else value > 0
            if not positive:
                updates[name] = getattr(defaults, name)
        return self.model_copy(update=updates)


class LegatorConfig(BaseModel):
    """Main configuration for Legator."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Config loading/saving
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None) -> LegatorConfig:
    """Load configuration from YAML file, or return defaults."""
    path = path or config_path()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
            return LegatorConfig(**data)
        except Exception:
            logger.warning("Ignoring unreadable config file %s", path, exc_info=True)
    return LegatorConfig()


def save_config(config: LegatorConfig, path: Path | None = None) -> None:
    """Save configuration to YAML file."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(config.model_dump(mode="json"), default_flow_style=False))


__all__ = [
    "LEGATOR_HOME",
    "LEGATOR_CONFIG_FILE",
    "config_path",
    "Duration",
    "StoreConfig",
    "EventsConfig",
    "AnomalyConfig",
    "LegatorConfig",
    "NotificationsConfig",
    "load_config",
    "save_config",
]
