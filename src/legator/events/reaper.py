"""
EventReaper — periodic deletion of AgentEvents past their TTL.

Runs alongside the anomaly detector in the controller process, sweeping
one namespace per interval. A failed sweep is logged and retried on the
next tick.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from legator.events.bus import EventBus
from legator.runtime import Runnable, wait_for_tick

logger = logging.getLogger(__name__)


class EventReaper(Runnable):
    """Calls EventBus.clean_expired on a fixed interval."""

    name = "event-reaper"
    # Deletes are idempotent; a single sweeper just saves round trips
    needs_leader_election = True

    def __init__(
        self,
        bus: EventBus,
        namespace: str,
        *,
        default_ttl: timedelta = timedelta(hours=24),
        interval: timedelta = timedelta(minutes=10),
    ) -> None:
        self.bus = bus
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.interval = interval
        self.sweeps = 0
        self.deleted_total = 0

    async def start(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "Event reaper starting: namespace=%s interval=%s",
            self.namespace,
            self.interval,
        )
        while True:
            await self.sweep()
            if not await wait_for_tick(stop_event, self.interval.total_seconds()):
                logger.info("Event reaper stopping")
                return

    async def sweep(self) -> int:
        """One sweep. Never raises for store failures."""
        self.sweeps += 1
        try:
            deleted = await self.bus.clean_expired(self.namespace, self.default_ttl)
        except Exception:
            logger.exception("Expired event sweep failed")
            return 0
        self.deleted_total += deleted
        return deleted
