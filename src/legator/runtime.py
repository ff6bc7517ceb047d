"""
Runnable / Manager — long-lived background duties of a controller process.

A Runnable blocks in ``start(stop_event)`` until the stop event is set.
Runnables that must only run on one replica at a time declare
``needs_leader_election``; the Manager skips them unless told this
process holds the lease. Winning the lease is somebody else's job.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Runnable(ABC):
    """Base class for background loops."""

    name: str = "runnable"
    needs_leader_election: bool = False

    @abstractmethod
    async def start(self, stop_event: asyncio.Event) -> None:
        """Run until stop_event is set."""
        ...


async def wait_for_tick(stop_event: asyncio.Event, interval: float) -> bool:
    """Sleep for one interval. Returns False if stop_event fired instead."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        return True
    return False


class Manager:
    """Starts registered runnables and waits for them to wind down."""

    def __init__(self) -> None:
        self.runnables: list[Runnable] = []

    def add(self, runnable: Runnable) -> None:
        self.runnables.append(runnable)

    async def run(self, stop_event: asyncio.Event, *, is_leader: bool = True) -> None:
        """Run every eligible runnable until stop_event is set."""
        selected = []
        for r in self.runnables:
            if r.needs_leader_election and not is_leader:
                logger.info("Skipping %s: requires leader election", r.name)
                continue
            selected.append(r)

        tasks = [asyncio.create_task(self._safe_start(r, stop_event)) for r in selected]
        if not tasks:
            await stop_event.wait()
            return
        await asyncio.gather(*tasks)

    async def _safe_start(self, runnable: Runnable, stop_event: asyncio.Event) -> None:
        """Start with error handling so one crash doesn't take down the rest."""
        logger.info("Starting %s", runnable.name)
        try:
            await runnable.start(stop_event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Runnable %s exited with an error", runnable.name)
        else:
            logger.info("Stopped %s", runnable.name)
