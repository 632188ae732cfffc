"""Scheduler for periodic tasks using pure asyncio.

Jobs:
- Reminder tick: derive due follow-ups and log the ones not yet announced today
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bizflow.config import BizflowConfig
    from bizflow.core import Workspace
    from bizflow.reminders import Reminder

logger = logging.getLogger(__name__)


class Scheduler:
    """Simple asyncio-based scheduler for periodic tasks."""

    def __init__(self, workspace: Workspace, config: BizflowConfig) -> None:
        self._workspace = workspace
        self._interval = config.scheduler.reminder_interval
        self._announced: set[tuple[str, str | None, str]] = set()
        self._announced_on: date | None = None

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown_event is set."""
        logger.info("Scheduler started (reminders every %ds)", self._interval)

        while not shutdown_event.is_set():
            self.tick()
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self._interval)
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass  # interval elapsed, run jobs again

        logger.info("Scheduler stopped.")

    def tick(self, today: date | None = None) -> list[Reminder]:
        """Announce reminders not yet logged today; returns the new ones."""
        today = today or date.today()
        if self._announced_on != today:
            self._announced.clear()
            self._announced_on = today

        fresh = []
        for reminder in self._workspace.reminders(today):
            key = (reminder.kind, reminder.source_id, reminder.due)
            if key in self._announced:
                continue
            self._announced.add(key)
            fresh.append(reminder)
            logger.info("Reminder: %s for %s (%s)", reminder.kind, reminder.client, reminder.details)
        return fresh
