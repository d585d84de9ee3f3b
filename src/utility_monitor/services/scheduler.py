"""Service for scheduling background jobs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from utility_monitor.services.monitor import UtilityMonitor
from utility_monitor.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages scheduled tasks for the application."""

    def __init__(
        self,
        monitor: UtilityMonitor,
        scheduler: AsyncIOScheduler,
        notifications: NotificationService | None = None,
        interval_seconds: int = 60,
    ):
        self._monitor = monitor
        self._scheduler = scheduler
        self._notifications = notifications
        self._interval_seconds = interval_seconds

    def start(self):
        """Starts the scheduler and adds jobs."""
        logger.info("Starting scheduler...")
        self._scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id="period_sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started, sweeping every {self._interval_seconds}s.")

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def _run_sweep(self):
        """
        Checks period boundaries of all meters and sends due notifications.
        """
        logger.debug("Starting period sweep.")
        try:
            await self._monitor.check_period_resets()
        except Exception as e:
            logger.error(f"Period sweep failed: {e}", exc_info=True)

        if self._notifications is None:
            return
        try:
            await self._notifications.check_notifications()
        except Exception as e:
            logger.error(f"Notification check failed: {e}", exc_info=True)
