"""
Long-running scheduler for ``feedsync serve``.

Fires ``FeedSyncJob.run_once`` on the configured cron schedule until a stop
is requested (SIGINT/SIGTERM, or ``stop()``). A run in progress is never
interrupted; the stop takes effect once it returns.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from datetime import datetime

from feedsync.config.loader import ScheduleSettings
from feedsync.exceptions import ConfigurationError
from feedsync.job import FeedSyncJob
from feedsync.service.cron import CronError, CronSchedule, load_timezone, validate
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.service.scheduler")


class Scheduler:
    """
    Cron-driven job loop.

    Args:
        job: Job to trigger
        schedule: Cron expression and timezone
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        job: FeedSyncJob,
        schedule: ScheduleSettings,
        clock: Callable[[], datetime] | None = None,
    ):
        try:
            self.cron: CronSchedule = validate(schedule.cron, schedule.timezone)
            self.tz = load_timezone(schedule.timezone)
        except CronError as e:
            raise ConfigurationError(f"Invalid CRON_SCHEDULE {schedule.cron!r}: {e}") from e
        self.job = job
        self.timezone = schedule.timezone
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._stopping = asyncio.Event()
        self.next_fire: datetime | None = None
        self.runs = 0

    def stop(self) -> None:
        if not self._stopping.is_set():
            logger.info("Stop requested, shutting down scheduler")
        self._stopping.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/loop (e.g. Windows, non-main thread)
                logger.debug(f"Signal handler for {sig.name} not installed")

    async def serve(self, *, install_signals: bool = True) -> None:
        """Run until stopped."""
        if install_signals:
            self._install_signal_handlers()

        logger.info(f"Starting scheduler with schedule: {self.cron.expression} ({self.timezone})")
        while not self._stopping.is_set():
            self.next_fire = self.cron.next_after(self._clock(), self.timezone)
            logger.info(f"Next run at {self.next_fire.isoformat()}")

            delay = max(0.0, (self.next_fire - self._clock()).total_seconds())
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            logger.info(f"Cron job triggered at {self._clock().isoformat()}")
            self.runs += 1
            await self.job.run_once()

        logger.info("Scheduler stopped")
