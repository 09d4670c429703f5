"""APScheduler job that keeps the post cache warm."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from blogfeed.cache import PostCache

logger = logging.getLogger(__name__)


def build_cron_trigger(cron: str) -> CronTrigger:
    """Build a UTC CronTrigger from a 5-field cron expression."""
    cron_parts = cron.split()
    if len(cron_parts) != 5:
        raise ValueError(f"Invalid refresh cron: {cron!r}")

    minute, hour, day, month, day_of_week = cron_parts
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone="UTC",
    )


class RefreshScheduler:
    """Wraps APScheduler AsyncIOScheduler with one forced-refresh cron job."""

    def __init__(self, cache: PostCache, cron: str) -> None:
        self.cache = cache
        self.cron = cron
        self._scheduler = AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Register the job and start the scheduler on the running loop."""
        self._scheduler.add_job(
            func=self._run_refresh,
            trigger=build_cron_trigger(self.cron),
            id="posts_refresh",
            name="Blog posts cache refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("scheduler_starting", extra={"refresh_cron": self.cron})
        self._scheduler.start()

    def stop(self) -> None:
        """Shut down the scheduler gracefully."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def _run_refresh(self) -> None:
        try:
            snapshot = await self.cache.refresh(force=True)
            logger.info(
                "scheduled_refresh_done",
                extra={"source": snapshot.source.value, "count": snapshot.count},
            )
        except Exception as exc:
            logger.error("scheduled_refresh_failed", extra={"error": str(exc)}, exc_info=True)
