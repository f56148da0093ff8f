"""
Scheduler manager for housekeeping jobs.

Handles:
- Purging bulk operations past the retention window (rollback lapses with them)
"""

import logging
from typing import Optional
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import pytz

from config import settings
from ..operations.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)


class SchedulerManager:
    """
    Manages scheduled jobs for the bulk operation service.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.timezone = pytz.timezone(settings.timezone)

    def start(self) -> None:
        """Start the scheduler with all jobs."""
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            self._purge_operations_job,
            IntervalTrigger(minutes=settings.bulk_purge_interval_minutes, timezone=self.timezone),
            id="purge_bulk_operations",
            name="Purge Expired Bulk Operations",
            replace_existing=True
        )
        logger.info(
            f"Bulk operation purge scheduled: every {settings.bulk_purge_interval_minutes} minutes "
            f"(retention {settings.bulk_retention_hours}h)"
        )

        self.scheduler.start()
        logger.info("Scheduler started with all jobs")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def _purge_operations_job(self) -> int:
        """Drop terminal operations older than the retention window."""
        try:
            purged = get_orchestrator().tracker.purge_expired()
            if purged:
                logger.info(f"Purge job removed {purged} bulk operation(s)")
            return purged
        except Exception as e:
            logger.error(f"Error in purge job: {e}", exc_info=True)
            return 0

    def trigger_job(self, job_id: str) -> bool:
        """Manually trigger a job."""
        if not self.scheduler:
            return False

        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now(self.timezone))
            return True

        return False

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs."""
        if not self.scheduler:
            return {}

        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            }

        return jobs


# Singleton instance
scheduler_manager = SchedulerManager()


def get_scheduler_manager() -> SchedulerManager:
    """Get the scheduler manager instance."""
    return scheduler_manager
