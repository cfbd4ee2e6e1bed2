"""
Scheduler manager for automated jobs.

Handles scheduled tasks:
- Delivery sweep (retries pending commands for online employees)
"""

import logging
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Settings, settings as default_settings
from ..services.command_queue import CommandQueue
from ..utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

DELIVERY_SWEEP_JOB_ID = "delivery_sweep"


class SchedulerManager:
    """
    Manages scheduled jobs for command delivery.
    """

    def __init__(self, queue: CommandQueue, settings: Optional[Settings] = None):
        self.queue = queue
        self.settings = settings or default_settings
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        """Start the scheduler with all jobs."""
        interval = self.settings.delivery_sweep_interval_seconds
        if interval <= 0:
            logger.info("Delivery sweep disabled (interval is 0)")
            return

        self.scheduler = AsyncIOScheduler(timezone=pytz.UTC)

        self.scheduler.add_job(
            self._delivery_sweep_job,
            IntervalTrigger(seconds=interval),
            id=DELIVERY_SWEEP_JOB_ID,
            name="Pending Command Delivery Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started, delivery sweep every {interval}s")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def _delivery_sweep_job(self) -> None:
        """Retry delivery of every eligible pending command."""
        try:
            delivered = await self.queue.deliver_pending()
            if delivered:
                logger.info(f"Delivery sweep delivered {delivered} commands")
        except Exception as e:
            logger.error(f"Error in delivery sweep job: {e}", exc_info=True)

    def trigger_job(self, job_id: str) -> bool:
        """Manually trigger a job."""
        if not self.scheduler:
            return False

        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=pytz.UTC.localize(utc_now()))
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
