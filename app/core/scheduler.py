"""
Background scheduler for the rating tracker.

This module provides one scheduled job:
- Tracking cycle: sync every tracked player, one request at a time

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)

TRACKING_JOB_ID = "tracking_cycle"


class TrackingScheduler:
    """
    Scheduler for the periodic tracking cycle.

    The cycle itself refuses to overlap (see run_guarded_cycle); the job
    defaults below only stop APScheduler from queueing extra firings.
    """

    def __init__(self, interval_minutes: Optional[int] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.interval_minutes = interval_minutes or settings.TRACKER_INTERVAL_MINUTES

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting tracking scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 60
            }
        )

        self._schedule_tracking_cycle()

        self.scheduler.start()
        self.running = True
        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))

        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("✅ Scheduler stopped")

    def _schedule_tracking_cycle(self):
        """
        Schedule: Sync every tracked player.

        Frequency: Every TRACKER_INTERVAL_MINUTES (10 by default)
        Pacing: TRACKER_REQUEST_DELAY_SECONDS between players
        """
        if self.scheduler is None:
            return

        from app.services.tracking.tracker_job import run_guarded_cycle

        @self.scheduler.scheduled_job(
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=TRACKING_JOB_ID,
            name='Tracking Cycle',
        )
        async def tracking_cycle_job():
            await run_guarded_cycle()

        logger.info(f"📅 Scheduled: Tracking cycle (every {self.interval_minutes} minutes)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %H:%M UTC') if next_run else 'Pending'
            logger.info(f"  • {job.name} (id={job.id}), next run: {next_run_str}")

    def status(self) -> dict:
        """Running flag and next run time of each job."""
        jobs = []
        if self.scheduler is not None:
            for job in self.scheduler.get_jobs():
                jobs.append({
                    'id': job.id,
                    'name': job.name,
                    'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                })
        return {'running': self.running, 'jobs': jobs}


# Global scheduler instance
_scheduler: Optional[TrackingScheduler] = None


async def start_scheduler():
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = TrackingScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[TrackingScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
