"""
Automated task scheduler for the league sync.

Scheduled background jobs:
- Full league sync every SYNC_INTERVAL_HOURS

Scheduled runs take the same run lock as manual runs; a run that is still
in progress makes the scheduled run skip.

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.sync.run_control import run_scheduled_sync

logger = logging.getLogger(__name__)

LEAGUE_SYNC_JOB_ID = "league_sync"


class AutomationScheduler:
    """
    Main scheduler for automated background tasks.

    All scheduled jobs should be defined here with clear
    schedules and error handling.
    """

    def __init__(self, interval_hours: Optional[int] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.interval_hours = interval_hours or settings.SYNC_INTERVAL_HOURS

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone="Europe/Berlin",
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": 600,
            },
        )

        self._schedule_league_sync()

        self.scheduler.start()
        self.running = True

        logger.info("Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Scheduler stopped")

    def _schedule_league_sync(self):
        """
        Schedule: Full league sync.

        Frequency: Every SYNC_INTERVAL_HOURS (default 6h)
        Purpose: Keep teams, events, players, venues and tables current
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=LEAGUE_SYNC_JOB_ID,
            name="League Sync",
        )
        async def league_sync_job():
            try:
                stats = await run_scheduled_sync()
                if stats is not None:
                    logger.info(
                        f"Scheduled sync: {stats.get('events_created', 0)} events created, "
                        f"{stats.get('events_updated', 0)} updated, {stats.get('errors', 0)} errors"
                    )
            except Exception as e:
                logger.error(f"Scheduled sync failed: {e}")

        logger.info(f"Scheduled: League sync (every {self.interval_hours} hours)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime("%Y-%m-%d %H:%M %Z") if next_run else "Pending"
            logger.info(f"  {job.name} ({job.id}), next run: {next_run_str}")


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler() -> Optional[AutomationScheduler]:
    """Start the global scheduler unless SCHEDULER_ENABLED is off."""
    global _scheduler
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
        return None
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
