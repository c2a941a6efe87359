#!/usr/bin/env python3
"""
Background runner for the league sync scheduler.

Runs the automation scheduler as a standalone service (systemd, supervisor,
or directly) when the API process runs with SCHEDULER_ENABLED=false.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --trigger    # Run one sync now and exit
    python run_scheduler.py --list-jobs  # Show the job schedule
"""
import argparse
import asyncio
import logging
import signal
import sys

from app.core.config import settings
from app.core.logging import configure_logging
from app.core.scheduler import AutomationScheduler

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = logging.getLogger(__name__)


class SchedulerRunner:
    """Runner for the automation scheduler."""

    def __init__(self):
        self.scheduler: AutomationScheduler = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("Starting scheduler runner...")

        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("Scheduler is now running, press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        logger.info("Scheduler runner stopped")

    def _set_shutdown(self):
        logger.info("Shutdown signal received")
        self.shutdown = True


async def run_trigger() -> bool:
    """Run one scheduled sync now; False when it was skipped or failed."""
    from app.services.sync.run_control import run_scheduled_sync

    stats = await run_scheduled_sync()
    if stats is None:
        print("Sync skipped: another run holds the lock")
        return False
    print(f"Sync finished: {stats}")
    return not stats.get("errors")


def list_jobs() -> None:
    """Print the configured schedule."""
    print(f"League Sync (league_sync): every {settings.SYNC_INTERVAL_HOURS} hours")
    print(f"Scheduler enabled in the API process: {settings.SCHEDULER_ENABLED}")


def main() -> int:
    parser = argparse.ArgumentParser(description="League sync scheduler runner")
    parser.add_argument("--trigger", action="store_true", help="Run one sync now and exit")
    parser.add_argument("--list-jobs", action="store_true", help="List scheduled jobs and exit")
    args = parser.parse_args()

    if args.list_jobs:
        list_jobs()
        return 0

    if args.trigger:
        return 0 if asyncio.run(run_trigger()) else 1

    runner = SchedulerRunner()
    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"Scheduler error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
