#!/usr/bin/env python3
"""
Background runner for the rating tracker's scheduler.

Runs the tracking cycle on its interval without the HTTP API. It can be run
via systemd, supervisor, or directly.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --run-now    # Run one cycle immediately, then keep the schedule
    python run_scheduler.py --once       # Run one cycle and exit
"""
import asyncio
import argparse
import signal
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from app.core.config import settings
from app.core.database import init_db
from app.core.logging import configure_logging, get_logger
from app.core.scheduler import TrackingScheduler
from app.services.geoguessr.client import close_geoguessr_client
from app.services.tracking.tracker_job import run_guarded_cycle

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the tracking scheduler."""

    def __init__(self, run_now: bool = False):
        self.scheduler: Optional[TrackingScheduler] = None
        self.shutdown = False
        self.run_now = run_now

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")
        init_db()

        self.scheduler = TrackingScheduler()
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        # Setup signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        if self.run_now:
            await run_guarded_cycle()

        # Keep running until shutdown
        while not self.shutdown:
            await asyncio.sleep(1)

        # Cleanup
        await self.scheduler.stop()
        await close_geoguessr_client()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        """Set shutdown flag."""
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def run_once() -> bool:
    """Run a single tracking cycle."""
    init_db()
    try:
        summary = await run_guarded_cycle()
    finally:
        await close_geoguessr_client()
    return summary is not None


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the rating tracker scheduler'
    )

    parser.add_argument(
        '--run-now',
        action='store_true',
        help='Run a tracking cycle right away instead of waiting for the first interval'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run one tracking cycle and exit'
    )

    args = parser.parse_args()

    if args.once:
        return 0 if asyncio.run(run_once()) else 1

    runner = SchedulerRunner(run_now=args.run_now)

    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
