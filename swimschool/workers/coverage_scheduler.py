"""
Scheduler for the periodic coverage sweep.
"""

import asyncio
import logging
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from swimschool.core.settings import settings
from swimschool.services.sweep import run_throttled_sweep

logger = logging.getLogger(__name__)


class CoverageScheduler:
    """Runs the throttled coverage sweep on an interval."""

    def __init__(self, session_factory=None):
        self.scheduler = AsyncIOScheduler(timezone=settings.timezone)
        self.session_factory = session_factory
        self.is_running = False

    async def start(self):
        if self.is_running:
            logger.warning("Coverage scheduler already running")
            return

        logger.info("Starting coverage scheduler...")

        # The sweep throttles itself, so firing at the same interval across
        # several processes still runs it once per window
        self.scheduler.add_job(
            self._run_sweep,
            IntervalTrigger(minutes=settings.coverage_sweep_interval_minutes),
            id="coverage_sweep",
            name="Coverage sweep",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self.is_running = True

        logger.info(
            f"✅ Coverage sweep scheduled every "
            f"{settings.coverage_sweep_interval_minutes} minutes ({settings.timezone})"
        )

    async def stop(self):
        if not self.is_running:
            return

        logger.info("Stopping coverage scheduler...")
        self.scheduler.shutdown()
        self.is_running = False
        logger.info("Coverage scheduler stopped")

    async def _run_sweep(self):
        try:
            result = await run_throttled_sweep(self.session_factory)
            if result is not None and not result.ok:
                logger.warning(f"Coverage sweep left {len(result.failed)} enrolments failed")
        except Exception as e:
            logger.error(f"❌ Coverage sweep error: {e}")


# Global scheduler instance
scheduler = CoverageScheduler()


async def start_coverage_scheduler():
    await scheduler.start()


async def stop_coverage_scheduler():
    await scheduler.stop()


async def _run_forever():
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await start_coverage_scheduler()
    # Run once at startup; the throttle skips it if a sweep is recent
    await scheduler._run_sweep()
    await stop_event.wait()
    await stop_coverage_scheduler()


def main():
    """Entry point for the standalone sweep worker."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    logger.info("🚀 Starting coverage worker...")
    asyncio.run(_run_forever())
    logger.info("✅ Coverage worker stopped")


if __name__ == "__main__":
    main()
