"""Scheduler for the nightly summary snapshot and periodic Tecsup refresh."""

import asyncio
import signal
from datetime import timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from productivity.aggregators.summary import DailySummaryEngine, local_today
from productivity.config.settings import settings
from productivity.db import session_scope
from productivity.sync.reconciler import SyncReconciler

logger = structlog.get_logger()


class ProductivityScheduler:
    """Manages scheduled jobs. The jobs only call into the summary and sync engines."""

    def __init__(self) -> None:
        self.scheduler = AsyncIOScheduler(timezone=settings.timezone)
        self._setup_jobs()

    def _setup_jobs(self) -> None:
        """Configure all scheduled jobs."""

        # Persist yesterday's summaries shortly after midnight
        self.scheduler.add_job(
            self._nightly_snapshot,
            CronTrigger(
                hour=settings.scheduler.snapshot_hour,
                minute=settings.scheduler.snapshot_minute,
                timezone=settings.timezone,
            ),
            id="nightly_snapshot",
            name="Nightly Snapshot",
            replace_existing=True,
        )

        if settings.scheduler.sync_interval_minutes > 0:
            self.scheduler.add_job(
                self._tecsup_refresh,
                IntervalTrigger(minutes=settings.scheduler.sync_interval_minutes),
                id="tecsup_refresh",
                name="Tecsup Refresh",
                replace_existing=True,
            )

        logger.info("Scheduled jobs configured", jobs=len(self.scheduler.get_jobs()))

    async def _nightly_snapshot(self) -> None:
        """Snapshot yesterday for every user."""
        yesterday = local_today() - timedelta(days=1)
        logger.info("Running nightly snapshot", date=yesterday.isoformat())
        try:
            with session_scope() as session:
                DailySummaryEngine(session).snapshot_all(yesterday)
        except Exception as e:
            logger.error("Nightly snapshot failed", error=str(e))

    async def _tecsup_refresh(self) -> None:
        """Refresh every sync-enabled user."""
        logger.info("Running Tecsup refresh")
        try:
            with session_scope() as session:
                outcomes = await SyncReconciler(session).refresh_all()
            failed = sum(1 for outcome in outcomes.values() if isinstance(outcome, str))
            logger.info("Tecsup refresh complete", users=len(outcomes), failed=failed)
        except Exception as e:
            logger.error("Tecsup refresh failed", error=str(e))

    def start(self) -> None:
        """Start the scheduler."""
        self.scheduler.start()
        logger.info("Productivity scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Productivity scheduler stopped")


async def run_scheduler() -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    scheduler = ProductivityScheduler()
    scheduler.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.stop()


def start_scheduler() -> None:
    """Entry point for scheduler service."""
    asyncio.run(run_scheduler())


if __name__ == "__main__":
    start_scheduler()
