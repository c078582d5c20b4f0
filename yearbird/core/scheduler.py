"""Background job scheduler for debounced cloud writes."""
import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)

CLOUD_WRITE_JOB_ID = "cloud_write"

scheduler = AsyncIOScheduler()


def schedule_cloud_write(func, *, delay_seconds: float, target: AsyncIOScheduler | None = None):
    """
    Schedule a single cloud write after a quiet period.

    Every call replaces the pending job, so a burst of local edits results
    in one remote write once the edits stop for ``delay_seconds``.
    """
    target = target or scheduler
    run_date = datetime.now(UTC) + timedelta(seconds=delay_seconds)
    target.add_job(
        func,
        trigger=DateTrigger(run_date=run_date),
        id=CLOUD_WRITE_JOB_ID,
        replace_existing=True,
        misfire_grace_time=None,
    )
    logger.debug(f"Cloud write scheduled for {run_date.isoformat()}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
