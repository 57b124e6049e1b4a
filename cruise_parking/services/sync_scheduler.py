"""
Sync Scheduler

Runs an incremental order sync on a fixed interval while the API is up.
Enabled with SYNC_SCHEDULE_ENABLED; the interval is SYNC_INTERVAL_MINUTES.
"""

import logging
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..exceptions import AggregateRebuildFailed, SyncAlreadyRunning
from ..models.sync_run import SyncType
from .sync_service import run_order_sync

logger = logging.getLogger(__name__)

JOB_ID = "incremental_order_sync"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


async def scheduled_sync_job():
    """
    Scheduled job: pull orders created since the last completed run.
    """
    logger.info("Running scheduled incremental order sync...")

    try:
        outcome = await run_order_sync(SyncType.INCREMENTAL)
    except SyncAlreadyRunning:
        logger.info("Scheduled sync skipped: another sync is in progress")
        return
    except AggregateRebuildFailed as e:
        logger.error(f"Scheduled sync stored orders but the aggregate rebuild failed: {e.detail}")
        return

    logger.info(
        f"Scheduled sync {outcome.status.value}: "
        f"{outcome.orders_processed}/{outcome.orders_fetched} orders, {outcome.error_count} errors"
    )


def start_scheduler(interval_minutes: Optional[int] = None) -> AsyncIOScheduler:
    """
    Start the scheduler. Must be called with a running event loop (FastAPI lifespan).
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Sync scheduler already running")
        return _scheduler

    interval_minutes = interval_minutes or settings.sync_interval_minutes

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        scheduled_sync_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=JOB_ID,
        name="Incremental order sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()

    logger.info(f"Sync scheduler started - incremental sync every {interval_minutes} minutes")
    return _scheduler


def stop_scheduler():
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")
    _scheduler = None


def get_scheduler_status() -> Dict[str, Any]:
    """Snapshot for the detailed health endpoint."""
    if _scheduler is None or not _scheduler.running:
        return {"enabled": settings.sync_schedule_enabled, "running": False, "next_run": None}

    job = _scheduler.get_job(JOB_ID)
    next_run = job.next_run_time.isoformat() if job and job.next_run_time else None
    return {"enabled": settings.sync_schedule_enabled, "running": True, "next_run": next_run}
