"""
Sync Run Tracker

Sync history and the run-level lock.

The lock is a single row in sync_locks: inserting it takes the lock, a
primary key conflict means another run holds it. A lock older than
SYNC_LOCK_STALE_MINUTES belongs to a crashed worker and is taken over.
"""

import logging
import socket
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import SyncAlreadyRunning
from ..models.sync_run import SyncRun, SyncLock, SyncType, SyncRunStatus
from ..utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

LOCK_NAME = "order_sync"


def default_owner() -> str:
    return f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"


class SyncRunTracker:
    """
    Usage:
        tracker = SyncRunTracker(db)
        tracker.acquire_lock()
        run = tracker.begin(SyncType.INCREMENTAL, since)
        ...
        tracker.complete(run, SyncRunStatus.COMPLETED, errors=[])
        tracker.release_lock()
    """

    def __init__(self, db: Session, stale_after_minutes: Optional[int] = None):
        self.db = db
        self.stale_after = timedelta(minutes=stale_after_minutes or settings.sync_lock_stale_minutes)
        self.owner: Optional[str] = None

    # ==================== LOCK ====================

    def acquire_lock(self, owner: Optional[str] = None) -> None:
        """
        Take the run lock or raise SyncAlreadyRunning.

        A stale lock is replaced and any run it left in `running` is closed
        as failed.
        """
        owner = owner or default_owner()
        now = utcnow()

        existing = self.db.get(SyncLock, LOCK_NAME)
        if existing is not None:
            if now - existing.acquired_at < self.stale_after:
                raise SyncAlreadyRunning(
                    f"A sync is already in progress (since {existing.acquired_at.isoformat()}Z)"
                )

            logger.warning(
                f"Taking over stale sync lock held by {existing.owner} since {existing.acquired_at.isoformat()}"
            )
            self.db.delete(existing)
            self._abandon_running_runs(now)
            self.db.flush()

        self.db.add(SyncLock(name=LOCK_NAME, owner=owner, acquired_at=now))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise SyncAlreadyRunning() from e

        self.owner = owner
        logger.debug(f"Sync lock acquired by {owner}")

    def release_lock(self) -> None:
        """Drop the lock if this tracker holds it."""
        if self.owner is None:
            return

        try:
            self.db.query(SyncLock).filter(
                SyncLock.name == LOCK_NAME,
                SyncLock.owner == self.owner
            ).delete(synchronize_session=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            self.owner = None

    def _abandon_running_runs(self, now: datetime) -> None:
        abandoned = self.db.query(SyncRun).filter(
            SyncRun.status == SyncRunStatus.RUNNING.value
        ).all()
        for run in abandoned:
            run.status = SyncRunStatus.FAILED.value
            run.finished_at = now
            run.errors = (run.errors or []) + [{"general": "Sync abandoned: worker stopped before finishing"}]
            logger.warning(f"Marked abandoned sync run {run.id} as failed")

    # ==================== RUNS ====================

    def begin(self, sync_type: SyncType, since: datetime) -> SyncRun:
        """Record a new run in `running` state."""
        if since.tzinfo is not None:
            since = as_utc(since).replace(tzinfo=None)

        run = SyncRun(
            sync_type=SyncType(sync_type).value,
            status=SyncRunStatus.RUNNING.value,
            started_at=utcnow(),
            since=since,
            orders_fetched=0,
            orders_processed=0,
            errors=[],
        )
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def complete(
        self,
        run: SyncRun,
        status: SyncRunStatus,
        orders_fetched: int = 0,
        orders_processed: int = 0,
        errors: Optional[List[Dict[str, Any]]] = None
    ) -> SyncRun:
        """
        Close a run. Finished runs are immutable.

        Raises:
            ValueError: the run already finished or status is `running`.
        """
        self.db.refresh(run)
        if run.is_finished:
            raise ValueError(f"Sync run {run.id} already finished with status {run.status}")

        status = SyncRunStatus(status)
        if status == SyncRunStatus.RUNNING:
            raise ValueError("A run cannot be completed with status 'running'")

        run.status = status.value
        run.finished_at = utcnow()
        run.orders_fetched = orders_fetched
        run.orders_processed = orders_processed
        run.errors = list(errors or [])

        self.db.commit()
        self.db.refresh(run)
        return run

    def latest(self) -> Optional[SyncRun]:
        """Newest run of any status."""
        return self.db.query(SyncRun).order_by(SyncRun.started_at.desc()).first()

    def last_completed_watermark(self) -> datetime:
        """started_at of the newest completed run (UTC-aware), or the sync epoch."""
        run = self.db.query(SyncRun).filter(
            SyncRun.status == SyncRunStatus.COMPLETED.value
        ).order_by(SyncRun.started_at.desc()).first()

        if run is None:
            return settings.sync_epoch_datetime
        return as_utc(run.started_at)

    def history(self, limit: int = 20) -> List[SyncRun]:
        return self.db.query(SyncRun).order_by(
            SyncRun.started_at.desc()
        ).limit(limit).all()
