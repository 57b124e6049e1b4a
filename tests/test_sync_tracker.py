"""
Tests for Sync Run Tracker
"""

import pytest
from datetime import datetime, timedelta, timezone

from cruise_parking.config import settings
from cruise_parking.exceptions import SyncAlreadyRunning
from cruise_parking.models import SyncLock
from cruise_parking.models.sync_run import SyncType, SyncRunStatus
from cruise_parking.services.sync_tracker import SyncRunTracker
from cruise_parking.utils.dates import utcnow


class TestSyncRuns:

    def test_begin_records_running_run(self, db):
        tracker = SyncRunTracker(db)
        since = datetime(2025, 1, 1, tzinfo=timezone.utc)

        run = tracker.begin(SyncType.FULL, since)

        assert run.status == "running"
        assert run.sync_type == "full"
        assert run.since == datetime(2025, 1, 1)
        assert run.finished_at is None

    def test_complete_closes_run(self, db):
        tracker = SyncRunTracker(db)
        run = tracker.begin(SyncType.INCREMENTAL, settings.sync_epoch_datetime)

        tracker.complete(run, SyncRunStatus.COMPLETED, orders_fetched=3, orders_processed=3)

        assert run.status == "completed"
        assert run.finished_at is not None
        assert run.orders_processed == 3
        assert run.errors == []

    def test_finished_run_is_immutable(self, db):
        tracker = SyncRunTracker(db)
        run = tracker.begin(SyncType.FULL, settings.sync_epoch_datetime)
        tracker.complete(run, SyncRunStatus.FAILED, errors=[{"general": "boom"}])

        with pytest.raises(ValueError):
            tracker.complete(run, SyncRunStatus.COMPLETED)

        assert run.status == "failed"

    def test_cannot_complete_as_running(self, db):
        tracker = SyncRunTracker(db)
        run = tracker.begin(SyncType.FULL, settings.sync_epoch_datetime)

        with pytest.raises(ValueError):
            tracker.complete(run, SyncRunStatus.RUNNING)

    def test_latest_returns_none_before_first_run(self, db):
        assert SyncRunTracker(db).latest() is None

    def test_watermark_defaults_to_epoch(self, db):
        assert SyncRunTracker(db).last_completed_watermark() == settings.sync_epoch_datetime

    def test_watermark_ignores_failed_runs(self, db):
        tracker = SyncRunTracker(db)
        completed = tracker.begin(SyncType.FULL, settings.sync_epoch_datetime)
        tracker.complete(completed, SyncRunStatus.COMPLETED)

        failed = tracker.begin(SyncType.INCREMENTAL, settings.sync_epoch_datetime)
        tracker.complete(failed, SyncRunStatus.FAILED, errors=[{"general": "feed down"}])

        watermark = tracker.last_completed_watermark()
        assert watermark == completed.started_at.replace(tzinfo=timezone.utc)
        assert tracker.latest().id == failed.id

    def test_history_newest_first(self, db):
        tracker = SyncRunTracker(db)
        ids = []
        for _ in range(3):
            run = tracker.begin(SyncType.INCREMENTAL, settings.sync_epoch_datetime)
            tracker.complete(run, SyncRunStatus.COMPLETED)
            ids.append(run.id)

        history = tracker.history(limit=2)
        assert [run.id for run in history] == ids[::-1][:2]


class TestRunLock:

    def test_acquire_and_release(self, db):
        tracker = SyncRunTracker(db)
        tracker.acquire_lock(owner="worker-a")

        assert db.get(SyncLock, "order_sync").owner == "worker-a"

        tracker.release_lock()
        assert db.query(SyncLock).count() == 0

    def test_second_acquire_refused(self, db):
        SyncRunTracker(db).acquire_lock(owner="worker-a")

        with pytest.raises(SyncAlreadyRunning) as exc_info:
            SyncRunTracker(db).acquire_lock(owner="worker-b")
        assert exc_info.value.status_code == 409

    def test_release_only_drops_own_lock(self, db):
        SyncRunTracker(db).acquire_lock(owner="worker-a")

        # Never acquired: nothing to release
        SyncRunTracker(db).release_lock()

        assert db.get(SyncLock, "order_sync") is not None

    def test_stale_lock_taken_over(self, db):
        db.add(SyncLock(name="order_sync", owner="crashed", acquired_at=utcnow() - timedelta(minutes=90)))
        db.commit()

        tracker = SyncRunTracker(db, stale_after_minutes=30)
        tracker.acquire_lock(owner="worker-b")

        assert db.get(SyncLock, "order_sync").owner == "worker-b"
