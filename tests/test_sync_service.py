"""
Tests for the Order Reconciler

Tests cover:
- Partial failure: 10 orders, 1 malformed -> 9 processed, 1 error, failed
- Idempotence: same feed twice leaves identical orders and aggregate
- Feed failure: run failed, nothing stored, watermark unchanged
- Watermark selection for full and incremental runs
- Run lock: a second concurrent run is refused
- Aggregate rebuild failure propagates after the run is closed
- Cancellation mid-run: run failed, committed orders reflected in the aggregate
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

from conftest import FakeFeed, woo_order, line_item
from cruise_parking.config import settings
from cruise_parking.exceptions import AggregateRebuildFailed, SyncAlreadyRunning
from cruise_parking.models import Order, Booking, DailyOccupancy, SyncRun, SyncLock
from cruise_parking.models.sync_run import SyncType, SyncRunStatus
from cruise_parking.services.aggregate_service import AggregateRecomputer, calculate_daily_occupancy
from cruise_parking.services.sync_service import OrderReconciler
from cruise_parking.services.sync_tracker import SyncRunTracker
from cruise_parking.utils.dates import utcnow


def reconcile(db, feed, sync_type=SyncType.FULL, **kwargs):
    return asyncio.run(OrderReconciler(db, feed, **kwargs).reconcile(sync_type))


def snapshot(db):
    orders = {
        o.external_id: (o.status, o.billing_last_name, tuple(
            (b.external_id, b.quantity, b.start_date, b.duration_nights) for b in o.bookings
        ))
        for o in db.query(Order).all()
    }
    days = {row.date: row.car_count for row in db.query(DailyOccupancy).all()}
    return orders, days


class TestPartialFailure:

    def test_one_malformed_order_out_of_ten(self, db):
        orders = [
            woo_order(i, [line_item(i * 100, nights=3, quantity=1, start="2025-06-01")])
            for i in range(1, 10)
        ]
        # Malformed: date meta is not a date
        orders.insert(4, woo_order(500, [line_item(50000, start="sometime in June")]))

        outcome = reconcile(db, FakeFeed(orders))

        assert outcome.orders_fetched == 10
        assert outcome.orders_processed == 9
        assert outcome.error_count == 1
        assert outcome.errors[0]["order_id"] == 500
        assert outcome.status == SyncRunStatus.FAILED

        run = db.get(SyncRun, outcome.run_id)
        assert run.status == "failed"
        assert run.orders_processed == 9
        assert len(run.errors) == 1

        # Siblings were stored and counted
        assert db.query(Order).count() == 9
        assert db.get(DailyOccupancy, date(2025, 6, 1)).car_count == 9

    def test_schema_violation_recorded_per_order(self, db):
        bad = woo_order(2)
        bad["line_items"][0]["quantity"] = 0

        outcome = reconcile(db, FakeFeed([woo_order(1), bad, {"unexpected": True}]))

        assert outcome.orders_processed == 1
        assert [e["order_id"] for e in outcome.errors] == [2, None]
        assert "quantity" in outcome.errors[0]["error"]


class TestIdempotence:

    def test_same_feed_twice_gives_same_state(self, db):
        orders = [
            woo_order(1, [line_item(11, nights=4, quantity=3, start="2025-06-01")]),
            woo_order(2, [line_item(21, nights=2, quantity=2, start="2025-06-03"),
                          line_item(22, nights=1, quantity=1, start="2025-06-20")]),
        ]
        feed = FakeFeed(orders)

        first = reconcile(db, feed)
        state_after_first = snapshot(db)
        second = reconcile(db, feed)

        assert first.status == SyncRunStatus.COMPLETED
        assert second.status == SyncRunStatus.COMPLETED
        assert snapshot(db) == state_after_first
        assert db.query(Booking).count() == 3

    def test_changed_order_replaces_bookings(self, db):
        reconcile(db, FakeFeed([woo_order(1, [line_item(11, nights=2, quantity=1, start="2025-06-01"),
                                              line_item(12, nights=2, quantity=1, start="2025-06-01")])]))

        reconcile(db, FakeFeed([woo_order(1, [line_item(13, nights=1, quantity=4, start="2025-06-10")])]))

        bookings = db.query(Booking).all()
        assert [(b.external_id, b.quantity) for b in bookings] == [(13, 4)]
        assert {row.date for row in db.query(DailyOccupancy).all()} == {date(2025, 6, 10), date(2025, 6, 11)}


class TestFeedFailure:

    def test_feed_failure_fails_run_without_writes(self, db):
        feed = FakeFeed([woo_order(1)])
        feed.fail("Order feed returned 503 on page 1: WooCommerce service unavailable")

        outcome = reconcile(db, feed)

        assert outcome.status == SyncRunStatus.FAILED
        assert outcome.general_error.startswith("Order feed returned 503")
        assert outcome.errors == [{"general": outcome.general_error}]
        assert db.query(Order).count() == 0

    def test_feed_failure_does_not_move_watermark(self, db):
        reconcile(db, FakeFeed([woo_order(1)]), SyncType.FULL)
        tracker = SyncRunTracker(db)
        watermark = tracker.last_completed_watermark()

        feed = FakeFeed()
        feed.fail()
        reconcile(db, feed, SyncType.INCREMENTAL)

        assert tracker.last_completed_watermark() == watermark

    def test_lock_released_after_failure(self, db):
        feed = FakeFeed()
        feed.fail()
        reconcile(db, feed)

        assert db.query(SyncLock).count() == 0


class TestWatermark:

    def test_full_sync_starts_at_epoch(self, db):
        feed = FakeFeed()
        reconcile(db, feed, SyncType.FULL)
        assert feed.calls == [settings.sync_epoch_datetime]

    def test_first_incremental_sync_starts_at_epoch(self, db):
        feed = FakeFeed()
        reconcile(db, feed, SyncType.INCREMENTAL)
        assert feed.calls == [settings.sync_epoch_datetime]

    def test_incremental_uses_last_completed_run_start(self, db):
        first = reconcile(db, FakeFeed(), SyncType.FULL)
        started_at = db.get(SyncRun, first.run_id).started_at

        feed = FakeFeed()
        reconcile(db, feed, SyncType.INCREMENTAL)

        assert feed.calls == [started_at.replace(tzinfo=timezone.utc)]

    def test_failed_run_is_not_a_watermark(self, db):
        reconcile(db, FakeFeed(), SyncType.FULL)
        completed_start = SyncRunTracker(db).last_completed_watermark()

        reconcile(db, FakeFeed([{"id": "not-an-order"}]), SyncType.INCREMENTAL)

        feed = FakeFeed()
        reconcile(db, feed, SyncType.INCREMENTAL)
        assert feed.calls == [completed_start]


class TestRunLock:

    def test_concurrent_run_refused(self, db):
        SyncRunTracker(db).acquire_lock(owner="other-worker")
        feed = FakeFeed([woo_order(1)])

        with pytest.raises(SyncAlreadyRunning):
            reconcile(db, feed)

        assert feed.calls == []
        assert db.query(SyncRun).count() == 0

    def test_stale_lock_taken_over(self, db):
        db.add(SyncLock(name="order_sync", owner="crashed", acquired_at=utcnow() - timedelta(hours=3)))
        db.add(SyncRun(
            sync_type="full",
            status="running",
            started_at=utcnow() - timedelta(hours=3),
            since=datetime(2025, 1, 1),
        ))
        db.commit()

        outcome = reconcile(db, FakeFeed([woo_order(1)]))

        assert outcome.status == SyncRunStatus.COMPLETED
        statuses = sorted(run.status for run in db.query(SyncRun).all())
        assert statuses == ["completed", "failed"]


class TestAggregateFailure:

    def test_rebuild_failure_marks_run_failed_and_raises(self, db):
        recomputer = MagicMock(spec=AggregateRecomputer)
        recomputer.recompute.side_effect = AggregateRebuildFailed("Daily occupancy rebuild failed: locked")

        with pytest.raises(AggregateRebuildFailed):
            reconcile(db, FakeFeed([woo_order(1)]), recomputer=recomputer)

        run = db.query(SyncRun).one()
        assert run.status == "failed"
        assert run.orders_processed == 1
        assert run.errors == [{"general": "Daily occupancy rebuild failed: locked"}]
        assert db.query(SyncLock).count() == 0

    def test_rebuild_runs_once_per_sync(self, db):
        recomputer = MagicMock(spec=AggregateRecomputer)

        reconcile(db, FakeFeed([woo_order(1), woo_order(2), woo_order(3)]), recomputer=recomputer)

        assert recomputer.recompute.call_count == 1

    def test_rebuild_skipped_when_feed_fails(self, db):
        recomputer = MagicMock(spec=AggregateRecomputer)
        feed = FakeFeed()
        feed.fail()

        reconcile(db, feed, recomputer=recomputer)

        recomputer.recompute.assert_not_called()


class TestCancellation:

    def test_cancel_mid_run_keeps_committed_orders_consistent(self, db):
        orders = [
            woo_order(i, [line_item(i * 100, nights=3, quantity=i, start="2025-06-01")])
            for i in range(1, 9)
        ]

        async def run_and_cancel():
            task = asyncio.create_task(OrderReconciler(db, FakeFeed(orders)).reconcile(SyncType.FULL))
            for _ in range(3):
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run_and_cancel())

        run = db.query(SyncRun).one()
        assert run.status == "failed"
        assert {"general": "Sync cancelled before all orders were processed"} in run.errors
        assert db.query(SyncLock).count() == 0

        stored = db.query(Order).count()
        assert 0 < stored < len(orders)
        assert run.orders_processed == stored

        days = {row.date: row.car_count for row in db.query(DailyOccupancy).all()}
        assert days == calculate_daily_occupancy(db.query(Booking).all())
