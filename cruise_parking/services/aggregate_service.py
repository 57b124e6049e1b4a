"""
Aggregate Recomputer

Rebuilds the daily_occupancy table from the complete booking set.

The table is never patched by deltas: every rebuild sums the span of every
eligible booking from scratch and swaps the result in within one
transaction, so readers see either the old table or the new one.
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import AggregateRebuildFailed
from ..models.daily_occupancy import DailyOccupancy, AggregateState
from ..models.order import Booking
from ..utils.dates import utcnow
from ..utils.db_helpers import acquire_row_lock
from ..utils.logging_config import get_logger
from .span_expander import expand_span

logger = get_logger(__name__)

AGGREGATE_NAME = "daily_occupancy"


def occupancy_percentage(car_count: int, capacity: Optional[int] = None) -> int:
    """
    Percentage of lot capacity, rounded half up.

    Not capped: values above 100 mean the lot is overbooked.
    """
    capacity = capacity or settings.lot_capacity
    percentage = Decimal(car_count) * 100 / Decimal(capacity)
    return int(percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_daily_occupancy(bookings: Iterable) -> Dict[date, int]:
    """
    Sum span contributions of all bookings per day.

    Accepts anything with start_date, duration_nights and quantity
    attributes (ORM rows or column tuples).
    """
    counts: Dict[date, int] = defaultdict(int)
    for booking in bookings:
        for day, quantity in expand_span(booking.start_date, booking.duration_nights, booking.quantity):
            counts[day] += quantity
    return dict(counts)


@dataclass
class RecomputeResult:
    """Outcome of one aggregate rebuild"""
    day_count: int = 0
    booking_count: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    duration_ms: float = 0.0


class AggregateRecomputer:
    """
    Keeps daily_occupancy equal to the sum of known bookings.

    Invoked after every order create/update/delete and once at the end of
    every reconciliation run.
    """

    def __init__(self, db: Session, capacity: Optional[int] = None):
        self.db = db
        self.capacity = capacity or settings.lot_capacity

    def _lock_state(self) -> AggregateState:
        """Lock (or create) the bookkeeping row so rebuilds serialize on PostgreSQL."""
        state = acquire_row_lock(self.db, AggregateState, AggregateState.name == AGGREGATE_NAME)
        if state is None:
            state = AggregateState(name=AGGREGATE_NAME)
            self.db.add(state)
            self.db.flush()
        return state

    def _eligible_bookings(self) -> List[Tuple]:
        """Bookings that have both a start date and a positive duration."""
        return self.db.query(
            Booking.start_date,
            Booking.duration_nights,
            Booking.quantity
        ).filter(
            Booking.start_date.isnot(None),
            Booking.duration_nights.isnot(None),
            Booking.duration_nights > 0
        ).all()

    def _apply(self, counts: Dict[date, int], result: RecomputeResult) -> None:
        """Turn the current table into counts: insert, update or delete per day."""
        existing = {row.date: row for row in self.db.query(DailyOccupancy).all()}
        now = utcnow()

        for day, car_count in counts.items():
            percentage = occupancy_percentage(car_count, self.capacity)
            row = existing.pop(day, None)

            if row is None:
                self.db.add(DailyOccupancy(
                    date=day,
                    car_count=car_count,
                    occupancy_percentage=percentage,
                    computed_at=now
                ))
                result.inserted += 1
            elif row.car_count != car_count or row.occupancy_percentage != percentage:
                row.car_count = car_count
                row.occupancy_percentage = percentage
                row.computed_at = now
                result.updated += 1

        # Days no booking covers any more
        for row in existing.values():
            self.db.delete(row)
            result.deleted += 1

        self.db.flush()

    def recompute(self) -> RecomputeResult:
        """
        Rebuild the whole aggregate in a single transaction.

        Raises:
            AggregateRebuildFailed: storage error; the previous table is kept.
        """
        start_time = time.time()
        result = RecomputeResult()

        try:
            state = self._lock_state()

            # Orders written after this instant make the aggregate stale again
            snapshot_at = utcnow()
            bookings = self._eligible_bookings()
            counts = calculate_daily_occupancy(bookings)

            self._apply(counts, result)

            state.rebuilt_at = snapshot_at
            state.day_count = len(counts)
            state.booking_count = len(bookings)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Daily occupancy rebuild failed, previous aggregate kept: {e}")
            raise AggregateRebuildFailed(f"Daily occupancy rebuild failed: {e}") from e

        result.day_count = len(counts)
        result.booking_count = len(bookings)
        result.duration_ms = round((time.time() - start_time) * 1000, 2)

        logger.aggregate_rebuilt(result)
        return result
