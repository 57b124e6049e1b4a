"""
Occupancy Query Service

Two read paths over the same data:
- query_range: the materialized daily_occupancy table (fast, counts only)
- query_range_with_bookings: a scan of the bookings overlapping the range,
  with the orders covering each day attached

Both produce one entry per day of the range, zero-filled, in date order.
When the aggregate is behind the orders table (a sync or API write landed
after the last rebuild), query_range counts from raw bookings instead so a
request never returns numbers older than the stored orders.
"""

import logging
from calendar import monthrange
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..exceptions import InvalidRangeQuery
from ..models.daily_occupancy import DailyOccupancy, AggregateState
from ..models.order import Order, Booking
from ..schemas.occupancy import OccupancyDay, MonthlyStats
from ..schemas.order import OrderResponse
from ..utils.dates import daterange, normalize_day
from .aggregate_service import AGGREGATE_NAME, occupancy_percentage
from .order_service import to_order_response
from .span_expander import covers, expand_span

logger = logging.getLogger(__name__)


def parse_range(
    start_date: Optional[str],
    end_date: Optional[str],
    max_days: Optional[int] = None
) -> Tuple[date, date]:
    """
    Validate query bounds.

    Raises:
        InvalidRangeQuery: missing, malformed, reversed or too long.
    """
    max_days = max_days or settings.max_query_days

    if not start_date or not end_date:
        raise InvalidRangeQuery("start_date and end_date are required")

    try:
        start = normalize_day(start_date)
        end = normalize_day(end_date)
    except (ValueError, TypeError):
        raise InvalidRangeQuery("start_date and end_date must be YYYY-MM-DD")

    if start > end:
        raise InvalidRangeQuery(f"start_date {start} is after end_date {end}")

    span = (end - start).days + 1
    if span > max_days:
        raise InvalidRangeQuery(f"Range of {span} days exceeds the limit of {max_days}")

    return start, end


def parse_month(month: str) -> Tuple[int, int]:
    """'2025-06' -> (2025, 6)"""
    try:
        year_text, month_text = month.split("-")
        year, month_number = int(year_text), int(month_text)
    except (AttributeError, ValueError):
        raise InvalidRangeQuery("month must be YYYY-MM")

    if not 1 <= month_number <= 12:
        raise InvalidRangeQuery("month must be YYYY-MM")
    return year, month_number


class OccupancyQueryService:
    """
    Usage:
        service = OccupancyQueryService(db)
        days = service.query_range(date(2025, 6, 1), date(2025, 6, 30))
    """

    def __init__(self, db: Session, capacity: Optional[int] = None):
        self.db = db
        self.capacity = capacity or settings.lot_capacity

    def is_stale(self) -> bool:
        """True when some order was written after the last aggregate rebuild."""
        last_write = self.db.query(func.max(Order.synced_at)).scalar()
        if last_write is None:
            return False

        state = self.db.get(AggregateState, AGGREGATE_NAME)
        if state is None or state.rebuilt_at is None:
            return True
        return last_write > state.rebuilt_at

    def _overlapping_bookings(self, start: date, end: date) -> List[Booking]:
        return self.db.query(Booking).options(
            selectinload(Booking.order).selectinload(Order.bookings)
        ).filter(
            Booking.start_date.isnot(None),
            Booking.end_date.isnot(None),
            Booking.start_date <= end,
            Booking.end_date >= start
        ).all()

    def _counts_from_bookings(self, start: date, end: date) -> Dict[date, int]:
        counts: Dict[date, int] = {}
        for booking in self._overlapping_bookings(start, end):
            for day, quantity in expand_span(booking.start_date, booking.duration_nights, booking.quantity):
                if start <= day <= end:
                    counts[day] = counts.get(day, 0) + quantity
        return counts

    def query_range(self, start: date, end: date) -> List[OccupancyDay]:
        """Dense per-day counts for [start, end]."""
        if self.is_stale():
            logger.info(f"Daily occupancy is behind stored orders, counting {start}..{end} from bookings")
            counts = self._counts_from_bookings(start, end)
            percentages = {}
        else:
            rows = self.db.query(DailyOccupancy).filter(
                DailyOccupancy.date >= start,
                DailyOccupancy.date <= end
            ).all()
            counts = {row.date: row.car_count for row in rows}
            percentages = {row.date: row.occupancy_percentage for row in rows}

        return [
            OccupancyDay(
                day=day,
                car_count=counts.get(day, 0),
                occupancy_percentage=percentages.get(
                    day, occupancy_percentage(counts.get(day, 0), self.capacity)
                ),
            )
            for day in daterange(start, end)
        ]

    def query_range_with_bookings(self, start: date, end: date) -> List[OccupancyDay]:
        """Dense per-day counts plus the orders whose bookings cover each day."""
        bookings = self._overlapping_bookings(start, end)
        rendered: Dict[str, OrderResponse] = {}
        result = []

        for day in daterange(start, end):
            car_count = 0
            orders: List[OrderResponse] = []
            seen = set()

            for booking in bookings:
                if not covers(booking.start_date, booking.duration_nights, day):
                    continue
                car_count += booking.quantity

                # An order with two line items on the same day is listed once
                if booking.order_id in seen:
                    continue
                seen.add(booking.order_id)
                if booking.order_id not in rendered:
                    rendered[booking.order_id] = to_order_response(booking.order)
                orders.append(rendered[booking.order_id])

            result.append(OccupancyDay(
                day=day,
                car_count=car_count,
                occupancy_percentage=occupancy_percentage(car_count, self.capacity),
                orders=orders,
            ))

        return result

    def query_day(self, day: date) -> OccupancyDay:
        return self.query_range_with_bookings(day, day)[0]

    def monthly_stats(self, year: int, month: int) -> MonthlyStats:
        """
        Summary for one calendar month.

        Only days with at least one car count toward total_days and the
        average; high occupancy is strictly above the threshold.
        """
        first = date(year, month, 1)
        last = date(year, month, monthrange(year, month)[1])
        days = self.query_range(first, last)

        booked = [d for d in days if d.car_count > 0]
        stats = MonthlyStats(month=f"{year:04d}-{month:02d}")
        if not booked:
            return stats

        mean = Decimal(sum(d.occupancy_percentage for d in booked)) / len(booked)
        peak = max(booked, key=lambda d: d.car_count)

        stats.total_days = len(booked)
        stats.average_occupancy = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        stats.high_occupancy_days = sum(
            1 for d in booked if d.occupancy_percentage > settings.high_occupancy_threshold
        )
        stats.peak_day = peak.day
        stats.peak_car_count = peak.car_count
        return stats
