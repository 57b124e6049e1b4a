"""
Daily Occupancy Model

Materialized per-day vehicle counts.
Wholly derived from the booking set - never hand-edited.
"""

from sqlalchemy import Column, String, Date, DateTime, Integer
from ..database import Base
from ..utils.dates import utcnow


class DailyOccupancy(Base):
    """
    One row per calendar day that has at least one car in the lot.

    Days with no bookings have no row; readers fill them in as zero.
    """
    __tablename__ = "daily_occupancy"

    date = Column(Date, primary_key=True)
    car_count = Column(Integer, nullable=False, default=0)

    # round(car_count / capacity * 100), may exceed 100 when overbooked
    occupancy_percentage = Column(Integer, nullable=False, default=0)

    computed_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<DailyOccupancy {self.date} cars={self.car_count} ({self.occupancy_percentage}%)>"


class AggregateState(Base):
    """
    Bookkeeping for the daily_occupancy table.

    A single row per aggregate. Its rebuilt_at is compared with the latest
    order write to tell whether the materialized counts can be trusted.
    Also serves as the row locked while a rebuild is in progress.
    """
    __tablename__ = "aggregate_state"

    name = Column(String(50), primary_key=True, default="daily_occupancy")
    rebuilt_at = Column(DateTime, nullable=True)
    day_count = Column(Integer, default=0)
    booking_count = Column(Integer, default=0)

    def __repr__(self):
        return f"<AggregateState {self.name} rebuilt_at={self.rebuilt_at}>"
