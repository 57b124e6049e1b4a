# Models package
from .order import Order, Booking
from .daily_occupancy import DailyOccupancy, AggregateState
from .sync_run import SyncRun, SyncLock, SyncType, SyncRunStatus

__all__ = [
    "Order", "Booking",
    "DailyOccupancy", "AggregateState",
    "SyncRun", "SyncLock", "SyncType", "SyncRunStatus",
]
