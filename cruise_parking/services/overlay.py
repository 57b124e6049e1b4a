"""
Overlay merge for bookings kept outside the order feed (manual or
third-party reservations). Nothing here touches the database.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from ..config import settings
from ..schemas.occupancy import OccupancyDay, OverlayEntry, MergedOccupancyDay
from .aggregate_service import occupancy_percentage


def merge_overlay(
    days: List[OccupancyDay],
    overlay: List[OverlayEntry],
    capacity: Optional[int] = None
) -> List[MergedOccupancyDay]:
    """
    Add overlay cars on top of server counts.

    Entries dated outside `days` are ignored. Percentages are recomputed on
    the combined total.
    """
    capacity = capacity or settings.lot_capacity

    by_day: Dict[date, List[OverlayEntry]] = defaultdict(list)
    for entry in overlay:
        by_day[entry.day].append(entry)

    merged = []
    for day in days:
        entries = by_day.get(day.day, [])
        overlay_count = sum(entry.car_count for entry in entries)
        total = day.car_count + overlay_count

        item = MergedOccupancyDay(
            day=day.day,
            car_count=day.car_count,
            overlay_car_count=overlay_count,
            total_car_count=total,
            occupancy_percentage=occupancy_percentage(total, capacity),
            overlay_bookings=entries,
        )
        if day.orders is not None:
            item.orders = day.orders
        merged.append(item)

    return merged
