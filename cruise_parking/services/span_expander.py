"""
Span Expander

Maps a booking (start day, nights, quantity) to the calendar days it keeps
a car in the lot. The lot is occupied on the embarkation day and on the
return day, so a booking of N nights covers N + 1 days.
"""

import re
from datetime import date, timedelta
from typing import List, Optional, Tuple

from ..utils.dates import DateLike, normalize_day

# "Cruise Parking - 7-Night Caribbean" -> 7
DURATION_PATTERN = re.compile(r"(\d+)-Night")


def parse_duration(label: Optional[str]) -> Optional[int]:
    """Nights encoded in a line item label, or None when there is no match."""
    if not label:
        return None
    match = DURATION_PATTERN.search(label)
    if not match:
        return None
    return int(match.group(1))


def span_end(start: DateLike, nights: Optional[int]) -> Optional[date]:
    """Last occupied day (inclusive) or None when the booking has no span."""
    start_day = normalize_day(start)
    if start_day is None or not nights or nights <= 0:
        return None
    return start_day + timedelta(days=nights)


def expand_span(start: DateLike, nights: Optional[int], quantity: int) -> List[Tuple[date, int]]:
    """
    Per-day contributions of one booking.

    start=2025-03-10, nights=5, quantity=2 ->
        [(2025-03-10, 2), (2025-03-11, 2), ..., (2025-03-15, 2)]

    Missing start, missing or non-positive nights, or non-positive quantity
    contribute nothing.
    """
    start_day = normalize_day(start)
    last_day = span_end(start_day, nights)
    if last_day is None or not quantity or quantity <= 0:
        return []

    return [
        (start_day + timedelta(days=offset), quantity)
        for offset in range(nights + 1)
    ]


def covers(start: DateLike, nights: Optional[int], day: DateLike) -> bool:
    """True when day falls inside [start, start + nights]."""
    start_day = normalize_day(start)
    last_day = span_end(start_day, nights)
    target = normalize_day(day)
    if last_day is None or target is None:
        return False
    return start_day <= target <= last_day
