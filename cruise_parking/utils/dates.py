"""
Date Normalization Utilities

Every calendar-day key in the system goes through normalize_day() before
any comparison or arithmetic. Both the aggregate rebuild and the on-demand
booking scan use these helpers, so a booking can never land on different
days depending on which path counted it.

Rules:
- date objects are already calendar days
- date-only strings ("2025-03-10") are calendar days, no timezone involved
- timezone-aware datetimes are converted to UTC, then truncated
- naive datetimes are treated as UTC
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union

DateLike = Union[date, datetime, str, None]


def normalize_day(value: DateLike) -> Optional[date]:
    """
    Reduce a date-ish value to a UTC calendar day.

    Returns None for None/empty input.
    Raises ValueError for strings that are not ISO 8601.
    """
    if value is None:
        return None

    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None

        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Unrecognized date value: {value!r}") from e

        return normalize_day(parsed)

    raise TypeError(f"Cannot normalize {type(value).__name__} to a calendar day")


def daterange(start: date, end: date) -> Iterator[date]:
    """Yield every day from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
