"""
Time helpers shared by the engine and the models.

All timestamps are naive UTC datetimes, matching how they are stored.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def week_start_of(value) -> date:
    """Return the Monday of the ISO week containing *value*."""
    if isinstance(value, datetime):
        value = value.date()
    return value - timedelta(days=value.weekday())


def week_bounds(week_start: date) -> tuple[datetime, datetime]:
    """Return the [start, end) datetimes of the week beginning on *week_start*."""
    start = datetime.combine(week_start, datetime.min.time())
    return start, start + timedelta(days=7)
