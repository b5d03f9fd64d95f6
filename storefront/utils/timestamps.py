"""
Timestamp helpers.

All persisted timestamps are naive UTC so that values round-trip through
SQLite and PostgreSQL unchanged; the optimistic concurrency checks compare
them for exact equality.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def next_timestamp(previous: datetime | None) -> datetime:
    """Return a timestamp strictly later than `previous`."""
    now = utcnow()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now
