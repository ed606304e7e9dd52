from __future__ import annotations

"""Time utilities: timezone-aware now and age checks."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return current UTC datetime (timezone-aware)."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_older_than(created_at: datetime, max_age: timedelta, now: datetime) -> bool:
    """Return True if created_at lies strictly more than max_age before now."""

    return (now - as_utc(created_at)) > max_age
