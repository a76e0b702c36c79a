"""UTC-everywhere time handling plus calendar-date helpers for due dates."""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Issue and due dates are compared against this."""
    return now_utc().date()


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def as_date(value: date | datetime) -> date:
    """Calendar date of a date or an aware datetime (taken in UTC)."""
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def days_between(start: date, end: date) -> int:
    """Signed whole days from start to end (negative when end is earlier)."""
    return (end - start).days


def window_end(start: date, days: int) -> date:
    """Last calendar day of a window of `days` days starting at `start` (inclusive)."""
    if days < 0:
        raise ValueError("Window length must not be negative")
    return start + timedelta(days=days)
