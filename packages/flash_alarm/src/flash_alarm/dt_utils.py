"""Wall-clock helpers shared by the recurrence sources and resolvers.

Instants travel through the engine as timezone-aware UTC datetimes. Anything
that depends on the weekday or time of day converts to the alarm's zone first.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo

END_OF_DAY = time(23, 59, 59)


def as_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to UTC."""
    if dt.tzinfo is None:
        msg = "datetime must be timezone-aware"
        raise ValueError(msg)
    return dt.astimezone(timezone.utc)


def as_local(dt: datetime, zone: tzinfo) -> datetime:
    return dt.astimezone(zone)


def to_naive_local(dt: datetime, zone: tzinfo) -> datetime:
    """Wall-clock reading of ``dt`` in ``zone``, without tzinfo."""
    return dt.astimezone(zone).replace(tzinfo=None)


def from_naive_local(dt: datetime, zone: tzinfo) -> datetime:
    """Interpret a naive wall-clock datetime in ``zone`` and return UTC."""
    return dt.replace(tzinfo=zone).astimezone(timezone.utc)


def local_date(dt: datetime, zone: tzinfo) -> date:
    return dt.astimezone(zone).date()


def local_weekday(dt: datetime, zone: tzinfo) -> int:
    """Weekday index in ``zone`` (Monday = 0)."""
    return dt.astimezone(zone).weekday()


def local_time(dt: datetime, zone: tzinfo) -> time:
    return dt.astimezone(zone).time().replace(tzinfo=None)


def utc_offset(dt: datetime, zone: tzinfo) -> timedelta | None:
    return dt.astimezone(zone).utcoffset()


def at_local_time(day: date, at: time, zone: tzinfo) -> datetime:
    """UTC instant of wall-clock ``at`` on ``day`` in ``zone``."""
    return from_naive_local(datetime.combine(day, at), zone)


def start_of_next_day(dt: datetime, zone: tzinfo) -> datetime:
    return at_local_time(local_date(dt, zone) + timedelta(days=1), time(0, 0), zone)


def end_of_day(dt: datetime, zone: tzinfo) -> datetime:
    """Last second of the local day containing ``dt``."""
    return at_local_time(local_date(dt, zone), END_OF_DAY, zone)


def add_local_days(dt: datetime, days: int, zone: tzinfo) -> datetime:
    """Add whole days keeping the wall-clock time of day across DST changes."""
    return from_naive_local(to_naive_local(dt, zone) + timedelta(days=days), zone)


def days_between(start: datetime, end: datetime, zone: tzinfo) -> int:
    """Number of local calendar days from ``start`` to ``end``."""
    return (local_date(end, zone) - local_date(start, zone)).days
