"""Cheap check of whether a fixed time-of-day alarm can ever fire during work."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from flash_alarm import dt_utils

if TYPE_CHECKING:
    from flash_alarm.schemas import Alarm, WorkTimeConfig

# Repetitions simulated when looking for one landing on a work day
MAX_DAILY_REPEAT_CHECKS: Final[int] = 6

_WEEK: Final[timedelta] = timedelta(days=7)


def may_occur_during_work(
    alarm: Alarm,
    config: WorkTimeConfig,
    at: datetime | None = None,
) -> bool:
    """
    Whether an alarm recurring at the same time of day could ever fire
    during working hours.

    This does not find an occurrence; it only rules out alarms which
    structurally never can, so that the full search can be skipped.

    A recurrence of whole weeks with no sub-repetition (or one of whole
    weeks) always falls on the start weekday, so the answer is whether that
    weekday is a work day. The resolver only asks after an occurrence outside
    working time, where this is always False.

    Args:
        alarm: The alarm to check.
        config: Working days and hours.
        at: An occurrence whose time of day is representative (defaults to
            the alarm's start).

    Returns:
        False if the alarm can never occur during working hours.
    """
    zone = alarm.tz
    at = at or alarm.start
    if not alarm.date_only and not config.is_work_hour(dt_utils.local_time(at, zone)):
        return False

    interval = alarm.recurrence.regular_interval(alarm.start_weekday)
    if not interval or interval % _WEEK:
        return True

    # Every recurrence lands on the same weekday
    day = alarm.start_weekday
    rep = alarm.sub_repetition
    if rep is None or (rep.is_daily and rep.interval_days % 7 == 0):
        return config.is_work_day(day)

    # Check the recurrence day and up to a few repetitions for a work day
    repeat_days = rep.interval_days
    max_repeat = min(rep.count, MAX_DAILY_REPEAT_CHECKS)
    checked = 0
    while not config.is_work_day(day):
        if checked >= max_repeat:
            return False
        checked += 1
        day = (day + repeat_days) % 7
    return True
