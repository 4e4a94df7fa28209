"""RRuleRecurrenceSource - recurrence expansion backed by dateutil.rrule."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, ClassVar

from dateutil import rrule as du

from flash_alarm import dt_utils
from flash_alarm.schemas import RecurrenceKind, RecurrenceRule

from .base import RecurrenceSource

if TYPE_CHECKING:
    from flash_alarm.schemas import Alarm

logger = logging.getLogger(__name__)

_WEEKDAYS = (du.MO, du.TU, du.WE, du.TH, du.FR, du.SA, du.SU)


@lru_cache(maxsize=256)
def compile_rule(
    rule: RecurrenceRule,
    dtstart: datetime,
    until: datetime | None,
) -> du.rrule:
    """
    Build a dateutil rule from naive local ``dtstart``/``until``.

    Results are cached; rule objects also cache their own expansion.
    """
    freq = RRuleRecurrenceSource.FREQUENCIES[rule.kind]

    byweekday = [
        _WEEKDAYS[p.weekday](p.ordinal) if p.ordinal else _WEEKDAYS[p.weekday]
        for p in sorted(rule.by_day, key=lambda p: (p.weekday, p.ordinal))
    ] or None

    bymonth = rule.months or None
    bymonthday = rule.month_days or None
    if rule.kind is RecurrenceKind.ANNUAL_DATE:
        bymonth = bymonth or (dtstart.month,)
        bymonthday = bymonthday or (dtstart.day,)
    elif rule.kind is RecurrenceKind.ANNUAL_POS:
        bymonth = bymonth or (dtstart.month,)

    return du.rrule(
        freq,
        dtstart=dtstart,
        interval=rule.interval,
        byweekday=byweekday,
        bymonth=bymonth,
        bymonthday=bymonthday,
        count=rule.count,
        until=until,
        cache=True,
    )


class RRuleRecurrenceSource(RecurrenceSource):
    """
    Recurrence source expanding rules in the alarm's local wall-clock time.

    Daily and longer rules keep their time of day across DST changes.
    MINUTELY rules run on absolute time and are computed by interval
    arithmetic instead of rule expansion.

    Examples:
        >>> source = RRuleRecurrenceSource()
        >>> alarm = Alarm(
        ...     start=datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc),
        ...     recurrence=RecurrenceRule(kind=RecurrenceKind.DAILY),
        ... )
        >>> source.next_recurrence(alarm, datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc))
        datetime.datetime(2025, 1, 7, 9, 0, tzinfo=datetime.timezone.utc)
    """

    FREQUENCIES: ClassVar[dict[RecurrenceKind, int]] = {
        RecurrenceKind.DAILY: du.DAILY,
        RecurrenceKind.WEEKLY: du.WEEKLY,
        RecurrenceKind.MONTHLY_POS: du.MONTHLY,
        RecurrenceKind.MONTHLY_DAY: du.MONTHLY,
        RecurrenceKind.ANNUAL_DATE: du.YEARLY,
        RecurrenceKind.ANNUAL_POS: du.YEARLY,
    }

    def next_recurrence(self, alarm: Alarm, after: datetime) -> datetime | None:
        start = alarm.effective_start
        kind = alarm.recurrence.kind
        if kind is RecurrenceKind.NONE:
            return start if after < start else None
        if kind is RecurrenceKind.MINUTELY:
            return self._minutely_next(alarm, after)

        found = self._rule(alarm).after(
            dt_utils.to_naive_local(after, alarm.tz), inc=False
        )
        return dt_utils.from_naive_local(found, alarm.tz) if found else None

    def previous_recurrence(self, alarm: Alarm, before: datetime) -> datetime | None:
        start = alarm.effective_start
        kind = alarm.recurrence.kind
        if kind is RecurrenceKind.NONE:
            return start if start < before else None
        if kind is RecurrenceKind.MINUTELY:
            return self._minutely_previous(alarm, before)

        found = self._rule(alarm).before(
            dt_utils.to_naive_local(before, alarm.tz), inc=False
        )
        return dt_utils.from_naive_local(found, alarm.tz) if found else None

    def last_recurrence(self, alarm: Alarm) -> datetime | None:
        rule = alarm.recurrence
        if rule.kind is RecurrenceKind.NONE:
            return alarm.effective_start
        if rule.kind is RecurrenceKind.MINUTELY:
            return self._minutely_last(alarm)
        if rule.count is None and rule.until is None:
            return None
        try:
            last = self._rule(alarm)[-1]
        except IndexError:
            logger.warning("Recurrence of alarm %s has no occurrences", alarm.alarm_id)
            return None
        return dt_utils.from_naive_local(last, alarm.tz)

    def _rule(self, alarm: Alarm) -> du.rrule:
        zone = alarm.tz
        dtstart = dt_utils.to_naive_local(alarm.effective_start, zone).replace(
            microsecond=0
        )
        until = alarm.recurrence.until
        return compile_rule(
            alarm.recurrence,
            dtstart,
            dt_utils.to_naive_local(until, zone) if until else None,
        )

    # --- MINUTELY: absolute-time arithmetic ---

    @staticmethod
    def _step(alarm: Alarm) -> timedelta:
        return timedelta(minutes=alarm.recurrence.interval)

    def _minutely_last(self, alarm: Alarm) -> datetime | None:
        rule = alarm.recurrence
        start = alarm.effective_start
        step = self._step(alarm)
        last = None
        if rule.count is not None:
            last = start + step * (rule.count - 1)
        if rule.until is not None:
            bounded = start + step * ((rule.until - start) // step)
            last = bounded if last is None else min(last, bounded)
        return last

    def _minutely_next(self, alarm: Alarm, after: datetime) -> datetime | None:
        start = alarm.effective_start
        step = self._step(alarm)
        if after < start:
            candidate = start
        else:
            candidate = start + step * ((after - start) // step + 1)
        last = self._minutely_last(alarm)
        if last is not None and candidate > last:
            return None
        return candidate

    def _minutely_previous(self, alarm: Alarm, before: datetime) -> datetime | None:
        start = alarm.effective_start
        if before <= start:
            return None
        step = self._step(alarm)
        candidate = start + step * ((before - start - timedelta(microseconds=1)) // step)
        last = self._minutely_last(alarm)
        if last is not None:
            if last < start:
                return None
            candidate = min(candidate, last)
        return candidate
