"""
WorkingTimeResolver - finds the next occurrence falling in working time.

The search is a bounded heuristic, not an exhaustive one. Each branch gives
up once its iteration bound is reached and reports that nothing was found.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Final

from flash_alarm import dt_utils
from flash_alarm.schemas import RecurrenceKind
from flash_alarm.sources import Occurrence, OccurOption
from flash_alarm.timezones import TimeZoneTransitions

from .feasibility import may_occur_during_work

if TYPE_CHECKING:
    from flash_alarm.holidays import HolidayOracle
    from flash_alarm.schemas import Alarm, WeekdayPosition, WorkTimeConfig
    from flash_alarm.sources import RecurrenceSource

logger = logging.getLogger(__name__)

DAYS_IN_WEEK: Final[int] = 7
ALL_DAYS_MASK: Final[int] = (1 << DAYS_IN_WEEK) - 1
MAX_REPETITION_TIME_CYCLES: Final[int] = 10
MAX_MINUTELY_ITERATIONS: Final[int] = 7 * 24 * 60
MAX_TRANSITION_SPAN: Final[timedelta] = timedelta(days=365)

# Window of transitions derived from the zone when none are supplied
TRANSITION_LOOKBACK: Final[timedelta] = timedelta(days=366)
TRANSITION_LOOKAHEAD: Final[timedelta] = timedelta(days=2 * 366)

_ONE_DAY = timedelta(days=1)
_ONE_SECOND = timedelta(seconds=1)


class RecurrenceShape(Enum):
    """How an alarm's occurrences move across weekdays and times of day."""

    DATE_ONLY_SAME_WEEKDAY = auto()
    DATE_ONLY_FIXED_WEEKDAY = auto()
    DATE_ONLY_VARYING_WEEKDAY = auto()
    FIXED_TIME_OF_DAY = auto()
    VARYING_RECURRENCE_TIME = auto()
    VARYING_REPETITION_TIME = auto()


def _is_whole_weeks(interval: timedelta | None) -> bool:
    return bool(interval) and interval % (_ONE_DAY * DAYS_IN_WEEK) == timedelta(0)


def classify_shape(alarm: Alarm, source: RecurrenceSource) -> RecurrenceShape:
    """
    Classify the alarm once, up front.

    A MINUTELY recurrence varies its time of day even when its interval is a
    multiple of a day, because DST shifts its wall-clock time. A
    sub-repetition of whole days keeps its time of day.
    """
    rep = alarm.sub_repetition
    if alarm.date_only:
        if (
            _is_whole_weeks(source.regular_interval(alarm))
            or len(source.by_day_positions(alarm)) == 1
        ):
            return RecurrenceShape.DATE_ONLY_SAME_WEEKDAY
        if rep is None or rep.interval_days % DAYS_IN_WEEK == 0:
            return RecurrenceShape.DATE_ONLY_FIXED_WEEKDAY
        return RecurrenceShape.DATE_ONLY_VARYING_WEEKDAY

    if alarm.recurrence.kind is RecurrenceKind.MINUTELY:
        return RecurrenceShape.VARYING_RECURRENCE_TIME
    if rep is not None and not rep.is_daily:
        return RecurrenceShape.VARYING_REPETITION_TIME
    return RecurrenceShape.FIXED_TIME_OF_DAY


def is_working_time(
    alarm: Alarm,
    config: WorkTimeConfig,
    holidays: HolidayOracle | None,
    instant: datetime,
) -> bool:
    """
    Whether ``instant`` satisfies the alarm's working-time and holiday flags.

    Date-only alarms only need to fall on a work day; timed alarms must also
    fall inside the working-hours window.
    """
    local = dt_utils.as_local(instant, alarm.tz)
    if alarm.work_time_only and not config.is_work_day(local.weekday()):
        return False
    if alarm.holidays_excluded and holidays is not None and holidays.is_holiday(
        local.date()
    ):
        return False
    if not alarm.work_time_only:
        return True
    return alarm.date_only or config.is_work_hour(local.time())


class WorkingTimeResolver:
    """
    Finds the first occurrence (base recurrence or sub-repetition) after a
    candidate which falls on a work day and inside working hours.

    Examples:
        >>> resolver = WorkingTimeResolver(RRuleRecurrenceSource())
        >>> found = resolver.next_working_occurrence(alarm, config, candidate)
        >>> found.instant if found else None

    Args:
        source: Recurrence expansion engine.
        transitions: UTC offset transitions of the alarm's zone. Derived from
            the zone around the candidate when omitted.
    """

    def __init__(
        self,
        source: RecurrenceSource,
        transitions: TimeZoneTransitions | None = None,
    ):
        self.source = source
        self.transitions = transitions
        self._handlers: dict[
            RecurrenceShape,
            Callable[[Alarm, WorkTimeConfig, Occurrence, int], Occurrence | None],
        ] = {
            RecurrenceShape.DATE_ONLY_SAME_WEEKDAY: self._date_only_same_weekday,
            RecurrenceShape.DATE_ONLY_FIXED_WEEKDAY: self._date_only_fixed_weekday,
            RecurrenceShape.DATE_ONLY_VARYING_WEEKDAY: self._date_only_varying_weekday,
            RecurrenceShape.FIXED_TIME_OF_DAY: self._fixed_time_of_day,
            RecurrenceShape.VARYING_RECURRENCE_TIME: self._varying_recurrence_time,
            RecurrenceShape.VARYING_REPETITION_TIME: self._varying_repetition_time,
        }

    def next_working_occurrence(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        candidate: Occurrence,
    ) -> Occurrence | None:
        """
        Next occurrence after ``candidate`` during working time.

        Args:
            alarm: The work-time-only alarm.
            config: Working days and hours.
            candidate: The alarm's next occurrence, which is known not to be
                in working time.

        Returns:
            The occurrence found, or None if the search bounds were exhausted.
        """
        logger.debug("Searching working time after %s", candidate.instant.isoformat())
        if not config.has_work_days:
            return None
        if not alarm.recurs:
            return None

        positions = self.source.by_day_positions(alarm)
        if (
            positions
            and alarm.sub_repetition is None
            and not any(config.is_work_day(p.weekday) for p in positions)
        ):
            # Never occurs on a working day
            return None

        shape = classify_shape(alarm, self.source)
        mask = self._possible_days(alarm, positions)
        found = self._handlers[shape](alarm, config, candidate, mask)
        if found is None:
            logger.debug("No working time occurrence found (%s)", shape.name)
        return found

    # --- Helpers ---

    def _possible_days(
        self, alarm: Alarm, positions: frozenset[WeekdayPosition]
    ) -> int:
        """Bitmask (Monday = bit 0) of the weekdays the recurrence can fall on."""
        days = {p.weekday for p in positions}
        if _is_whole_weeks(self.source.regular_interval(alarm)):
            if len(days) == 1:
                return 1 << days.pop()
            return 1 << alarm.start_weekday
        if days:
            mask = 0
            for day in days:
                mask |= 1 << day
            return mask
        return ALL_DAYS_MASK

    def _transition_table(self, alarm: Alarm, around: datetime) -> TimeZoneTransitions:
        if self.transitions is None:
            self.transitions = TimeZoneTransitions.from_zone(
                alarm.tz, around - TRANSITION_LOOKBACK, around + TRANSITION_LOOKAHEAD
            )
        return self.transitions

    def _previous_base(self, alarm: Alarm, before: datetime) -> Occurrence | None:
        prev = self.source.previous_occurrence(alarm, before)
        if prev is None:
            logger.warning(
                "Alarm %s: no recurrence before %s", alarm.alarm_id, before.isoformat()
            )
        return prev

    def _next_work_repetition(
        self, alarm: Alarm, config: WorkTimeConfig, pre: datetime
    ) -> int:
        """
        Number of repetition steps from ``pre`` to the first one at or after
        the start of the next working period.
        """
        rep = alarm.sub_repetition
        zone = alarm.tz
        local_pre = dt_utils.as_local(pre, zone)
        if local_pre.time() < config.start_time:
            next_work = dt_utils.at_local_time(local_pre.date(), config.start_time, zone)
        else:
            pre_day = local_pre.weekday()
            for n in range(1, DAYS_IN_WEEK):
                if config.is_work_day((pre_day + n) % DAYS_IN_WEEK):
                    next_work = dt_utils.at_local_time(
                        local_pre.date() + timedelta(days=n), config.start_time, zone
                    )
                    break
            else:
                return rep.count + 1
        return (next_work - pre - _ONE_SECOND) // rep.interval + 1

    def _in_work(self, alarm: Alarm, config: WorkTimeConfig, instant: datetime) -> bool:
        local = dt_utils.as_local(instant, alarm.tz)
        return config.is_work_hour(local.time()) and config.is_work_day(local.weekday())

    # --- Date-only alarms ---

    def _date_only_same_weekday(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        rep = alarm.sub_repetition
        if rep is None or rep.interval_days % DAYS_IN_WEEK == 0:
            # Any repetitions land on the same weekday as well
            return None

        # Check one cycle of repetitions for one landing on a work day
        zone = alarm.tz
        prev = self._previous_base(
            alarm, dt_utils.start_of_next_day(candidate.instant, zone)
        )
        if prev is None:
            return None
        base = prev.instant
        day = dt_utils.local_weekday(base, zone)
        next_repeat = candidate.repeat_index
        repeat_num = next_repeat
        for _ in range(rep.count + 1):
            repeat_num = (repeat_num + 1) % (rep.count + 1)
            if repeat_num == next_repeat:
                break
            if repeat_num == 0:
                nxt = self.source.next_occurrence(alarm, base)
                if nxt is None:
                    return None
                base = nxt.instant
                if config.is_work_day(dt_utils.local_weekday(base, zone)):
                    return nxt
            else:
                inc = rep.interval_days * repeat_num
                if config.is_work_day((day + inc) % DAYS_IN_WEEK):
                    return Occurrence(
                        instant=dt_utils.add_local_days(base, inc, zone),
                        is_repetition=True,
                        repeat_index=repeat_num,
                        date_only=True,
                    )
        return None

    def _date_only_fixed_weekday(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        zone = alarm.tz
        instant = candidate.instant
        days = 0
        while True:
            nxt = self.source.next_occurrence(alarm, dt_utils.end_of_day(instant, zone))
            if nxt is None:
                return None
            instant = nxt.instant
            day = dt_utils.local_weekday(instant, zone)
            if config.is_work_day(day):
                return nxt
            if days & mask == mask:
                # Every possible weekday has been seen
                return None
            days |= 1 << day

    def _date_only_varying_weekday(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        rep = alarm.sub_repetition
        zone = alarm.tz
        days = 1 << dt_utils.local_weekday(candidate.instant, zone)

        prev = self._previous_base(
            alarm, dt_utils.start_of_next_day(candidate.instant, zone)
        )
        if prev is None:
            return None
        base = prev.instant
        day = dt_utils.local_weekday(base, zone)
        repeat_num = candidate.repeat_index
        while True:
            repeat_num += 1
            while repeat_num <= rep.count:
                inc = rep.interval_days * repeat_num
                if config.is_work_day((day + inc) % DAYS_IN_WEEK):
                    return Occurrence(
                        instant=dt_utils.add_local_days(base, inc, zone),
                        is_repetition=True,
                        repeat_index=repeat_num,
                        date_only=True,
                    )
                if days & mask == mask:
                    return None
                days |= 1 << day
                repeat_num += 1

            repeat_num = 0
            nxt = self.source.next_occurrence(alarm, base)
            if nxt is None:
                return None
            base = nxt.instant
            day = dt_utils.local_weekday(base, zone)
            if config.is_work_day(day):
                return nxt
            if days & mask == mask:
                return None
            days |= 1 << day

    # --- Date-time alarms ---

    def _fixed_time_of_day(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        if not may_occur_during_work(alarm, config, candidate.instant):
            return None

        # The time of day is right, so find the next work day it occurs on
        zone = alarm.tz
        instant = candidate.instant
        days = 0
        while True:
            nxt = self.source.next_occurrence(
                alarm, instant, OccurOption.RETURN_REPETITION
            )
            if nxt is None:
                return None
            instant = nxt.instant
            day = dt_utils.local_weekday(instant, zone)
            if config.is_work_day(day):
                return nxt
            if not nxt.is_repetition:
                if days & mask == mask:
                    return None
                days |= 1 << day

    def _varying_recurrence_time(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        """
        MINUTELY recurrence: step by the interval directly instead of
        expanding the rule. After a full cycle back to the starting weekday,
        time and UTC offset, resume from the next DST transition, for up to a
        year of transitions.
        """
        zone = alarm.tz
        rep = alarm.sub_repetition
        step = self.source.regular_interval(alarm)
        last = self.source.last_recurrence(alarm)
        instant = candidate.instant
        repeat_num = 0
        subdaily = True
        if rep is not None:
            # Position on the repetition of the previous base recurrence
            subdaily = rep.interval < _ONE_DAY
            prev = self._previous_base(alarm, instant + _ONE_SECOND)
            if prev is None:
                return None
            recur = prev.instant
            repeat_num = (instant - recur) // rep.interval
            instant = recur + rep.interval * repeat_num
        else:
            recur = instant

        first_time = dt_utils.local_time(recur, zone)
        first_offset = dt_utils.utc_offset(recur, zone)
        first_day = dt_utils.local_weekday(recur, zone)
        final_date = None
        transition_index = -1
        for _ in range(MAX_MINUTELY_ITERATIONS):
            if rep is not None:
                # Check the sub-repetitions of this recurrence
                while True:
                    inc = self._next_work_repetition(alarm, config, instant) if subdaily else 1
                    repeat_num += inc
                    if repeat_num > rep.count:
                        break
                    instant += rep.interval * inc
                    if self._in_work(alarm, config, instant):
                        return Occurrence(
                            instant=instant, is_repetition=True, repeat_index=repeat_num
                        )
                repeat_num = 0

            recur = recur + step
            if last is not None and recur > last:
                return None
            if self._in_work(alarm, config, recur):
                return Occurrence(instant=recur)

            if (
                dt_utils.local_time(recur, zone) == first_time
                and dt_utils.local_weekday(recur, zone) == first_day
                and dt_utils.utc_offset(recur, zone) == first_offset
            ):
                # Wrapped round to the starting day and time. Try the other
                # UTC offsets in force during the next year.
                if final_date is None:
                    final_date = dt_utils.local_date(recur, zone)
                transitions = self._transition_table(alarm, recur)
                index = transitions.transition_index(recur)
                if index is None:
                    index = -1
                transition_index = max(transition_index, index) + 1
                if transition_index >= len(transitions):
                    return None
                prev = self.source.previous_occurrence(
                    alarm, transitions[transition_index]
                )
                if prev is None:
                    return None
                recur = prev.instant
                if (
                    dt_utils.local_date(recur, zone) - final_date
                ).days > MAX_TRANSITION_SPAN.days:
                    return None
                first_time = dt_utils.local_time(recur, zone)
                first_offset = dt_utils.utc_offset(recur, zone)
                first_day = dt_utils.local_weekday(recur, zone)
            instant = recur

        # Too many iterations
        return None

    def _varying_repetition_time(
        self, alarm: Alarm, config: WorkTimeConfig, candidate: Occurrence, mask: int
    ) -> Occurrence | None:
        """
        Sub-repetition at varying times of day inside a recurrence at a fixed
        time of day. Recurrences starting on each weekday may need checking,
        and then the period after each DST transition.
        """
        zone = alarm.tz
        rep = alarm.sub_repetition
        subdaily = rep.interval < _ONE_DAY

        prev = self._previous_base(alarm, candidate.instant + _ONE_SECOND)
        if prev is None:
            return None
        recur = prev.instant
        instant = candidate.instant
        recur_during_work = config.is_work_hour(dt_utils.local_time(recur, zone))

        days = 0
        check_time_change_only = False
        transition_index = -1
        for _ in range(MAX_REPETITION_TIME_CYCLES):
            repeat_num = (instant - recur) // rep.interval
            instant = recur + rep.interval * repeat_num

            # The next recurrence cuts short any repetitions still pending
            nxt = self.source.next_occurrence(alarm, recur)
            next_recur = nxt.instant if nxt else None

            repeats_to_check = rep.count
            repeats_during_work = 0  # 0 = unknown, 1 = some do, -1 = never
            while True:
                if repeats_during_work >= 0:
                    while True:
                        inc = self._next_work_repetition(alarm, config, instant) if subdaily else 1
                        repeat_num += inc
                        past_end = repeat_num > rep.count
                        if past_end:
                            inc -= repeat_num - rep.count
                        repeats_to_check -= inc
                        instant += rep.interval * inc
                        if next_recur is not None and instant >= next_recur:
                            # Past the next recurrence: restart from there
                            repeats_to_check = rep.count
                            break
                        if past_end:
                            break
                        local = dt_utils.as_local(instant, zone)
                        if config.is_work_hour(local.time()):
                            if config.is_work_day(local.weekday()):
                                return Occurrence(
                                    instant=instant,
                                    is_repetition=True,
                                    repeat_index=repeat_num,
                                )
                            repeats_during_work = 1
                        elif not repeats_during_work and repeats_to_check <= 0:
                            repeats_during_work = -1
                            break
                repeat_num = 0
                if repeats_during_work < 0 and not recur_during_work:
                    # Never occurs during working hours
                    break

                if next_recur is None:
                    return None
                if check_time_change_only or days & mask == mask:
                    break
                recur = next_recur
                nxt = self.source.next_occurrence(alarm, recur)
                next_recur = nxt.instant if nxt else None
                day = dt_utils.local_weekday(recur, zone)
                if recur_during_work and config.is_work_day(day):
                    return Occurrence(instant=recur)
                days |= 1 << day
                instant = recur

            # Resume from the last recurrence before the next DST transition
            check_time_change_only = True
            transitions = self._transition_table(alarm, recur)
            index = transitions.transition_index(recur)
            if index is None:
                index = -1
            transition_index = max(transition_index, index) + 1
            if transition_index >= len(transitions):
                return None
            instant = transitions[transition_index]
            prev = self.source.previous_occurrence(alarm, instant)
            if prev is None:
                return None
            recur = prev.instant

        # Not found; give up
        return None
