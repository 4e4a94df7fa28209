"""HolidayResolver - skips occurrences which fall on holidays."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from flash_alarm import dt_utils
from flash_alarm.sources import OccurOption

from .working_time import WorkingTimeResolver, is_working_time

if TYPE_CHECKING:
    from flash_alarm.holidays import HolidayOracle
    from flash_alarm.schemas import Alarm, WorkTimeConfig
    from flash_alarm.sources import Occurrence, RecurrenceSource
    from flash_alarm.timezones import TimeZoneTransitions

logger = logging.getLogger(__name__)

MAX_HOLIDAY_RETRIES: Final[int] = 20


class HolidayResolver:
    """
    Finds the next occurrence which is not on a holiday, and which is also in
    working time when the alarm is restricted to working time.

    Consecutive holidays are skipped by moving on to the day after each one,
    up to MAX_HOLIDAY_RETRIES times.

    Args:
        source: Recurrence expansion engine.
        transitions: UTC offset transitions, passed on to the working-time
            search.
    """

    def __init__(
        self,
        source: RecurrenceSource,
        transitions: TimeZoneTransitions | None = None,
    ):
        self.source = source
        self.working = WorkingTimeResolver(source, transitions)

    def next_non_holiday_working_occurrence(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        holidays: HolidayOracle,
        candidate: Occurrence,
    ) -> Occurrence | None:
        """
        First occurrence from ``candidate`` onwards satisfying the alarm's
        holiday and working-time flags.

        Returns None when none is found within the retry limit.
        """
        if alarm.work_time_only:
            return self._skip_holidays_in_work(alarm, config, holidays, candidate)
        return self._skip_holidays(alarm, config, holidays, candidate)

    def _is_holiday(self, alarm: Alarm, holidays: HolidayOracle, occurrence: Occurrence) -> bool:
        return holidays.is_holiday(dt_utils.local_date(occurrence.instant, alarm.tz))

    def _after_day(self, alarm: Alarm, occurrence: Occurrence) -> Occurrence | None:
        return self.source.next_occurrence(
            alarm,
            dt_utils.end_of_day(occurrence.instant, alarm.tz),
            OccurOption.RETURN_REPETITION,
        )

    def _skip_holidays_in_work(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        holidays: HolidayOracle,
        candidate: Occurrence,
    ) -> Occurrence | None:
        occurrence = candidate
        for _ in range(MAX_HOLIDAY_RETRIES):
            found = self.working.next_working_occurrence(alarm, config, occurrence)
            if found is None:
                return None
            if not self._is_holiday(alarm, holidays, found):
                return found

            # Working time on a holiday: move on to the next day
            occurrence = self._after_day(alarm, found)
            if occurrence is None:
                return None
            if is_working_time(alarm, config, holidays, occurrence.instant):
                return occurrence

        logger.debug(
            "Alarm %s: no non-holiday working time after %d attempts",
            alarm.alarm_id,
            MAX_HOLIDAY_RETRIES,
        )
        return None

    def _skip_holidays(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        holidays: HolidayOracle,
        candidate: Occurrence,
    ) -> Occurrence | None:
        occurrence = candidate
        for _ in range(MAX_HOLIDAY_RETRIES):
            occurrence = self._after_day(alarm, occurrence)
            if occurrence is None:
                return None
            if not self._is_holiday(alarm, holidays, occurrence):
                return occurrence

        logger.debug(
            "Alarm %s: no non-holiday occurrence after %d attempts",
            alarm.alarm_id,
            MAX_HOLIDAY_RETRIES,
        )
        return None
