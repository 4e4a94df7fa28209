"""
Main trigger calculation entry point.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Type

from flash_core.logging import scoped_correlation_id

from . import dt_utils
from .holidays import DateSetHolidayOracle, HolidayOracle, NoHolidays
from .resolvers import HolidayResolver, WorkingTimeResolver, is_working_time
from .schemas import TriggerSet, TriggerType
from .sources import OccurOption, RRuleRecurrenceSource

if TYPE_CHECKING:
    from .schemas import Alarm, WorkTimeConfig
    from .sources import Occurrence, RecurrenceSource
    from .timezones import TimeZoneTransitions

logger = logging.getLogger(__name__)

_NO_LEAD = timedelta(0)

_HOLIDAY_ADAPTERS: Dict[Type[Any], Callable[[Any], HolidayOracle]] = {
    type(None): lambda _: NoHolidays(),
    frozenset: DateSetHolidayOracle,
    set: DateSetHolidayOracle,
    list: DateSetHolidayOracle,
    tuple: DateSetHolidayOracle,
}


def create_holiday_oracle(holidays: HolidayOracle | Iterable[date] | None) -> HolidayOracle:
    """
    Resolve the holiday argument of a computation into an oracle.

    Args:
        holidays: An oracle, a collection of dates, or None for no holidays.

    Raises:
        TypeError: If the holiday type is not supported.

    Examples:
        >>> create_holiday_oracle([date(2025, 12, 25)]).is_holiday(date(2025, 12, 25))
        True
    """
    if isinstance(holidays, HolidayOracle):
        return holidays
    adapter = _HOLIDAY_ADAPTERS.get(type(holidays))
    if not adapter:
        msg = f"Unsupported holidays: {type(holidays).__name__}"
        raise TypeError(msg)
    return adapter(holidays)


class TriggerCalculator:
    """
    Computes the trigger times of an alarm.

    A calculation is a pure function of the alarm, the working-time
    configuration, the holidays and the current time. Nothing is cached
    between calls apart from compiled recurrence rules, so callers recompute
    whenever any of those inputs changes.

    Examples:
        >>> calculator = TriggerCalculator()
        >>> alarm = Alarm(
        ...     alarm_id="standup",
        ...     start=datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc),
        ...     recurrence=RecurrenceRule(kind=RecurrenceKind.DAILY),
        ...     work_time_only=True,
        ... )
        >>> triggers = calculator.compute(alarm, WorkTimeConfig(), now=saturday)
        >>> triggers.main_work  # the following Monday at 09:00

    Args:
        source: Recurrence expansion engine. Defaults to RRuleRecurrenceSource.
        transitions: UTC offset transitions of the alarms' zone. Derived
            from the zone on demand when omitted.
    """

    def __init__(
        self,
        source: RecurrenceSource | None = None,
        transitions: TimeZoneTransitions | None = None,
    ) -> None:
        self.source = source or RRuleRecurrenceSource()
        self.transitions = transitions

    def compute(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        holidays: HolidayOracle | Iterable[date] | None = None,
        now: datetime | None = None,
    ) -> TriggerSet:
        """
        Compute all four trigger times of ``alarm``.

        Args:
            alarm: The alarm to compute.
            config: Working days and hours.
            holidays: Holiday oracle or dates; only used when the alarm
                excludes holidays.
            now: Reference instant (defaults to the current time).

        Returns:
            The triggers; a value is None when no qualifying occurrence exists
            within the search bounds.

        Raises:
            TypeError: If ``holidays`` is of an unsupported type.
        """
        oracle = create_holiday_oracle(holidays)
        now = dt_utils.as_utc(now) if now else datetime.now(timezone.utc)
        with scoped_correlation_id(alarm.alarm_id):
            return self._compute(alarm, config, oracle, now)

    def next_trigger(
        self,
        alarm: Alarm,
        trigger_type: TriggerType,
        config: WorkTimeConfig,
        holidays: HolidayOracle | Iterable[date] | None = None,
        now: datetime | None = None,
    ) -> datetime | None:
        """Compute the triggers and return the one of ``trigger_type``."""
        return self.compute(alarm, config, holidays, now).get(trigger_type, alarm)

    def advance(self, alarm: Alarm, now: datetime | None = None) -> Alarm:
        """
        Return a copy of ``alarm`` positioned at its next occurrence after
        ``now``.

        The sub-repetition index follows the occurrence. Repetitions have no
        reminder, so the reminder is deactivated on a repetition and
        reinstated on a base recurrence with an advance reminder. A pending
        reminder deferral no longer applies once the schedule moves on.
        """
        now = dt_utils.as_utc(now) if now else datetime.now(timezone.utc)
        occurrence = self.source.next_occurrence(
            alarm, now, OccurOption.RETURN_REPETITION
        )
        if occurrence is None:
            logger.debug(
                "Alarm %s has no occurrence after %s", alarm.alarm_id, now.isoformat()
            )
            return alarm

        updates: dict[str, Any] = {}
        if alarm.sub_repetition is not None:
            updates["sub_repetition"] = alarm.sub_repetition.model_copy(
                update={"next_index": occurrence.repeat_index}
            )
        if occurrence.is_repetition:
            updates["reminder_active"] = False
        elif alarm.reminder_lead_minutes > 0:
            updates["reminder_active"] = True
        if alarm.deferral is not None and alarm.deferral.is_reminder_deferral:
            updates["deferral"] = None
        return alarm.model_copy(update=updates)

    def _compute(
        self,
        alarm: Alarm,
        config: WorkTimeConfig,
        holidays: HolidayOracle,
        now: datetime,
    ) -> TriggerSet:
        if alarm.is_template:
            # Templates never trigger
            return TriggerSet()

        deferral = alarm.deferral
        if deferral is not None and not deferral.is_reminder_deferral:
            # A deferred time is honoured as given, outside working time or not
            return TriggerSet.single(dt_utils.as_utc(deferral.instant))

        main = self.source.next_occurrence(alarm, now, OccurOption.RETURN_REPETITION)
        if main is None:
            logger.debug(
                "Alarm %s has no occurrence after %s", alarm.alarm_id, now.isoformat()
            )
            return TriggerSet()

        lead = timedelta(minutes=alarm.reminder_lead_minutes)
        if deferral is not None:
            all_trigger = dt_utils.as_utc(deferral.instant)
        else:
            all_trigger = self._with_reminder(alarm, main, lead)

        if (
            not (alarm.work_time_only or alarm.holidays_excluded)
            or not alarm.recurs
            or is_working_time(alarm, config, holidays, main.instant)
        ):
            return TriggerSet(
                main=main.instant,
                all=all_trigger,
                main_work=main.instant,
                all_work=all_trigger,
            )

        logger.debug(
            "Next occurrence %s is outside working time", main.instant.isoformat()
        )
        if alarm.holidays_excluded:
            found = HolidayResolver(
                self.source, self.transitions
            ).next_non_holiday_working_occurrence(alarm, config, holidays, main)
        else:
            found = WorkingTimeResolver(
                self.source, self.transitions
            ).next_working_occurrence(alarm, config, main)

        if found is None:
            return TriggerSet(main=main.instant, all=all_trigger)
        # Work triggers only remind in advance
        return TriggerSet(
            main=main.instant,
            all=all_trigger,
            main_work=found.instant,
            all_work=self._with_reminder(alarm, found, max(lead, _NO_LEAD)),
        )

    @staticmethod
    def _with_reminder(alarm: Alarm, occurrence: Occurrence, lead: timedelta) -> datetime:
        if not alarm.reminder_active or occurrence.is_repetition or not lead:
            return occurrence.instant
        return occurrence.instant - lead


def compute_triggers(
    alarm: Alarm,
    config: WorkTimeConfig,
    holidays: HolidayOracle | Iterable[date] | None = None,
    tz_transitions: TimeZoneTransitions | None = None,
    now: datetime | None = None,
    source: RecurrenceSource | None = None,
) -> TriggerSet:
    """
    Compute the trigger times of one alarm.

    Examples:
        >>> triggers = compute_triggers(alarm, WorkTimeConfig(), now=now)
        >>> triggers.get(TriggerType.DISPLAY, alarm)
    """
    return TriggerCalculator(source, tz_transitions).compute(alarm, config, holidays, now)
