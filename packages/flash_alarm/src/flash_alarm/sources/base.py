from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flash_alarm.schemas import Alarm, WeekdayPosition


class OccurOption(Enum):
    """How sub-repetitions are treated when looking for the next occurrence."""

    IGNORE_REPETITION = auto()
    RETURN_REPETITION = auto()
    ALLOW_FOR_REPETITION = auto()


@dataclass(frozen=True)
class Occurrence:
    """
    One firing instant of an alarm.

    Attributes:
        instant: UTC instant of the firing.
        is_repetition: True for a sub-repetition, False for a base recurrence.
        repeat_index: Sub-repetition number (0 for the base recurrence).
        date_only: True if the alarm is an all-day alarm.
    """

    instant: datetime
    is_repetition: bool = False
    repeat_index: int = 0
    date_only: bool = False


class RecurrenceSource(ABC):
    """
    Abstract base class for recurrence expansion.

    Subclasses supply the base recurrence primitives; this class folds
    sub-repetitions into them.
    """

    @abstractmethod
    def next_recurrence(self, alarm: Alarm, after: datetime) -> datetime | None:
        """First base recurrence strictly after ``after``."""

    @abstractmethod
    def previous_recurrence(self, alarm: Alarm, before: datetime) -> datetime | None:
        """Last base recurrence strictly before ``before``."""

    @abstractmethod
    def last_recurrence(self, alarm: Alarm) -> datetime | None:
        """Final recurrence of a bounded rule, or None if it never ends."""

    def regular_interval(self, alarm: Alarm) -> timedelta | None:
        return alarm.recurrence.regular_interval(alarm.start_weekday)

    def by_day_positions(self, alarm: Alarm) -> frozenset[WeekdayPosition]:
        return alarm.recurrence.day_positions(alarm.start_weekday)

    def next_occurrence(
        self,
        alarm: Alarm,
        after: datetime,
        option: OccurOption = OccurOption.IGNORE_REPETITION,
    ) -> Occurrence | None:
        """
        Next occurrence of the alarm after ``after``.

        With RETURN_REPETITION a sub-repetition is returned if it comes before
        the next base recurrence. With ALLOW_FOR_REPETITION the base
        recurrence whose repetitions extend past ``after`` is returned.
        """
        rep = alarm.sub_repetition
        if rep is None:
            option = OccurOption.IGNORE_REPETITION
        pre = after
        if option is not OccurOption.IGNORE_REPETITION:
            pre = after - rep.duration()

        base = self.next_recurrence(alarm, pre)
        if base is None:
            return None
        if option is OccurOption.IGNORE_REPETITION or base > after:
            return self._occurrence(alarm, base)

        # A recurrence before 'after' has a repetition after it
        zone = alarm.tz
        repeat_num = rep.next_repeat_count(base, after, zone)
        repeat_at = rep.offset(base, repeat_num, zone)
        if alarm.recurs:
            # Recurrence intervals may vary, so a later recurrence could also
            # have a repetition after 'after'
            later = self.previous_recurrence(alarm, repeat_at)
            if later is not None and later > base:
                if option is OccurOption.RETURN_REPETITION and later <= after:
                    repeat_num = rep.next_repeat_count(later, after, zone)
                    return self._occurrence(
                        alarm, rep.offset(later, repeat_num, zone), repeat_num
                    )
                return self._occurrence(alarm, later)

        if option is OccurOption.RETURN_REPETITION:
            return self._occurrence(alarm, repeat_at, repeat_num)
        return self._occurrence(alarm, base)

    def previous_occurrence(
        self,
        alarm: Alarm,
        before: datetime,
        include_repetitions: bool = False,
    ) -> Occurrence | None:
        """Last occurrence of the alarm strictly before ``before``."""
        if alarm.effective_start >= before:
            return None
        base = self.previous_recurrence(alarm, before)
        if base is None:
            return None

        rep = alarm.sub_repetition
        if include_repetitions and rep is not None:
            repeat_num = rep.previous_repeat_count(base, before, alarm.tz)
            if repeat_num > 0:
                repeat_num = min(repeat_num, rep.count)
                return self._occurrence(
                    alarm, rep.offset(base, repeat_num, alarm.tz), repeat_num
                )
        return self._occurrence(alarm, base)

    @staticmethod
    def _occurrence(alarm: Alarm, instant: datetime, repeat_num: int = 0) -> Occurrence:
        return Occurrence(
            instant=instant,
            is_repetition=repeat_num > 0,
            repeat_index=repeat_num,
            date_only=alarm.date_only,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
