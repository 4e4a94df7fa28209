"""Holiday oracles consumed by the holiday-excluding resolver."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date


class HolidayOracle(ABC):
    """
    Answers whether a calendar date is a holiday.

    Implementations must be pure: the same date always gives the same answer
    for the lifetime of one trigger computation.
    """

    @abstractmethod
    def is_holiday(self, day: date) -> bool: ...

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__name__}({params})"


class NoHolidays(HolidayOracle):
    """Oracle for a region without holidays."""

    def is_holiday(self, day: date) -> bool:
        return False


class DateSetHolidayOracle(HolidayOracle):
    """
    Holidays given as an explicit collection of dates.

    Examples:
        >>> oracle = DateSetHolidayOracle([date(2025, 12, 25), date(2025, 12, 26)])
        >>> oracle.is_holiday(date(2025, 12, 25))
        True
    """

    def __init__(self, dates: Iterable[date] = ()):
        self.dates = frozenset(dates)

    def is_holiday(self, day: date) -> bool:
        return day in self.dates

    def __eq__(self, other: object) -> bool:
        if isinstance(other, self.__class__):
            return self.dates == other.dates
        return False

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.dates))
