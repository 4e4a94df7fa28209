from .calculator import TriggerCalculator, compute_triggers, create_holiday_oracle
from .config import AlarmSettings
from .holidays import DateSetHolidayOracle, HolidayOracle, NoHolidays
from .resolvers import (
    HolidayResolver,
    RecurrenceShape,
    WorkingTimeResolver,
    is_working_time,
    may_occur_during_work,
)
from .schemas import (
    Alarm,
    Deferral,
    RecurrenceKind,
    RecurrenceRule,
    SubRepetition,
    TriggerSet,
    TriggerType,
    WeekdayPosition,
    WorkTimeConfig,
)
from .sources import Occurrence, OccurOption, RecurrenceSource, RRuleRecurrenceSource
from .timezones import TimeZoneTransitions

__all__ = [
    "Alarm",
    "AlarmSettings",
    "DateSetHolidayOracle",
    "Deferral",
    "HolidayOracle",
    "HolidayResolver",
    "NoHolidays",
    "Occurrence",
    "OccurOption",
    "RecurrenceKind",
    "RecurrenceRule",
    "RecurrenceShape",
    "RecurrenceSource",
    "RRuleRecurrenceSource",
    "SubRepetition",
    "TimeZoneTransitions",
    "TriggerCalculator",
    "TriggerSet",
    "TriggerType",
    "WeekdayPosition",
    "WorkTimeConfig",
    "WorkingTimeResolver",
    "compute_triggers",
    "create_holiday_oracle",
    "is_working_time",
    "may_occur_during_work",
]
