"""
Constraint resolvers.

Given an occurrence which does not satisfy an alarm's working-time or
holiday restrictions, find the next one which does. Every search is bounded
and reports None when its bound is exhausted.
"""

from .feasibility import MAX_DAILY_REPEAT_CHECKS, may_occur_during_work
from .holiday import MAX_HOLIDAY_RETRIES, HolidayResolver
from .working_time import (
    DAYS_IN_WEEK,
    MAX_MINUTELY_ITERATIONS,
    MAX_REPETITION_TIME_CYCLES,
    MAX_TRANSITION_SPAN,
    RecurrenceShape,
    WorkingTimeResolver,
    classify_shape,
    is_working_time,
)

__all__ = [
    "DAYS_IN_WEEK",
    "MAX_DAILY_REPEAT_CHECKS",
    "MAX_HOLIDAY_RETRIES",
    "MAX_MINUTELY_ITERATIONS",
    "MAX_REPETITION_TIME_CYCLES",
    "MAX_TRANSITION_SPAN",
    "HolidayResolver",
    "RecurrenceShape",
    "WorkingTimeResolver",
    "classify_shape",
    "is_working_time",
    "may_occur_during_work",
]
