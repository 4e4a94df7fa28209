"""
Recurrence sources.

A source expands an alarm's recurrence rule into concrete occurrences. The
resolvers only talk to the abstract RecurrenceSource, so alternative
expansion engines can be plugged in.
"""

from .base import Occurrence, OccurOption, RecurrenceSource
from .rrule import RRuleRecurrenceSource

__all__ = [
    "Occurrence",
    "OccurOption",
    "RecurrenceSource",
    "RRuleRecurrenceSource",
]
