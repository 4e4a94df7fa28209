from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from flash_alarm import (
    Alarm,
    RecurrenceKind,
    RecurrenceRule,
    RRuleRecurrenceSource,
    SubRepetition,
    WorkTimeConfig,
)

UTC = timezone.utc


@pytest.fixture
def london():
    return ZoneInfo("Europe/London")


@pytest.fixture
def monday():
    """Monday 6 January 2025, 09:00 UTC."""
    return datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


@pytest.fixture
def saturday():
    """Saturday 11 January 2025, 08:00 UTC."""
    return datetime(2025, 1, 11, 8, 0, tzinfo=UTC)


@pytest.fixture
def config():
    """Monday to Friday, 09:00 to 17:00."""
    return WorkTimeConfig()


@pytest.fixture
def source():
    return RRuleRecurrenceSource()


@pytest.fixture
def daily_alarm(monday):
    """Daily at 09:00 UTC from Monday 6 January 2025."""
    return Alarm(
        alarm_id="daily",
        start=monday,
        recurrence=RecurrenceRule(kind=RecurrenceKind.DAILY),
    )


@pytest.fixture
def repeating_alarm(monday):
    """Daily at 09:00 UTC, repeated three times at four hour intervals."""
    return Alarm(
        alarm_id="repeating",
        start=monday,
        recurrence=RecurrenceRule(kind=RecurrenceKind.DAILY),
        sub_repetition=SubRepetition(interval=timedelta(hours=4), count=3),
    )


class CountingSource(RRuleRecurrenceSource):
    """Counts forward expansions and records where backward searches start."""

    def __init__(self):
        self.next_calls = 0
        self.previous_befores = []

    def next_recurrence(self, alarm, after):
        self.next_calls += 1
        return super().next_recurrence(alarm, after)

    def previous_recurrence(self, alarm, before):
        self.previous_befores.append(before)
        return super().previous_recurrence(alarm, before)


@pytest.fixture
def counting_source():
    return CountingSource()
