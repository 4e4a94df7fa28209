from datetime import date, datetime, time, timedelta, timezone

import pytest
from flash_alarm.holidays import DateSetHolidayOracle
from flash_alarm.resolvers import (
    DAYS_IN_WEEK,
    MAX_MINUTELY_ITERATIONS,
    MAX_REPETITION_TIME_CYCLES,
    MAX_TRANSITION_SPAN,
    RecurrenceShape,
    WorkingTimeResolver,
    classify_shape,
    is_working_time,
)
from flash_alarm.schemas import (
    Alarm,
    RecurrenceKind,
    RecurrenceRule,
    SubRepetition,
    WeekdayPosition,
    WorkTimeConfig,
)
from flash_alarm.sources import Occurrence, OccurOption
from flash_alarm.timezones import TimeZoneTransitions

UTC = timezone.utc
DAILY = RecurrenceRule(kind=RecurrenceKind.DAILY)
WEEKLY = RecurrenceRule(kind=RecurrenceKind.WEEKLY)


def at(day: int, hour: int = 0, minute: int = 0, month: int = 1) -> datetime:
    return datetime(2025, month, day, hour, minute, tzinfo=UTC)


def first_candidate(source, alarm: Alarm, now: datetime) -> Occurrence:
    return source.next_occurrence(alarm, now, OccurOption.RETURN_REPETITION)


@pytest.fixture
def resolver(source):
    return WorkingTimeResolver(source)


def test_search_bounds():
    assert DAYS_IN_WEEK == 7
    assert MAX_REPETITION_TIME_CYCLES == 10
    assert MAX_MINUTELY_ITERATIONS == 7 * 24 * 60
    assert MAX_TRANSITION_SPAN == timedelta(days=365)


class TestClassifyShape:
    @pytest.mark.parametrize(
        "recurrence, rep, expected",
        [
            (WEEKLY, None, RecurrenceShape.DATE_ONLY_SAME_WEEKDAY),
            (
                RecurrenceRule(kind=RecurrenceKind.MONTHLY_DAY),
                None,
                RecurrenceShape.DATE_ONLY_FIXED_WEEKDAY,
            ),
            (
                RecurrenceRule(kind=RecurrenceKind.MONTHLY_DAY),
                SubRepetition(interval=timedelta(days=7), count=2),
                RecurrenceShape.DATE_ONLY_FIXED_WEEKDAY,
            ),
            (
                DAILY,
                SubRepetition(interval=timedelta(days=2), count=3),
                RecurrenceShape.DATE_ONLY_VARYING_WEEKDAY,
            ),
            (
                RecurrenceRule(
                    kind=RecurrenceKind.MONTHLY_POS,
                    by_day=frozenset({WeekdayPosition(weekday=0, ordinal=1)}),
                ),
                SubRepetition(interval=timedelta(days=1), count=3),
                RecurrenceShape.DATE_ONLY_SAME_WEEKDAY,
            ),
        ],
    )
    def test_date_only(self, source, monday, recurrence, rep, expected):
        alarm = Alarm(
            start=monday, date_only=True, recurrence=recurrence, sub_repetition=rep
        )
        assert classify_shape(alarm, source) is expected

    @pytest.mark.parametrize(
        "recurrence, rep, expected",
        [
            (DAILY, None, RecurrenceShape.FIXED_TIME_OF_DAY),
            (
                DAILY,
                SubRepetition(interval=timedelta(days=1), count=2),
                RecurrenceShape.FIXED_TIME_OF_DAY,
            ),
            (
                DAILY,
                SubRepetition(interval=timedelta(hours=4), count=2),
                RecurrenceShape.VARYING_REPETITION_TIME,
            ),
            (
                RecurrenceRule(kind=RecurrenceKind.MINUTELY, interval=1440),
                None,
                RecurrenceShape.VARYING_RECURRENCE_TIME,
            ),
        ],
    )
    def test_timed(self, source, monday, recurrence, rep, expected):
        alarm = Alarm(start=monday, recurrence=recurrence, sub_repetition=rep)
        assert classify_shape(alarm, source) is expected


class TestIsWorkingTime:
    def test_unconstrained_alarm_always_qualifies(self, config, daily_alarm):
        assert is_working_time(daily_alarm, config, None, at(11, 3))

    def test_work_day_and_hours(self, config, daily_alarm):
        alarm = daily_alarm.model_copy(update={"work_time_only": True})
        assert is_working_time(alarm, config, None, at(6, 9))
        assert not is_working_time(alarm, config, None, at(6, 17))
        assert not is_working_time(alarm, config, None, at(11, 9))

    def test_date_only_ignores_hours(self, config, monday):
        alarm = Alarm(
            start=monday, date_only=True, recurrence=DAILY, work_time_only=True
        )
        assert is_working_time(alarm, config, None, at(6, 0))

    def test_holidays(self, config, daily_alarm):
        alarm = daily_alarm.model_copy(update={"holidays_excluded": True})
        holidays = DateSetHolidayOracle([date(2025, 1, 6)])
        assert not is_working_time(alarm, config, holidays, at(6, 9))
        assert is_working_time(alarm, config, holidays, at(11, 9))

    def test_weekday_in_alarm_zone(self, config, monday):
        # Friday 23:30 UTC is Saturday in Tokyo
        alarm = Alarm(
            start=monday,
            tz="Asia/Tokyo",
            date_only=True,
            recurrence=DAILY,
            work_time_only=True,
        )
        assert not is_working_time(alarm, config, None, at(10, 23, 30))


class TestFixedTimeOfDay:
    def test_moves_to_next_work_day(self, resolver, source, config, daily_alarm, saturday):
        alarm = daily_alarm.model_copy(update={"work_time_only": True})
        candidate = first_candidate(source, alarm, saturday)
        assert candidate.instant == at(11, 9)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13, 9))

    def test_time_never_in_working_hours(self, resolver, source, config, daily_alarm):
        alarm = daily_alarm.model_copy(
            update={"work_time_only": True, "start": at(6, 7)}
        )
        candidate = first_candidate(source, alarm, at(6, 6))
        assert resolver.next_working_occurrence(alarm, config, candidate) is None

    def test_no_work_days(self, resolver, source, daily_alarm, saturday):
        config = WorkTimeConfig(work_days=(False,) * 7)
        candidate = first_candidate(source, daily_alarm, saturday)
        assert resolver.next_working_occurrence(daily_alarm, config, candidate) is None

    def test_daily_repetition_lands_on_work_day(self, resolver, source, config):
        # Weekly on Saturday, repeated two days later on Monday
        alarm = Alarm(
            start=at(11, 10),
            recurrence=WEEKLY,
            sub_repetition=SubRepetition(interval=timedelta(days=2), count=1),
            work_time_only=True,
        )
        candidate = first_candidate(source, alarm, at(11, 9))
        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13, 10), is_repetition=True, repeat_index=1)

    def test_weekly_on_non_work_day(self, resolver, source, config):
        alarm = Alarm(start=at(11, 10), recurrence=WEEKLY, work_time_only=True)
        candidate = first_candidate(source, alarm, at(12, 0))
        assert resolver.next_working_occurrence(alarm, config, candidate) is None


class TestDateOnly:
    def test_fixed_weekday_moves_to_monday(self, resolver, source, config, monday):
        alarm = Alarm(
            start=monday, date_only=True, recurrence=DAILY, work_time_only=True
        )
        candidate = first_candidate(source, alarm, at(11, 12))
        assert candidate.instant == at(12)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13), date_only=True)

    def test_fixed_weekday_rule_ends_first(self, resolver, source):
        # 1st of January to May falls on Wednesday, Saturday, Saturday,
        # Tuesday and Thursday; only Sunday is worked
        config = WorkTimeConfig(work_days=(False,) * 6 + (True,))
        alarm = Alarm(
            start=at(1),
            date_only=True,
            recurrence=RecurrenceRule(kind=RecurrenceKind.MONTHLY_DAY, count=5),
            work_time_only=True,
        )
        candidate = first_candidate(source, alarm, at(1, 12))
        assert resolver.next_working_occurrence(alarm, config, candidate) is None

    def test_same_weekday_repetition(self, resolver, source, config):
        # Saturdays, repeated on Sunday and Monday
        alarm = Alarm(
            start=at(11),
            date_only=True,
            recurrence=WEEKLY,
            sub_repetition=SubRepetition(interval=timedelta(days=1), count=2),
            work_time_only=True,
        )
        candidate = first_candidate(source, alarm, at(11, 12))
        assert candidate == Occurrence(
            instant=at(12), is_repetition=True, repeat_index=1, date_only=True
        )

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(
            instant=at(13), is_repetition=True, repeat_index=2, date_only=True
        )

    def test_same_weekday_without_repetition(self, resolver, source, config):
        alarm = Alarm(
            start=at(11), date_only=True, recurrence=WEEKLY, work_time_only=True
        )
        candidate = first_candidate(source, alarm, at(11, 12))
        assert resolver.next_working_occurrence(alarm, config, candidate) is None

    def test_varying_weekday_repetition(self, resolver, source, config):
        # 1st of each month, repeated every two days: 1 March 2025 is a Saturday
        alarm = Alarm(
            start=at(1, month=3),
            date_only=True,
            recurrence=RecurrenceRule(kind=RecurrenceKind.MONTHLY_DAY),
            sub_repetition=SubRepetition(interval=timedelta(days=2), count=3),
            work_time_only=True,
        )
        candidate = first_candidate(source, alarm, at(28, 12, month=2))
        assert candidate.instant == at(1, month=3)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(
            instant=at(3, month=3), is_repetition=True, repeat_index=1, date_only=True
        )


class TestVaryingRepetitionTime:
    def test_repetition_inside_working_hours(self, resolver, source, repeating_alarm):
        config = WorkTimeConfig(start_time=time(10, 0))
        alarm = repeating_alarm.model_copy(update={"work_time_only": True})
        candidate = first_candidate(source, alarm, at(7, 8))
        assert candidate.instant == at(7, 9)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(7, 13), is_repetition=True, repeat_index=1)

    def test_skips_weekend_repetitions(self, resolver, source, repeating_alarm, saturday):
        config = WorkTimeConfig(start_time=time(10, 0))
        alarm = repeating_alarm.model_copy(update={"work_time_only": True})
        candidate = first_candidate(source, alarm, saturday)
        assert candidate.instant == at(11, 9)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13, 13), is_repetition=True, repeat_index=1)

    def test_never_in_working_hours(self, source):
        # 01:00 repeated at 05:00 and 09:00 never reaches 10:00 to 17:00
        config = WorkTimeConfig(start_time=time(10, 0))
        alarm = Alarm(
            start=at(6, 1),
            recurrence=DAILY,
            sub_repetition=SubRepetition(interval=timedelta(hours=4), count=2),
            work_time_only=True,
        )
        candidate = first_candidate(source, alarm, at(6, 0))
        transitions = TimeZoneTransitions()
        resolver = WorkingTimeResolver(source, transitions)
        assert resolver.next_working_occurrence(alarm, config, candidate) is None


class TestVaryingRecurrenceTime:
    @pytest.fixture
    def alarm(self, london):
        # Every 24 hours at 08:30 GMT, which is 09:30 once summer time starts
        return Alarm(
            alarm_id="minutely",
            start=at(6, 8, 30),
            tz=london,
            recurrence=RecurrenceRule(kind=RecurrenceKind.MINUTELY, interval=1440),
            work_time_only=True,
        )

    def test_found_after_dst_transition(self, source, config, alarm):
        transitions = TimeZoneTransitions(
            [at(30, 1, month=3), at(26, 1, month=10)]
        )
        resolver = WorkingTimeResolver(source, transitions)
        candidate = first_candidate(source, alarm, at(1, month=3))
        assert candidate.instant == at(1, 8, 30, month=3)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(31, 8, 30, month=3))

    def test_transitions_derived_from_zone(self, resolver, source, config, alarm):
        candidate = first_candidate(source, alarm, at(1, month=3))
        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(31, 8, 30, month=3))

    def test_no_transition_left(self, source, config, alarm):
        resolver = WorkingTimeResolver(source, TimeZoneTransitions())
        candidate = first_candidate(source, alarm, at(1, month=3))
        assert resolver.next_working_occurrence(alarm, config, candidate) is None

    def test_within_working_hours_directly(self, source, config):
        # Every 90 minutes from Monday 06:00 reaches 09:00
        alarm = Alarm(
            start=at(6, 6),
            recurrence=RecurrenceRule(kind=RecurrenceKind.MINUTELY, interval=90),
            work_time_only=True,
        )
        resolver = WorkingTimeResolver(source)
        candidate = first_candidate(source, alarm, at(6, 5))
        assert candidate.instant == at(6, 6)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(6, 9))

    @pytest.fixture
    def repeating(self):
        """Every 12 hours, repeated twice at two hour intervals."""

        def build(start: datetime) -> Alarm:
            return Alarm(
                start=start,
                recurrence=RecurrenceRule(kind=RecurrenceKind.MINUTELY, interval=720),
                sub_repetition=SubRepetition(interval=timedelta(hours=2), count=2),
                work_time_only=True,
            )

        return build

    def test_repetition_reaches_working_hours(self, resolver, source, config, repeating):
        # Monday 06:00, 08:00, then 10:00
        alarm = repeating(at(6, 6))
        candidate = first_candidate(source, alarm, at(6, 5))
        assert candidate == Occurrence(instant=at(6, 6))

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(6, 10), is_repetition=True, repeat_index=2)

    def test_repetitions_roll_over_to_next_recurrence(
        self, resolver, source, config, repeating
    ):
        # Recurring at 06:00 and 18:00 from Friday: nothing is worked until
        # the last repetition of Monday's 06:00 recurrence
        alarm = repeating(at(10, 18))
        candidate = first_candidate(source, alarm, at(11, 7))
        assert candidate == Occurrence(instant=at(11, 8), is_repetition=True, repeat_index=1)

        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13, 10), is_repetition=True, repeat_index=2)

    def test_no_later_work_day_this_week(self, resolver, source, repeating):
        config = WorkTimeConfig(work_days=(True,) + (False,) * 6)
        alarm = repeating(at(6, 18))
        rep = alarm.sub_repetition
        assert resolver._next_work_repetition(alarm, config, at(6, 18)) == rep.count + 1

        candidate = first_candidate(source, alarm, at(6, 17))
        found = resolver.next_working_occurrence(alarm, config, candidate)
        assert found == Occurrence(instant=at(13, 10), is_repetition=True, repeat_index=2)


class TestSearchTermination:
    def test_minutely_never_in_working_hours(self, counting_source, config, london):
        # 18:00 GMT every day is 19:00 in summer: never inside working hours
        alarm = Alarm(
            start=at(6, 18),
            tz=london,
            recurrence=RecurrenceRule(kind=RecurrenceKind.MINUTELY, interval=1440),
            work_time_only=True,
        )
        candidate = first_candidate(counting_source, alarm, at(6, 17))
        counting_source.next_calls = 0

        resolver = WorkingTimeResolver(counting_source)
        assert resolver.next_working_occurrence(alarm, config, candidate) is None
        # Resumed after one transition, then stopped a year on
        assert counting_source.next_calls == 0
        assert counting_source.previous_befores == [
            at(30, 1, month=3),
            datetime(2026, 3, 29, 1, 0, tzinfo=UTC),
        ]

    def test_repetition_time_cycles_exhausted(self, counting_source):
        # 01:00 repeated at 05:00 and 09:00 never reaches 10:00 to 17:00
        config = WorkTimeConfig(start_time=time(10, 0))
        alarm = Alarm(
            start=at(6, 1),
            recurrence=DAILY,
            sub_repetition=SubRepetition(interval=timedelta(hours=4), count=2),
            work_time_only=True,
        )
        transitions = TimeZoneTransitions(
            at(20, 12) + timedelta(weeks=n) for n in range(2 * MAX_REPETITION_TIME_CYCLES)
        )
        candidate = first_candidate(counting_source, alarm, at(6, 0))

        resolver = WorkingTimeResolver(counting_source, transitions)
        assert resolver.next_working_occurrence(alarm, config, candidate) is None
        # One restart per cycle, leaving the later transitions unused
        assert counting_source.previous_befores == [
            at(6, 1, 0) + timedelta(seconds=1),
            *transitions[:MAX_REPETITION_TIME_CYCLES],
        ]

    def test_date_only_found_on_single_work_day(self, counting_source):
        # 1st of the month from Wednesday 1 January; only Sunday is worked
        config = WorkTimeConfig(work_days=(False,) * 6 + (True,))
        alarm = Alarm(
            start=at(1),
            date_only=True,
            recurrence=RecurrenceRule(kind=RecurrenceKind.MONTHLY_DAY),
            work_time_only=True,
        )
        resolver = WorkingTimeResolver(counting_source)
        found = resolver.next_working_occurrence(
            alarm, config, Occurrence(instant=at(1), date_only=True)
        )
        assert found == Occurrence(instant=at(1, month=6), date_only=True)
        assert counting_source.next_calls == 5

    def test_date_only_weekdays_exhausted(self, counting_source, config):
        # Saturdays and Sundays only
        alarm = Alarm(
            start=at(11),
            date_only=True,
            recurrence=RecurrenceRule(
                kind=RecurrenceKind.WEEKLY,
                by_day=frozenset({WeekdayPosition(weekday=5), WeekdayPosition(weekday=6)}),
            ),
            sub_repetition=SubRepetition(interval=timedelta(days=7), count=1),
            work_time_only=True,
        )
        resolver = WorkingTimeResolver(counting_source)
        found = resolver.next_working_occurrence(
            alarm, config, Occurrence(instant=at(11), date_only=True)
        )
        assert found is None
        assert counting_source.next_calls == 3
