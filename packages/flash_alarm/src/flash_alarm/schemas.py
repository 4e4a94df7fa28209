"""Pydantic schemas/data contracts for the alarm trigger engine."""

import zoneinfo
from datetime import datetime, time, timedelta, timezone, tzinfo
from enum import Enum, auto
from typing import Annotated, Any
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from . import dt_utils

ONE_DAY = timedelta(days=1)
WEEKDAY_NAMES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def validate_timezone(v: Any) -> Any:
    """Ensure the value is a valid timezone or ZoneInfo object."""
    if isinstance(v, (timezone, zoneinfo.ZoneInfo)):
        return v
    if isinstance(v, str):
        try:
            return zoneinfo.ZoneInfo(v)
        except zoneinfo.ZoneInfoNotFoundError as z:
            msg = f"Invalid timezone name: {v}"
            raise ValueError(msg) from z
    msg = f"Invalid timezone type: {type(v).__name__}"
    raise ValueError(msg)


# Pydantic cannot build a core schema for tzinfo classes, so the
# BeforeValidator does the type enforcement and conversion.
TzType = Annotated[Any, BeforeValidator(validate_timezone)]


def _require_aware(v: datetime | None, field: str) -> datetime | None:
    if v is not None and v.tzinfo is None:
        msg = f"{field} must be timezone-aware"
        raise ValueError(msg)
    return v


class RecurrenceKind(Enum):
    """Shape of a recurrence rule."""

    NONE = auto()
    MINUTELY = auto()
    DAILY = auto()
    WEEKLY = auto()
    MONTHLY_POS = auto()
    MONTHLY_DAY = auto()
    ANNUAL_DATE = auto()
    ANNUAL_POS = auto()


class TriggerType(Enum):
    """Which of the computed trigger times to read."""

    MAIN = "MAIN"
    ALL = "ALL"
    MAIN_WORK = "MAIN_WORK"
    ALL_WORK = "ALL_WORK"
    DISPLAY = "DISPLAY"


class WeekdayPosition(BaseModel):
    """A weekday, optionally restricted to its n-th (or n-th last) instance."""

    model_config = ConfigDict(frozen=True)

    weekday: int = Field(ge=0, le=6)
    ordinal: int = Field(default=0, ge=-5, le=5)


class RecurrenceRule(BaseModel):
    """
    Recurrence definition consumed by a RecurrenceSource.

    ``interval`` is in minutes for MINUTELY rules and in the rule's natural
    unit (days, weeks, months, years) otherwise.

    Examples:
        - kind=DAILY: every day at the alarm's start time
        - kind=WEEKLY, interval=2, by_day={MON, THU}: fortnightly on two days
        - kind=MONTHLY_POS, by_day={(FRI, -1)}: last Friday of each month
        - kind=MINUTELY, interval=90: every 90 minutes
    """

    model_config = ConfigDict(frozen=True)

    kind: RecurrenceKind = RecurrenceKind.NONE
    interval: int = Field(default=1, ge=1)
    by_day: frozenset[WeekdayPosition] = frozenset()
    month_days: tuple[int, ...] = ()
    months: tuple[int, ...] = ()
    count: int | None = Field(default=None, ge=1)
    until: datetime | None = None

    @field_validator("until")
    @classmethod
    def validate_until(cls, v: datetime | None) -> datetime | None:
        return _require_aware(v, "until")

    @model_validator(mode="after")
    def validate_shape(self) -> "RecurrenceRule":
        if (
            self.kind in (RecurrenceKind.MONTHLY_POS, RecurrenceKind.ANNUAL_POS)
            and not self.by_day
        ):
            msg = f"{self.kind.name} recurrence requires by_day positions"
            raise ValueError(msg)
        if self.kind is RecurrenceKind.MINUTELY and self.by_day:
            msg = "MINUTELY recurrence does not take by_day positions"
            raise ValueError(msg)
        return self

    def day_positions(self, start_weekday: int) -> frozenset[WeekdayPosition]:
        """By-day positions, defaulting a weekly rule to its start weekday."""
        if self.kind is RecurrenceKind.WEEKLY and not self.by_day:
            return frozenset({WeekdayPosition(weekday=start_weekday)})
        return self.by_day

    def regular_interval(self, start_weekday: int) -> timedelta | None:
        """
        Interval between recurrences, if it never varies.

        Returns None for rules whose spacing depends on the calendar (monthly,
        annual) or on a selection of several weekdays.
        """
        if self.kind is RecurrenceKind.MINUTELY:
            return timedelta(minutes=self.interval)

        if self.kind is RecurrenceKind.DAILY:
            if not self.by_day:
                return timedelta(days=self.interval)
            days = {p.weekday for p in self.by_day if p.ordinal == 0}
            if self.interval % 7 == 0:
                # Always lands on the start weekday, provided it is selected
                if start_weekday in days:
                    return timedelta(days=self.interval)
                return None
            if len(days) == 7:
                return timedelta(days=self.interval)
            if len(days) == 1:
                return timedelta(days=self.interval * 7)
            return None

        if self.kind is RecurrenceKind.WEEKLY:
            if not self.by_day:
                return timedelta(days=self.interval * 7)
            days = {p.weekday for p in self.by_day if p.ordinal == 0}
            if len(days) == 7:
                return ONE_DAY if self.interval == 1 else None
            if len(days) == 1:
                return timedelta(days=self.interval * 7)
            return None

        return None


class SubRepetition(BaseModel):
    """
    Secondary firings evenly spaced after each base recurrence.

    A repetition whose interval is a whole number of days keeps the wall-clock
    time of day across DST changes; shorter ones are absolute.
    """

    model_config = ConfigDict(frozen=True)

    interval: timedelta
    count: int = Field(ge=1)
    next_index: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_repetition(self) -> "SubRepetition":
        if self.interval <= timedelta(0):
            msg = "repetition interval must be positive"
            raise ValueError(msg)
        if self.next_index > self.count:
            msg = "next_index cannot exceed the repetition count"
            raise ValueError(msg)
        return self

    @property
    def is_daily(self) -> bool:
        return self.interval % ONE_DAY == timedelta(0)

    @property
    def interval_days(self) -> int:
        return self.interval // ONE_DAY

    @property
    def interval_seconds(self) -> int:
        return int(self.interval.total_seconds())

    def duration(self, count: int | None = None) -> timedelta:
        """Span of ``count`` repetitions (all of them by default)."""
        return self.interval * (self.count if count is None else count)

    def offset(self, base: datetime, count: int, zone: tzinfo) -> datetime:
        """Instant of repetition number ``count`` after ``base``."""
        if self.is_daily:
            return dt_utils.add_local_days(base, count * self.interval_days, zone)
        return base + self.interval * count

    def next_repeat_count(self, base: datetime, after: datetime, zone: tzinfo) -> int:
        """Index of the first repetition of ``base`` falling after ``after``."""
        if self.is_daily:
            count = dt_utils.days_between(base, after, zone) // self.interval_days
            # The repetition on the day of 'after' may still be to come
            while self.offset(base, count, zone) <= after:
                count += 1
            return count
        return (after - base) // self.interval + 1

    def previous_repeat_count(
        self, base: datetime, before: datetime, zone: tzinfo
    ) -> int:
        """Index of the last repetition of ``base`` falling before ``before``."""
        if self.is_daily:
            count = dt_utils.days_between(base, before, zone) // self.interval_days
            while count > 0 and self.offset(base, count, zone) >= before:
                count -= 1
            return count
        latest = before - timedelta(seconds=1)
        return (latest - base) // self.interval


class Deferral(BaseModel):
    """A user override replacing the next computed trigger."""

    model_config = ConfigDict(frozen=True)

    instant: datetime
    is_reminder_deferral: bool = False

    @field_validator("instant")
    @classmethod
    def validate_instant(cls, v: datetime) -> datetime:
        return _require_aware(v, "deferral instant")


class Alarm(BaseModel):
    """
    The fields of an alarm that affect when it triggers.

    ``reminder_lead_minutes`` is signed: positive values remind before the
    occurrence, negative values after it. ``reminder_active`` is False once
    the live reminder has fired and only the archived value remains.
    """

    model_config = ConfigDict(frozen=True)

    alarm_id: str | None = None
    start: datetime
    date_only: bool = False
    tz: TzType = ZoneInfo("UTC")
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    sub_repetition: SubRepetition | None = None
    reminder_lead_minutes: int = 0
    reminder_active: bool = True
    work_time_only: bool = False
    holidays_excluded: bool = False
    deferral: Deferral | None = None
    is_template: bool = False
    main_expired: bool = False

    @field_validator("start")
    @classmethod
    def validate_start(cls, v: datetime) -> datetime:
        return _require_aware(v, "start")

    @field_serializer("tz")
    def serialize_timezone(self, v: Any) -> str:
        """Convert ZoneInfo or timezone object to string for JSON serialization."""
        if isinstance(v, zoneinfo.ZoneInfo):
            return v.key
        return str(v)

    @model_validator(mode="after")
    def validate_repetition(self) -> "Alarm":
        rep = self.sub_repetition
        if rep is None:
            return self
        if self.recurrence.kind is RecurrenceKind.NONE:
            msg = "a sub-repetition requires a recurrence"
            raise ValueError(msg)
        if self.date_only and not rep.is_daily:
            msg = "a date-only alarm can only repeat in whole days"
            raise ValueError(msg)
        return self

    @property
    def recurs(self) -> bool:
        return self.recurrence.kind is not RecurrenceKind.NONE

    @property
    def effective_start(self) -> datetime:
        """UTC start instant; a date-only alarm starts at local midnight."""
        if self.date_only:
            return dt_utils.at_local_time(
                dt_utils.local_date(self.start, self.tz), time(0, 0), self.tz
            )
        return dt_utils.as_utc(self.start)

    @property
    def start_weekday(self) -> int:
        return dt_utils.local_weekday(self.start, self.tz)


class WorkTimeConfig(BaseModel):
    """Resolved working week: enabled weekdays and the working-hours window."""

    model_config = ConfigDict(frozen=True)

    work_days: tuple[bool, bool, bool, bool, bool, bool, bool] = (
        True,
        True,
        True,
        True,
        True,
        False,
        False,
    )
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)

    @model_validator(mode="after")
    def validate_window(self) -> "WorkTimeConfig":
        if self.start_time >= self.end_time:
            msg = "start_time must be before end_time"
            raise ValueError(msg)
        return self

    @property
    def has_work_days(self) -> bool:
        return any(self.work_days)

    def is_work_day(self, weekday: int) -> bool:
        return self.work_days[weekday % 7]

    def is_work_hour(self, t: time) -> bool:
        """Half-open window check: start_time <= t < end_time."""
        return self.start_time <= t < self.end_time


class TriggerSet(BaseModel):
    """The four trigger instants computed for one alarm."""

    model_config = ConfigDict(frozen=True)

    main: datetime | None = None
    all: datetime | None = None
    main_work: datetime | None = None
    all_work: datetime | None = None

    @classmethod
    def single(cls, instant: datetime) -> "TriggerSet":
        return cls(main=instant, all=instant, main_work=instant, all_work=instant)

    def get(self, trigger_type: TriggerType, alarm: Alarm | None = None) -> datetime | None:
        """
        Read one trigger time.

        DISPLAY needs the alarm: once the main alarm has expired, an active
        reminder which follows it is what gets displayed.
        """
        if trigger_type is TriggerType.MAIN:
            return self.main
        if trigger_type is TriggerType.ALL:
            return self.all
        if trigger_type is TriggerType.MAIN_WORK:
            return self.main_work
        if trigger_type is TriggerType.ALL_WORK:
            return self.all_work

        if alarm is None:
            msg = "DISPLAY trigger requires the alarm"
            raise ValueError(msg)
        reminder_after = (
            alarm.main_expired
            and alarm.reminder_active
            and alarm.reminder_lead_minutes < 0
        )
        if alarm.work_time_only or alarm.holidays_excluded:
            return self.all_work if reminder_after else self.main_work
        return self.all if reminder_after else self.main
