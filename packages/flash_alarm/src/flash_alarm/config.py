"""
Settings for the alarm trigger engine.
"""

from datetime import date, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flash_core.config import FlashSettings
from pydantic import field_validator, model_validator

from .holidays import DateSetHolidayOracle
from .schemas import WEEKDAY_NAMES, WorkTimeConfig


class AlarmSettings(FlashSettings):
    """
    Working week, holidays and default zone, read from the environment or
    ``.env``.

    Examples:
        WORK_DAYS='["MON", "TUE", "WED", "THU"]'
        WORK_DAY_START=08:30
        HOLIDAYS='["2025-12-25", "2025-12-26"]'
        DEFAULT_TIMEZONE=Europe/London
    """

    WORK_DAYS: list[str] = ["MON", "TUE", "WED", "THU", "FRI"]
    WORK_DAY_START: time = time(9, 0)
    WORK_DAY_END: time = time(17, 0)
    HOLIDAYS: list[date] = []
    DEFAULT_TIMEZONE: str = "UTC"

    @field_validator("WORK_DAYS")
    @classmethod
    def validate_work_days(cls, v: list[str]) -> list[str]:
        days = [d.strip().upper()[:3] for d in v]
        unknown = [d for d in days if d not in WEEKDAY_NAMES]
        if unknown:
            msg = f"Unknown weekday(s): {', '.join(unknown)}"
            raise ValueError(msg)
        return days

    @field_validator("DEFAULT_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as z:
            msg = f"Invalid timezone name: {v}"
            raise ValueError(msg) from z
        return v

    @model_validator(mode="after")
    def validate_working_hours(self) -> "AlarmSettings":
        if self.WORK_DAY_START >= self.WORK_DAY_END:
            msg = "WORK_DAY_START must be before WORK_DAY_END"
            raise ValueError(msg)
        return self

    def work_time_config(self) -> WorkTimeConfig:
        enabled = set(self.WORK_DAYS)
        return WorkTimeConfig(
            work_days=tuple(name in enabled for name in WEEKDAY_NAMES),
            start_time=self.WORK_DAY_START,
            end_time=self.WORK_DAY_END,
        )

    def holiday_oracle(self) -> DateSetHolidayOracle:
        return DateSetHolidayOracle(self.HOLIDAYS)

    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.DEFAULT_TIMEZONE)
