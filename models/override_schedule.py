from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

OVERRIDE_WINDOWS = ("work_hours", "family_time", "sleep_hours")

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]  # Monday = 0
WEEKDAYS = [0, 1, 2, 3, 4]


class OverrideWindow(BaseModel):
    """
    Daily time-of-day range on the given weekdays.
    A window with start > end wraps midnight and belongs to the day it starts on.
    """

    start: time
    end: time
    days: List[int] = Field(default_factory=lambda: list(ALL_DAYS))

    model_config = ConfigDict(frozen=True)

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days must be weekday numbers 0 (Monday) .. 6 (Sunday)")
        return sorted(set(v))

    @model_validator(mode="after")
    def validate_range(self) -> "OverrideWindow":
        if self.start == self.end:
            raise ValueError("window start and end must differ")
        return self

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    def contains(self, local_dt: datetime) -> bool:
        t = local_dt.time().replace(tzinfo=None)
        day = local_dt.weekday()

        if not self.wraps_midnight:
            return day in self.days and self.start <= t < self.end

        if t >= self.start:
            return day in self.days
        if t < self.end:
            return (local_dt - timedelta(days=1)).weekday() in self.days
        return False


class OverrideSchedule(BaseModel):
    """Window boundaries supplied by the user's profile/calendar settings."""

    timezone: str = "UTC"
    work_hours: OverrideWindow = OverrideWindow(
        start=time(9, 0), end=time(17, 0), days=list(WEEKDAYS)
    )
    family_time: OverrideWindow = OverrideWindow(start=time(18, 0), end=time(21, 0))
    sleep_hours: OverrideWindow = OverrideWindow(start=time(22, 0), end=time(7, 0))

    model_config = ConfigDict(frozen=True)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        _zone(v)
        return v

    def window(self, name: str) -> OverrideWindow:
        return getattr(self, name)

    def localize(self, now: datetime) -> datetime:
        return now.astimezone(_zone(self.timezone))


def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"unknown timezone: {name}")
