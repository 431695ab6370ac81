"""
Business Calendar
=================

Pure functions for business-hours arithmetic.

All math is whole-hour: an interval is walked one absolute hour at a time and
each step is counted if its local weekday and local hour fall inside the
configured window. A step that starts mid-hour is counted by the bucket it
starts in (floor). Naive datetimes are read as local wall-clock time in the
configured timezone.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

ONE_HOUR = timedelta(hours=1)
BUSINESS_HOURS_PER_DAY = 8


class BusinessHoursConfig(BaseModel):
    """
    Work-week definition.

    ``work_days`` uses Python weekday numbers (Monday=0 ... Sunday=6).
    """

    work_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=17, ge=1, le=24)
    timezone: str = Field(default="America/New_York")

    model_config = {"frozen": True}

    @field_validator("work_days")
    @classmethod
    def validate_work_days(cls, v: List[int]) -> List[int]:
        """Require at least one weekday, each within 0-6."""
        if not v:
            raise ValueError("work_days must contain at least one weekday")
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"invalid weekday {day}; expected 0 (Monday) to 6 (Sunday)")
        return sorted(set(v))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names up front."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{v}'") from exc
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "BusinessHoursConfig":
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be before end_hour")
        return self

    @property
    def hours_per_day(self) -> int:
        return self.end_hour - self.start_hour


class BusinessCalendar:
    """Business-hours clock bound to one ``BusinessHoursConfig``."""

    def __init__(self, config: BusinessHoursConfig | None = None):
        self.config = config or BusinessHoursConfig()
        self._zone = ZoneInfo(self.config.timezone)
        self._work_days: FrozenSet[int] = frozenset(self.config.work_days)

    def to_local(self, instant: datetime) -> datetime:
        """Express ``instant`` in the calendar's timezone."""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self._zone)
        return instant.astimezone(self._zone)

    def _in_window(self, local: datetime) -> bool:
        return (
            local.weekday() in self._work_days
            and self.config.start_hour <= local.hour < self.config.end_hour
        )

    def is_business_hour(self, instant: datetime) -> bool:
        """True when ``instant`` falls on a work day inside the daily window."""
        return self._in_window(self.to_local(instant))

    def business_hours(self, start: datetime, end: datetime) -> int:
        """
        Count whole business hours in ``[start, end)``.

        Returns 0 when ``start >= end``. Steps are taken in absolute time so
        DST transitions neither skip nor double-count an hour.
        """
        current = self.to_local(start).astimezone(timezone.utc)
        stop = self.to_local(end).astimezone(timezone.utc)
        if current >= stop:
            return 0

        counted = 0
        while current < stop:
            if self._in_window(current.astimezone(self._zone)):
                counted += 1
            current += ONE_HOUR
        return counted

    def total_elapsed_hours(self, start: datetime, end: datetime) -> float:
        """Wall-clock hours between two instants; no calendar awareness."""
        delta = self.to_local(end) - self.to_local(start)
        return delta.total_seconds() / 3600

    def next_business_hour(self, instant: datetime) -> datetime:
        """
        Advance to the top of the next hour, then forward to the first
        in-window hour.
        """
        local = self.to_local(instant).replace(minute=0, second=0, microsecond=0)
        candidate = (local.astimezone(timezone.utc) + ONE_HOUR).astimezone(self._zone)

        start_hour = self.config.start_hour
        while not self._in_window(candidate):
            if candidate.hour >= self.config.end_hour or candidate.weekday() not in self._work_days:
                next_day = candidate.date() + timedelta(days=1)
                candidate = datetime(
                    next_day.year, next_day.month, next_day.day, start_hour, tzinfo=self._zone
                )
            else:
                candidate = candidate.replace(hour=start_hour)
        return candidate

    def estimated_completion(self, hours_remaining: float, from_: datetime) -> datetime:
        """
        Project when ``hours_remaining`` business hours will have elapsed.

        Fractional hours round up to the next whole business hour.
        """
        estimate = self.to_local(from_)
        for _ in range(max(0, math.ceil(hours_remaining))):
            estimate = self.next_business_hour(estimate)
        return estimate


def time_remaining_display(
    hours_remaining: float,
    hours_per_day: int = BUSINESS_HOURS_PER_DAY
) -> str:
    """Human-readable countdown in business days and hours."""
    if hours_remaining <= 0:
        return "SLA deadline passed"

    days = int(hours_remaining // hours_per_day)
    hours = int(hours_remaining % hours_per_day)

    if days > 0 and hours > 0:
        return f"{days}d {hours}h remaining"
    if days > 0:
        return f"{days}d remaining"
    if hours > 0:
        return f"{hours}h remaining"
    minutes = int((hours_remaining % 1) * 60)
    return f"{minutes}m remaining"


def format_duration(hours: float) -> str:
    """Format a wall-clock duration for display."""
    if hours < 1:
        return f"{round(hours * 60)} minutes"
    if hours < 24:
        return f"{hours:.1f} hours"
    days = int(hours // 24)
    remaining_hours = hours % 24
    return f"{days}d {remaining_hours:.0f}h"
