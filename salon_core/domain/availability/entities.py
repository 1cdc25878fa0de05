"""Working-hour rules, one-off overrides and derived time slots"""

from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from typing import Optional

from ..errors import InvalidDateRangeError, OutOfRangeError
from ..value_objects import DateRange

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def day_of_week(target_date: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return target_date.isoweekday() % 7


@dataclass(frozen=True)
class AvailabilityRule:
    """Recurring weekly working (or break) interval for a professional"""

    id: str
    professional_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_break: bool = False

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise OutOfRangeError("day_of_week", 0, 6)
        if self.start_time >= self.end_time:
            raise InvalidDateRangeError("Rule start time must be before its end time")

    def applies_to(self, target_date: date) -> bool:
        return day_of_week(target_date) == self.day_of_week

    def to_range(self, target_date: date, tz: tzinfo) -> DateRange:
        return DateRange(
            datetime.combine(target_date, self.start_time, tzinfo=tz),
            datetime.combine(target_date, self.end_time, tzinfo=tz),
        )

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]


@dataclass(frozen=True)
class ScheduleOverride:
    """One-off interval that always removes availability"""

    id: str
    professional_id: str
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None

    def __post_init__(self):
        if self.starts_at >= self.ends_at:
            raise InvalidDateRangeError("Override start must be before its end")

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.starts_at, self.ends_at)


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    available: bool = True
    professional_id: Optional[str] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.start, self.end)

    @property
    def duration_minutes(self) -> int:
        return self.date_range.duration_minutes()
