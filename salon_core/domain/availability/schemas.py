"""Availability schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.datetime_utils import format_time
from ...shared.validators import parse_time_of_day
from .entities import AvailabilityRule, ScheduleOverride
from .service import AvailabilityResult


class TimeSlotResponse(BaseModel):
    time: str
    startsAt: datetime
    endsAt: datetime
    available: bool
    professionalId: Optional[str] = None


class AvailabilityResponse(BaseModel):
    professionalId: str
    targetDate: date
    durationMinutes: int
    slots: list[TimeSlotResponse]
    availableCount: int
    message: str

    @classmethod
    def from_result(cls, result: AvailabilityResult, tz) -> "AvailabilityResponse":
        return cls(
            professionalId=result.professional_id,
            targetDate=result.date,
            durationMinutes=result.duration_minutes,
            slots=[
                TimeSlotResponse(
                    time=format_time(slot.start, tz),
                    startsAt=slot.start,
                    endsAt=slot.end,
                    available=slot.available,
                    professionalId=slot.professional_id,
                )
                for slot in result.slots
            ],
            availableCount=result.available_count,
            message=result.message,
        )


class RuleCreate(BaseModel):
    """Weekly working hours (or a break) - dayOfWeek 0 = Sunday"""

    dayOfWeek: int
    startTime: str
    endTime: str
    isBreak: bool = False

    @field_validator("dayOfWeek")
    @classmethod
    def validate_day(cls, v):
        if not 0 <= v <= 6:
            raise ValueError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        hour, minute = parse_time_of_day(v)
        return f"{hour:02d}:{minute:02d}"

    def start(self) -> time:
        return time(*parse_time_of_day(self.startTime))

    def end(self) -> time:
        return time(*parse_time_of_day(self.endTime))


class RuleResponse(BaseModel):
    id: str
    professionalId: str
    dayOfWeek: int
    dayName: str
    startTime: str
    endTime: str
    isBreak: bool

    @classmethod
    def from_entity(cls, rule: AvailabilityRule) -> "RuleResponse":
        return cls(
            id=rule.id,
            professionalId=rule.professional_id,
            dayOfWeek=rule.day_of_week,
            dayName=rule.day_name,
            startTime=rule.start_time.strftime("%H:%M"),
            endTime=rule.end_time.strftime("%H:%M"),
            isBreak=rule.is_break,
        )


class OverrideCreate(BaseModel):
    startsAt: datetime
    endsAt: datetime
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_range(self):
        if self.startsAt.tzinfo is None or self.endsAt.tzinfo is None:
            raise ValueError("Datetimes must include a timezone offset")
        if self.startsAt >= self.endsAt:
            raise ValueError("startsAt must be before endsAt")
        return self


class OverrideResponse(BaseModel):
    id: str
    professionalId: str
    startsAt: datetime
    endsAt: datetime
    reason: Optional[str] = None

    @classmethod
    def from_entity(cls, override: ScheduleOverride) -> "OverrideResponse":
        return cls(
            id=override.id,
            professionalId=override.professional_id,
            startsAt=override.starts_at,
            endsAt=override.ends_at,
            reason=override.reason,
        )
