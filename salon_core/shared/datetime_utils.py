"""Timezone helpers shared by repositories, services and adapters"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from ..config import SALON_TIMEZONE

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def salon_tz(name: Optional[str] = None) -> tzinfo:
    return ZoneInfo(name or SALON_TIMEZONE)


def to_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to UTC before it is stored or compared in SQL"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Databases without timezone support hand back naive UTC values"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def day_bounds(target_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Start of the day and start of the next day in the given timezone"""
    start = datetime.combine(target_date, time.min, tzinfo=tz)
    return start, datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)


def format_time(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%H:%M")
