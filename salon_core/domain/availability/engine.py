"""
Availability engine

Pure computation of bookable time slots for one professional on one date.
Nothing here touches storage or the network: callers load the rules,
overrides, appointments and external busy intervals and pass them in.

Algorithm:
1. Non-break rules for the date's weekday become open ranges (merged, so
   duplicate or overlapping rules count once).
2. Break rules, overrides, non-cancelled appointments and external busy
   intervals are subtracted, leaving free ranges.
3. A window of the service duration slides across each free range at a
   fixed step (the duration itself unless a granularity is given).
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from ...config import SALON_TIMEZONE
from ..appointments.entities import Appointment
from ..errors import OutOfRangeError
from ..value_objects import DateRange
from .entities import AvailabilityRule, ScheduleOverride, TimeSlot


def merge_ranges(ranges: Iterable[DateRange]) -> list[DateRange]:
    """Sort and merge overlapping or touching ranges"""
    merged: list[DateRange] = []
    for current in sorted(ranges, key=lambda r: (r.start, r.end)):
        if current.is_empty():
            continue
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = DateRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def subtract_ranges(ranges: Iterable[DateRange], busy: Iterable[DateRange]) -> list[DateRange]:
    free = list(ranges)
    for blocked in merge_ranges(busy):
        remaining = []
        for candidate in free:
            remaining.extend(part for part in candidate.subtract(blocked) if not part.is_empty())
        free = remaining
    return free


def free_ranges(
    professional_id: str,
    target_date: date,
    rules: Iterable[AvailabilityRule],
    overrides: Iterable[ScheduleOverride] = (),
    appointments: Iterable[Appointment] = (),
    external_busy: Iterable[DateRange] = (),
    tz: Optional[tzinfo] = None,
) -> list[DateRange]:
    """Open working ranges for the date minus everything that blocks them"""
    tz = tz or ZoneInfo(SALON_TIMEZONE)

    day_rules = [rule for rule in rules if rule.applies_to(target_date)]
    open_ranges = merge_ranges(rule.to_range(target_date, tz) for rule in day_rules if not rule.is_break)
    if not open_ranges:
        return []

    busy = [rule.to_range(target_date, tz) for rule in day_rules if rule.is_break]
    busy.extend(override.date_range for override in overrides)
    busy.extend(
        appointment.date_range
        for appointment in appointments
        if not appointment.is_cancelled and appointment.professional_id == professional_id
    )
    busy.extend(external_busy)

    return subtract_ranges(open_ranges, busy)


def compute_slots(
    professional_id: str,
    target_date: date,
    duration_minutes: int,
    rules: Iterable[AvailabilityRule],
    overrides: Iterable[ScheduleOverride] = (),
    appointments: Iterable[Appointment] = (),
    external_busy: Iterable[DateRange] = (),
    step_minutes: Optional[int] = None,
    tz: Optional[tzinfo] = None,
    not_before: Optional[datetime] = None,
) -> list[TimeSlot]:
    """
    Compute the available slots for a professional on a date.

    Args:
        duration_minutes: Length of the requested service
        step_minutes: Distance between consecutive slot starts (defaults to the duration)
        tz: Timezone the weekly rules are expressed in (defaults to the salon timezone)
        not_before: Slots starting at or before this instant are dropped (used for "today")

    Returns:
        Sorted list of available TimeSlots. An empty list means no availability,
        never an error.
    """
    if duration_minutes <= 0:
        raise OutOfRangeError("duration_minutes", min_value=1)
    if step_minutes is not None and step_minutes <= 0:
        raise OutOfRangeError("step_minutes", min_value=1)

    length = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes or duration_minutes)

    slots: list[TimeSlot] = []
    for free in free_ranges(professional_id, target_date, rules, overrides, appointments, external_busy, tz):
        cursor = free.start
        while cursor + length <= free.end:
            if not_before is None or cursor > not_before:
                slots.append(TimeSlot(cursor, cursor + length, True, professional_id))
            cursor += step

    return sorted(set(slots), key=lambda slot: slot.start)


def is_range_free(
    professional_id: str,
    requested: DateRange,
    rules: Iterable[AvailabilityRule],
    overrides: Iterable[ScheduleOverride] = (),
    appointments: Iterable[Appointment] = (),
    external_busy: Iterable[DateRange] = (),
    tz: Optional[tzinfo] = None,
) -> bool:
    """True when the requested interval lies entirely inside one free range"""
    tz = tz or ZoneInfo(SALON_TIMEZONE)
    target_date = requested.start.astimezone(tz).date()
    return any(
        free.contains_range(requested)
        for free in free_ranges(professional_id, target_date, rules, overrides, appointments, external_busy, tz)
    )
