"""Availability service - loads schedule data and runs the availability engine"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional

from ...circuit_breaker import CircuitBreakerRegistry
from ...config import SchedulingSettings
from ...shared.datetime_utils import Clock, day_bounds, format_time, salon_tz, utc_now
from ...shared.result import Err, Ok, Result
from ..appointments.entities import Appointment
from ..appointments.repository import AppointmentRepository
from ..catalog.repository import ProfessionalRepository, ServiceRepository
from ..errors import DomainError, InvalidDateRangeError, ProfessionalNotFoundError, ServiceNotFoundError
from ..sync.registry import ProviderRegistry
from ..value_objects import DateRange
from .engine import compute_slots, is_range_free
from .entities import AvailabilityRule, ScheduleOverride, TimeSlot
from .repository import AvailabilityRepository

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    professional_id: str
    date: date
    duration_minutes: int
    slots: list[TimeSlot] = field(default_factory=list)
    message: str = ""

    @property
    def available_count(self) -> int:
        return sum(1 for slot in self.slots if slot.available)


@dataclass
class DaySchedule:
    rules: list[AvailabilityRule]
    overrides: list[ScheduleOverride]
    appointments: list[Appointment]
    external_busy: list[DateRange]


class AvailabilityService:
    def __init__(
        self,
        availability: AvailabilityRepository,
        appointments: AppointmentRepository,
        professionals: ProfessionalRepository,
        services: ServiceRepository,
        registry: ProviderRegistry,
        breakers: CircuitBreakerRegistry,
        settings: SchedulingSettings,
        clock: Clock = utc_now,
    ):
        self.availability = availability
        self.appointments = appointments
        self.professionals = professionals
        self.services = services
        self.registry = registry
        self.breakers = breakers
        self.settings = settings
        self.clock = clock

    @property
    def tz(self):
        return salon_tz(self.settings.timezone)

    async def get_available_slots(
        self,
        salon_id: str,
        professional_id: str,
        target_date: date,
        service_id: Optional[str] = None,
        duration_minutes: Optional[int] = None,
    ) -> Result[AvailabilityResult]:
        """
        Free slots of a professional on a date.

        The slot length is the service duration when a service is given,
        otherwise `duration_minutes` or the configured default. When the date
        is today, slots that already started are left out.
        """
        try:
            professional = await self.professionals.find_by_id(salon_id, professional_id)
            if professional is None:
                return Err(ProfessionalNotFoundError(professional_id))

            duration = duration_minutes or self.settings.default_slot_duration_minutes
            if service_id:
                service = await self.services.find_by_id(salon_id, service_id)
                if service is None:
                    return Err(ServiceNotFoundError(service_id))
                duration = service.duration_minutes

            now = self.clock()
            today = now.astimezone(self.tz).date()
            if target_date < today:
                return Ok(
                    AvailabilityResult(professional_id, target_date, duration, [], "There are no slots in the past")
                )

            schedule = await self.load_day(salon_id, professional_id, target_date)
            slots = compute_slots(
                professional_id,
                target_date,
                duration,
                schedule.rules,
                schedule.overrides,
                schedule.appointments,
                schedule.external_busy,
                step_minutes=self.settings.slot_step_minutes,
                tz=self.tz,
                not_before=now if target_date == today else None,
            )
        except DomainError as e:
            return Err(e)

        result = AvailabilityResult(professional_id, target_date, duration, slots)
        result.message = (
            "No available times on this date"
            if not slots
            else f"{result.available_count} available time(s): "
            + ", ".join(format_time(slot.start, self.tz) for slot in slots)
        )
        logger.info(f"📅 {result.available_count} slots for professional {professional_id} on {target_date}")
        return Ok(result)

    async def is_slot_free(
        self,
        salon_id: str,
        professional_id: str,
        requested: DateRange,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True when the interval fits the professional's free time (ignoring one appointment being moved)"""
        target_date = requested.start.astimezone(self.tz).date()
        schedule = await self.load_day(salon_id, professional_id, target_date)
        appointments = [a for a in schedule.appointments if a.id != exclude_appointment_id]
        return is_range_free(
            professional_id,
            requested,
            schedule.rules,
            schedule.overrides,
            appointments,
            schedule.external_busy,
            self.tz,
        )

    async def load_day(self, salon_id: str, professional_id: str, target_date: date) -> DaySchedule:
        """Rules, overrides, appointments and external busy time for one day, fetched concurrently"""
        day_start, day_end = day_bounds(target_date, self.tz)
        rules, overrides, appointments, external_busy = await asyncio.gather(
            self.availability.find_rules(salon_id, professional_id),
            self.availability.find_overrides(salon_id, professional_id, day_start, day_end),
            self.appointments.find_by_professional_and_range(salon_id, professional_id, day_start, day_end),
            self._external_busy(salon_id, professional_id, day_start, day_end),
        )
        return DaySchedule(rules, overrides, appointments, external_busy)

    async def get_professional_rules(self, salon_id: str, professional_id: str) -> Result[list[AvailabilityRule]]:
        professional = await self.professionals.find_by_id(salon_id, professional_id)
        if professional is None:
            return Err(ProfessionalNotFoundError(professional_id))
        rules = await self.availability.find_rules(salon_id, professional_id)
        return Ok(sorted(rules, key=lambda r: (r.day_of_week, r.start_time)))

    async def add_rule(
        self,
        salon_id: str,
        professional_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        is_break: bool = False,
    ) -> Result[AvailabilityRule]:
        professional = await self.professionals.find_by_id(salon_id, professional_id)
        if professional is None:
            return Err(ProfessionalNotFoundError(professional_id))

        try:
            rule = AvailabilityRule(str(uuid.uuid4()), professional_id, day_of_week, start_time, end_time, is_break)
        except DomainError as e:
            return Err(e)

        saved = await self.availability.save_rule(salon_id, rule)
        kind = "break" if is_break else "working hours"
        logger.info(f"✅ {kind.capitalize()} added for professional {professional_id} on {rule.day_name}")
        return Ok(saved)

    async def add_override(
        self,
        salon_id: str,
        professional_id: str,
        starts_at: datetime,
        ends_at: datetime,
        reason: Optional[str] = None,
    ) -> Result[ScheduleOverride]:
        """Block a one-off interval in the professional's schedule"""
        professional = await self.professionals.find_by_id(salon_id, professional_id)
        if professional is None:
            return Err(ProfessionalNotFoundError(professional_id))
        if starts_at.tzinfo is None or ends_at.tzinfo is None:
            return Err(InvalidDateRangeError("Override times must be timezone-aware"))

        try:
            override = ScheduleOverride(str(uuid.uuid4()), professional_id, starts_at, ends_at, reason)
        except DomainError as e:
            return Err(e)

        saved = await self.availability.save_override(salon_id, override)
        logger.info(f"✅ Schedule override added for professional {professional_id}: {starts_at} - {ends_at}")
        return Ok(saved)

    async def _external_busy(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        """Busy intervals from every configured provider; provider failures are ignored"""
        providers = await self.registry.configured_for(salon_id)
        if not providers:
            return []

        outcomes = await asyncio.gather(
            *(
                self.breakers.get(provider.name).call(
                    lambda provider=provider: provider.busy_intervals(salon_id, professional_id, range_start, range_end)
                )
                for provider in providers
            ),
            return_exceptions=True,
        )

        busy: list[DateRange] = []
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"⚠️ Ignoring busy time from '{provider.name}': {outcome}")
                continue
            busy.extend(outcome)
        return busy
