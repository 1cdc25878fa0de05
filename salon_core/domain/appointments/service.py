"""Appointment service - Business logic for booking, changing and cancelling appointments"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ...config import SchedulingSettings
from ...services.notification_service import (
    NotificationDispatcher,
    appointment_cancellation_message,
    appointment_confirmation_message,
)
from ...shared.datetime_utils import Clock, salon_tz, utc_now
from ...shared.result import Err, Ok, Result
from ..availability.service import AvailabilityService
from ..catalog.entities import Professional, Service
from ..catalog.repository import ProfessionalRepository, ServiceRepository
from ..customers.entities import Customer
from ..customers.repository import CustomerRepository
from ..errors import (
    AppointmentNotFoundError,
    CustomerNotFoundError,
    DomainError,
    InvalidStateTransitionError,
    PastAppointmentError,
    ProfessionalCannotPerformServiceError,
    ProfessionalNotAvailableError,
    ProfessionalNotFoundError,
    RequiredFieldError,
    ServiceNotBookableError,
    ServiceNotFoundError,
    SlotUnavailableError,
)
from ..sync.trigger import SyncTrigger
from ..value_objects import DateRange, Phone
from .entities import Appointment, AppointmentStatus
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)


@dataclass
class AppointmentDetails:
    """Appointment enriched with the names a caller shows to people"""

    appointment: Appointment
    customer_name: str
    professional_name: str
    service_name: str
    starts_at_display: str


@dataclass
class UpcomingAppointments:
    appointments: list[AppointmentDetails] = field(default_factory=list)
    message: str = ""

    @property
    def total(self) -> int:
        return len(self.appointments)


class AppointmentService:
    """Service layer for appointment use cases; every method returns Ok/Err"""

    def __init__(
        self,
        appointments: AppointmentRepository,
        customers: CustomerRepository,
        professionals: ProfessionalRepository,
        services: ServiceRepository,
        availability: AvailabilityService,
        trigger: SyncTrigger,
        notifications: NotificationDispatcher,
        settings: SchedulingSettings,
        clock: Clock = utc_now,
    ):
        self.appointments = appointments
        self.customers = customers
        self.professionals = professionals
        self.services = services
        self.availability = availability
        self.trigger = trigger
        self.notifications = notifications
        self.settings = settings
        self.clock = clock

    # ============================================================================
    # CREATE
    # ============================================================================

    async def create_appointment(
        self,
        salon_id: str,
        customer_id: str,
        professional_id: str,
        service_id: str,
        starts_at: datetime,
        notes: Optional[str] = None,
    ) -> Result[Appointment]:
        """
        Book a service with a professional.

        The slot is checked against the availability engine first; storage
        still rejects a booking that lost a race for the same slot.
        """
        logger.info(f"📥 Creating appointment for customer {customer_id} with professional {professional_id}")

        customer, professional, service = await asyncio.gather(
            self.customers.find_by_id(salon_id, customer_id),
            self.professionals.find_by_id(salon_id, professional_id),
            self.services.find_by_id(salon_id, service_id),
        )
        if customer is None:
            return Err(CustomerNotFoundError(customer_id))
        if professional is None:
            return Err(ProfessionalNotFoundError(professional_id))
        if service is None:
            return Err(ServiceNotFoundError(service_id))

        try:
            self._check_pairing(professional, service)
            appointment = Appointment.create(
                salon_id=salon_id,
                professional_id=professional_id,
                customer_id=customer_id,
                service_id=service_id,
                starts_at=starts_at,
                duration_minutes=service.duration_minutes,
                now=self.clock(),
                status=AppointmentStatus(self.settings.initial_status),
                notes=notes,
            )

            if not await self.availability.is_slot_free(salon_id, professional_id, appointment.date_range):
                logger.warning(f"⚠️ Slot {starts_at} unavailable for professional {professional_id}")
                raise SlotUnavailableError()

            saved = await self.appointments.save(appointment)
        except DomainError as e:
            return Err(e)

        logger.info(f"✅ Appointment created: {saved.id}")
        await self._trigger_sync(saved)
        self._notify(
            customer,
            appointment_confirmation_message(
                customer.name, service.name, professional.name, saved.starts_at, self.settings.timezone
            ),
        )
        return Ok(saved)

    # ============================================================================
    # UPDATE
    # ============================================================================

    async def update_appointment(
        self,
        salon_id: str,
        appointment_id: str,
        starts_at: Optional[datetime] = None,
        professional_id: Optional[str] = None,
        service_id: Optional[str] = None,
        notes: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Result[Appointment]:
        """
        Change time, professional, service, notes or confirm.

        Availability is re-checked only when the time, professional or
        service changes. External ids are kept so providers receive an update
        rather than a second event.
        """
        appointment = await self.appointments.find_by_id(salon_id, appointment_id)
        if appointment is None:
            return Err(AppointmentNotFoundError(appointment_id))

        now = self.clock()
        if appointment.has_started(now):
            return Err(PastAppointmentError())
        if appointment.is_cancelled:
            return Err(InvalidStateTransitionError(appointment.status.value, "modified"))

        target_professional_id = professional_id or appointment.professional_id
        target_service_id = service_id or appointment.service_id
        schedule_changed = (
            (starts_at is not None and starts_at != appointment.starts_at)
            or target_professional_id != appointment.professional_id
            or target_service_id != appointment.service_id
        )

        try:
            if schedule_changed:
                professional, service = await asyncio.gather(
                    self.professionals.find_by_id(salon_id, target_professional_id),
                    self.services.find_by_id(salon_id, target_service_id),
                )
                if professional is None:
                    return Err(ProfessionalNotFoundError(target_professional_id))
                if service is None:
                    return Err(ServiceNotFoundError(target_service_id))
                self._check_pairing(professional, service)

                if target_professional_id != appointment.professional_id:
                    appointment.change_professional(target_professional_id, now)
                if target_service_id != appointment.service_id:
                    appointment.change_service(target_service_id, now)

                new_start = starts_at or appointment.starts_at
                new_end = new_start + timedelta(minutes=service.duration_minutes)
                if new_start != appointment.starts_at or new_end != appointment.ends_at:
                    appointment.reschedule(new_start, new_end, now)

                if not await self.availability.is_slot_free(
                    salon_id,
                    appointment.professional_id,
                    DateRange(appointment.starts_at, appointment.ends_at),
                    exclude_appointment_id=appointment.id,
                ):
                    raise SlotUnavailableError()

            if notes is not None:
                appointment.update_notes(notes or None, now)

            if status is not None:
                target = AppointmentStatus(status)
                if target == AppointmentStatus.CONFIRMED:
                    appointment.confirm(now)
                elif target != appointment.status:
                    # Cancellation goes through delete_appointment so providers are cleaned up
                    raise InvalidStateTransitionError(appointment.status.value, target.value)

            saved = await self.appointments.update(appointment)
        except ValueError:
            return Err(InvalidStateTransitionError(appointment.status.value, str(status)))
        except DomainError as e:
            return Err(e)

        logger.info(f"✅ Appointment updated: {appointment_id}")
        await self._trigger_sync(saved)
        return Ok(saved)

    # ============================================================================
    # DELETE (soft cancellation)
    # ============================================================================

    async def delete_appointment(self, salon_id: str, appointment_id: str) -> Result[Appointment]:
        """Cancel the appointment and remove it from external providers"""
        appointment = await self.appointments.find_by_id(salon_id, appointment_id)
        if appointment is None:
            return Err(AppointmentNotFoundError(appointment_id))

        try:
            changed = appointment.cancel(self.clock())
            saved = await self.appointments.update(appointment) if changed else appointment
        except DomainError as e:
            return Err(e)

        logger.info(f"🗑️ Appointment cancelled: {appointment_id}")
        try:
            await self.trigger.appointment_cancelled(salon_id, appointment_id)
        except Exception as e:
            logger.error(f"❌ Could not trigger provider removal for appointment {appointment_id}: {e}")

        if changed:
            customer, service = await asyncio.gather(
                self.customers.find_by_id(salon_id, saved.customer_id),
                self.services.find_by_id(salon_id, saved.service_id),
            )
            if customer:
                self._notify(
                    customer,
                    appointment_cancellation_message(
                        customer.name, service.name if service else "serviço", saved.starts_at, self.settings.timezone
                    ),
                )
        return Ok(saved)

    # ============================================================================
    # QUERIES
    # ============================================================================

    async def get_upcoming_appointments(
        self, salon_id: str, customer_id: Optional[str] = None, phone: Optional[str] = None
    ) -> Result[UpcomingAppointments]:
        """
        Upcoming appointments of a customer, looked up by id or phone.

        Customers, professionals and services are fetched with one batched
        query each, however many appointments there are.
        """
        if not customer_id and not phone:
            return Err(RequiredFieldError("customer_id or phone"))

        if not customer_id:
            try:
                normalized = Phone.create(phone)
            except DomainError as e:
                return Err(e)
            customer = await self.customers.find_by_phone(salon_id, normalized)
            if customer is None:
                return Ok(UpcomingAppointments([], "There are no upcoming appointments"))
            customer_id = customer.id

        appointments = await self.appointments.find_by_customer(salon_id, customer_id, starts_from=self.clock())
        if not appointments:
            return Ok(UpcomingAppointments([], "There are no upcoming appointments"))

        customers, professionals, services = await asyncio.gather(
            self.customers.find_by_ids(salon_id, {a.customer_id for a in appointments}),
            self.professionals.find_by_ids(salon_id, {a.professional_id for a in appointments}),
            self.services.find_by_ids(salon_id, {a.service_id for a in appointments}),
        )
        customer_map = {c.id: c for c in customers}
        professional_map = {p.id: p for p in professionals}
        service_map = {s.id: s for s in services}

        tz = salon_tz(self.settings.timezone)
        details = [
            AppointmentDetails(
                appointment=a,
                customer_name=customer_map[a.customer_id].name if a.customer_id in customer_map else "Cliente",
                professional_name=(
                    professional_map[a.professional_id].name if a.professional_id in professional_map else "Profissional"
                ),
                service_name=service_map[a.service_id].name if a.service_id in service_map else "Serviço",
                starts_at_display=a.starts_at.astimezone(tz).strftime("%d/%m/%Y %H:%M"),
            )
            for a in sorted(appointments, key=lambda a: a.starts_at)
        ]
        return Ok(UpcomingAppointments(details, f"{len(details)} appointment(s) found"))

    # ============================================================================
    # HELPERS
    # ============================================================================

    @staticmethod
    def _check_pairing(professional: Professional, service: Service) -> None:
        if not professional.is_available():
            raise ProfessionalNotAvailableError(f'Professional "{professional.name}" is not available')
        if not service.is_bookable():
            raise ServiceNotBookableError(service.name)
        if not professional.can_perform_service(service.id):
            raise ProfessionalCannotPerformServiceError(professional.name, service.name)

    async def _trigger_sync(self, appointment: Appointment) -> None:
        try:
            await self.trigger.appointment_changed(appointment.salon_id, appointment.id)
        except Exception as e:
            logger.error(f"❌ Could not trigger sync for appointment {appointment.id}: {e}")

    def _notify(self, customer: Customer, body: str) -> None:
        try:
            self.notifications.dispatch_in_background(customer.phone.value, body)
        except Exception as e:
            logger.error(f"❌ Could not notify customer {customer.id}: {e}")
