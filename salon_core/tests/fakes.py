"""
In-memory doubles shared by the test modules

Repositories keep deep copies so callers only see changes they persist,
the same way the SQL implementations behave.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from salon_core.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry, ExternalEventNotFoundError
from salon_core.config import SchedulingSettings, SyncSettings
from salon_core.domain.appointments.entities import Appointment
from salon_core.domain.appointments.repository import AppointmentRepository
from salon_core.domain.appointments.service import AppointmentService
from salon_core.domain.availability.entities import AvailabilityRule, ScheduleOverride
from salon_core.domain.availability.repository import AvailabilityRepository
from salon_core.domain.availability.service import AvailabilityService
from salon_core.domain.catalog.entities import Professional, Service
from salon_core.domain.catalog.repository import ProfessionalRepository, ServiceRepository
from salon_core.domain.customers.entities import Customer
from salon_core.domain.customers.repository import CustomerRepository
from salon_core.domain.customers.service import CustomerService
from salon_core.domain.errors import (
    AppointmentConflictError,
    AppointmentNotFoundError,
    ConcurrentModificationError,
    ConflictError,
    CustomerNotFoundError,
    InvalidStateTransitionError,
)
from salon_core.domain.sync.orchestrator import SyncOrchestrator
from salon_core.domain.sync.ports import BookingPort, CalendarPort, ExternalAppointment
from salon_core.domain.sync.registry import ProviderRegistry
from salon_core.domain.sync.retry import InMemoryRetryQueue
from salon_core.domain.sync.trigger import SyncTrigger
from salon_core.domain.value_objects import DateRange, Duration, Money, Phone
from salon_core.services.integration_credentials import IntegrationCredentials
from salon_core.services.notification_service import NotificationDispatcher, NotificationSender

TIMEZONE = "America/Sao_Paulo"
SP = ZoneInfo(TIMEZONE)

SALON_ID = "0b8f5a52-6a3e-4f59-9d43-3c1d2f0e9a10"
OTHER_SALON_ID = "7d2c1e4b-1f0a-4c3b-8e6d-5a9b8c7d6e5f"
ANA_ID = "1a1f3c7e-2b4d-4e6f-8a9b-0c1d2e3f4a5b"
BRUNO_ID = "2b2e4d8f-3c5e-4f70-9bac-1d2e3f4a5b6c"
CARLA_ID = "3c3f5e9a-4d6f-4a81-8cbd-2e3f4a5b6c7d"
CUT_ID = "4d4a6fab-5e7a-4b92-9dce-3f4a5b6c7d8e"
COLOR_ID = "5e5b7abc-6f8b-4ca3-8edf-4a5b6c7d8e9f"
RETIRED_ID = "6f6c8bcd-7a9c-4db4-9fea-5b6c7d8e9fa0"
MARIA_ID = "7a7d9cde-8bad-4ec5-8afb-6c7d8e9fa0b1"
JOAO_ID = "8b8eadef-9cbe-4fd6-9b0c-7d8e9fa0b1c2"

MARIA_PHONE = "5511987654321"
JOAO_PHONE = "5521998765432"

# Tuesday; every booking in the tests happens on the following Monday
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
MONDAY = date(2030, 1, 7)


def local(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    """Salon wall-clock time on the given day"""
    return datetime.combine(day, time(hour, minute), tzinfo=SP)


def scheduling_settings(**overrides) -> SchedulingSettings:
    values = dict(timezone=TIMEZONE, default_slot_duration_minutes=15, slot_step_minutes=None, initial_status="pending")
    values.update(overrides)
    return SchedulingSettings(**values)


def sync_settings(**overrides) -> SyncSettings:
    values = dict(provider_call_timeout=1.0, retry_delay_seconds=60, max_retries=3)
    values.update(overrides)
    return SyncSettings(**values)


def breaker_config(**overrides) -> CircuitBreakerConfig:
    values = dict(
        timeout=1.0,
        failure_threshold_percentage=50,
        minimum_calls=2,
        window_size=4,
        reset_timeout=10,
        half_open_max_calls=1,
    )
    values.update(overrides)
    return CircuitBreakerConfig(**values)


class FixedClock:
    """Callable clock whose time only moves when a test moves it"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class MonotonicClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


# ============================================================================
# REPOSITORIES
# ============================================================================


class InMemoryAppointmentRepository(AppointmentRepository):
    def __init__(self):
        self.items: dict[str, Appointment] = {}
        self.external_id_writes: list[tuple[str, str, Optional[str]]] = []
        self._lock = asyncio.Lock()

    async def find_by_id(self, salon_id: str, appointment_id: str) -> Optional[Appointment]:
        stored = self.items.get(appointment_id)
        if stored is None or stored.salon_id != salon_id:
            return None
        return copy.deepcopy(stored)

    async def find_by_salon(
        self, salon_id: str, starts_from: Optional[datetime] = None, starts_before: Optional[datetime] = None
    ) -> list[Appointment]:
        found = [
            a
            for a in self.items.values()
            if a.salon_id == salon_id
            and (starts_from is None or a.starts_at >= starts_from)
            and (starts_before is None or a.starts_at < starts_before)
        ]
        return [copy.deepcopy(a) for a in sorted(found, key=lambda a: a.starts_at)]

    async def find_by_professional_and_range(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[Appointment]:
        found = [
            a
            for a in self.items.values()
            if a.salon_id == salon_id
            and a.professional_id == professional_id
            and not a.is_cancelled
            and a.starts_at < range_end
            and a.ends_at > range_start
        ]
        return [copy.deepcopy(a) for a in sorted(found, key=lambda a: a.starts_at)]

    async def find_by_customer(
        self, salon_id: str, customer_id: str, starts_from: Optional[datetime] = None, include_cancelled: bool = False
    ) -> list[Appointment]:
        found = [
            a
            for a in self.items.values()
            if a.salon_id == salon_id
            and a.customer_id == customer_id
            and (starts_from is None or a.starts_at >= starts_from)
            and (include_cancelled or not a.is_cancelled)
        ]
        return [copy.deepcopy(a) for a in sorted(found, key=lambda a: a.starts_at)]

    async def save(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            if self._has_overlap(appointment):
                raise AppointmentConflictError()
            self.items[appointment.id] = copy.deepcopy(appointment)
        return appointment

    async def update(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            stored = self.items.get(appointment.id)
            if stored is None or stored.salon_id != appointment.salon_id:
                raise AppointmentNotFoundError(appointment.id)
            if stored.version != appointment.version:
                raise ConcurrentModificationError()
            if not appointment.is_cancelled and self._has_overlap(appointment):
                raise AppointmentConflictError()
            appointment.version += 1
            updated = copy.deepcopy(appointment)
            updated.external_ids = dict(stored.external_ids)
            self.items[appointment.id] = updated
        return appointment

    async def set_external_event_id(
        self, salon_id: str, appointment_id: str, provider: str, external_id: Optional[str]
    ) -> None:
        stored = self.items.get(appointment_id)
        if stored is None or stored.salon_id != salon_id:
            raise AppointmentNotFoundError(appointment_id)
        if external_id is not None and stored.is_cancelled:
            raise InvalidStateTransitionError(stored.status.value, "synced")
        if external_id is None:
            stored.external_ids.pop(provider, None)
        else:
            stored.external_ids[provider] = external_id
        self.external_id_writes.append((appointment_id, provider, external_id))

    def _has_overlap(self, appointment: Appointment) -> bool:
        return any(
            other.id != appointment.id
            and other.salon_id == appointment.salon_id
            and other.professional_id == appointment.professional_id
            and other.overlaps(appointment)
            for other in self.items.values()
        )


class InMemoryCustomerRepository(CustomerRepository):
    def __init__(self):
        self.items: dict[str, Customer] = {}
        self.find_by_ids_calls = 0

    async def find_by_id(self, salon_id: str, customer_id: str) -> Optional[Customer]:
        stored = self.items.get(customer_id)
        return copy.deepcopy(stored) if stored and stored.salon_id == salon_id else None

    async def find_by_ids(self, salon_id: str, customer_ids: Iterable[str]) -> list[Customer]:
        self.find_by_ids_calls += 1
        wanted = set(customer_ids)
        return [copy.deepcopy(c) for c in self.items.values() if c.salon_id == salon_id and c.id in wanted]

    async def find_by_phone(self, salon_id: str, phone: Phone) -> Optional[Customer]:
        for customer in self.items.values():
            if customer.salon_id == salon_id and customer.has_phone(phone):
                return copy.deepcopy(customer)
        return None

    async def find_by_salon(self, salon_id: str) -> list[Customer]:
        return [copy.deepcopy(c) for c in self.items.values() if c.salon_id == salon_id]

    async def save(self, customer: Customer) -> Customer:
        for phone in customer.all_phones():
            if await self.find_by_phone(customer.salon_id, phone):
                raise ConflictError(f"A customer with phone {phone.format()} already exists")
        self.items[customer.id] = copy.deepcopy(customer)
        return customer

    async def update(self, customer: Customer) -> Customer:
        if customer.id not in self.items:
            raise CustomerNotFoundError(customer.id)
        for phone in customer.all_phones():
            owner = await self.find_by_phone(customer.salon_id, phone)
            if owner and owner.id != customer.id:
                raise ConflictError("Phone number already belongs to another customer")
        self.items[customer.id] = copy.deepcopy(customer)
        return customer


class InMemoryProfessionalRepository(ProfessionalRepository):
    def __init__(self):
        self.items: dict[str, Professional] = {}
        self.find_by_ids_calls = 0

    async def find_by_id(self, salon_id: str, professional_id: str) -> Optional[Professional]:
        stored = self.items.get(professional_id)
        return copy.deepcopy(stored) if stored and stored.salon_id == salon_id else None

    async def find_by_ids(self, salon_id: str, professional_ids: Iterable[str]) -> list[Professional]:
        self.find_by_ids_calls += 1
        wanted = set(professional_ids)
        return [copy.deepcopy(p) for p in self.items.values() if p.salon_id == salon_id and p.id in wanted]

    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Professional]:
        return [
            copy.deepcopy(p)
            for p in self.items.values()
            if p.salon_id == salon_id and (p.is_active or not active_only)
        ]

    async def save(self, professional: Professional) -> Professional:
        self.items[professional.id] = copy.deepcopy(professional)
        return professional

    async def update(self, professional: Professional) -> Professional:
        self.items[professional.id] = copy.deepcopy(professional)
        return professional


class InMemoryServiceRepository(ServiceRepository):
    def __init__(self):
        self.items: dict[str, Service] = {}
        self.find_by_ids_calls = 0

    async def find_by_id(self, salon_id: str, service_id: str) -> Optional[Service]:
        stored = self.items.get(service_id)
        return copy.deepcopy(stored) if stored and stored.salon_id == salon_id else None

    async def find_by_ids(self, salon_id: str, service_ids: Iterable[str]) -> list[Service]:
        self.find_by_ids_calls += 1
        wanted = set(service_ids)
        return [copy.deepcopy(s) for s in self.items.values() if s.salon_id == salon_id and s.id in wanted]

    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Service]:
        return [
            copy.deepcopy(s)
            for s in self.items.values()
            if s.salon_id == salon_id and (s.is_active or not active_only)
        ]

    async def save(self, service: Service) -> Service:
        self.items[service.id] = copy.deepcopy(service)
        return service

    async def update(self, service: Service) -> Service:
        self.items[service.id] = copy.deepcopy(service)
        return service


class InMemoryAvailabilityRepository(AvailabilityRepository):
    def __init__(self):
        self.rules: list[tuple[str, AvailabilityRule]] = []
        self.overrides: list[tuple[str, ScheduleOverride]] = []

    async def find_rules(self, salon_id: str, professional_id: str) -> list[AvailabilityRule]:
        return [rule for salon, rule in self.rules if salon == salon_id and rule.professional_id == professional_id]

    async def find_overrides(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[ScheduleOverride]:
        return [
            override
            for salon, override in self.overrides
            if salon == salon_id
            and override.professional_id == professional_id
            and override.starts_at < range_end
            and override.ends_at > range_start
        ]

    async def save_rule(self, salon_id: str, rule: AvailabilityRule) -> AvailabilityRule:
        self.rules.append((salon_id, rule))
        return rule

    async def save_override(self, salon_id: str, override: ScheduleOverride) -> ScheduleOverride:
        self.overrides.append((salon_id, override))
        return override


# ============================================================================
# PROVIDERS
# ============================================================================


class _RecordingProvider:
    """Shared bookkeeping for the fake calendar and booking providers"""

    def __init__(self, configured: bool = True, busy: Optional[list[DateRange]] = None):
        self.configured = configured
        self.busy = busy or []
        self.remote: dict[str, ExternalAppointment] = {}
        self.calls: list[tuple[str, Optional[str]]] = []
        self.fail_with: Optional[Exception] = None
        self._counter = 0

    async def is_configured(self, salon_id: str) -> bool:
        return self.configured

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _create(self, appointment: ExternalAppointment) -> str:
        self.calls.append(("create", None))
        self._maybe_fail()
        self._counter += 1
        remote_id = f"{self.name}-{self._counter}"
        self.remote[remote_id] = appointment
        return remote_id

    def _update(self, remote_id: str, appointment: ExternalAppointment) -> None:
        self.calls.append(("update", remote_id))
        self._maybe_fail()
        if remote_id not in self.remote:
            raise ExternalEventNotFoundError(self.name)
        self.remote[remote_id] = appointment

    def _remove(self, remote_id: str) -> None:
        self.calls.append(("remove", remote_id))
        self._maybe_fail()
        if self.remote.pop(remote_id, None) is None:
            raise ExternalEventNotFoundError(self.name)

    def _busy(self) -> list[DateRange]:
        self.calls.append(("busy", None))
        self._maybe_fail()
        return list(self.busy)


class FakeCalendar(_RecordingProvider, CalendarPort):
    name = "google_calendar"

    async def create_event(self, appointment: ExternalAppointment) -> str:
        return self._create(appointment)

    async def update_event(self, event_id: str, appointment: ExternalAppointment) -> None:
        self._update(event_id, appointment)

    async def delete_event(self, event_id: str, appointment: ExternalAppointment) -> None:
        self._remove(event_id)

    async def free_busy(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        return self._busy()


class FakeBooking(_RecordingProvider, BookingPort):
    name = "trinks"

    async def create_booking(self, appointment: ExternalAppointment) -> str:
        return self._create(appointment)

    async def update_booking(self, booking_id: str, appointment: ExternalAppointment) -> None:
        self._update(booking_id, appointment)

    async def cancel_booking(self, booking_id: str, appointment: ExternalAppointment) -> None:
        self._remove(booking_id)

    async def busy_slots(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        return self._busy()


class RecordingTrigger(SyncTrigger):
    def __init__(self):
        self.events: list[tuple[str, str, str]] = []

    async def appointment_changed(self, salon_id: str, appointment_id: str) -> None:
        self.events.append(("changed", salon_id, appointment_id))

    async def appointment_cancelled(self, salon_id: str, appointment_id: str) -> None:
        self.events.append(("cancelled", salon_id, appointment_id))


class FakeSender(NotificationSender):
    name = "twilio"

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, to: str, body: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to, body))
        return f"SM{len(self.sent):04d}"


class FakeCredentialStore:
    """Stands in for IntegrationCredentialStore; keyed by (salon_id, provider)"""

    def __init__(self, credentials: Iterable[IntegrationCredentials] = ()):
        self.items = {(c.salon_id, c.provider): c for c in credentials}
        self.saved_tokens: list[tuple[str, str, str, datetime]] = []

    async def get(self, salon_id: str, provider: str) -> Optional[IntegrationCredentials]:
        return self.items.get((salon_id, provider))

    async def save_access_token(self, salon_id: str, provider: str, access_token: str, expires_at: datetime) -> None:
        self.saved_tokens.append((salon_id, provider, access_token, expires_at))
        creds = self.items.get((salon_id, provider))
        if creds is not None:
            creds.access_token = access_token
            creds.token_expires_at = expires_at


# ============================================================================
# WIRING
# ============================================================================


def monday_rules(professional_id: str) -> list[AvailabilityRule]:
    """Monday 09:00-17:00 with a lunch break from 12:00 to 13:00"""
    return [
        AvailabilityRule(f"{professional_id}-mon", professional_id, 1, time(9), time(17)),
        AvailabilityRule(f"{professional_id}-lunch", professional_id, 1, time(12), time(13), is_break=True),
    ]


@dataclass
class Harness:
    clock: FixedClock
    appointments: InMemoryAppointmentRepository
    customers: InMemoryCustomerRepository
    professionals: InMemoryProfessionalRepository
    services: InMemoryServiceRepository
    availability_repository: InMemoryAvailabilityRepository
    calendar: FakeCalendar
    booking: FakeBooking
    registry: ProviderRegistry
    breakers: CircuitBreakerRegistry
    retry_queue: InMemoryRetryQueue
    orchestrator: SyncOrchestrator
    trigger: RecordingTrigger
    sender: FakeSender
    notifications: NotificationDispatcher
    availability_service: AvailabilityService
    appointment_service: AppointmentService
    customer_service: CustomerService
    scheduling: SchedulingSettings = field(default_factory=scheduling_settings)


def build_harness(providers_configured: bool = False, **scheduling_overrides) -> Harness:
    """Fully wired services over in-memory storage, seeded with one salon"""
    clock = FixedClock()
    scheduling = scheduling_settings(**scheduling_overrides)
    sync = sync_settings()

    appointments = InMemoryAppointmentRepository()
    customers = InMemoryCustomerRepository()
    professionals = InMemoryProfessionalRepository()
    services = InMemoryServiceRepository()
    availability_repository = InMemoryAvailabilityRepository()

    calendar = FakeCalendar(configured=providers_configured)
    booking = FakeBooking(configured=providers_configured)
    registry = ProviderRegistry([calendar, booking])
    breakers = CircuitBreakerRegistry(breaker_config(), MonotonicClock())
    retry_queue = InMemoryRetryQueue()
    orchestrator = SyncOrchestrator(
        appointments, customers, professionals, services, registry, breakers, retry_queue, sync
    )
    trigger = RecordingTrigger()
    sender = FakeSender()
    notifications = NotificationDispatcher(sender, breakers, retry_queue, sync)

    availability_service = AvailabilityService(
        availability_repository, appointments, professionals, services, registry, breakers, scheduling, clock
    )
    appointment_service = AppointmentService(
        appointments,
        customers,
        professionals,
        services,
        availability_service,
        trigger,
        notifications,
        scheduling,
        clock,
    )
    customer_service = CustomerService(customers, clock)

    harness = Harness(
        clock=clock,
        appointments=appointments,
        customers=customers,
        professionals=professionals,
        services=services,
        availability_repository=availability_repository,
        calendar=calendar,
        booking=booking,
        registry=registry,
        breakers=breakers,
        retry_queue=retry_queue,
        orchestrator=orchestrator,
        trigger=trigger,
        sender=sender,
        notifications=notifications,
        availability_service=availability_service,
        appointment_service=appointment_service,
        customer_service=customer_service,
        scheduling=scheduling,
    )
    seed(harness)
    return harness


def seed(harness: Harness) -> None:
    """Ana cuts, Bruno cuts and colors, Carla is on leave"""
    harness.professionals.items = {
        ANA_ID: Professional(ANA_ID, SALON_ID, "Ana", service_ids={CUT_ID}),
        BRUNO_ID: Professional(
            BRUNO_ID, SALON_ID, "Bruno", service_ids={CUT_ID, COLOR_ID}, external_calendar_id="bruno@salon.com"
        ),
        CARLA_ID: Professional(CARLA_ID, SALON_ID, "Carla", is_active=False, service_ids={CUT_ID}),
    }
    harness.services.items = {
        CUT_ID: Service(CUT_ID, SALON_ID, "Corte", Duration(30), Money(Decimal("50"))),
        COLOR_ID: Service(COLOR_ID, SALON_ID, "Coloração", Duration(90), Money(Decimal("180"))),
        RETIRED_ID: Service(RETIRED_ID, SALON_ID, "Escova", Duration(45), Money(Decimal("60")), is_active=False),
    }
    harness.customers.items = {
        MARIA_ID: Customer(MARIA_ID, SALON_ID, Phone.from_persistence(MARIA_PHONE), "Maria"),
        JOAO_ID: Customer(JOAO_ID, SALON_ID, Phone.from_persistence(JOAO_PHONE), "João"),
    }
    for professional_id in (ANA_ID, BRUNO_ID, CARLA_ID):
        for rule in monday_rules(professional_id):
            harness.availability_repository.rules.append((SALON_ID, rule))


def make_appointment(
    starts_at: datetime,
    duration_minutes: int = 30,
    professional_id: str = ANA_ID,
    customer_id: str = MARIA_ID,
    service_id: str = CUT_ID,
    appointment_id: Optional[str] = None,
    now: datetime = NOW,
) -> Appointment:
    return Appointment.create(
        salon_id=SALON_ID,
        professional_id=professional_id,
        customer_id=customer_id,
        service_id=service_id,
        starts_at=starts_at,
        duration_minutes=duration_minutes,
        now=now,
        appointment_id=appointment_id,
    )
