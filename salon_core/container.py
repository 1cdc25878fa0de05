"""
Wiring - builds every collaborator once per process

Both the API (FastAPI lifespan) and the background worker (arq startup)
build their object graph here, so settings and adapters are passed in
explicitly instead of being looked up globally.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .auth import AccessChecker, StaticAccessChecker
from .circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from .config import DATABASE_URL, SALON_ACCESS_GRANTS, SchedulingSettings, SyncSettings
from .database import build_engine, build_session_factory
from .domain.appointments.repository import AppointmentRepository, SqlAppointmentRepository
from .domain.appointments.service import AppointmentService
from .domain.availability.repository import AvailabilityRepository, SqlAvailabilityRepository
from .domain.availability.service import AvailabilityService
from .domain.catalog.repository import (
    ProfessionalRepository,
    ServiceRepository,
    SqlProfessionalRepository,
    SqlServiceRepository,
)
from .domain.customers.repository import CustomerRepository, SqlCustomerRepository
from .domain.customers.service import CustomerService
from .domain.sync.orchestrator import SyncOrchestrator
from .domain.sync.registry import ProviderRegistry
from .domain.sync.retry import ArqRetryQueue, InMemoryRetryQueue, RetryQueue
from .domain.sync.trigger import ArqSyncTrigger, BackgroundSyncTrigger, SyncTrigger
from .services.google_calendar_service import GoogleCalendarService
from .services.integration_credentials import IntegrationCredentialStore
from .services.notification_service import NotificationDispatcher, TwilioWhatsAppSender
from .services.trinks_service import TrinksService
from .shared.datetime_utils import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class Container:
    engine: Optional[AsyncEngine]
    http: httpx.AsyncClient
    appointments: AppointmentRepository
    customers: CustomerRepository
    professionals: ProfessionalRepository
    services: ServiceRepository
    availability_repository: AvailabilityRepository
    registry: ProviderRegistry
    breakers: CircuitBreakerRegistry
    retry_queue: RetryQueue
    orchestrator: SyncOrchestrator
    trigger: SyncTrigger
    notifications: NotificationDispatcher
    availability_service: AvailabilityService
    appointment_service: AppointmentService
    customer_service: CustomerService
    access_checker: AccessChecker

    async def close(self) -> None:
        if isinstance(self.trigger, BackgroundSyncTrigger):
            await self.trigger.drain()
        await self.notifications.drain()
        await self.http.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("👋 Container closed")


def build_container(
    database_url: str = DATABASE_URL,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    http: Optional[httpx.AsyncClient] = None,
    redis=None,
    scheduling: Optional[SchedulingSettings] = None,
    sync: Optional[SyncSettings] = None,
    breaker_config: Optional[CircuitBreakerConfig] = None,
    access_checker: Optional[AccessChecker] = None,
    clock: Clock = utc_now,
) -> Container:
    """
    Build the object graph.

    Args:
        session_factory: Reuse an existing session factory (tests); otherwise an engine is created
        http: Shared httpx client; created with the provider timeout when omitted
        redis: arq redis pool; when given, sync and retries run on the worker
    """
    scheduling = scheduling or SchedulingSettings()
    sync = sync or SyncSettings()

    engine = None
    if session_factory is None:
        engine = build_engine(database_url)
        session_factory = build_session_factory(engine)
        serialize_writes = engine.dialect.name != "postgresql"
    else:
        serialize_writes = True

    http = http or httpx.AsyncClient(timeout=httpx.Timeout(sync.provider_call_timeout))

    appointments = SqlAppointmentRepository(session_factory, serialize_writes=serialize_writes)
    customers = SqlCustomerRepository(session_factory)
    professionals = SqlProfessionalRepository(session_factory)
    services = SqlServiceRepository(session_factory)
    availability_repository = SqlAvailabilityRepository(session_factory)

    credentials = IntegrationCredentialStore(session_factory)
    registry = ProviderRegistry(
        [
            GoogleCalendarService(http, credentials, professionals, scheduling, clock=clock),
            TrinksService(http, credentials, scheduling),
        ]
    )
    breakers = CircuitBreakerRegistry(breaker_config or CircuitBreakerConfig(timeout=sync.provider_call_timeout))
    retry_queue: RetryQueue = ArqRetryQueue(redis) if redis is not None else InMemoryRetryQueue()

    orchestrator = SyncOrchestrator(
        appointments, customers, professionals, services, registry, breakers, retry_queue, sync
    )
    trigger: SyncTrigger = ArqSyncTrigger(redis) if redis is not None else BackgroundSyncTrigger(orchestrator)
    notifications = NotificationDispatcher(TwilioWhatsAppSender(http), breakers, retry_queue, sync)

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

    logger.info(f"✅ Container ready (providers: {', '.join(registry.names)}, worker: {redis is not None})")
    return Container(
        engine=engine,
        http=http,
        appointments=appointments,
        customers=customers,
        professionals=professionals,
        services=services,
        availability_repository=availability_repository,
        registry=registry,
        breakers=breakers,
        retry_queue=retry_queue,
        orchestrator=orchestrator,
        trigger=trigger,
        notifications=notifications,
        availability_service=availability_service,
        appointment_service=appointment_service,
        customer_service=customer_service,
        access_checker=access_checker or StaticAccessChecker(SALON_ACCESS_GRANTS),
    )
