"""
External synchronization orchestrator

Keeps appointments mirrored on every provider configured for the salon.
The local store is the source of truth: this always runs after the local
write, fans out to providers in parallel, and reports a per-provider
boolean. One provider failing never fails the whole operation; retryable
failures are handed to the retry queue.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from ...circuit_breaker import CircuitBreakerRegistry, ExternalEventNotFoundError, IntegrationError
from ...config import SyncSettings
from ..appointments.entities import Appointment
from ..appointments.repository import AppointmentRepository
from ..catalog.repository import ProfessionalRepository, ServiceRepository
from ..customers.repository import CustomerRepository
from .ports import ExternalAppointment, ExternalProvider
from .registry import ProviderRegistry
from .retry import REMOVE_OPERATION, SYNC_OPERATION, RetryQueue, SyncJob

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    def __init__(
        self,
        appointments: AppointmentRepository,
        customers: CustomerRepository,
        professionals: ProfessionalRepository,
        services: ServiceRepository,
        registry: ProviderRegistry,
        breakers: CircuitBreakerRegistry,
        retry_queue: RetryQueue,
        settings: SyncSettings,
    ):
        self.appointments = appointments
        self.customers = customers
        self.professionals = professionals
        self.services = services
        self.registry = registry
        self.breakers = breakers
        self.retry_queue = retry_queue
        self.settings = settings
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # ============================================================================
    # PUBLIC OPERATIONS
    # ============================================================================

    async def sync_appointment(
        self, salon_id: str, appointment_id: str, providers: Optional[Iterable[str]] = None, attempt: int = 0
    ) -> dict[str, bool]:
        """
        Create or update the appointment on every configured provider.

        A provider that already holds an id for the appointment gets an
        update (re-created if it reports the event missing); otherwise a
        create whose returned id is stored. Cancelled appointments are
        routed to removal.

        Returns:
            {provider_name: succeeded}
        """
        async with self._lock_for(appointment_id):
            appointment = await self.appointments.find_by_id(salon_id, appointment_id)
            if appointment is None:
                logger.warning(f"⚠️ Sync skipped: appointment {appointment_id} not found in salon {salon_id}")
                return {}

            if appointment.is_cancelled:
                return await self._remove_locked(appointment, providers, attempt)

            targets = await self.registry.configured_for(salon_id, providers)
            if not targets:
                return {}

            payload = await self._build_payload(appointment)
            outcomes = await asyncio.gather(
                *(self._sync_one(provider, appointment, payload, attempt) for provider in targets)
            )
            results = {provider.name: ok for provider, ok in zip(targets, outcomes)}
            logger.info(f"📅 Sync of appointment {appointment_id}: {results}")
            return results

    async def remove_appointment(
        self, salon_id: str, appointment_id: str, providers: Optional[Iterable[str]] = None, attempt: int = 0
    ) -> dict[str, bool]:
        """
        Delete/cancel the remote counterparts of an appointment.

        The stored external id is cleared only after the provider confirms
        removal or reports it as already gone.
        """
        async with self._lock_for(appointment_id):
            appointment = await self.appointments.find_by_id(salon_id, appointment_id)
            if appointment is None:
                logger.warning(f"⚠️ Removal skipped: appointment {appointment_id} not found in salon {salon_id}")
                return {}
            return await self._remove_locked(appointment, providers, attempt)

    # ============================================================================
    # PER-PROVIDER STEPS
    # ============================================================================

    async def _sync_one(
        self, provider: ExternalProvider, appointment: Appointment, payload: ExternalAppointment, attempt: int
    ) -> bool:
        breaker = self.breakers.get(provider.name)
        external_id = appointment.external_event_id(provider.name)

        try:
            if external_id:
                try:
                    await breaker.call(lambda: provider.update(external_id, payload))
                    logger.info(f"✅ {provider.name}: updated {external_id} for appointment {appointment.id}")
                    return True
                except ExternalEventNotFoundError:
                    logger.warning(
                        f"⚠️ {provider.name}: remote {external_id} missing, re-creating for appointment {appointment.id}"
                    )

            new_id = await breaker.call(lambda: provider.create(payload))

        except IntegrationError as e:
            logger.error(f"❌ {provider.name}: sync of appointment {appointment.id} failed: {e.message}")
            await self._schedule_retry(SYNC_OPERATION, appointment, provider.name, attempt, e.retryable)
            return False
        except Exception as e:
            logger.exception(f"❌ {provider.name}: unexpected error syncing appointment {appointment.id}: {e}")
            await self._schedule_retry(SYNC_OPERATION, appointment, provider.name, attempt, True)
            return False

        try:
            await self.appointments.set_external_event_id(appointment.salon_id, appointment.id, provider.name, new_id)
        except Exception as e:
            logger.error(
                f"❌ {provider.name}: created {new_id} for appointment {appointment.id} but could not store it: {e}"
            )
            await self._discard_created(provider, appointment, payload, new_id, attempt)
            return False

        appointment.external_ids[provider.name] = new_id
        logger.info(f"✅ {provider.name}: created {new_id} for appointment {appointment.id}")
        return True

    async def _discard_created(
        self,
        provider: ExternalProvider,
        appointment: Appointment,
        payload: ExternalAppointment,
        new_id: str,
        attempt: int,
    ) -> None:
        """
        Remove a remote record whose id could not be stored locally.

        A sync retry is scheduled only once the record is gone; otherwise
        the retry would create a second one. If removal fails too, the
        orphaned id is logged and no retry is made.
        """
        try:
            await self.breakers.get(provider.name).call(lambda: provider.remove(new_id, payload))
        except ExternalEventNotFoundError:
            logger.info(f"ℹ️ {provider.name}: {new_id} already removed")
        except Exception as e:
            logger.error(
                f"❌ {provider.name}: orphaned remote {new_id} for appointment {appointment.id}, "
                f"remove it by hand: {e}"
            )
            return

        logger.warning(f"⚠️ {provider.name}: discarded {new_id}, appointment {appointment.id} will be synced again")
        await self._schedule_retry(SYNC_OPERATION, appointment, provider.name, attempt, True)

    async def _remove_locked(
        self, appointment: Appointment, providers: Optional[Iterable[str]], attempt: int
    ) -> dict[str, bool]:
        wanted = set(providers) if providers is not None else None
        names = [name for name in appointment.external_ids if wanted is None or name in wanted]
        if not names:
            return {}

        payload = await self._build_payload(appointment)
        outcomes = await asyncio.gather(*(self._remove_one(name, appointment, payload, attempt) for name in names))
        results = dict(zip(names, outcomes))
        logger.info(f"📅 Removal of appointment {appointment.id}: {results}")
        return results

    async def _remove_one(self, name: str, appointment: Appointment, payload: ExternalAppointment, attempt: int) -> bool:
        provider = self.registry.get(name)
        if provider is None:
            logger.warning(f"⚠️ Provider '{name}' is not registered, keeping its id on appointment {appointment.id}")
            return False

        external_id = appointment.external_ids[name]
        try:
            try:
                await self.breakers.get(name).call(lambda: provider.remove(external_id, payload))
                logger.info(f"✅ {name}: removed {external_id} for appointment {appointment.id}")
            except ExternalEventNotFoundError:
                logger.info(f"ℹ️ {name}: {external_id} already removed")

            await self.appointments.set_external_event_id(appointment.salon_id, appointment.id, name, None)
            appointment.external_ids.pop(name, None)
            return True

        except IntegrationError as e:
            logger.error(f"❌ {name}: removal for appointment {appointment.id} failed: {e.message}")
            await self._schedule_retry(REMOVE_OPERATION, appointment, name, attempt, e.retryable)
            return False
        except Exception as e:
            logger.exception(f"❌ {name}: unexpected error removing appointment {appointment.id}: {e}")
            await self._schedule_retry(REMOVE_OPERATION, appointment, name, attempt, True)
            return False

    # ============================================================================
    # HELPERS
    # ============================================================================

    async def _schedule_retry(
        self, operation: str, appointment: Appointment, provider: str, attempt: int, retryable: bool
    ) -> None:
        if not retryable:
            logger.warning(f"⚠️ {provider}: non-retryable failure for appointment {appointment.id}, not retrying")
            return

        next_attempt = attempt + 1
        if next_attempt > self.settings.max_retries:
            logger.error(
                f"❌ {provider}: giving up on {operation} of appointment {appointment.id} after {attempt} retries"
            )
            return

        job = SyncJob(operation, appointment.salon_id, appointment.id, provider, next_attempt)
        try:
            await self.retry_queue.schedule(job, self.settings.retry_delay(next_attempt))
        except Exception as e:
            logger.error(f"❌ Could not schedule retry {job.job_id}: {e}")

    async def _build_payload(self, appointment: Appointment) -> ExternalAppointment:
        customer, professional, service = await asyncio.gather(
            self.customers.find_by_id(appointment.salon_id, appointment.customer_id),
            self.professionals.find_by_id(appointment.salon_id, appointment.professional_id),
            self.services.find_by_id(appointment.salon_id, appointment.service_id),
        )
        return ExternalAppointment(
            appointment_id=appointment.id,
            salon_id=appointment.salon_id,
            professional_id=appointment.professional_id,
            customer_id=appointment.customer_id,
            service_id=appointment.service_id,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            status=appointment.status.value,
            notes=appointment.notes,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone.value if customer else None,
            customer_email=customer.email.value if customer and customer.email else None,
            professional_name=professional.name if professional else None,
            professional_calendar_id=professional.external_calendar_id if professional else None,
            service_name=service.name if service else None,
        )

    @asynccontextmanager
    async def _lock_for(self, appointment_id: str):
        """Serialize sync/removal per appointment id; idle locks are dropped"""
        lock = self._locks.setdefault(appointment_id, asyncio.Lock())
        self._lock_users[appointment_id] = self._lock_users.get(appointment_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[appointment_id] -= 1
            if self._lock_users[appointment_id] == 0:
                del self._lock_users[appointment_id]
                del self._locks[appointment_id]
