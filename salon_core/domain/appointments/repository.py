"""Appointment repository - contract and SQLAlchemy implementation"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ... import models
from ...shared.datetime_utils import from_storage, to_utc
from ..errors import (
    AppointmentConflictError,
    AppointmentNotFoundError,
    ConcurrentModificationError,
    InvalidStateTransitionError,
)
from .entities import Appointment, AppointmentStatus


class AppointmentRepository(ABC):
    """
    Storage contract for appointments. Every query is scoped by salon id.

    Implementations must guarantee that no two non-cancelled appointments of
    the same professional overlap, raising AppointmentConflictError on
    violation, and must reject stale updates with ConcurrentModificationError.
    """

    @abstractmethod
    async def find_by_id(self, salon_id: str, appointment_id: str) -> Optional[Appointment]: ...

    @abstractmethod
    async def find_by_salon(
        self, salon_id: str, starts_from: Optional[datetime] = None, starts_before: Optional[datetime] = None
    ) -> list[Appointment]: ...

    @abstractmethod
    async def find_by_professional_and_range(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[Appointment]:
        """Non-cancelled appointments intersecting [range_start, range_end)"""

    @abstractmethod
    async def find_by_customer(
        self, salon_id: str, customer_id: str, starts_from: Optional[datetime] = None, include_cancelled: bool = False
    ) -> list[Appointment]: ...

    @abstractmethod
    async def save(self, appointment: Appointment) -> Appointment: ...

    @abstractmethod
    async def update(self, appointment: Appointment) -> Appointment:
        """Persist changes if `appointment.version` is still current; bumps the version"""

    @abstractmethod
    async def set_external_event_id(
        self, salon_id: str, appointment_id: str, provider: str, external_id: Optional[str]
    ) -> None:
        """
        Record or clear (None) a provider id without touching status or version.

        Recording a new id on a cancelled appointment raises
        InvalidStateTransitionError; clearing is always allowed.
        """


class SqlAppointmentRepository(AppointmentRepository):
    """
    SQLAlchemy implementation.

    On Postgres the `appointments_no_overlap` exclusion constraint is the
    backstop. `serialize_writes` additionally runs check-then-write under a
    process-wide lock for dialects without exclusion constraints.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], serialize_writes: bool = False):
        self._session_factory = session_factory
        self._serialize_writes = serialize_writes
        self._write_lock = asyncio.Lock()

    async def find_by_id(self, salon_id: str, appointment_id: str) -> Optional[Appointment]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(models.Appointment).where(
                        models.Appointment.id == appointment_id, models.Appointment.salon_id == salon_id
                    )
                )
            ).scalar_one_or_none()
            return self._to_entity(row) if row else None

    async def find_by_salon(
        self, salon_id: str, starts_from: Optional[datetime] = None, starts_before: Optional[datetime] = None
    ) -> list[Appointment]:
        query = select(models.Appointment).where(models.Appointment.salon_id == salon_id)
        if starts_from:
            query = query.where(models.Appointment.starts_at >= to_utc(starts_from))
        if starts_before:
            query = query.where(models.Appointment.starts_at < to_utc(starts_before))

        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.Appointment.starts_at))).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def find_by_professional_and_range(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[Appointment]:
        query = select(models.Appointment).where(
            models.Appointment.salon_id == salon_id,
            models.Appointment.professional_id == professional_id,
            models.Appointment.status != AppointmentStatus.CANCELLED.value,
            models.Appointment.starts_at < to_utc(range_end),
            models.Appointment.ends_at > to_utc(range_start),
        )
        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.Appointment.starts_at))).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def find_by_customer(
        self, salon_id: str, customer_id: str, starts_from: Optional[datetime] = None, include_cancelled: bool = False
    ) -> list[Appointment]:
        query = select(models.Appointment).where(
            models.Appointment.salon_id == salon_id, models.Appointment.customer_id == customer_id
        )
        if starts_from:
            query = query.where(models.Appointment.starts_at >= to_utc(starts_from))
        if not include_cancelled:
            query = query.where(models.Appointment.status != AppointmentStatus.CANCELLED.value)

        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.Appointment.starts_at))).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def save(self, appointment: Appointment) -> Appointment:
        if self._serialize_writes:
            async with self._write_lock:
                return await self._insert(appointment)
        return await self._insert(appointment)

    async def update(self, appointment: Appointment) -> Appointment:
        if self._serialize_writes:
            async with self._write_lock:
                return await self._update(appointment)
        return await self._update(appointment)

    async def set_external_event_id(
        self, salon_id: str, appointment_id: str, provider: str, external_id: Optional[str]
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                status = (
                    await session.execute(
                        select(models.Appointment.status).where(
                            models.Appointment.id == appointment_id, models.Appointment.salon_id == salon_id
                        )
                    )
                ).scalar_one_or_none()
                if status is None:
                    raise AppointmentNotFoundError(appointment_id)
                # Ids may only be cleared once the appointment is cancelled
                if external_id is not None and status == AppointmentStatus.CANCELLED.value:
                    raise InvalidStateTransitionError(status, "synced")

                ref = (
                    await session.execute(
                        select(models.AppointmentExternalRef).where(
                            models.AppointmentExternalRef.appointment_id == appointment_id,
                            models.AppointmentExternalRef.provider == provider,
                        )
                    )
                ).scalar_one_or_none()

                if external_id is None:
                    if ref is not None:
                        await session.execute(
                            delete(models.AppointmentExternalRef).where(models.AppointmentExternalRef.id == ref.id)
                        )
                elif ref is None:
                    session.add(
                        models.AppointmentExternalRef(
                            appointment_id=appointment_id, provider=provider, external_id=external_id
                        )
                    )
                else:
                    ref.external_id = external_id

    # ------------------------------------------------------------------

    async def _insert(self, appointment: Appointment) -> Appointment:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if await self._has_overlap(session, appointment):
                        raise AppointmentConflictError()
                    row = self._to_row(appointment)
                    row.external_refs = [
                        models.AppointmentExternalRef(provider=provider, external_id=external_id)
                        for provider, external_id in appointment.external_ids.items()
                    ]
                    session.add(row)
            except IntegrityError as e:
                raise AppointmentConflictError() from e
        return appointment

    async def _update(self, appointment: Appointment) -> Appointment:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if not appointment.is_cancelled and await self._has_overlap(session, appointment):
                        raise AppointmentConflictError()

                    values = {
                        "professional_id": appointment.professional_id,
                        "service_id": appointment.service_id,
                        "starts_at": to_utc(appointment.starts_at),
                        "ends_at": to_utc(appointment.ends_at),
                        "status": appointment.status.value,
                        "notes": appointment.notes,
                        "version": appointment.version + 1,
                    }
                    if appointment.updated_at:
                        values["updated_at"] = to_utc(appointment.updated_at)

                    result = await session.execute(
                        update(models.Appointment)
                        .where(
                            models.Appointment.id == appointment.id,
                            models.Appointment.salon_id == appointment.salon_id,
                            models.Appointment.version == appointment.version,
                        )
                        .values(**values)
                    )
                    if result.rowcount == 0:
                        exists = (
                            await session.execute(
                                select(models.Appointment.id).where(
                                    models.Appointment.id == appointment.id,
                                    models.Appointment.salon_id == appointment.salon_id,
                                )
                            )
                        ).scalar_one_or_none()
                        if exists is None:
                            raise AppointmentNotFoundError(appointment.id)
                        raise ConcurrentModificationError()
            except IntegrityError as e:
                raise AppointmentConflictError() from e

        appointment.version += 1
        return appointment

    @staticmethod
    async def _has_overlap(session: AsyncSession, appointment: Appointment) -> bool:
        query = select(models.Appointment.id).where(
            and_(
                models.Appointment.salon_id == appointment.salon_id,
                models.Appointment.professional_id == appointment.professional_id,
                models.Appointment.id != appointment.id,
                models.Appointment.status != AppointmentStatus.CANCELLED.value,
                models.Appointment.starts_at < to_utc(appointment.ends_at),
                models.Appointment.ends_at > to_utc(appointment.starts_at),
            )
        )
        return (await session.execute(query.limit(1))).first() is not None

    @staticmethod
    def _to_row(appointment: Appointment) -> models.Appointment:
        row = models.Appointment(
            id=appointment.id,
            salon_id=appointment.salon_id,
            professional_id=appointment.professional_id,
            customer_id=appointment.customer_id,
            service_id=appointment.service_id,
            starts_at=to_utc(appointment.starts_at),
            ends_at=to_utc(appointment.ends_at),
            status=appointment.status.value,
            notes=appointment.notes,
            version=appointment.version,
        )
        # Leave server defaults in charge when the entity carries no timestamps
        if appointment.created_at:
            row.created_at = to_utc(appointment.created_at)
        if appointment.updated_at:
            row.updated_at = to_utc(appointment.updated_at)
        return row

    @staticmethod
    def _to_entity(row: models.Appointment) -> Appointment:
        return Appointment(
            id=row.id,
            salon_id=row.salon_id,
            professional_id=row.professional_id,
            customer_id=row.customer_id,
            service_id=row.service_id,
            starts_at=from_storage(row.starts_at),
            ends_at=from_storage(row.ends_at),
            status=AppointmentStatus(row.status),
            notes=row.notes,
            external_ids={ref.provider: ref.external_id for ref in row.external_refs},
            created_at=from_storage(row.created_at),
            updated_at=from_storage(row.updated_at),
            version=row.version,
        )
