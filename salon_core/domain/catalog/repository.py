"""Professional and service repositories"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ... import models
from ...shared.datetime_utils import from_storage
from ..errors import ProfessionalNotFoundError, ServiceNotFoundError
from ..value_objects import Duration, Money
from .entities import Professional, Service


class ProfessionalRepository(ABC):
    @abstractmethod
    async def find_by_id(self, salon_id: str, professional_id: str) -> Optional[Professional]: ...

    @abstractmethod
    async def find_by_ids(self, salon_id: str, professional_ids: Iterable[str]) -> list[Professional]:
        """Single collective lookup; unknown ids are skipped"""

    @abstractmethod
    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Professional]: ...

    @abstractmethod
    async def save(self, professional: Professional) -> Professional: ...

    @abstractmethod
    async def update(self, professional: Professional) -> Professional: ...


class ServiceRepository(ABC):
    @abstractmethod
    async def find_by_id(self, salon_id: str, service_id: str) -> Optional[Service]: ...

    @abstractmethod
    async def find_by_ids(self, salon_id: str, service_ids: Iterable[str]) -> list[Service]: ...

    @abstractmethod
    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Service]: ...

    @abstractmethod
    async def save(self, service: Service) -> Service: ...

    @abstractmethod
    async def update(self, service: Service) -> Service: ...


class SqlProfessionalRepository(ProfessionalRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, salon_id: str, professional_id: str) -> Optional[Professional]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(models.Professional).where(
                        models.Professional.id == professional_id, models.Professional.salon_id == salon_id
                    )
                )
            ).scalar_one_or_none()
            return self._to_entity(row) if row else None

    async def find_by_ids(self, salon_id: str, professional_ids: Iterable[str]) -> list[Professional]:
        ids = list(set(professional_ids))
        if not ids:
            return []
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(models.Professional).where(
                        models.Professional.salon_id == salon_id, models.Professional.id.in_(ids)
                    )
                )
            ).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Professional]:
        query = select(models.Professional).where(models.Professional.salon_id == salon_id)
        if active_only:
            query = query.where(models.Professional.is_active.is_(True))
        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.Professional.name))).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def save(self, professional: Professional) -> Professional:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    models.Professional(
                        id=professional.id,
                        salon_id=professional.salon_id,
                        name=professional.name,
                        email=professional.email,
                        phone=professional.phone,
                        is_active=professional.is_active,
                        external_calendar_id=professional.external_calendar_id,
                        services=[
                            models.ProfessionalService(professional_id=professional.id, service_id=service_id)
                            for service_id in sorted(professional.service_ids)
                        ],
                    )
                )
        return professional

    async def update(self, professional: Professional) -> Professional:
        async with self._session_factory() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(models.Professional).where(
                            models.Professional.id == professional.id,
                            models.Professional.salon_id == professional.salon_id,
                        )
                    )
                ).scalar_one_or_none()
                if row is None:
                    raise ProfessionalNotFoundError(professional.id)

                row.name = professional.name
                row.email = professional.email
                row.phone = professional.phone
                row.is_active = professional.is_active
                row.external_calendar_id = professional.external_calendar_id

                current = {link.service_id for link in row.services}
                row.services = [link for link in row.services if link.service_id in professional.service_ids] + [
                    models.ProfessionalService(professional_id=professional.id, service_id=service_id)
                    for service_id in sorted(professional.service_ids - current)
                ]
        return professional

    @staticmethod
    def _to_entity(row: models.Professional) -> Professional:
        return Professional(
            id=row.id,
            salon_id=row.salon_id,
            name=row.name,
            email=row.email,
            phone=row.phone,
            is_active=row.is_active,
            service_ids={link.service_id for link in row.services},
            external_calendar_id=row.external_calendar_id,
            created_at=from_storage(row.created_at),
            updated_at=from_storage(row.updated_at),
        )


class SqlServiceRepository(ServiceRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, salon_id: str, service_id: str) -> Optional[Service]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(models.Service).where(models.Service.id == service_id, models.Service.salon_id == salon_id)
                )
            ).scalar_one_or_none()
            return self._to_entity(row) if row else None

    async def find_by_ids(self, salon_id: str, service_ids: Iterable[str]) -> list[Service]:
        ids = list(set(service_ids))
        if not ids:
            return []
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(models.Service).where(models.Service.salon_id == salon_id, models.Service.id.in_(ids))
                )
            ).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def find_by_salon(self, salon_id: str, active_only: bool = False) -> list[Service]:
        query = select(models.Service).where(models.Service.salon_id == salon_id)
        if active_only:
            query = query.where(models.Service.is_active.is_(True))
        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.Service.name))).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def save(self, service: Service) -> Service:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    models.Service(
                        id=service.id,
                        salon_id=service.salon_id,
                        name=service.name,
                        description=service.description,
                        duration_minutes=service.duration.minutes,
                        price=service.price.amount,
                        currency=service.price.currency,
                        is_active=service.is_active,
                    )
                )
        return service

    async def update(self, service: Service) -> Service:
        async with self._session_factory() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(models.Service).where(
                            models.Service.id == service.id, models.Service.salon_id == service.salon_id
                        )
                    )
                ).scalar_one_or_none()
                if row is None:
                    raise ServiceNotFoundError(service.id)

                row.name = service.name
                row.description = service.description
                row.duration_minutes = service.duration.minutes
                row.price = service.price.amount
                row.currency = service.price.currency
                row.is_active = service.is_active
        return service

    @staticmethod
    def _to_entity(row: models.Service) -> Service:
        return Service(
            id=row.id,
            salon_id=row.salon_id,
            name=row.name,
            duration=Duration(row.duration_minutes),
            price=Money(Decimal(str(row.price)), row.currency),
            is_active=row.is_active,
            description=row.description,
            created_at=from_storage(row.created_at),
            updated_at=from_storage(row.updated_at),
        )
