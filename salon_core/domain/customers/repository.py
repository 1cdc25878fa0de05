"""Customer repository - phones are stored as child rows, one per number"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ... import models
from ...shared.datetime_utils import from_storage
from ..errors import ConflictError, CustomerNotFoundError
from ..value_objects import Email, Phone
from .entities import Customer


class CustomerRepository(ABC):
    @abstractmethod
    async def find_by_id(self, salon_id: str, customer_id: str) -> Optional[Customer]: ...

    @abstractmethod
    async def find_by_ids(self, salon_id: str, customer_ids: Iterable[str]) -> list[Customer]: ...

    @abstractmethod
    async def find_by_phone(self, salon_id: str, phone: Phone) -> Optional[Customer]:
        """Matches the primary number or any extra number"""

    @abstractmethod
    async def find_by_salon(self, salon_id: str) -> list[Customer]: ...

    @abstractmethod
    async def save(self, customer: Customer) -> Customer: ...

    @abstractmethod
    async def update(self, customer: Customer) -> Customer: ...


class SqlCustomerRepository(CustomerRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, salon_id: str, customer_id: str) -> Optional[Customer]:
        async with self._session_factory() as session:
            row = await self._get_row(session, salon_id, customer_id)
            return self._to_entity(row) if row else None

    async def find_by_ids(self, salon_id: str, customer_ids: Iterable[str]) -> list[Customer]:
        ids = list(set(customer_ids))
        if not ids:
            return []
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(models.Customer).where(models.Customer.salon_id == salon_id, models.Customer.id.in_(ids))
                )
            ).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def find_by_phone(self, salon_id: str, phone: Phone) -> Optional[Customer]:
        query = (
            select(models.Customer)
            .join(models.CustomerPhone, models.CustomerPhone.customer_id == models.Customer.id)
            .where(
                models.Customer.salon_id == salon_id,
                models.CustomerPhone.salon_id == salon_id,
                models.CustomerPhone.phone == phone.value,
            )
        )
        async with self._session_factory() as session:
            row = (await session.execute(query)).scalars().first()
            return self._to_entity(row) if row else None

    async def find_by_salon(self, salon_id: str) -> list[Customer]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(models.Customer).where(models.Customer.salon_id == salon_id).order_by(models.Customer.name)
                )
            ).scalars().all()
            return [self._to_entity(row) for row in rows]

    async def save(self, customer: Customer) -> Customer:
        phones = [
            models.CustomerPhone(salon_id=customer.salon_id, phone=phone.value, is_primary=(index == 0))
            for index, phone in enumerate(customer.all_phones())
        ]
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(
                        models.Customer(
                            id=customer.id,
                            salon_id=customer.salon_id,
                            name=customer.name,
                            email=customer.email.value if customer.email else None,
                            phones=phones,
                        )
                    )
            except IntegrityError as e:
                raise ConflictError(f"A customer with phone {customer.phone.format()} already exists") from e
        return customer

    async def update(self, customer: Customer) -> Customer:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    row = await self._get_row(session, customer.salon_id, customer.id)
                    if row is None:
                        raise CustomerNotFoundError(customer.id)

                    row.name = customer.name
                    row.email = customer.email.value if customer.email else None

                    known = {phone_row.phone for phone_row in row.phones}
                    for phone in customer.all_phones():
                        if phone.value not in known:
                            row.phones.append(
                                models.CustomerPhone(salon_id=customer.salon_id, phone=phone.value, is_primary=False)
                            )
            except IntegrityError as e:
                raise ConflictError("Phone number already belongs to another customer") from e
        return customer

    @staticmethod
    async def _get_row(session: AsyncSession, salon_id: str, customer_id: str) -> Optional[models.Customer]:
        return (
            await session.execute(
                select(models.Customer).where(models.Customer.id == customer_id, models.Customer.salon_id == salon_id)
            )
        ).scalar_one_or_none()

    @staticmethod
    def _to_entity(row: models.Customer) -> Customer:
        primary = next((p for p in row.phones if p.is_primary), row.phones[0] if row.phones else None)
        return Customer(
            id=row.id,
            salon_id=row.salon_id,
            phone=Phone.from_persistence(primary.phone) if primary else Phone.from_persistence(""),
            name=row.name,
            email=Email(row.email) if row.email else None,
            extra_phones=[Phone.from_persistence(p.phone) for p in row.phones if p is not primary],
            created_at=from_storage(row.created_at),
            updated_at=from_storage(row.updated_at),
        )
