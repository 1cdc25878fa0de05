"""Customer service - phone-first identification and registration"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from ...shared.datetime_utils import Clock, utc_now
from ...shared.result import Err, Ok, Result
from ..errors import ConflictError, CustomerNotFoundError, DomainError, RequiredFieldError
from ..value_objects import Email, Phone
from .entities import Customer
from .repository import CustomerRepository

logger = logging.getLogger(__name__)


@dataclass
class IdentifyCustomerResult:
    """
    Outcome of an identification attempt.

    `found=False, created=False` means the phone is unknown and no name was
    given: the caller should ask for the name and try again.
    """

    customer: Optional[Customer]
    phone: Phone
    found: bool
    created: bool
    message: str

    @property
    def name_required(self) -> bool:
        return self.customer is None


class CustomerService:
    def __init__(self, customers: CustomerRepository, clock: Clock = utc_now):
        self.customers = customers
        self.clock = clock

    async def identify_customer(
        self, salon_id: str, phone: str, name: Optional[str] = None
    ) -> Result[IdentifyCustomerResult]:
        """Find a customer by phone; register them when a name is supplied"""
        try:
            normalized = Phone.create(phone)
        except DomainError as e:
            return Err(e)

        existing = await self.customers.find_by_phone(salon_id, normalized)
        if existing:
            return Ok(
                IdentifyCustomerResult(existing, normalized, True, False, f"Customer found: {existing.name}")
            )

        if name and name.strip():
            created = await self.create_customer(salon_id, phone, name)
            if not created.ok:
                return created
            customer = created.value
            return Ok(IdentifyCustomerResult(customer, normalized, False, True, f"New customer created: {customer.name}"))

        logger.info(f"ℹ️ Unknown phone {normalized.value} in salon {salon_id}, name required")
        return Ok(
            IdentifyCustomerResult(
                None, normalized, False, False, "Customer not found. Provide a name to register them."
            )
        )

    async def create_customer(
        self, salon_id: str, phone: str, name: str, email: Optional[str] = None
    ) -> Result[Customer]:
        try:
            if not name or not name.strip():
                raise RequiredFieldError("name")
            normalized = Phone.create(phone)
            parsed_email = Email.create(email) if email else None
        except DomainError as e:
            return Err(e)

        if await self.customers.find_by_phone(salon_id, normalized):
            return Err(ConflictError(f"A customer with phone {normalized.format()} already exists"))

        now = self.clock()
        customer = Customer(
            id=str(uuid.uuid4()),
            salon_id=salon_id,
            phone=normalized,
            name=name.strip(),
            email=parsed_email,
            created_at=now,
            updated_at=now,
        )
        try:
            saved = await self.customers.save(customer)
        except ConflictError as e:
            return Err(e)

        logger.info(f"✅ Customer created: {saved.id} ({saved.name})")
        return Ok(saved)

    async def update_customer(
        self,
        salon_id: str,
        customer_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        extra_phone: Optional[str] = None,
    ) -> Result[Customer]:
        customer = await self.customers.find_by_id(salon_id, customer_id)
        if customer is None:
            return Err(CustomerNotFoundError(customer_id))

        try:
            if name is not None:
                if not name.strip():
                    raise RequiredFieldError("name")
                customer.update_name(name)
            if email is not None:
                customer.update_email(Email.create(email) if email else None)
            if extra_phone:
                customer.add_phone(Phone.create(extra_phone))
        except DomainError as e:
            return Err(e)

        customer.updated_at = self.clock()
        try:
            saved = await self.customers.update(customer)
        except DomainError as e:
            return Err(e)

        logger.info(f"✅ Customer updated: {customer_id}")
        return Ok(saved)
