"""Customer domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import canonical_phone, validate_email
from .entities import Customer
from .service import IdentifyCustomerResult


class CustomerIdentify(BaseModel):
    phone: str
    name: Optional[str] = None


class CustomerCreate(BaseModel):
    """Schema for registering a customer"""

    phone: str
    name: str
    email: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        canonical_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class CustomerUpdate(BaseModel):
    """Schema for updating a customer; omitted fields are left untouched"""

    name: Optional[str] = None
    email: Optional[str] = None
    extraPhone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @field_validator("extraPhone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            canonical_phone(v)
        return v


class CustomerResponse(BaseModel):
    id: str
    name: str
    phone: str
    phoneDisplay: str
    email: Optional[str] = None
    extraPhones: list[str] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            id=customer.id,
            name=customer.name,
            phone=customer.phone.value,
            phoneDisplay=customer.phone.format(),
            email=customer.email.value if customer.email else None,
            extraPhones=[p.value for p in customer.extra_phones],
            created_at=customer.created_at,
        )


class IdentifyCustomerResponse(BaseModel):
    customer: Optional[CustomerResponse] = None
    phone: str
    found: bool
    created: bool
    nameRequired: bool
    message: str

    @classmethod
    def from_result(cls, result: IdentifyCustomerResult) -> "IdentifyCustomerResponse":
        return cls(
            customer=CustomerResponse.from_entity(result.customer) if result.customer else None,
            phone=result.phone.format(),
            found=result.found,
            created=result.created,
            nameRequired=result.name_required,
            message=result.message,
        )
