"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_uuid
from .entities import Appointment
from .service import AppointmentDetails, UpcomingAppointments


def _require_aware(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and (v.tzinfo is None or v.utcoffset() is None):
        raise ValueError("Datetime must include a timezone offset")
    return v


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""

    customerId: str
    professionalId: str
    serviceId: str
    startsAt: datetime
    notes: Optional[str] = None

    @field_validator("customerId", "professionalId", "serviceId")
    @classmethod
    def validate_ids(cls, v):
        if not validate_uuid(v):
            raise ValueError("Must be a valid UUID")
        return v

    @field_validator("startsAt")
    @classmethod
    def validate_starts_at(cls, v):
        return _require_aware(v)


class AppointmentUpdate(BaseModel):
    """Schema for changing an appointment; omitted fields are left untouched"""

    startsAt: Optional[datetime] = None
    professionalId: Optional[str] = None
    serviceId: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None

    @field_validator("professionalId", "serviceId")
    @classmethod
    def validate_ids(cls, v):
        if v is not None and not validate_uuid(v):
            raise ValueError("Must be a valid UUID")
        return v

    @field_validator("startsAt")
    @classmethod
    def validate_starts_at(cls, v):
        return _require_aware(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("pending", "confirmed", "cancelled"):
            raise ValueError("Status must be pending, confirmed or cancelled")
        return v


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    salonId: str
    customerId: str
    professionalId: str
    serviceId: str
    startsAt: datetime
    endsAt: datetime
    status: str
    notes: Optional[str] = None
    externalIds: dict[str, str] = {}
    version: int

    @classmethod
    def from_entity(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            salonId=appointment.salon_id,
            customerId=appointment.customer_id,
            professionalId=appointment.professional_id,
            serviceId=appointment.service_id,
            startsAt=appointment.starts_at,
            endsAt=appointment.ends_at,
            status=appointment.status.value,
            notes=appointment.notes,
            externalIds=dict(appointment.external_ids),
            version=appointment.version,
        )


class AppointmentDetailsResponse(AppointmentResponse):
    customerName: str
    professionalName: str
    serviceName: str
    startsAtDisplay: str

    @classmethod
    def from_details(cls, details: AppointmentDetails) -> "AppointmentDetailsResponse":
        base = AppointmentResponse.from_entity(details.appointment).model_dump()
        return cls(
            **base,
            customerName=details.customer_name,
            professionalName=details.professional_name,
            serviceName=details.service_name,
            startsAtDisplay=details.starts_at_display,
        )


class UpcomingAppointmentsResponse(BaseModel):
    appointments: list[AppointmentDetailsResponse]
    total: int
    message: str

    @classmethod
    def from_result(cls, result: UpcomingAppointments) -> "UpcomingAppointmentsResponse":
        return cls(
            appointments=[AppointmentDetailsResponse.from_details(d) for d in result.appointments],
            total=result.total,
            message=result.message,
        )


class SyncResponse(BaseModel):
    """Per-provider outcome of a sync or removal"""

    appointmentId: str
    results: dict[str, bool]
