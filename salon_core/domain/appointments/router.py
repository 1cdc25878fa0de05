"""Appointment router - FastAPI endpoints for appointment operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...auth import require_salon_access
from ...shared.http_errors import unwrap
from ..sync.orchestrator import SyncOrchestrator
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    SyncResponse,
    UpcomingAppointmentsResponse,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/salons/{salon_id}/appointments", tags=["Appointments"])


def get_appointment_service(request: Request) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return request.app.state.container.appointment_service


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.container.orchestrator


# ============================================================================
# CORE OPERATIONS
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    salon_id: str = Depends(require_salon_access),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book an appointment"""
    result = await service.create_appointment(
        salon_id, data.customerId, data.professionalId, data.serviceId, data.startsAt, data.notes
    )
    return AppointmentResponse.from_entity(unwrap(result))


@router.get("/upcoming", response_model=UpcomingAppointmentsResponse)
async def get_upcoming_appointments(
    customerId: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    salon_id: str = Depends(require_salon_access),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Upcoming appointments of a customer, by customer id or phone"""
    result = await service.get_upcoming_appointments(salon_id, customer_id=customerId, phone=phone)
    return UpcomingAppointmentsResponse.from_result(unwrap(result))


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    salon_id: str = Depends(require_salon_access),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Reschedule, change professional/service, edit notes or confirm"""
    result = await service.update_appointment(
        salon_id,
        appointment_id,
        starts_at=data.startsAt,
        professional_id=data.professionalId,
        service_id=data.serviceId,
        notes=data.notes,
        status=data.status,
    )
    return AppointmentResponse.from_entity(unwrap(result))


@router.delete("/{appointment_id}", response_model=AppointmentResponse)
async def delete_appointment(
    appointment_id: str,
    salon_id: str = Depends(require_salon_access),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Cancel an appointment (appointments are never hard-deleted)"""
    result = await service.delete_appointment(salon_id, appointment_id)
    return AppointmentResponse.from_entity(unwrap(result))


# ============================================================================
# EXTERNAL SYNC
# ============================================================================


@router.post("/{appointment_id}/sync", response_model=SyncResponse)
async def sync_appointment(
    appointment_id: str,
    salon_id: str = Depends(require_salon_access),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Push the appointment to every configured provider now (reconciliation)"""
    logger.info(f"🔄 Manual sync requested for appointment {appointment_id}")
    results = await orchestrator.sync_appointment(salon_id, appointment_id)
    return SyncResponse(appointmentId=appointment_id, results=results)
