"""Availability router - free slots and schedule management per professional"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...auth import require_salon_access
from ...shared.http_errors import unwrap
from .schemas import AvailabilityResponse, OverrideCreate, OverrideResponse, RuleCreate, RuleResponse
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/salons/{salon_id}/professionals/{professional_id}/availability", tags=["Availability"])


def get_availability_service(request: Request) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return request.app.state.container.availability_service


@router.get("", response_model=AvailabilityResponse)
async def get_available_slots(
    professional_id: str,
    target_date: date = Query(..., alias="date"),
    serviceId: Optional[str] = Query(None),
    durationMinutes: Optional[int] = Query(None, ge=1),
    salon_id: str = Depends(require_salon_access),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Free slots of the professional on a date"""
    result = await service.get_available_slots(
        salon_id, professional_id, target_date, service_id=serviceId, duration_minutes=durationMinutes
    )
    return AvailabilityResponse.from_result(unwrap(result), service.tz)


@router.get("/rules", response_model=list[RuleResponse])
async def get_rules(
    professional_id: str,
    salon_id: str = Depends(require_salon_access),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Weekly working hours and breaks"""
    rules = unwrap(await service.get_professional_rules(salon_id, professional_id))
    return [RuleResponse.from_entity(rule) for rule in rules]


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def add_rule(
    professional_id: str,
    data: RuleCreate,
    salon_id: str = Depends(require_salon_access),
    service: AvailabilityService = Depends(get_availability_service),
):
    result = await service.add_rule(salon_id, professional_id, data.dayOfWeek, data.start(), data.end(), data.isBreak)
    return RuleResponse.from_entity(unwrap(result))


@router.post("/overrides", response_model=OverrideResponse, status_code=201)
async def add_override(
    professional_id: str,
    data: OverrideCreate,
    salon_id: str = Depends(require_salon_access),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Block a one-off interval (day off, appointment elsewhere...)"""
    result = await service.add_override(salon_id, professional_id, data.startsAt, data.endsAt, data.reason)
    return OverrideResponse.from_entity(unwrap(result))
