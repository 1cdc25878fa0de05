"""Customer router - FastAPI endpoints for customer identification and registration"""

import logging

from fastapi import APIRouter, Depends, Request

from ...auth import require_salon_access
from ...shared.http_errors import unwrap
from .schemas import CustomerCreate, CustomerIdentify, CustomerResponse, CustomerUpdate, IdentifyCustomerResponse
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/salons/{salon_id}/customers", tags=["Customers"])


def get_customer_service(request: Request) -> CustomerService:
    """Dependency injection for CustomerService"""
    return request.app.state.container.customer_service


@router.post("/identify", response_model=IdentifyCustomerResponse)
async def identify_customer(
    data: CustomerIdentify,
    salon_id: str = Depends(require_salon_access),
    service: CustomerService = Depends(get_customer_service),
):
    """Find a customer by phone; registers them when a name is sent"""
    result = await service.identify_customer(salon_id, data.phone, data.name)
    return IdentifyCustomerResponse.from_result(unwrap(result))


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    data: CustomerCreate,
    salon_id: str = Depends(require_salon_access),
    service: CustomerService = Depends(get_customer_service),
):
    result = await service.create_customer(salon_id, data.phone, data.name, data.email)
    return CustomerResponse.from_entity(unwrap(result))


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    salon_id: str = Depends(require_salon_access),
    service: CustomerService = Depends(get_customer_service),
):
    result = await service.update_customer(
        salon_id, customer_id, name=data.name, email=data.email, extra_phone=data.extraPhone
    )
    return CustomerResponse.from_entity(unwrap(result))
