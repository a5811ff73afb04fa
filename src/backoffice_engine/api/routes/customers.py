"""Customer API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from backoffice_engine.api.dependencies import CurrentActor, DbSession
from backoffice_engine.api.schemas import (
    CustomerDetailResponse,
    CustomerListResponse,
    CustomerResponse,
    EngagementResponse,
    ErrorResponse,
)
from backoffice_engine.services.customer_service import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    db: DbSession,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 50,
    search: str | None = None,
    business_id: UUID | None = None,
) -> CustomerListResponse:
    customers, total = await CustomerService(db).list_customers(
        actor, search=search, business_id=business_id, page=page, page_size=page_size
    )
    return CustomerListResponse(
        items=[CustomerResponse.model_validate(c) for c in customers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{customer_id}",
    response_model=CustomerDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_customer(
    db: DbSession,
    actor: CurrentActor,
    customer_id: Annotated[UUID, Path()],
) -> CustomerDetailResponse:
    """Customer with the engagements the actor may see."""
    service = CustomerService(db)
    customer = await service.get_customer(actor, customer_id)
    engagements = await service.engagements(actor, customer_id)

    detail = CustomerDetailResponse.model_validate(customer)
    detail.engagements = [EngagementResponse.model_validate(e) for e in engagements]
    return detail
