"""Payment API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from backoffice_engine.api.dependencies import CurrentActor, DbSession, ExpectedVersion, SessionFactory
from backoffice_engine.api.schemas import (
    BatchStatusRequest,
    BatchStatusResponse,
    CommentCreate,
    CommentResponse,
    ErrorResponse,
    HistoryEntryResponse,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
    StatusChangeRequest,
)
from backoffice_engine.database import commit
from backoffice_engine.models import Payment
from backoffice_engine.services.batch_service import BatchProcessor
from backoffice_engine.services.patch import PaymentPatch
from backoffice_engine.services.payment_service import PaymentFilters, PaymentInput, PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def _with_etag(response: Response, payment: Payment) -> PaymentResponse:
    response.headers["ETag"] = f'"{payment.version}"'
    return PaymentResponse.model_validate(payment)


# ============================================================================
# Payment CRUD
# ============================================================================


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    db: DbSession,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 50,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    type_filter: Annotated[str | None, Query(alias="type")] = None,
    partner_id: UUID | None = None,
    business_id: UUID | None = None,
    period: str | None = None,
) -> PaymentListResponse:
    """List payments visible to the actor."""
    filters = PaymentFilters(
        status=status_filter,
        type=type_filter,
        partner_id=partner_id,
        business_id=business_id,
        period=period,
    )
    payments, total = await PaymentService(db).list_payments(actor, filters, page, page_size)
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_payment(
    db: DbSession,
    actor: CurrentActor,
    payload: PaymentCreate,
    response: Response,
) -> PaymentResponse:
    """Create a payment in DRAFT, or APPROVED when an auto-approve rule matches."""
    payment = await PaymentService(db).create_payment(actor, PaymentInput(**payload.model_dump()))
    await commit(db)
    return _with_etag(response, payment)


@router.put(
    "/batch",
    response_model=BatchStatusResponse,
    responses={400: {"model": ErrorResponse}},
)
async def batch_update_status(
    factory: SessionFactory,
    actor: CurrentActor,
    payload: BatchStatusRequest,
) -> BatchStatusResponse:
    """Apply one status transition to many payments, each in its own transaction."""
    result = await BatchProcessor(factory).apply_batch(actor, payload.payment_ids, payload.status)
    return BatchStatusResponse.model_validate(result)


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payment(
    db: DbSession,
    actor: CurrentActor,
    payment_id: Annotated[UUID, Path()],
    response: Response,
) -> PaymentResponse:
    payment = await PaymentService(db).get_payment(actor, payment_id)
    return _with_etag(response, payment)


@router.put(
    "/{payment_id}",
    response_model=PaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_payment(
    db: DbSession,
    actor: CurrentActor,
    expected_version: ExpectedVersion,
    payment_id: Annotated[UUID, Path()],
    payload: PaymentUpdate,
    response: Response,
) -> PaymentResponse:
    """Edit payment fields. Amount edits on a PAID payment need adjustment_reason."""
    patch = PaymentPatch.from_mapping(payload.model_dump(exclude_unset=True))
    payment = await PaymentService(db).update_payment(actor, payment_id, patch, expected_version)
    await commit(db)
    return _with_etag(response, payment)


@router.delete(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def delete_payment(
    db: DbSession,
    actor: CurrentActor,
    expected_version: ExpectedVersion,
    payment_id: Annotated[UUID, Path()],
) -> Response:
    """Soft-delete a DRAFT payment."""
    await PaymentService(db).soft_delete(actor, payment_id, expected_version)
    await commit(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Payment State Transitions
# ============================================================================


@router.put(
    "/{payment_id}/status",
    response_model=PaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def change_status(
    db: DbSession,
    actor: CurrentActor,
    expected_version: ExpectedVersion,
    payment_id: Annotated[UUID, Path()],
    payload: StatusChangeRequest,
    response: Response,
) -> PaymentResponse:
    """Move a payment through the state machine."""
    payment = await PaymentService(db).transition(
        actor, payment_id, payload.status, expected_version=expected_version
    )
    await commit(db)
    return _with_etag(response, payment)


# ============================================================================
# History and comments
# ============================================================================


@router.get(
    "/{payment_id}/history",
    response_model=list[HistoryEntryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def payment_history(
    db: DbSession,
    actor: CurrentActor,
    payment_id: Annotated[UUID, Path()],
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[HistoryEntryResponse]:
    """Audit history, newest first."""
    entries = await PaymentService(db).history(actor, payment_id, limit)
    return [HistoryEntryResponse.model_validate(e) for e in entries]


@router.get("/{payment_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    db: DbSession,
    actor: CurrentActor,
    payment_id: Annotated[UUID, Path()],
) -> list[CommentResponse]:
    comments = await PaymentService(db).list_comments(actor, payment_id)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post(
    "/{payment_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    db: DbSession,
    actor: CurrentActor,
    payment_id: Annotated[UUID, Path()],
    payload: CommentCreate,
) -> CommentResponse:
    comment = await PaymentService(db).add_comment(actor, payment_id, payload.content)
    await commit(db)
    return CommentResponse.model_validate(comment)
