"""Workflow API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from backoffice_engine.api.dependencies import CurrentActor, DbSession
from backoffice_engine.api.schemas import (
    ErrorResponse,
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowStatusUpdate,
    WorkflowStepResponse,
)
from backoffice_engine.database import commit
from backoffice_engine.services.workflow_service import WorkflowInput, WorkflowService

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    db: DbSession,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 50,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    business_id: UUID | None = None,
    customer_business_id: UUID | None = None,
) -> WorkflowListResponse:
    workflows, total = await WorkflowService(db).list_workflows(
        actor,
        status=status_filter,
        business_id=business_id,
        customer_business_id=customer_business_id,
        page=page,
        page_size=page_size,
    )
    return WorkflowListResponse(
        items=[WorkflowResponse.model_validate(w) for w in workflows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def start_workflow(
    db: DbSession,
    actor: CurrentActor,
    payload: WorkflowCreate,
) -> WorkflowResponse:
    """Start a workflow from a template for one customer engagement."""
    workflow = await WorkflowService(db).start_workflow(actor, WorkflowInput(**payload.model_dump()))
    await commit(db)
    return WorkflowResponse.model_validate(workflow)


@router.post(
    "/steps/{step_id}/complete",
    response_model=WorkflowStepResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def complete_step(
    db: DbSession,
    actor: CurrentActor,
    step_id: Annotated[UUID, Path()],
) -> WorkflowStepResponse:
    """Complete the active step and activate the next one."""
    step = await WorkflowService(db).complete_step(actor, step_id)
    await commit(db)
    return WorkflowStepResponse.model_validate(step)


@router.post(
    "/steps/{step_id}/skip",
    response_model=WorkflowStepResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def skip_step(
    db: DbSession,
    actor: CurrentActor,
    step_id: Annotated[UUID, Path()],
) -> WorkflowStepResponse:
    step = await WorkflowService(db).skip_step(actor, step_id)
    await commit(db)
    return WorkflowStepResponse.model_validate(step)


@router.get(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_workflow(
    db: DbSession,
    actor: CurrentActor,
    workflow_id: Annotated[UUID, Path()],
) -> WorkflowResponse:
    workflow = await WorkflowService(db).get_workflow(actor, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.put(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def update_workflow_status(
    db: DbSession,
    actor: CurrentActor,
    workflow_id: Annotated[UUID, Path()],
    payload: WorkflowStatusUpdate,
) -> WorkflowResponse:
    workflow = await WorkflowService(db).update_status(actor, workflow_id, payload.status)
    await commit(db)
    return WorkflowResponse.model_validate(workflow)


@router.delete(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def cancel_workflow(
    db: DbSession,
    actor: CurrentActor,
    workflow_id: Annotated[UUID, Path()],
) -> WorkflowResponse:
    """Cancel an active workflow. Unfinished steps are skipped."""
    workflow = await WorkflowService(db).cancel_workflow(actor, workflow_id)
    await commit(db)
    return WorkflowResponse.model_validate(workflow)
