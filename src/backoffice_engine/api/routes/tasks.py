"""Task API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from backoffice_engine.api.dependencies import CurrentActor, DbSession
from backoffice_engine.api.schemas import (
    ErrorResponse,
    TaskCreate,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)
from backoffice_engine.database import commit
from backoffice_engine.services.patch import TaskPatch
from backoffice_engine.services.task_service import TaskFilters, TaskInput, TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    db: DbSession,
    actor: CurrentActor,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 50,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
    assignee_id: UUID | None = None,
    business_id: UUID | None = None,
) -> TaskListResponse:
    filters = TaskFilters(
        status=status_filter,
        priority=priority,
        assignee_id=assignee_id,
        business_id=business_id,
    )
    tasks, total = await TaskService(db).list_tasks(actor, filters, page, page_size)
    return TaskListResponse(
        items=[TaskResponse.model_validate(t) for t in tasks],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_task(db: DbSession, actor: CurrentActor, payload: TaskCreate) -> TaskResponse:
    task = await TaskService(db).create_task(actor, TaskInput(**payload.model_dump()))
    await commit(db)
    return TaskResponse.model_validate(task)


@router.get(
    "/{task_id}",
    response_model=TaskResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_task(
    db: DbSession,
    actor: CurrentActor,
    task_id: Annotated[UUID, Path()],
) -> TaskResponse:
    task = await TaskService(db).get_task(actor, task_id)
    return TaskResponse.model_validate(task)


@router.put(
    "/{task_id}",
    response_model=TaskResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_task(
    db: DbSession,
    actor: CurrentActor,
    task_id: Annotated[UUID, Path()],
    payload: TaskUpdate,
) -> TaskResponse:
    patch = TaskPatch.from_mapping(payload.model_dump(exclude_unset=True))
    task = await TaskService(db).update_task(actor, task_id, patch)
    await commit(db)
    return TaskResponse.model_validate(task)


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_task(
    db: DbSession,
    actor: CurrentActor,
    task_id: Annotated[UUID, Path()],
) -> Response:
    await TaskService(db).delete_task(actor, task_id)
    await commit(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
