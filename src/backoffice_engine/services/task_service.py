"""Business-scoped task CRUD."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.database import flush
from backoffice_engine.errors import NotFoundError, ValidationError
from backoffice_engine.models import (
    AppUser,
    AuditAction,
    Business,
    ContentType,
    CustomerBusiness,
    Priority,
    Task,
    TaskStatus,
)
from backoffice_engine.models.base import utcnow
from backoffice_engine.services.access_resolver import AccessResolver, Actor
from backoffice_engine.services.audit_service import AuditRecorder
from backoffice_engine.services.patch import TaskPatch
from backoffice_engine.services.scope_filter import TASK_LINK, linked_business_ids, scope_predicate

logger = logging.getLogger(__name__)

ENTITY_TYPE = "task"


@dataclass(frozen=True)
class TaskInput:
    title: str
    assignee_id: UUID
    due_date: date
    description: str | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    priority: str = Priority.MEDIUM.value


@dataclass(frozen=True)
class TaskFilters:
    status: str | None = None
    priority: str | None = None
    assignee_id: UUID | None = None
    business_id: UUID | None = None


def _validate_choice(enum_cls: type, value: str, name: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(f"Unknown {name}: {value}", field=name) from None


class TaskService:
    def __init__(
        self,
        session: AsyncSession,
        resolver: AccessResolver | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.session = session
        self.resolver = resolver or AccessResolver(session)
        self.audit = audit or AuditRecorder(session)

    async def get_task(self, actor: Actor, task_id: UUID) -> Task:
        scope = await self.resolver.resolve_scope(actor, ContentType.TASKS.value)
        task = await self.session.scalar(
            select(Task).where(
                Task.task_id == task_id,
                Task.deleted_at.is_(None),
                scope_predicate(scope, TASK_LINK),
            )
        )
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def list_tasks(
        self,
        actor: Actor,
        filters: TaskFilters | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Task], int]:
        """Visible tasks ordered by due date."""
        filters = filters or TaskFilters()
        scope = await self.resolver.resolve_scope(actor, ContentType.TASKS.value)
        if filters.business_id is not None:
            scope = scope.narrow(filters.business_id)

        query = select(Task).where(Task.deleted_at.is_(None), scope_predicate(scope, TASK_LINK))
        if filters.status:
            query = query.where(Task.status == filters.status)
        if filters.priority:
            query = query.where(Task.priority == filters.priority)
        if filters.assignee_id:
            query = query.where(Task.assignee_id == filters.assignee_id)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Task.due_date, Task.created_at)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def create_task(self, actor: Actor, data: TaskInput) -> Task:
        if not data.title or not data.title.strip():
            raise ValidationError("title is required", field="title")
        priority = _validate_choice(Priority, data.priority, "priority")
        await self._check_references(data)

        business_ids = await linked_business_ids(
            self.session, data.business_id, data.customer_business_id
        )
        await self.resolver.require_write(actor, business_ids, ContentType.TASKS.value)

        task = Task(
            title=data.title.strip(),
            description=data.description,
            business_id=data.business_id,
            customer_business_id=data.customer_business_id,
            assignee_id=data.assignee_id,
            priority=priority,
            due_date=data.due_date,
            status=TaskStatus.ACTIVE.value,
        )
        self.session.add(task)
        await flush(self.session)
        await self.audit.record(
            actor, AuditAction.CREATE.value, ENTITY_TYPE, task.task_id, None, task.snapshot()
        )
        return task

    async def update_task(self, actor: Actor, task_id: UUID, patch: TaskPatch) -> Task:
        """Patch a task. Moving to DONE stamps completed_at; reopening clears it."""
        task = await self._load_for_write(actor, task_id)
        changes = patch.provided()

        if "title" in changes and (not changes["title"] or not changes["title"].strip()):
            raise ValidationError("title is required", field="title")
        if "priority" in changes:
            changes["priority"] = _validate_choice(Priority, changes["priority"], "priority")
        if "status" in changes:
            changes["status"] = _validate_choice(TaskStatus, changes["status"], "status")
        for required in ("assignee_id", "due_date"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be null", field=required)

        before = task.snapshot()
        new_status = changes.get("status", task.status)
        if new_status == TaskStatus.DONE and task.status != TaskStatus.DONE:
            task.completed_at = utcnow()
        elif new_status == TaskStatus.ACTIVE and task.status == TaskStatus.DONE:
            task.completed_at = None
        for key, value in changes.items():
            setattr(task, key, value)
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.UPDATE.value, ENTITY_TYPE, task_id, before, task.snapshot()
        )
        return task

    async def delete_task(self, actor: Actor, task_id: UUID) -> Task:
        task = await self._load_for_write(actor, task_id)
        before = task.snapshot()
        task.deleted_at = utcnow()
        await flush(self.session)
        await self.audit.record(
            actor, AuditAction.SOFT_DELETE.value, ENTITY_TYPE, task_id, before, None
        )
        logger.info("Task %s deleted by %s", task_id, actor.user_id)
        return task

    async def _load_for_write(self, actor: Actor, task_id: UUID) -> Task:
        task = await self.session.scalar(
            select(Task)
            .where(Task.task_id == task_id, Task.deleted_at.is_(None))
            .with_for_update()
        )
        if task is None:
            raise NotFoundError("Task", task_id)
        business_ids = await linked_business_ids(
            self.session, task.business_id, task.customer_business_id
        )
        await self.resolver.require_write(actor, business_ids, ContentType.TASKS.value)
        return task

    async def _check_references(self, data: TaskInput) -> None:
        assignee = await self.session.get(AppUser, data.assignee_id)
        if assignee is None or not assignee.is_active:
            raise ValidationError("Unknown assignee", field="assignee_id")
        if data.business_id is not None:
            if await self.session.get(Business, data.business_id) is None:
                raise ValidationError("Unknown business", field="business_id")
        if data.customer_business_id is not None:
            link = await self.session.get(CustomerBusiness, data.customer_business_id)
            if link is None or link.is_deleted:
                raise ValidationError("Unknown customer engagement", field="customer_business_id")
