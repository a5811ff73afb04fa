"""Workflow service - running templates against customer engagements.

A workflow is started from a template: every step template becomes a
step, the first ACTIVE and the rest PENDING, with due dates laid out from
the start date. Completing or skipping the active step activates the next
pending one; when none remain the workflow completes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.database import flush
from backoffice_engine.errors import InvalidTransitionError, NotFoundError, ValidationError
from backoffice_engine.models import (
    AppUser,
    AuditAction,
    ContentType,
    CustomerBusiness,
    Role,
    StepStatus,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepTemplate,
    WorkflowTemplate,
)
from backoffice_engine.models.base import utcnow
from backoffice_engine.services.access_resolver import AccessResolver, Actor, require_role
from backoffice_engine.services.audit_service import AuditRecorder
from backoffice_engine.services.scope_filter import WORKFLOW_LINK, linked_business_ids, scope_predicate

logger = logging.getLogger(__name__)

ENTITY_TYPE = "workflow"

FINISHED_STEP_STATUSES = {StepStatus.DONE.value, StepStatus.SKIPPED.value}


@dataclass(frozen=True)
class WorkflowInput:
    template_id: UUID
    customer_business_id: UUID
    assignee_id: UUID
    start_date: date | None = None


def plan_due_dates(steps: Sequence[WorkflowStepTemplate], start: date) -> list[date]:
    """Due date of each step, in order.

    days_from_start is absolute from the start date; days_from_previous is
    relative to the previous step's due date; neither means the start date.
    """
    due_dates: list[date] = []
    for index, step in enumerate(steps):
        if step.days_from_start is not None:
            due_dates.append(start + timedelta(days=step.days_from_start))
        elif step.days_from_previous is not None and index > 0:
            due_dates.append(due_dates[index - 1] + timedelta(days=step.days_from_previous))
        else:
            due_dates.append(start)
    return due_dates


def _snapshot(workflow: Workflow) -> dict[str, Any]:
    """Workflow columns plus the status of each step."""
    data = workflow.snapshot()
    data["steps"] = [
        {"step_id": str(s.step_id), "title": s.title, "status": s.status}
        for s in workflow.steps
    ]
    return data


class WorkflowService:
    def __init__(
        self,
        session: AsyncSession,
        resolver: AccessResolver | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.session = session
        self.resolver = resolver or AccessResolver(session)
        self.audit = audit or AuditRecorder(session)

    async def get_workflow(self, actor: Actor, workflow_id: UUID) -> Workflow:
        scope = await self.resolver.resolve_scope(actor, ContentType.WORKFLOWS.value)
        workflow = await self.session.scalar(
            select(Workflow).where(
                Workflow.workflow_id == workflow_id,
                scope_predicate(scope, WORKFLOW_LINK),
            )
        )
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def list_workflows(
        self,
        actor: Actor,
        status: str | None = None,
        business_id: UUID | None = None,
        customer_business_id: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Workflow], int]:
        scope = await self.resolver.resolve_scope(actor, ContentType.WORKFLOWS.value)
        if business_id is not None:
            scope = scope.narrow(business_id)

        query = select(Workflow).where(scope_predicate(scope, WORKFLOW_LINK))
        if status:
            query = query.where(Workflow.status == status)
        if customer_business_id:
            query = query.where(Workflow.customer_business_id == customer_business_id)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Workflow.started_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def start_workflow(self, actor: Actor, data: WorkflowInput) -> Workflow:
        """Instantiate a template for one customer engagement."""
        template = await self.session.get(WorkflowTemplate, data.template_id)
        if template is None or not template.is_active:
            raise ValidationError("Unknown workflow template", field="template_id")
        if not template.steps:
            raise ValidationError(f"Template {template.name} has no steps", field="template_id")

        link = await self.session.get(CustomerBusiness, data.customer_business_id)
        if link is None or link.is_deleted:
            raise ValidationError("Unknown customer engagement", field="customer_business_id")
        assignee = await self.session.get(AppUser, data.assignee_id)
        if assignee is None or not assignee.is_active:
            raise ValidationError("Unknown assignee", field="assignee_id")

        await self.resolver.require_write(actor, [link.business_id], ContentType.WORKFLOWS.value)

        started_at = utcnow()
        start = data.start_date or started_at.date()
        due_dates = plan_due_dates(template.steps, start)
        workflow = Workflow(
            template_id=template.template_id,
            customer_business_id=link.customer_business_id,
            status=WorkflowStatus.ACTIVE.value,
            started_at=started_at,
            steps=[
                WorkflowStep(
                    step_template_id=step.step_template_id,
                    title=step.title,
                    description=step.description,
                    sort_order=step.sort_order,
                    assignee_id=data.assignee_id,
                    is_required=step.is_required,
                    due_date=due,
                    status=StepStatus.ACTIVE.value if index == 0 else StepStatus.PENDING.value,
                )
                for index, (step, due) in enumerate(zip(template.steps, due_dates))
            ],
        )
        self.session.add(workflow)
        await flush(self.session)

        await self.audit.record(
            actor,
            AuditAction.CREATE.value,
            ENTITY_TYPE,
            workflow.workflow_id,
            None,
            _snapshot(workflow),
        )
        logger.info(
            "Workflow %s started from template %s by %s",
            workflow.workflow_id,
            template.template_id,
            actor.user_id,
        )
        return workflow

    async def update_status(self, actor: Actor, workflow_id: UUID, status: str) -> Workflow:
        """Complete or cancel an ACTIVE workflow.

        Completion requires every required step to be DONE or SKIPPED.
        """
        if status == WorkflowStatus.CANCELLED:
            return await self.cancel_workflow(actor, workflow_id)

        workflow = await self._load_for_write(actor, workflow_id)
        if status != WorkflowStatus.COMPLETED or workflow.status != WorkflowStatus.ACTIVE:
            raise InvalidTransitionError(
                workflow.status, status, "only ACTIVE workflows can be completed or cancelled"
            )

        unfinished = [
            s.title for s in workflow.steps
            if s.is_required and s.status not in FINISHED_STEP_STATUSES
        ]
        if unfinished:
            raise ValidationError(
                f"Required steps are not finished: {', '.join(unfinished)}", field="status"
            )

        before = _snapshot(workflow)
        workflow.status = WorkflowStatus.COMPLETED.value
        workflow.completed_at = utcnow()
        await flush(self.session)
        await self.audit.record(
            actor, AuditAction.UPDATE.value, ENTITY_TYPE, workflow_id, before, _snapshot(workflow)
        )
        return workflow

    async def cancel_workflow(self, actor: Actor, workflow_id: UUID) -> Workflow:
        """Cancel an ACTIVE workflow, skipping every unfinished step."""
        workflow = await self._load_for_write(actor, workflow_id)
        require_role(actor, Role.MANAGER.value, "cancel workflows")
        if workflow.status != WorkflowStatus.ACTIVE:
            raise InvalidTransitionError(
                workflow.status, WorkflowStatus.CANCELLED.value, "only ACTIVE workflows can be cancelled"
            )

        now = utcnow()
        before = _snapshot(workflow)
        for step in workflow.steps:
            if step.status not in FINISHED_STEP_STATUSES:
                step.status = StepStatus.SKIPPED.value
                step.completed_at = now
        workflow.status = WorkflowStatus.CANCELLED.value
        workflow.completed_at = now
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.CANCEL.value, ENTITY_TYPE, workflow_id, before, _snapshot(workflow)
        )
        logger.info("Workflow %s cancelled by %s", workflow_id, actor.user_id)
        return workflow

    async def complete_step(self, actor: Actor, step_id: UUID) -> WorkflowStep:
        """Mark the ACTIVE step DONE and advance the workflow."""
        return await self._finish_step(actor, step_id, StepStatus.DONE.value)

    async def skip_step(self, actor: Actor, step_id: UUID) -> WorkflowStep:
        """Mark an unfinished step SKIPPED and advance the workflow."""
        return await self._finish_step(actor, step_id, StepStatus.SKIPPED.value)

    async def _finish_step(self, actor: Actor, step_id: UUID, to_status: str) -> WorkflowStep:
        step = await self.session.scalar(
            select(WorkflowStep).where(WorkflowStep.step_id == step_id).with_for_update()
        )
        if step is None:
            raise NotFoundError("WorkflowStep", step_id)
        workflow = await self._load_for_write(actor, step.workflow_id)

        if to_status == StepStatus.DONE and step.status != StepStatus.ACTIVE:
            raise InvalidTransitionError(step.status, to_status, "only the ACTIVE step can be completed")
        if step.status in FINISHED_STEP_STATUSES:
            raise InvalidTransitionError(step.status, to_status, "step is already finished")
        if workflow.status != WorkflowStatus.ACTIVE:
            raise InvalidTransitionError(workflow.status, to_status, "workflow is not ACTIVE")

        now = utcnow()
        before = _snapshot(workflow)
        was_active = step.status == StepStatus.ACTIVE
        step.status = to_status
        step.completed_at = now
        if was_active:
            await self._activate_next(workflow, step, now.date())
        else:
            self._complete_if_finished(workflow)
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.UPDATE.value, ENTITY_TYPE, workflow.workflow_id, before, _snapshot(workflow)
        )
        return step

    async def _activate_next(self, workflow: Workflow, finished: WorkflowStep, today: date) -> None:
        """Activate the next PENDING step, or complete the workflow when none remain."""
        pending = [
            s for s in workflow.steps
            if s.sort_order > finished.sort_order and s.status == StepStatus.PENDING
        ]
        if pending:
            next_step = min(pending, key=lambda s: s.sort_order)
            if next_step.step_template_id is not None:
                template = await self.session.get(WorkflowStepTemplate, next_step.step_template_id)
                if template is not None and template.days_from_previous is not None:
                    next_step.due_date = today + timedelta(days=template.days_from_previous)
            next_step.status = StepStatus.ACTIVE.value
            return
        self._complete_if_finished(workflow)

    @staticmethod
    def _complete_if_finished(workflow: Workflow) -> None:
        if all(s.status in FINISHED_STEP_STATUSES for s in workflow.steps):
            workflow.status = WorkflowStatus.COMPLETED.value
            workflow.completed_at = utcnow()
            logger.info("Workflow %s completed", workflow.workflow_id)

    async def _load_for_write(self, actor: Actor, workflow_id: UUID) -> Workflow:
        workflow = await self.session.scalar(
            select(Workflow).where(Workflow.workflow_id == workflow_id).with_for_update()
        )
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        business_ids = await linked_business_ids(
            self.session, customer_business_id=workflow.customer_business_id
        )
        await self.resolver.require_write(actor, business_ids, ContentType.WORKFLOWS.value)
        return workflow
