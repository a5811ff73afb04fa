"""Customers, tasks and workflows: the CRUD entities scoped by business."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_engine.models.base import Base, SoftDeleteMixin, TimestampMixin, UpdatedAtMixin


# ===== Customers =====


class Customer(Base, TimestampMixin, UpdatedAtMixin, SoftDeleteMixin):
    """Customer record."""

    __tablename__ = "customer"

    customer_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    company: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")


class CustomerBusiness(Base, TimestampMixin, SoftDeleteMixin):
    """A customer's engagement with one business."""

    __tablename__ = "customer_business"

    customer_business_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    customer_id: Mapped[UUID] = mapped_column(
        ForeignKey("customer.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("business.business_id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")


# ===== Tasks =====


class Task(Base, TimestampMixin, UpdatedAtMixin, SoftDeleteMixin):
    """Ad-hoc task, linked to a business directly or through an engagement."""

    __tablename__ = "task"

    task_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("business.business_id"),
        nullable=True,
    )
    customer_business_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customer_business.customer_business_id"),
        nullable=True,
    )
    assignee_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    priority: Mapped[str] = mapped_column(String, nullable=False, default="MEDIUM")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE', 'DONE')", name="task_status_check"),
        CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH')",
            name="task_priority_check",
        ),
    )


# ===== Workflows =====


class WorkflowTemplate(Base, TimestampMixin):
    """Reusable sequence of steps."""

    __tablename__ = "workflow_template"

    template_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    steps: Mapped[list[WorkflowStepTemplate]] = relationship(
        lazy="selectin",
        order_by="WorkflowStepTemplate.sort_order",
    )


class WorkflowStepTemplate(Base, TimestampMixin):
    """One step of a template. Due dates derive from the day offsets."""

    __tablename__ = "workflow_step_template"

    step_template_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    template_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow_template.template_id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_from_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    days_from_previous: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Workflow(Base, TimestampMixin, UpdatedAtMixin):
    """A running instance of a template for one customer engagement."""

    __tablename__ = "workflow"

    workflow_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    template_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow_template.template_id"),
        nullable=False,
    )
    customer_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("customer_business.customer_business_id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'COMPLETED', 'CANCELLED')",
            name="workflow_status_check",
        ),
    )

    steps: Mapped[list[WorkflowStep]] = relationship(
        lazy="selectin",
        order_by="WorkflowStep.sort_order",
        back_populates="workflow",
    )


class WorkflowStep(Base, TimestampMixin, UpdatedAtMixin):
    """A step of a running workflow."""

    __tablename__ = "workflow_step"

    step_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow.workflow_id", ondelete="CASCADE"),
        nullable=False,
    )
    step_template_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("workflow_step_template.step_template_id"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignee_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    workflow: Mapped[Workflow] = relationship(back_populates="steps", lazy="raise")
