"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Common
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str


class Page(BaseModel):
    total: int
    page: int
    page_size: int


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """Schema for creating a payment. tax defaults to 10% of amount."""

    amount: int = Field(gt=0)
    partner_id: UUID | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    workflow_id: UUID | None = None
    category_id: UUID | None = None
    tax: int | None = Field(default=None, ge=0)
    withholding_tax: int | None = Field(default=None, ge=0)
    apply_withholding: bool = False
    type: str = "OTHER"
    period: str | None = None
    due_date: date | None = None
    note: str | None = None


class PaymentUpdate(BaseModel):
    """Schema for a partial payment edit. Omitted fields are left unchanged."""

    amount: int | None = Field(default=None, gt=0)
    tax: int | None = Field(default=None, ge=0)
    withholding_tax: int | None = Field(default=None, ge=0)
    apply_withholding: bool | None = None
    type: str | None = None
    period: str | None = None
    due_date: date | None = None
    note: str | None = None
    adjustment_reason: str | None = None


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    partner_id: UUID | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    workflow_id: UUID | None = None
    category_id: UUID | None = None
    amount: int
    tax: int
    total_amount: int
    withholding_tax: int
    net_amount: int
    type: str
    status: str
    period: str | None = None
    due_date: date | None = None
    paid_at: datetime | None = None
    adjustment_reason: str | None = None
    note: str | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class PaymentListResponse(Page):
    items: list[PaymentResponse]


class StatusChangeRequest(BaseModel):
    status: str


class BatchStatusRequest(BaseModel):
    """Schema for a batch status change."""

    payment_ids: list[UUID]
    status: str


class BatchItemErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reason: str


class BatchStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: int
    failed: int
    errors: list[BatchItemErrorResponse]


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    comment_id: UUID
    payment_id: UUID
    user_id: UUID
    content: str
    created_at: datetime


# ============================================================================
# History schemas
# ============================================================================


class FieldChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field: str
    before: Any = None
    after: Any = None


class HistoryEntryResponse(BaseModel):
    """One rendered audit entry: a diff, or initial values for CREATE."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    action: str
    actor_user_id: UUID | None = None
    created_at: datetime
    changes: list[FieldChangeResponse] = []
    initial_values: dict[str, Any] | None = None
    adjustment_reason: str | None = None


# ============================================================================
# Task schemas
# ============================================================================


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    assignee_id: UUID
    due_date: date
    description: str | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    priority: str = "MEDIUM"


class TaskUpdate(BaseModel):
    """Schema for a partial task edit. Omitted fields are left unchanged."""

    title: str | None = None
    description: str | None = None
    assignee_id: UUID | None = None
    priority: str | None = None
    due_date: date | None = None
    status: str | None = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: UUID
    title: str
    description: str | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    assignee_id: UUID
    status: str
    priority: str
    due_date: date
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(Page):
    items: list[TaskResponse]


# ============================================================================
# Workflow schemas
# ============================================================================


class WorkflowCreate(BaseModel):
    template_id: UUID
    customer_business_id: UUID
    assignee_id: UUID
    start_date: date | None = None


class WorkflowStatusUpdate(BaseModel):
    status: str


class WorkflowStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_id: UUID
    title: str
    description: str | None = None
    sort_order: int
    assignee_id: UUID
    status: str
    is_required: bool
    due_date: date
    completed_at: datetime | None = None


class WorkflowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workflow_id: UUID
    template_id: UUID
    customer_business_id: UUID
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    steps: list[WorkflowStepResponse] = []


class WorkflowListResponse(Page):
    items: list[WorkflowResponse]


# ============================================================================
# Customer schemas
# ============================================================================


class EngagementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_business_id: UUID
    business_id: UUID
    status: str


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_id: UUID
    name: str
    company: str | None = None
    email: str | None = None
    status: str


class CustomerDetailResponse(CustomerResponse):
    engagements: list[EngagementResponse] = []


class CustomerListResponse(Page):
    items: list[CustomerResponse]


# ============================================================================
# Settings schemas
# ============================================================================


class PartnerAccessItem(BaseModel):
    """One business entry of a partner's grant set."""

    model_config = ConfigDict(from_attributes=True)

    business_id: UUID
    permissions: list[str] = []
    can_edit: bool = False
    is_active: bool = True


class PartnerAccessUpdate(BaseModel):
    accesses: list[PartnerAccessItem]


class PartnerAccessResponse(BaseModel):
    partner_id: UUID
    accesses: list[PartnerAccessItem]


class ApprovalRuleCreate(BaseModel):
    name: str = Field(min_length=1)
    min_amount: int = Field(default=0, ge=0)
    max_amount: int | None = None
    required_role: str = "MANAGER"
    auto_approve: bool = False
    sort_order: int = 0


class ApprovalRuleUpdate(BaseModel):
    """Schema for a partial rule edit; an explicit null max_amount means unbounded."""

    name: str | None = None
    min_amount: int | None = Field(default=None, ge=0)
    max_amount: int | None = None
    required_role: str | None = None
    auto_approve: bool | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class ApprovalRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: UUID
    name: str
    min_amount: int
    max_amount: int | None = None
    required_role: str
    auto_approve: bool
    sort_order: int
    is_active: bool
