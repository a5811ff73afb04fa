"""ORM models."""

from backoffice_engine.models.accounts import AppUser, Business, Partner, PartnerBusiness
from backoffice_engine.models.audit import AuditEntry
from backoffice_engine.models.base import Base
from backoffice_engine.models.enums import (
    AuditAction,
    ContentType,
    PaymentStatus,
    PaymentType,
    Priority,
    Role,
    StepStatus,
    TaskStatus,
    WorkflowStatus,
)
from backoffice_engine.models.operations import (
    Customer,
    CustomerBusiness,
    Task,
    Workflow,
    WorkflowStep,
    WorkflowStepTemplate,
    WorkflowTemplate,
)
from backoffice_engine.models.payments import ApprovalRule, Payment, PaymentComment

__all__ = [
    "AppUser",
    "ApprovalRule",
    "AuditAction",
    "AuditEntry",
    "Base",
    "Business",
    "ContentType",
    "Customer",
    "CustomerBusiness",
    "Partner",
    "PartnerBusiness",
    "Payment",
    "PaymentComment",
    "PaymentStatus",
    "PaymentType",
    "Priority",
    "Role",
    "StepStatus",
    "Task",
    "TaskStatus",
    "Workflow",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowStepTemplate",
    "WorkflowTemplate",
]
