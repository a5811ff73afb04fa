"""Enumerations stored as plain strings in the database."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Actor roles, lowest privilege first."""

    PARTNER = "PARTNER"
    MEMBER = "MEMBER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


ROLE_HIERARCHY: dict[str, int] = {
    Role.PARTNER: 0,
    Role.MEMBER: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


def role_at_least(role: str, required: str) -> bool:
    """Check whether a role meets or exceeds the required role level."""
    return ROLE_HIERARCHY.get(role, -1) >= ROLE_HIERARCHY.get(required, 999)


class ContentType(str, Enum):
    """Content types a partner grant can expose."""

    CUSTOMERS = "customers"
    TASKS = "tasks"
    WORKFLOWS = "workflows"
    PAYMENTS = "payments"
    REPORTS = "reports"


class PaymentStatus(str, Enum):
    """Payment status values."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentType(str, Enum):
    SALARY = "SALARY"
    INVOICE = "INVOICE"
    COMMISSION = "COMMISSION"
    BONUS = "BONUS"
    MONTHLY = "MONTHLY"
    ONE_TIME = "ONE_TIME"
    MILESTONE = "MILESTONE"
    OTHER = "OTHER"


class AuditAction(str, Enum):
    """Kinds of mutation recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    CANCEL = "CANCEL"
    SOFT_DELETE = "SOFT_DELETE"
    BATCH_UPDATE = "BATCH_UPDATE"


class TaskStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DONE = "DONE"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class WorkflowStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class StepStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    DONE = "DONE"
    SKIPPED = "SKIPPED"
