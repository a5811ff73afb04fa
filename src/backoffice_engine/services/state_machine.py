"""Payment state machine with transition and role-gate validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from backoffice_engine.errors import ForbiddenError, InvalidTransitionError
from backoffice_engine.models.enums import PaymentStatus, Role, role_at_least

if TYPE_CHECKING:
    from backoffice_engine.models import ApprovalRule


class PaymentStateMachine:
    """State machine for payment status transitions.

    Allowed transitions:
    - DRAFT → PENDING      (MANAGER or ADMIN)
    - PENDING → APPROVED   (role >= matching rule's required_role, default MANAGER)
    - APPROVED → PAID      (ADMIN, sets paid_at)
    - PAID → CANCELLED     (ADMIN)

    PARTNER actors never transition. Soft delete of a DRAFT is not a status
    change and is gated separately by can_soft_delete.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.DRAFT: [PaymentStatus.PENDING],
        PaymentStatus.PENDING: [PaymentStatus.APPROVED],
        PaymentStatus.APPROVED: [PaymentStatus.PAID],
        PaymentStatus.PAID: [PaymentStatus.CANCELLED],
        PaymentStatus.CANCELLED: [],  # Terminal state
    }

    # Minimum role per target status; APPROVED is resolved from the rule
    TRANSITION_ROLES: dict[str, str] = {
        PaymentStatus.PENDING: Role.MANAGER.value,
        PaymentStatus.PAID: Role.ADMIN.value,
        PaymentStatus.CANCELLED: Role.ADMIN.value,
    }

    DEFAULT_APPROVER_ROLE = Role.MANAGER.value

    # Roles that may create, edit or soft-delete payments
    WRITER_ROLES = {Role.MANAGER, Role.ADMIN}

    # Fields whose edit on a PAID payment needs an adjustment reason
    SETTLED_AMOUNT_FIELDS = ("amount", "tax", "withholding_tax")

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            allowed = cls.get_next_statuses(from_status)
            reason = f"allowed: {', '.join(allowed) if allowed else 'none'}"
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [s.value for s in cls.VALID_TRANSITIONS.get(current_status, [])]

    @classmethod
    def required_role(cls, to_status: str, rule: ApprovalRule | None = None) -> str:
        """Minimum role needed to move a payment into to_status."""
        if to_status == PaymentStatus.APPROVED:
            if rule is not None:
                return rule.required_role
            return cls.DEFAULT_APPROVER_ROLE
        return cls.TRANSITION_ROLES[to_status]

    @classmethod
    def reject_partner(cls, actor_role: str) -> None:
        if actor_role == Role.PARTNER:
            raise ForbiddenError("Partners cannot change payment status")

    @classmethod
    def validate_actor(
        cls,
        actor_role: str,
        to_status: str,
        rule: ApprovalRule | None = None,
    ) -> None:
        """Raise ForbiddenError unless the role may perform the transition."""
        cls.reject_partner(actor_role)
        required = cls.required_role(to_status, rule)
        if not role_at_least(actor_role, required):
            raise ForbiddenError(
                f"Moving a payment to {to_status} requires role {required}"
            )

    @classmethod
    def is_writer(cls, actor_role: str) -> bool:
        """Check if the role may create or edit payments."""
        return actor_role in cls.WRITER_ROLES

    @classmethod
    def initial_status(cls, rule: ApprovalRule | None) -> str:
        """Status of a newly created payment given its matching rule."""
        if rule is not None and rule.auto_approve:
            return PaymentStatus.APPROVED.value
        return PaymentStatus.DRAFT.value

    @classmethod
    def is_editable(cls, status: str) -> bool:
        """Check if fields can be edited in this status."""
        return status != PaymentStatus.CANCELLED

    @classmethod
    def requires_adjustment_reason(cls, status: str, changed_fields: set[str]) -> bool:
        """Check if an edit touching changed_fields must carry a reason."""
        if status != PaymentStatus.PAID:
            return False
        return any(f in changed_fields for f in cls.SETTLED_AMOUNT_FIELDS)

    @classmethod
    def can_soft_delete(cls, status: str) -> bool:
        """Only drafts may be deleted."""
        return status == PaymentStatus.DRAFT

    @classmethod
    def is_cancel(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a cancellation (PAID → CANCELLED)."""
        return from_status == PaymentStatus.PAID and to_status == PaymentStatus.CANCELLED

    @classmethod
    def sets_paid_at(cls, to_status: str) -> bool:
        return to_status == PaymentStatus.PAID
