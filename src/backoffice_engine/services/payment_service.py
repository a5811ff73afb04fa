"""Payment service - lifecycle orchestration for payments."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import ColumnElement, false, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.calculators import compute_net_amount, compute_withholding, default_tax
from backoffice_engine.config import get_settings
from backoffice_engine.database import flush
from backoffice_engine.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from backoffice_engine.models import (
    AuditAction,
    Business,
    ContentType,
    CustomerBusiness,
    Partner,
    Payment,
    PaymentComment,
    PaymentStatus,
    PaymentType,
)
from backoffice_engine.models.base import utcnow
from backoffice_engine.services.access_resolver import AccessResolver, Actor
from backoffice_engine.services.approval_rules import ApprovalRuleEngine
from backoffice_engine.services.audit_service import AuditRecorder, HistoryEntry
from backoffice_engine.services.patch import UNSET, PaymentPatch
from backoffice_engine.services.scope_filter import PAYMENT_LINK, linked_business_ids, scope_predicate
from backoffice_engine.services.state_machine import PaymentStateMachine

logger = logging.getLogger(__name__)

ENTITY_TYPE = "payment"

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class PaymentInput:
    """Fields accepted when creating a payment."""

    amount: int
    partner_id: UUID | None = None
    business_id: UUID | None = None
    customer_business_id: UUID | None = None
    workflow_id: UUID | None = None
    category_id: UUID | None = None
    tax: int | None = None
    withholding_tax: int | None = None
    apply_withholding: bool = False
    type: str = PaymentType.OTHER.value
    period: str | None = None
    due_date: date | None = None
    note: str | None = None


@dataclass(frozen=True)
class PaymentFilters:
    status: str | None = None
    type: str | None = None
    partner_id: UUID | None = None
    business_id: UUID | None = None
    period: str | None = None


def _require_amount(name: str, value: object, minimum: int) -> int:
    if value is None or not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", field=name)
    if value < minimum:
        comparison = "greater than 0" if minimum == 1 else f">= {minimum}"
        raise ValidationError(f"{name} must be {comparison}", field=name)
    return value


def _validate_type(value: str | None) -> str:
    try:
        return PaymentType(value).value
    except ValueError:
        raise ValidationError(f"Unknown payment type: {value}", field="type") from None


def _validate_period(value: str | None) -> str | None:
    if value is not None and not PERIOD_PATTERN.match(value):
        raise ValidationError("period must be formatted YYYY-MM", field="period")
    return value


def _own_payments(actor: Actor) -> ColumnElement[bool]:
    """Partners see only payments made to their own partner record."""
    if not actor.is_partner:
        return true()
    if actor.partner_id is None:
        return false()
    return Payment.partner_id == actor.partner_id


def _net_amount(total: int, withholding: int) -> int:
    net = compute_net_amount(total, withholding)
    if net < 0:
        raise ValidationError(
            "Withholding tax exceeds the total amount", field="withholding_tax"
        )
    return net


class PaymentService:
    """Service for managing the payment lifecycle.

    Operations:
    - create_payment: validate, derive totals, pick DRAFT or APPROVED by rule
    - update_payment: patch fields, enforcing the PAID adjustment reason rule
    - transition: move through the state machine with role gates
    - soft_delete: retire a DRAFT payment

    Every mutation re-reads the row inside the caller's transaction and
    appends an audit entry before returning.
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: AccessResolver | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.session = session
        self.resolver = resolver or AccessResolver(session)
        self.audit = audit or AuditRecorder(session)
        self.rules = ApprovalRuleEngine(session)

    # Reads

    async def get_payment(self, actor: Actor, payment_id: UUID) -> Payment:
        """Load a visible payment; out-of-scope payments are reported as absent."""
        scope = await self.resolver.resolve_scope(actor, ContentType.PAYMENTS.value)
        payment = await self.session.scalar(
            select(Payment).where(
                Payment.payment_id == payment_id,
                Payment.deleted_at.is_(None),
                scope_predicate(scope, PAYMENT_LINK),
                _own_payments(actor),
            )
        )
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def list_payments(
        self,
        actor: Actor,
        filters: PaymentFilters | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Payment], int]:
        """Visible payments, newest first, with the total count before paging."""
        filters = filters or PaymentFilters()
        scope = await self.resolver.resolve_scope(actor, ContentType.PAYMENTS.value)
        if filters.business_id is not None:
            scope = scope.narrow(filters.business_id)

        query = select(Payment).where(
            Payment.deleted_at.is_(None),
            scope_predicate(scope, PAYMENT_LINK),
            _own_payments(actor),
        )
        if filters.status:
            query = query.where(Payment.status == filters.status)
        if filters.type:
            query = query.where(Payment.type == filters.type)
        if filters.partner_id:
            query = query.where(Payment.partner_id == filters.partner_id)
        if filters.period:
            query = query.where(Payment.period == filters.period)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Payment.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def history(
        self,
        actor: Actor,
        payment_id: UUID,
        limit: int | None = None,
    ) -> list[HistoryEntry]:
        """Audit history for a visible payment, newest first."""
        await self.get_payment(actor, payment_id)
        if limit is None:
            limit = get_settings().history_limit
        return await self.audit.history(ENTITY_TYPE, payment_id, limit)

    # Mutations

    async def create_payment(self, actor: Actor, data: PaymentInput) -> Payment:
        """Create a payment in DRAFT, or APPROVED when an auto-approve rule matches."""
        self._require_writer(actor)
        amount = _require_amount("amount", data.amount, 1)
        payment_type = _validate_type(data.type)
        period = _validate_period(data.period)

        await self._check_references(data)
        business_ids = await linked_business_ids(
            self.session, data.business_id, data.customer_business_id
        )
        await self.resolver.require_write(actor, business_ids, ContentType.PAYMENTS.value)

        tax = default_tax(amount) if data.tax is None else _require_amount("tax", data.tax, 0)
        if data.apply_withholding:
            withholding = compute_withholding(amount)
        elif data.withholding_tax is None:
            withholding = 0
        else:
            withholding = _require_amount("withholding_tax", data.withholding_tax, 0)
        total = amount + tax
        net = _net_amount(total, withholding)

        rule = await self.rules.resolve_rule(amount)
        payment = Payment(
            partner_id=data.partner_id,
            business_id=data.business_id,
            customer_business_id=data.customer_business_id,
            workflow_id=data.workflow_id,
            category_id=data.category_id,
            amount=amount,
            tax=tax,
            total_amount=total,
            withholding_tax=withholding,
            net_amount=net,
            type=payment_type,
            status=PaymentStateMachine.initial_status(rule),
            period=period,
            due_date=data.due_date,
            note=data.note,
        )
        self.session.add(payment)
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.CREATE.value, ENTITY_TYPE, payment.payment_id, None, payment.snapshot()
        )
        logger.info(
            "Payment %s created by %s: amount=%d status=%s rule=%s",
            payment.payment_id,
            actor.user_id,
            amount,
            payment.status,
            rule.rule_id if rule else None,
        )
        return payment

    async def update_payment(
        self,
        actor: Actor,
        payment_id: UUID,
        patch: PaymentPatch,
        expected_version: int | None = None,
    ) -> Payment:
        """Apply a field patch.

        Amount-bearing edits on a PAID payment must carry an adjustment
        reason, which is persisted on the row so it appears in the audit
        entry's after snapshot. Totals are rederived before the write.
        """
        payment = await self._load_for_write(actor, payment_id, expected_version)
        if not PaymentStateMachine.is_editable(payment.status):
            raise ValidationError(f"{payment.status} payments cannot be edited", field="status")

        changes = patch.provided()
        apply_withholding = bool(changes.pop("apply_withholding", False))
        reason = changes.pop("adjustment_reason", UNSET)
        if isinstance(reason, str):
            reason = reason.strip() or None

        if "amount" in changes:
            _require_amount("amount", changes["amount"], 1)
        if "tax" in changes:
            _require_amount("tax", changes["tax"], 0)
        amount = changes.get("amount", payment.amount)
        if apply_withholding:
            changes["withholding_tax"] = compute_withholding(amount)
        elif "withholding_tax" in changes:
            _require_amount("withholding_tax", changes["withholding_tax"], 0)
        if "type" in changes:
            changes["type"] = _validate_type(changes["type"])
        if "period" in changes:
            _validate_period(changes["period"])

        changed_amounts = {
            name
            for name in PaymentStateMachine.SETTLED_AMOUNT_FIELDS
            if name in changes and changes[name] != getattr(payment, name)
        }
        if PaymentStateMachine.requires_adjustment_reason(payment.status, changed_amounts) and not reason:
            raise ValidationError(
                "adjustment_reason is required when editing amounts of a PAID payment",
                field="adjustment_reason",
            )

        total = changes.get("amount", payment.amount) + changes.get("tax", payment.tax)
        net = _net_amount(total, changes.get("withholding_tax", payment.withholding_tax))

        before = payment.snapshot()
        for key, value in changes.items():
            setattr(payment, key, value)
        if reason is not UNSET:
            payment.adjustment_reason = reason
        payment.total_amount = total
        payment.net_amount = net
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.UPDATE.value, ENTITY_TYPE, payment_id, before, payment.snapshot()
        )
        if changed_amounts and payment.status == PaymentStatus.PAID:
            logger.info(
                "Paid payment %s adjusted by %s: %s", payment_id, actor.user_id, sorted(changed_amounts)
            )
        return payment

    async def transition(
        self,
        actor: Actor,
        payment_id: UUID,
        to_status: str,
        action: str = AuditAction.UPDATE.value,
        expected_version: int | None = None,
    ) -> Payment:
        """Transition a payment to a new status.

        Partners are rejected outright. For staff the transition table is
        checked before role gates, so an impossible move reports
        InvalidTransitionError whatever the role.
        A single PAID → CANCELLED is audited as CANCEL.
        """
        payment = await self._load_for_write(
            actor, payment_id, expected_version, require_writer=False
        )
        from_status = payment.status

        PaymentStateMachine.reject_partner(actor.role)
        PaymentStateMachine.validate_transition(from_status, to_status)
        rule = None
        if to_status == PaymentStatus.APPROVED:
            rule = await self.rules.resolve_rule(payment.amount)
        PaymentStateMachine.validate_actor(actor.role, to_status, rule)

        before = payment.snapshot()
        payment.status = PaymentStatus(to_status).value
        if PaymentStateMachine.sets_paid_at(to_status):
            payment.paid_at = utcnow()
        if action == AuditAction.UPDATE and PaymentStateMachine.is_cancel(from_status, to_status):
            action = AuditAction.CANCEL.value
        await flush(self.session)

        await self.audit.record(actor, action, ENTITY_TYPE, payment_id, before, payment.snapshot())
        logger.info(
            "Payment %s %s -> %s by %s", payment_id, from_status, payment.status, actor.user_id
        )
        return payment

    async def soft_delete(
        self,
        actor: Actor,
        payment_id: UUID,
        expected_version: int | None = None,
    ) -> Payment:
        """Retire a DRAFT payment. The row is kept for the audit trail."""
        payment = await self._load_for_write(actor, payment_id, expected_version)
        if not PaymentStateMachine.can_soft_delete(payment.status):
            raise ValidationError(
                f"Only DRAFT payments can be deleted (current: {payment.status})",
                field="status",
            )

        before = payment.snapshot()
        payment.deleted_at = utcnow()
        await flush(self.session)

        await self.audit.record(
            actor, AuditAction.SOFT_DELETE.value, ENTITY_TYPE, payment_id, before, None
        )
        logger.info("Payment %s soft-deleted by %s", payment_id, actor.user_id)
        return payment

    # Comments

    async def list_comments(self, actor: Actor, payment_id: UUID) -> list[PaymentComment]:
        await self.get_payment(actor, payment_id)
        result = await self.session.execute(
            select(PaymentComment)
            .where(PaymentComment.payment_id == payment_id)
            .order_by(PaymentComment.created_at)
        )
        return list(result.scalars().all())

    async def add_comment(self, actor: Actor, payment_id: UUID, content: str) -> PaymentComment:
        await self.get_payment(actor, payment_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("content is required", field="content")

        comment = PaymentComment(payment_id=payment_id, user_id=actor.user_id, content=content)
        self.session.add(comment)
        await flush(self.session)
        return comment

    # Helpers

    def _require_writer(self, actor: Actor) -> None:
        if not PaymentStateMachine.is_writer(actor.role):
            raise ForbiddenError("Only MANAGER or ADMIN may modify payments")

    async def _load_for_write(
        self,
        actor: Actor,
        payment_id: UUID,
        expected_version: int | None,
        require_writer: bool = True,
    ) -> Payment:
        """Re-read a payment under a row lock and check write access.

        Absent payments raise NotFoundError; existing ones the actor may not
        write raise ForbiddenError.
        """
        payment = await self.session.scalar(
            select(Payment)
            .where(Payment.payment_id == payment_id, Payment.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if payment is None:
            raise NotFoundError("Payment", payment_id)

        if require_writer:
            self._require_writer(actor)
        business_ids = await linked_business_ids(
            self.session, payment.business_id, payment.customer_business_id
        )
        await self.resolver.require_write(actor, business_ids, ContentType.PAYMENTS.value)

        if expected_version is not None and payment.version != expected_version:
            raise ConflictError(
                f"Payment was modified concurrently (expected version {expected_version}, "
                f"current {payment.version})"
            )
        return payment

    async def _check_references(self, data: PaymentInput) -> None:
        if data.partner_id is not None:
            partner = await self.session.get(Partner, data.partner_id)
            if partner is None or partner.is_deleted:
                raise ValidationError("Unknown partner", field="partner_id")
        if data.business_id is not None:
            if await self.session.get(Business, data.business_id) is None:
                raise ValidationError("Unknown business", field="business_id")
        if data.customer_business_id is not None:
            link = await self.session.get(CustomerBusiness, data.customer_business_id)
            if link is None or link.is_deleted:
                raise ValidationError("Unknown customer engagement", field="customer_business_id")
