"""Payment, approval rule and payment comment models."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_engine.models.base import Base, SoftDeleteMixin, TimestampMixin, UpdatedAtMixin


class ApprovalRule(Base, TimestampMixin, UpdatedAtMixin):
    """Amount-range policy: who must approve, and whether creation auto-approves.

    The interval is half-open, [min_amount, max_amount); max_amount NULL means
    unbounded. Rules are deactivated rather than deleted.
    """

    __tablename__ = "approval_rule"

    rule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    min_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    max_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    required_role: Mapped[str] = mapped_column(String, nullable=False, default="MANAGER")
    auto_approve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("min_amount >= 0", name="approval_rule_min_check"),
        CheckConstraint(
            "max_amount IS NULL OR max_amount > min_amount",
            name="approval_rule_range_check",
        ),
    )

    def contains(self, amount: int) -> bool:
        """Check if amount falls in [min_amount, max_amount)."""
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount


class Payment(Base, TimestampMixin, UpdatedAtMixin, SoftDeleteMixin):
    """Payment to a partner. Status changes only through the state machine."""

    __tablename__ = "payment"

    payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    partner_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("partner.partner_id"),
        nullable=True,
    )
    business_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("business.business_id"),
        nullable=True,
    )
    customer_business_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customer_business.customer_business_id"),
        nullable=True,
    )
    workflow_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("workflow.workflow_id"),
        nullable=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(nullable=True)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    withholding_tax: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    type: Mapped[str] = mapped_column(String, nullable=False, default="OTHER")
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount > 0", name="payment_amount_positive"),
        CheckConstraint("net_amount >= 0", name="payment_net_non_negative"),
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'APPROVED', 'PAID', 'CANCELLED')",
            name="payment_status_check",
        ),
    )


class PaymentComment(Base, TimestampMixin):
    """Free-text note thread on a payment."""

    __tablename__ = "payment_comment"

    comment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment.payment_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
