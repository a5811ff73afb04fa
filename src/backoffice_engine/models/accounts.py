"""Users, partners, businesses and partner content grants."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_engine.models.base import Base, SoftDeleteMixin, TimestampMixin, UpdatedAtMixin


class AppUser(Base, TimestampMixin, UpdatedAtMixin):
    """Login identity. Authentication happens elsewhere; only role matters here."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="MEMBER")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('ADMIN', 'MANAGER', 'MEMBER', 'PARTNER')",
            name="app_user_role_check",
        ),
    )


class Partner(Base, TimestampMixin, UpdatedAtMixin, SoftDeleteMixin):
    """External contractor. May be bound to at most one login."""

    __tablename__ = "partner"

    partner_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    company: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )


class Business(Base, TimestampMixin):
    """A line of business that customers engage with."""

    __tablename__ = "business"

    business_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PartnerBusiness(Base, TimestampMixin, UpdatedAtMixin):
    """Per-(partner, business) grant of visible content types and edit right."""

    __tablename__ = "partner_business"

    partner_business_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    partner_id: Mapped[UUID] = mapped_column(
        ForeignKey("partner.partner_id", ondelete="CASCADE"),
        nullable=False,
    )
    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("business.business_id", ondelete="CASCADE"),
        nullable=False,
    )
    permissions: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("partner_id", "business_id", name="partner_business_unique"),
    )

    def grants(self, content_type: str) -> bool:
        """Check if this grant is active and exposes the content type."""
        return self.is_active and content_type in (self.permissions or [])
