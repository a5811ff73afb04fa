"""Append-only audit trail, doubling as the version store."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_engine.models.base import Base, TimestampMixin


class AuditEntry(Base, TimestampMixin):
    """Audit trail entry.

    One row per mutating operation. ``sequence`` numbers the entries of one
    entity from 1; the highest sequence's ``after_json`` is the entity's
    latest version.
    """

    __tablename__ = "audit_entry"

    audit_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    actor_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"),
        nullable=True,
    )
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            "sequence",
            name="audit_entry_entity_sequence_unique",
        ),
        Index("audit_entry_entity_idx", "entity_type", "entity_id"),
    )
