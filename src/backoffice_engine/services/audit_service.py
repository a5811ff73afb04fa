"""Audit trail writes and history reads.

Every mutation appends one AuditEntry holding full before/after snapshots in
the caller's transaction. Diffs are never stored; they are computed when the
history is read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.database import flush
from backoffice_engine.models import AuditAction, AuditEntry

if TYPE_CHECKING:
    from backoffice_engine.services.access_resolver import Actor

logger = logging.getLogger(__name__)

# Financially or semantically relevant fields shown in history diffs
DIFF_FIELDS: tuple[str, ...] = (
    "status",
    "amount",
    "tax",
    "total_amount",
    "withholding_tax",
    "net_amount",
    "type",
    "period",
    "due_date",
    "paid_at",
    "note",
)


@dataclass(frozen=True)
class FieldChange:
    """One field that differs between two snapshots."""

    field: str
    before: Any
    after: Any


@dataclass
class HistoryEntry:
    """An audit entry rendered for display."""

    sequence: int
    action: str
    actor_user_id: UUID | None
    created_at: datetime
    changes: list[FieldChange] = field(default_factory=list)
    initial_values: dict[str, Any] | None = None
    adjustment_reason: str | None = None


def _stringify(value: Any) -> str:
    return "" if value is None else str(value)


def diff(
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    fields: tuple[str, ...] = DIFF_FIELDS,
) -> list[FieldChange]:
    """Compare two snapshots field by field using stringified equality."""
    before = before or {}
    after = after or {}
    changes = []
    for name in fields:
        old, new = before.get(name), after.get(name)
        if _stringify(old) != _stringify(new):
            changes.append(FieldChange(field=name, before=old, after=new))
    return changes


def render_entry(entry: AuditEntry) -> HistoryEntry:
    """Turn a stored entry into a history line."""
    rendered = HistoryEntry(
        sequence=entry.sequence,
        action=entry.action,
        actor_user_id=entry.actor_user_id,
        created_at=entry.created_at,
    )
    if entry.action == AuditAction.CREATE or entry.before_json is None:
        rendered.initial_values = entry.after_json
        return rendered

    if entry.after_json is not None:
        rendered.changes = diff(entry.before_json, entry.after_json)
        old_reason = _stringify(entry.before_json.get("adjustment_reason"))
        new_reason = entry.after_json.get("adjustment_reason")
        if new_reason and _stringify(new_reason) != old_reason:
            rendered.adjustment_reason = new_reason
    return rendered


class AuditRecorder:
    """Appends audit entries and reads entity history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        actor: Actor | None,
        action: str,
        entity_type: str,
        entity_id: UUID,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> AuditEntry:
        """Append an entry with the entity's next sequence number and flush it.

        A failed write raises TransientError (or ConflictError when another
        writer took the same sequence) so the caller's mutation is abandoned.
        """
        current = await self.session.scalar(
            select(func.max(AuditEntry.sequence)).where(
                AuditEntry.entity_type == entity_type,
                AuditEntry.entity_id == entity_id,
            )
        )
        entry = AuditEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            sequence=(current or 0) + 1,
            action=str(AuditAction(action).value),
            actor_user_id=actor.user_id if actor else None,
            before_json=before,
            after_json=after,
        )
        self.session.add(entry)
        await flush(self.session)
        logger.debug(
            "Audit %s %s/%s seq=%d", entry.action, entity_type, entity_id, entry.sequence
        )
        return entry

    async def entries(
        self,
        entity_type: str,
        entity_id: UUID,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Stored entries for an entity, newest first."""
        query = (
            select(AuditEntry)
            .where(
                AuditEntry.entity_type == entity_type,
                AuditEntry.entity_id == entity_id,
            )
            .order_by(AuditEntry.sequence.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def history(
        self,
        entity_type: str,
        entity_id: UUID,
        limit: int = 50,
    ) -> list[HistoryEntry]:
        """Rendered history for display, newest first."""
        return [render_entry(e) for e in await self.entries(entity_type, entity_id, limit)]

    async def latest_snapshot(self, entity_type: str, entity_id: UUID) -> dict[str, Any] | None:
        """The entity's latest version as recorded by the trail."""
        entries = await self.entries(entity_type, entity_id, limit=1)
        if not entries:
            return None
        return entries[0].after_json
