"""Batch status transitions over many payments."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice_engine.database import commit
from backoffice_engine.errors import BackofficeError, ValidationError
from backoffice_engine.models import AuditAction, PaymentStatus
from backoffice_engine.services.access_resolver import Actor
from backoffice_engine.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchItemError:
    id: UUID
    reason: str


@dataclass
class BatchResult:
    """Summary of a batch run."""

    success: int = 0
    failed: int = 0
    errors: list[BatchItemError] = field(default_factory=list)


class BatchProcessor:
    """Applies one transition to many payments.

    Each item runs in its own session and transaction: resolve access,
    transition, audit as BATCH_UPDATE, commit. A failing item is reported
    in the summary and never affects the others.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def apply_batch(
        self,
        actor: Actor,
        payment_ids: Sequence[UUID],
        target_status: str,
    ) -> BatchResult:
        if not payment_ids:
            raise ValidationError("payment_ids must not be empty", field="payment_ids")
        if target_status not in {s.value for s in PaymentStatus}:
            raise ValidationError(f"Unknown status: {target_status}", field="status")

        result = BatchResult()
        # Duplicates are processed once, in first-seen order
        for payment_id in dict.fromkeys(payment_ids):
            try:
                await self._apply_one(actor, payment_id, target_status)
            except BackofficeError as exc:
                result.failed += 1
                result.errors.append(BatchItemError(id=payment_id, reason=exc.message))
            except SQLAlchemyError:
                logger.exception("Batch item %s failed in storage", payment_id)
                result.failed += 1
                result.errors.append(
                    BatchItemError(id=payment_id, reason="Storage unavailable, retry the request")
                )
            else:
                result.success += 1

        logger.info(
            "Batch -> %s by %s: success=%d failed=%d",
            target_status,
            actor.user_id,
            result.success,
            result.failed,
        )
        return result

    async def _apply_one(self, actor: Actor, payment_id: UUID, target_status: str) -> None:
        async with self.session_factory() as session:
            service = PaymentService(session)
            await service.transition(
                actor,
                payment_id,
                target_status,
                action=AuditAction.BATCH_UPDATE.value,
            )
            await commit(session)
