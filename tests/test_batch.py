"""Tests for batch status transitions."""

from uuid import uuid4

import pytest

from backoffice_engine.errors import ValidationError
from backoffice_engine.models import Payment
from backoffice_engine.services.audit_service import AuditRecorder
from backoffice_engine.services.batch_service import BatchProcessor
from backoffice_engine.services.payment_service import ENTITY_TYPE, PaymentInput, PaymentService


async def committed_payments(session_factory, actor, statuses):
    """Create one committed payment per requested status path."""
    ids = []
    async with session_factory() as session:
        service = PaymentService(session)
        for path in statuses:
            payment = await service.create_payment(actor, PaymentInput(amount=10_000))
            for status in path:
                await service.transition(actor, payment.payment_id, status)
            ids.append(payment.payment_id)
        await session.commit()
    return ids


async def statuses_of(session_factory, ids):
    async with session_factory() as session:
        return [(await session.get(Payment, payment_id)).status for payment_id in ids]


class TestBatchProcessor:
    async def test_one_cancelled_item_fails_alone(self, session_factory, admin):
        ids = await committed_payments(
            session_factory,
            admin,
            [(), (), ("PENDING", "APPROVED", "PAID", "CANCELLED")],
        )

        result = await BatchProcessor(session_factory).apply_batch(admin, ids, "PENDING")

        assert (result.success, result.failed) == (2, 1)
        assert result.errors[0].id == ids[2]
        assert "Invalid transition" in result.errors[0].reason
        assert await statuses_of(session_factory, ids) == ["PENDING", "PENDING", "CANCELLED"]

    async def test_second_approval_pass_reports_failures(self, session_factory, manager):
        ids = await committed_payments(session_factory, manager, [("PENDING",), ("PENDING",)])
        processor = BatchProcessor(session_factory)

        first = await processor.apply_batch(manager, ids, "APPROVED")
        assert (first.success, first.failed) == (2, 0)

        second = await processor.apply_batch(manager, ids, "APPROVED")
        assert (second.success, second.failed) == (0, 2)
        assert all("APPROVED" in e.reason for e in second.errors)
        assert await statuses_of(session_factory, ids) == ["APPROVED", "APPROVED"]

    async def test_items_are_audited_as_batch_updates(self, session_factory, manager):
        ids = await committed_payments(session_factory, manager, [()])
        await BatchProcessor(session_factory).apply_batch(manager, ids, "PENDING")

        async with session_factory() as session:
            entries = await AuditRecorder(session).entries(ENTITY_TYPE, ids[0])
        assert [e.action for e in entries] == ["BATCH_UPDATE", "CREATE"]

    async def test_per_item_errors(self, session_factory, manager, member):
        ids = await committed_payments(session_factory, manager, [()])
        missing = uuid4()

        result = await BatchProcessor(session_factory).apply_batch(
            member, [ids[0], missing], "PENDING"
        )

        assert (result.success, result.failed) == (0, 2)
        reasons = {e.id: e.reason for e in result.errors}
        assert reasons[missing] == "Payment not found"
        assert "MANAGER" in reasons[ids[0]]

    async def test_duplicates_processed_once(self, session_factory, manager):
        ids = await committed_payments(session_factory, manager, [()])
        result = await BatchProcessor(session_factory).apply_batch(
            manager, [ids[0], ids[0]], "PENDING"
        )
        assert (result.success, result.failed) == (1, 0)

    @pytest.mark.parametrize("payment_ids,status", [([], "PENDING"), ([uuid4()], "ARCHIVED")])
    async def test_rejects_bad_requests(self, session_factory, manager, payment_ids, status):
        with pytest.raises(ValidationError):
            await BatchProcessor(session_factory).apply_batch(manager, payment_ids, status)
