"""Tests for the payment lifecycle service."""

from uuid import uuid4

import pytest

from backoffice_engine.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from backoffice_engine.models import Partner, PartnerBusiness, Payment
from backoffice_engine.services.audit_service import AuditRecorder
from backoffice_engine.services.patch import PaymentPatch
from backoffice_engine.services.payment_service import (
    ENTITY_TYPE,
    PaymentFilters,
    PaymentInput,
    PaymentService,
)


async def create_paid(service, admin, amount=200_000):
    payment = await service.create_payment(admin, PaymentInput(amount=amount))
    for status in ("PENDING", "APPROVED", "PAID"):
        payment = await service.transition(admin, payment.payment_id, status)
    return payment


async def grant_payments(session, seed, can_edit=False):
    grant = await session.get(PartnerBusiness, seed.grant_b.partner_business_id)
    grant.permissions = ["tasks", "payments"]
    grant.can_edit = can_edit
    await session.commit()


class FailingRecorder(AuditRecorder):
    async def record(self, *args, **kwargs):
        raise TransientError("Audit store unavailable")


class TestCreatePayment:
    async def test_defaults(self, session, manager, seed):
        payment = await PaymentService(session).create_payment(
            manager,
            PaymentInput(
                amount=300_000,
                partner_id=seed.partner.partner_id,
                business_id=seed.business_b.business_id,
                type="INVOICE",
                period="2026-09",
            ),
        )
        assert payment.status == "DRAFT"
        assert payment.tax == 30_000
        assert payment.total_amount == 330_000
        assert payment.withholding_tax == 0
        assert payment.net_amount == 330_000
        assert payment.version == 1

    async def test_apply_withholding(self, session, manager):
        payment = await PaymentService(session).create_payment(
            manager, PaymentInput(amount=1_200_000, apply_withholding=True)
        )
        assert payment.withholding_tax == 142_940
        assert payment.total_amount == 1_320_000
        assert payment.net_amount == 1_320_000 - 142_940

    async def test_explicit_tax_and_withholding(self, session, manager):
        payment = await PaymentService(session).create_payment(
            manager, PaymentInput(amount=100_000, tax=0, withholding_tax=5_000)
        )
        assert payment.total_amount == 100_000
        assert payment.net_amount == 95_000

    async def test_auto_approve_rule(self, session, manager, auto_approve_rule):
        payment = await PaymentService(session).create_payment(
            manager, PaymentInput(amount=500_000)
        )
        assert payment.status == "APPROVED"

    async def test_amount_outside_auto_rule_stays_draft(
        self, session, manager, auto_approve_rule, admin_approval_rule
    ):
        payment = await PaymentService(session).create_payment(
            manager, PaymentInput(amount=2_000_000)
        )
        assert payment.status == "DRAFT"

    @pytest.mark.parametrize(
        "data",
        [
            PaymentInput(amount=0),
            PaymentInput(amount=-10),
            PaymentInput(amount=100, tax=-1),
            PaymentInput(amount=100, type="GIFT"),
            PaymentInput(amount=100, period="2026-13"),
            PaymentInput(amount=100, tax=0, withholding_tax=101),
            PaymentInput(amount=100, partner_id=uuid4()),
            PaymentInput(amount=100, business_id=uuid4()),
        ],
    )
    async def test_validation(self, session, manager, data):
        with pytest.raises(ValidationError):
            await PaymentService(session).create_payment(manager, data)

    async def test_member_and_partner_cannot_create(self, session, member, partner_actor):
        service = PaymentService(session)
        for actor in (member, partner_actor):
            with pytest.raises(ForbiddenError):
                await service.create_payment(actor, PaymentInput(amount=1_000))

    async def test_create_is_audited(self, session, manager):
        payment = await PaymentService(session).create_payment(
            manager, PaymentInput(amount=1_000)
        )
        entries = await AuditRecorder(session).entries(ENTITY_TYPE, payment.payment_id)
        assert len(entries) == 1
        assert entries[0].action == "CREATE"
        assert entries[0].sequence == 1
        assert entries[0].before_json is None
        assert entries[0].after_json["amount"] == 1_000


class TestTransitions:
    async def test_full_lifecycle(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        assert payment.status == "PAID"
        assert payment.paid_at is not None

    async def test_invalid_transition_reported_before_role(self, session, member, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        with pytest.raises(InvalidTransitionError):
            await service.transition(member, payment.payment_id, "PAID")

    async def test_rule_requires_admin_approval(self, session, manager, admin, admin_approval_rule):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=2_000_000))
        await service.transition(manager, payment.payment_id, "PENDING")

        with pytest.raises(ForbiddenError):
            await service.transition(manager, payment.payment_id, "APPROVED")

        approved = await service.transition(admin, payment.payment_id, "APPROVED")
        assert approved.status == "APPROVED"

    async def test_manager_cannot_pay(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        await service.transition(manager, payment.payment_id, "PENDING")
        await service.transition(manager, payment.payment_id, "APPROVED")
        with pytest.raises(ForbiddenError):
            await service.transition(manager, payment.payment_id, "PAID")

    async def test_cancel_of_paid_payment_is_audited_as_cancel(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        await service.transition(admin, payment.payment_id, "CANCELLED")

        entries = await AuditRecorder(session).entries(ENTITY_TYPE, payment.payment_id)
        assert [e.action for e in entries] == ["CANCEL", "UPDATE", "UPDATE", "UPDATE", "CREATE"]
        assert [e.sequence for e in entries] == [5, 4, 3, 2, 1]

    async def test_stale_version_conflicts(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        with pytest.raises(ConflictError):
            await service.transition(
                manager, payment.payment_id, "PENDING", expected_version=payment.version + 5
            )

    async def test_version_increments(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        updated = await service.transition(
            manager, payment.payment_id, "PENDING", expected_version=1
        )
        assert updated.version == 2

    async def test_partner_with_edit_grant_cannot_transition(
        self, session, manager, partner_actor, seed
    ):
        await grant_payments(session, seed, can_edit=True)
        service = PaymentService(session)
        payment = await service.create_payment(
            manager,
            PaymentInput(
                amount=1_000,
                partner_id=seed.partner.partner_id,
                business_id=seed.business_b.business_id,
            ),
        )
        await session.commit()

        with pytest.raises(ForbiddenError):
            await service.transition(partner_actor, payment.payment_id, "PENDING")
        # Impossible moves are still reported as forbidden for partners
        with pytest.raises(ForbiddenError):
            await service.transition(partner_actor, payment.payment_id, "PAID")

    async def test_failed_audit_write_leaves_payment_unchanged(
        self, session, session_factory, manager
    ):
        payment = await PaymentService(session).create_payment(manager, PaymentInput(amount=1_000))
        await session.commit()

        async with session_factory() as failing:
            service = PaymentService(failing, audit=FailingRecorder(failing))
            with pytest.raises(TransientError):
                await service.transition(manager, payment.payment_id, "PENDING")
            await failing.rollback()

        async with session_factory() as fresh:
            stored = await fresh.get(Payment, payment.payment_id)
            assert stored.status == "DRAFT"
            assert stored.version == 1
            entries = await AuditRecorder(fresh).entries(ENTITY_TYPE, payment.payment_id)
            assert [e.action for e in entries] == ["CREATE"]


class TestUpdatePayment:
    async def test_update_recomputes_totals(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=100_000))
        updated = await service.update_payment(
            manager, payment.payment_id, PaymentPatch(amount=200_000, tax=20_000)
        )
        assert updated.total_amount == 220_000
        assert updated.net_amount == 220_000

    async def test_patch_reapplies_withholding(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=100_000))
        updated = await service.update_payment(
            manager,
            payment.payment_id,
            PaymentPatch(amount=1_200_000, tax=0, apply_withholding=True),
        )
        assert updated.withholding_tax == 142_940
        assert updated.net_amount == 1_200_000 - 142_940

    async def test_paid_amount_edit_requires_reason(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        with pytest.raises(ValidationError) as exc_info:
            await service.update_payment(admin, payment.payment_id, PaymentPatch(amount=250_000))
        assert exc_info.value.field == "adjustment_reason"

        # Blank reasons do not count
        with pytest.raises(ValidationError):
            await service.update_payment(
                admin,
                payment.payment_id,
                PaymentPatch(amount=250_000, adjustment_reason="   "),
            )

    async def test_paid_amount_edit_with_reason_is_recorded(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        await service.update_payment(
            admin,
            payment.payment_id,
            PaymentPatch(amount=250_000, adjustment_reason="Invoice corrected"),
        )

        entry = (await AuditRecorder(session).entries(ENTITY_TYPE, payment.payment_id, limit=1))[0]
        assert entry.action == "UPDATE"
        assert entry.after_json["adjustment_reason"] == "Invoice corrected"
        assert entry.after_json["amount"] == 250_000
        assert entry.before_json["amount"] == 200_000

    async def test_paid_note_edit_needs_no_reason(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        updated = await service.update_payment(
            admin, payment.payment_id, PaymentPatch(note="Wired on Friday")
        )
        assert updated.note == "Wired on Friday"

    async def test_cancelled_payment_is_not_editable(self, session, admin):
        service = PaymentService(session)
        payment = await create_paid(service, admin)
        await service.transition(admin, payment.payment_id, "CANCELLED")
        with pytest.raises(ValidationError):
            await service.update_payment(admin, payment.payment_id, PaymentPatch(note="late"))

    async def test_member_cannot_update(self, session, manager, member):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        with pytest.raises(ForbiddenError):
            await service.update_payment(member, payment.payment_id, PaymentPatch(note="x"))

    async def test_missing_payment(self, session, manager):
        with pytest.raises(NotFoundError):
            await PaymentService(session).update_payment(manager, uuid4(), PaymentPatch(note="x"))


class TestSoftDelete:
    async def test_draft_can_be_deleted(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        await service.soft_delete(manager, payment.payment_id)

        with pytest.raises(NotFoundError):
            await service.get_payment(manager, payment.payment_id)
        _, total = await service.list_payments(manager)
        assert total == 0

        entry = (await AuditRecorder(session).entries(ENTITY_TYPE, payment.payment_id, limit=1))[0]
        assert entry.action == "SOFT_DELETE"
        assert entry.after_json is None

    async def test_non_draft_cannot_be_deleted(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        await service.transition(manager, payment.payment_id, "PENDING")
        with pytest.raises(ValidationError):
            await service.soft_delete(manager, payment.payment_id)


class TestReads:
    async def test_list_filters(self, session, manager, seed):
        service = PaymentService(session)
        await service.create_payment(
            manager,
            PaymentInput(amount=1_000, business_id=seed.business_b.business_id, period="2026-09"),
        )
        await service.create_payment(
            manager,
            PaymentInput(amount=2_000, business_id=seed.business_c.business_id, type="BONUS"),
        )

        _, total = await service.list_payments(manager)
        assert total == 2

        items, total = await service.list_payments(
            manager, PaymentFilters(business_id=seed.business_b.business_id)
        )
        assert total == 1
        assert items[0].amount == 1_000

        _, total = await service.list_payments(manager, PaymentFilters(type="BONUS"))
        assert total == 1
        _, total = await service.list_payments(manager, PaymentFilters(period="2026-10"))
        assert total == 0

    async def test_paging(self, session, manager):
        service = PaymentService(session)
        for amount in (1_000, 2_000, 3_000):
            await service.create_payment(manager, PaymentInput(amount=amount))
        items, total = await service.list_payments(manager, page=2, page_size=2)
        assert total == 3
        assert len(items) == 1

    async def test_partner_without_payment_grant_sees_nothing(
        self, session, manager, partner_actor, seed
    ):
        service = PaymentService(session)
        payment = await service.create_payment(
            manager, PaymentInput(amount=1_000, business_id=seed.business_b.business_id)
        )
        with pytest.raises(NotFoundError):
            await service.get_payment(partner_actor, payment.payment_id)
        _, total = await service.list_payments(partner_actor)
        assert total == 0

    async def test_partner_sees_only_own_payments(self, session, manager, partner_actor, seed):
        await grant_payments(session, seed)
        other = Partner(name="Other partner")
        session.add(other)
        await session.commit()

        service = PaymentService(session)
        own = await service.create_payment(
            manager,
            PaymentInput(
                amount=1_000,
                partner_id=seed.partner.partner_id,
                business_id=seed.business_b.business_id,
            ),
        )
        foreign = await service.create_payment(
            manager,
            PaymentInput(
                amount=500_000,
                partner_id=other.partner_id,
                business_id=seed.business_b.business_id,
            ),
        )
        await session.commit()

        items, total = await service.list_payments(partner_actor)
        assert total == 1
        assert [p.payment_id for p in items] == [own.payment_id]
        assert (await service.get_payment(partner_actor, own.payment_id)).amount == 1_000

        with pytest.raises(NotFoundError):
            await service.get_payment(partner_actor, foreign.payment_id)
        with pytest.raises(NotFoundError):
            await service.history(partner_actor, foreign.payment_id)
        with pytest.raises(NotFoundError):
            await service.list_comments(partner_actor, foreign.payment_id)

    async def test_history(self, session, admin):
        service = PaymentService(session)
        payment = await service.create_payment(admin, PaymentInput(amount=1_000))
        await service.transition(admin, payment.payment_id, "PENDING")

        history = await service.history(admin, payment.payment_id)
        assert [h.action for h in history] == ["UPDATE", "CREATE"]
        assert history[0].changes[0].field == "status"
        assert history[0].changes[0].before == "DRAFT"
        assert history[0].changes[0].after == "PENDING"
        assert history[1].initial_values["amount"] == 1_000


class TestComments:
    async def test_add_and_list(self, session, manager, member):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        await service.add_comment(member, payment.payment_id, "  Checked the invoice  ")

        comments = await service.list_comments(manager, payment.payment_id)
        assert [c.content for c in comments] == ["Checked the invoice"]
        assert comments[0].user_id == member.user_id

    async def test_empty_comment_rejected(self, session, manager):
        service = PaymentService(session)
        payment = await service.create_payment(manager, PaymentInput(amount=1_000))
        with pytest.raises(ValidationError):
            await service.add_comment(manager, payment.payment_id, "   ")
