"""Tests for business scope resolution and scoped task access."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from backoffice_engine.errors import ForbiddenError, NotFoundError
from backoffice_engine.models import PartnerBusiness, Task
from backoffice_engine.services.access_resolver import (
    AccessResolver,
    Actor,
    BusinessScope,
    require_role,
)
from backoffice_engine.services.patch import TaskPatch
from backoffice_engine.services.scope_filter import TASK_LINK, scope_predicate
from backoffice_engine.services.task_service import TaskInput, TaskService


class TestBusinessScope:
    def test_unrestricted_allows_everything(self):
        scope = BusinessScope.unrestricted()
        assert scope.is_unrestricted
        assert scope.allows(uuid4())
        assert scope.allows(None)

    def test_restricted_scope(self):
        b, c = uuid4(), uuid4()
        scope = BusinessScope.restricted_to({b})
        assert scope.allows(b)
        assert not scope.allows(c)
        assert not scope.allows(None)
        assert scope.allows_any([None, b])

    def test_narrow(self):
        b, c = uuid4(), uuid4()
        assert BusinessScope.unrestricted().narrow(b).business_ids == {b}
        assert BusinessScope.restricted_to({b}).narrow(c).is_empty


class TestResolveScope:
    async def test_staff_are_unrestricted(self, session, admin, manager, member):
        resolver = AccessResolver(session)
        for actor in (admin, manager, member):
            scope = await resolver.resolve_scope(actor, "payments")
            assert scope.is_unrestricted

    async def test_partner_scope_follows_grant_permissions(self, session, seed, partner_actor):
        resolver = AccessResolver(session)

        tasks_scope = await resolver.resolve_scope(partner_actor, "tasks")
        assert tasks_scope.business_ids == {seed.business_b.business_id}

        payments_scope = await resolver.resolve_scope(partner_actor, "payments")
        assert payments_scope.is_empty

    async def test_requested_business_is_intersected(self, session, seed, partner_actor):
        resolver = AccessResolver(session)
        scope = await resolver.resolve_scope(
            partner_actor, "tasks", business_id=seed.business_c.business_id
        )
        assert scope.is_empty

    async def test_partner_without_linked_partner_sees_nothing(self, session, unlinked_partner_actor):
        scope = await AccessResolver(session).resolve_scope(unlinked_partner_actor, "tasks")
        assert scope.is_empty

    async def test_inactive_grant_is_ignored(self, session, seed, partner_actor):
        grant = await session.get(PartnerBusiness, seed.grant_b.partner_business_id)
        grant.is_active = False
        await session.commit()

        scope = await AccessResolver(session).resolve_scope(partner_actor, "tasks")
        assert scope.is_empty

    async def test_can_write(self, session, seed, partner_actor, member):
        resolver = AccessResolver(session)
        assert await resolver.can_write(member, seed.business_c.business_id) is True
        assert await resolver.can_write(partner_actor, seed.business_b.business_id) is False

        grant = await session.get(PartnerBusiness, seed.grant_b.partner_business_id)
        grant.can_edit = True
        await session.commit()

        assert await AccessResolver(session).can_write(
            partner_actor, seed.business_b.business_id
        ) is True

    def test_require_role(self):
        admin = Actor(user_id=uuid4(), role="ADMIN")
        member = Actor(user_id=uuid4(), role="MEMBER")
        require_role(admin, "MANAGER")
        with pytest.raises(ForbiddenError):
            require_role(member, "MANAGER")


class TestScopePredicate:
    async def test_both_link_paths(self, session, seed, tasks_b_and_c):
        for ids, expected in [
            ({seed.business_b.business_id}, {"B"}),
            ({seed.business_c.business_id}, {"C"}),
            ({seed.business_b.business_id, seed.business_c.business_id}, {"B", "C"}),
        ]:
            scope = BusinessScope.restricted_to(ids)
            rows = (
                await session.execute(select(Task).where(scope_predicate(scope, TASK_LINK)))
            ).scalars().all()
            found = {k for k, t in tasks_b_and_c.items() if t.task_id in {r.task_id for r in rows}}
            assert found == expected

    async def test_empty_and_unrestricted(self, session, tasks_b_and_c):
        empty = (
            await session.execute(
                select(Task).where(scope_predicate(BusinessScope.restricted_to(()), TASK_LINK))
            )
        ).scalars().all()
        assert empty == []

        everything = (
            await session.execute(
                select(Task).where(scope_predicate(BusinessScope.unrestricted(), TASK_LINK))
            )
        ).scalars().all()
        assert len(everything) == 2


class TestPartnerTaskScenario:
    """Partner granted tasks on B without edit permission."""

    async def test_create_on_granted_business_is_forbidden(self, session, seed, partner_actor):
        with pytest.raises(ForbiddenError):
            await TaskService(session).create_task(
                partner_actor,
                TaskInput(
                    title="Follow up",
                    assignee_id=seed.member.user_id,
                    due_date=date(2026, 12, 1),
                    business_id=seed.business_b.business_id,
                ),
            )

    async def test_get_task_under_granted_business(self, session, partner_actor, tasks_b_and_c):
        task = await TaskService(session).get_task(partner_actor, tasks_b_and_c["B"].task_id)
        assert task.title == "Prepare proposal"

    async def test_get_task_outside_grants_is_not_found(self, session, partner_actor, tasks_b_and_c):
        with pytest.raises(NotFoundError):
            await TaskService(session).get_task(partner_actor, tasks_b_and_c["C"].task_id)

    async def test_list_only_shows_granted_business(self, session, partner_actor, tasks_b_and_c):
        tasks, total = await TaskService(session).list_tasks(partner_actor)
        assert total == 1
        assert [t.task_id for t in tasks] == [tasks_b_and_c["B"].task_id]

    async def test_update_without_edit_permission_is_forbidden(
        self, session, partner_actor, tasks_b_and_c
    ):
        with pytest.raises(ForbiddenError):
            await TaskService(session).update_task(
                partner_actor, tasks_b_and_c["B"].task_id, TaskPatch(status="DONE")
            )

    async def test_update_of_missing_task_is_not_found(self, session, partner_actor, seed):
        with pytest.raises(NotFoundError):
            await TaskService(session).update_task(partner_actor, uuid4(), TaskPatch(status="DONE"))
