"""Pytest fixtures for back-office engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice_engine.database import make_session_factory
from backoffice_engine.models import (
    AppUser,
    ApprovalRule,
    Base,
    Business,
    Customer,
    CustomerBusiness,
    Partner,
    PartnerBusiness,
    Task,
    WorkflowStepTemplate,
    WorkflowTemplate,
)
from backoffice_engine.services.access_resolver import Actor

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@dataclass
class Seed:
    """Committed reference data shared by the service and API tests."""

    admin: AppUser
    manager: AppUser
    member: AppUser
    partner_user: AppUser
    unlinked_partner_user: AppUser
    partner: Partner
    business_b: Business
    business_c: Business
    customer: Customer
    engagement_b: CustomerBusiness
    engagement_c: CustomerBusiness
    grant_b: PartnerBusiness


def actor_for(user: AppUser, partner: Partner | None = None) -> Actor:
    return Actor(
        user_id=user.user_id,
        role=user.role,
        partner_id=partner.partner_id if partner else None,
        name=user.name,
    )


@pytest_asyncio.fixture
async def seed(session: AsyncSession) -> Seed:
    """Users of every role, businesses B and C, and a partner granted tasks on B."""
    admin = AppUser(email="admin@example.com", name="Admin", role="ADMIN")
    manager = AppUser(email="manager@example.com", name="Manager", role="MANAGER")
    member = AppUser(email="member@example.com", name="Member", role="MEMBER")
    partner_user = AppUser(email="partner@example.com", name="Partner Login", role="PARTNER")
    unlinked = AppUser(email="loose@example.com", name="Unlinked Partner", role="PARTNER")
    session.add_all([admin, manager, member, partner_user, unlinked])
    await session.flush()

    business_b = Business(name="Consulting", code="B")
    business_c = Business(name="Recruiting", code="C")
    partner = Partner(name="Pat Partner", company="Pat LLC", user_id=partner_user.user_id)
    customer = Customer(name="Acme", company="Acme Inc.", email="ops@acme.example")
    session.add_all([business_b, business_c, partner, customer])
    await session.flush()

    engagement_b = CustomerBusiness(
        customer_id=customer.customer_id, business_id=business_b.business_id
    )
    engagement_c = CustomerBusiness(
        customer_id=customer.customer_id, business_id=business_c.business_id
    )
    grant_b = PartnerBusiness(
        partner_id=partner.partner_id,
        business_id=business_b.business_id,
        permissions=["tasks"],
        can_edit=False,
    )
    session.add_all([engagement_b, engagement_c, grant_b])
    await session.commit()

    return Seed(
        admin=admin,
        manager=manager,
        member=member,
        partner_user=partner_user,
        unlinked_partner_user=unlinked,
        partner=partner,
        business_b=business_b,
        business_c=business_c,
        customer=customer,
        engagement_b=engagement_b,
        engagement_c=engagement_c,
        grant_b=grant_b,
    )


@pytest.fixture
def admin(seed: Seed) -> Actor:
    return actor_for(seed.admin)


@pytest.fixture
def manager(seed: Seed) -> Actor:
    return actor_for(seed.manager)


@pytest.fixture
def member(seed: Seed) -> Actor:
    return actor_for(seed.member)


@pytest.fixture
def partner_actor(seed: Seed) -> Actor:
    return actor_for(seed.partner_user, seed.partner)


@pytest.fixture
def unlinked_partner_actor(seed: Seed) -> Actor:
    return actor_for(seed.unlinked_partner_user)


@pytest_asyncio.fixture
async def tasks_b_and_c(session: AsyncSession, seed: Seed) -> dict[str, Task]:
    """One task directly under business B, one under C via its engagement."""
    task_b = Task(
        title="Prepare proposal",
        business_id=seed.business_b.business_id,
        assignee_id=seed.member.user_id,
        due_date=date(2026, 11, 1),
    )
    task_c = Task(
        title="Screen candidates",
        customer_business_id=seed.engagement_c.customer_business_id,
        assignee_id=seed.member.user_id,
        due_date=date(2026, 11, 2),
    )
    session.add_all([task_b, task_c])
    await session.commit()
    return {"B": task_b, "C": task_c}


@pytest_asyncio.fixture
async def auto_approve_rule(session: AsyncSession) -> ApprovalRule:
    rule = ApprovalRule(
        name="Small payments",
        min_amount=0,
        max_amount=1_000_000,
        required_role="MANAGER",
        auto_approve=True,
        sort_order=0,
    )
    session.add(rule)
    await session.commit()
    return rule


@pytest_asyncio.fixture
async def admin_approval_rule(session: AsyncSession) -> ApprovalRule:
    rule = ApprovalRule(
        name="Large payments",
        min_amount=1_000_000,
        max_amount=None,
        required_role="ADMIN",
        auto_approve=False,
        sort_order=10,
    )
    session.add(rule)
    await session.commit()
    return rule


@pytest_asyncio.fixture
async def onboarding_template(session: AsyncSession) -> WorkflowTemplate:
    """Three-step template mixing absolute and relative due dates."""
    template = WorkflowTemplate(name="Onboarding", description="Customer onboarding")
    session.add(template)
    await session.flush()
    session.add_all(
        [
            WorkflowStepTemplate(
                template_id=template.template_id,
                title="Kickoff",
                sort_order=1,
                days_from_start=0,
            ),
            WorkflowStepTemplate(
                template_id=template.template_id,
                title="Collect documents",
                sort_order=2,
                days_from_previous=7,
            ),
            WorkflowStepTemplate(
                template_id=template.template_id,
                title="Optional survey",
                sort_order=3,
                days_from_start=30,
                is_required=False,
            ),
        ]
    )
    await session.commit()
    await session.refresh(template, ["steps"])
    return template
