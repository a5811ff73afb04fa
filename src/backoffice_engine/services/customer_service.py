"""Business-scoped customer reads."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.errors import NotFoundError
from backoffice_engine.models import ContentType, Customer, CustomerBusiness
from backoffice_engine.services.access_resolver import AccessResolver, Actor
from backoffice_engine.services.scope_filter import CUSTOMER_LINK, scope_predicate


class CustomerService:
    def __init__(self, session: AsyncSession, resolver: AccessResolver | None = None):
        self.session = session
        self.resolver = resolver or AccessResolver(session)

    async def list_customers(
        self,
        actor: Actor,
        search: str | None = None,
        business_id: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Customer], int]:
        scope = await self.resolver.resolve_scope(actor, ContentType.CUSTOMERS.value)
        if business_id is not None:
            scope = scope.narrow(business_id)

        query = select(Customer).where(
            Customer.deleted_at.is_(None),
            scope_predicate(scope, CUSTOMER_LINK),
        )
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.company.ilike(pattern),
                    Customer.email.ilike(pattern),
                )
            )

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Customer.name).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def get_customer(self, actor: Actor, customer_id: UUID) -> Customer:
        scope = await self.resolver.resolve_scope(actor, ContentType.CUSTOMERS.value)
        customer = await self.session.scalar(
            select(Customer).where(
                Customer.customer_id == customer_id,
                Customer.deleted_at.is_(None),
                scope_predicate(scope, CUSTOMER_LINK),
            )
        )
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer

    async def engagements(self, actor: Actor, customer_id: UUID) -> list[CustomerBusiness]:
        """The customer's engagements with businesses the actor may see."""
        await self.get_customer(actor, customer_id)
        scope = await self.resolver.resolve_scope(actor, ContentType.CUSTOMERS.value)

        query = select(CustomerBusiness).where(
            CustomerBusiness.customer_id == customer_id,
            CustomerBusiness.deleted_at.is_(None),
        )
        if not scope.is_unrestricted:
            query = query.where(CustomerBusiness.business_id.in_(scope.business_ids))
        result = await self.session.execute(query.order_by(CustomerBusiness.created_at))
        return list(result.scalars().all())
