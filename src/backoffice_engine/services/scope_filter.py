"""Query predicates derived from a BusinessScope.

Entities reach a business either directly (a ``business_id`` column) or
indirectly through a customer engagement (``customer_business_id`` →
``customer_business.business_id``). Customers reach it through any of their
engagements. One builder covers all three paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, false, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.models import Customer, CustomerBusiness, Payment, Task, Workflow
from backoffice_engine.services.access_resolver import BusinessScope


@dataclass(frozen=True)
class ScopeLink:
    """How an entity's rows join to business ids."""

    direct: Any = None
    via_customer_business: Any = None
    via_customer: Any = None


TASK_LINK = ScopeLink(direct=Task.business_id, via_customer_business=Task.customer_business_id)
WORKFLOW_LINK = ScopeLink(via_customer_business=Workflow.customer_business_id)
PAYMENT_LINK = ScopeLink(
    direct=Payment.business_id,
    via_customer_business=Payment.customer_business_id,
)
CUSTOMER_LINK = ScopeLink(via_customer=Customer.customer_id)


def scope_predicate(scope: BusinessScope, link: ScopeLink) -> ColumnElement[bool]:
    """Build a WHERE clause restricting rows to the scope's businesses."""
    if scope.business_ids is None:
        return true()
    if not scope.business_ids:
        return false()

    ids = sorted(scope.business_ids, key=str)
    clauses = []
    if link.direct is not None:
        clauses.append(link.direct.in_(ids))
    if link.via_customer_business is not None:
        clauses.append(
            link.via_customer_business.in_(
                select(CustomerBusiness.customer_business_id).where(
                    CustomerBusiness.business_id.in_(ids),
                    CustomerBusiness.deleted_at.is_(None),
                )
            )
        )
    if link.via_customer is not None:
        clauses.append(
            link.via_customer.in_(
                select(CustomerBusiness.customer_id).where(
                    CustomerBusiness.business_id.in_(ids),
                    CustomerBusiness.deleted_at.is_(None),
                )
            )
        )
    if not clauses:
        return false()
    return or_(*clauses)


async def linked_business_ids(
    session: AsyncSession,
    business_id: UUID | None = None,
    customer_business_id: UUID | None = None,
) -> list[UUID]:
    """Every business an entity is attached to, through either link path."""
    ids: list[UUID] = []
    if business_id is not None:
        ids.append(business_id)
    if customer_business_id is not None:
        linked = await session.scalar(
            select(CustomerBusiness.business_id).where(
                CustomerBusiness.customer_business_id == customer_business_id
            )
        )
        if linked is not None and linked not in ids:
            ids.append(linked)
    return ids
