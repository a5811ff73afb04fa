"""Row-level access resolution for partner actors.

Internal staff (ADMIN, MANAGER, MEMBER) see every business. A PARTNER actor
sees only the businesses for which its partner record holds an active grant
exposing the requested content type, and may write only where that grant
carries can_edit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.errors import ForbiddenError
from backoffice_engine.models import PartnerBusiness
from backoffice_engine.models.enums import Role, role_at_least

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated identity performing a request."""

    user_id: UUID
    role: str
    partner_id: UUID | None = None
    name: str | None = None

    @property
    def is_partner(self) -> bool:
        return self.role == Role.PARTNER


@dataclass(frozen=True)
class BusinessScope:
    """Businesses an actor may operate within.

    ``business_ids`` is None for an unrestricted scope.
    """

    business_ids: frozenset[UUID] | None = None

    @classmethod
    def unrestricted(cls) -> BusinessScope:
        return cls(None)

    @classmethod
    def restricted_to(cls, business_ids: Iterable[UUID]) -> BusinessScope:
        return cls(frozenset(business_ids))

    @property
    def is_unrestricted(self) -> bool:
        return self.business_ids is None

    @property
    def is_empty(self) -> bool:
        return self.business_ids is not None and not self.business_ids

    def allows(self, business_id: UUID | None) -> bool:
        """Check if a single business is inside the scope."""
        if self.business_ids is None:
            return True
        return business_id is not None and business_id in self.business_ids

    def allows_any(self, business_ids: Iterable[UUID | None]) -> bool:
        """Check if any of an entity's linked businesses is inside the scope."""
        if self.business_ids is None:
            return True
        return any(self.allows(b) for b in business_ids)

    def narrow(self, business_id: UUID) -> BusinessScope:
        """Intersect with a single requested business."""
        if self.business_ids is None:
            return BusinessScope.restricted_to({business_id})
        return BusinessScope.restricted_to(self.business_ids & {business_id})


class AccessResolver:
    """Resolves business scope and write permission for one request.

    Grants are loaded at most once per resolver instance. Create a new
    resolver per request (or per batch item) so grant changes take effect
    on the next request.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._grants: dict[UUID, list[PartnerBusiness]] = {}

    async def resolve_scope(
        self,
        actor: Actor,
        content_type: str,
        business_id: UUID | None = None,
    ) -> BusinessScope:
        """Compute the businesses whose content_type the actor may see."""
        if not actor.is_partner:
            return BusinessScope.unrestricted()

        if actor.partner_id is None:
            return BusinessScope.restricted_to(())

        grants = await self._active_grants(actor.partner_id)
        scope = BusinessScope.restricted_to(
            g.business_id for g in grants if g.grants(content_type)
        )
        if business_id is not None:
            scope = scope.narrow(business_id)
        return scope

    async def can_write(self, actor: Actor, business_id: UUID | None) -> bool:
        """Check if the actor may create/update/delete data of a business."""
        if not actor.is_partner:
            return True
        if actor.partner_id is None or business_id is None:
            return False
        grants = await self._active_grants(actor.partner_id)
        return any(g.business_id == business_id and g.can_edit for g in grants)

    async def require_write(
        self,
        actor: Actor,
        business_ids: Iterable[UUID | None],
        content_type: str,
    ) -> None:
        """Raise ForbiddenError unless the actor may see and edit every linked business.

        An entity linked both directly and through an engagement is writable
        only when both businesses are.
        """
        if not actor.is_partner:
            return
        linked = [b for b in business_ids if b is not None]
        scope = await self.resolve_scope(actor, content_type)
        denied = [
            b for b in linked if not scope.allows(b) or not await self.can_write(actor, b)
        ]
        if not linked or denied:
            logger.info(
                "Write denied for partner user %s on %s (businesses=%s, denied=%s)",
                actor.user_id,
                content_type,
                linked,
                denied,
            )
            raise ForbiddenError("No edit permission for this business")

    async def _active_grants(self, partner_id: UUID) -> list[PartnerBusiness]:
        if partner_id not in self._grants:
            result = await self.session.execute(
                select(PartnerBusiness).where(
                    PartnerBusiness.partner_id == partner_id,
                    PartnerBusiness.is_active.is_(True),
                )
            )
            self._grants[partner_id] = list(result.scalars().all())
        return self._grants[partner_id]


def require_role(actor: Actor, minimum: str, action: str = "perform this action") -> None:
    """Raise ForbiddenError unless actor.role is at least minimum."""
    if not role_at_least(actor.role, minimum):
        raise ForbiddenError(f"Role {minimum} or higher required to {action}")
