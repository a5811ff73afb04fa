"""Partner content grants: listing and full-set replacement."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.database import flush
from backoffice_engine.errors import NotFoundError, ValidationError
from backoffice_engine.models import Business, ContentType, Partner, PartnerBusiness, Role
from backoffice_engine.services.access_resolver import Actor, require_role

logger = logging.getLogger(__name__)

CONTENT_TYPES = {c.value for c in ContentType}


@dataclass(frozen=True)
class GrantInput:
    """One business entry of a replacement grant set."""

    business_id: UUID
    permissions: list[str] = field(default_factory=list)
    can_edit: bool = False
    is_active: bool = True


def _normalize_permissions(permissions: Sequence[str]) -> list[str]:
    unknown = [p for p in permissions if p not in CONTENT_TYPES]
    if unknown:
        raise ValidationError(
            f"Unknown content type(s): {', '.join(unknown)}", field="permissions"
        )
    return list(dict.fromkeys(permissions))


class GrantService:
    """Reads and replaces the grant set of one partner."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_partner(self, partner_id: UUID) -> Partner:
        partner = await self.session.get(Partner, partner_id)
        if partner is None or partner.is_deleted:
            raise NotFoundError("Partner", partner_id)
        return partner

    async def _grants(self, partner_id: UUID) -> list[PartnerBusiness]:
        result = await self.session.execute(
            select(PartnerBusiness)
            .where(PartnerBusiness.partner_id == partner_id)
            .order_by(PartnerBusiness.created_at)
        )
        return list(result.scalars().all())

    async def list_grants(self, actor: Actor, partner_id: UUID) -> list[PartnerBusiness]:
        require_role(actor, Role.MANAGER.value, "view partner access")
        await self._get_partner(partner_id)
        return await self._grants(partner_id)

    async def replace_grants(
        self,
        actor: Actor,
        partner_id: UUID,
        accesses: Sequence[GrantInput],
    ) -> list[PartnerBusiness]:
        """Replace the partner's whole grant set in the caller's transaction.

        Grants for businesses absent from accesses are deleted; the others
        are updated in place or inserted.
        """
        require_role(actor, Role.MANAGER.value, "manage partner access")
        await self._get_partner(partner_id)

        business_ids = [a.business_id for a in accesses]
        if len(set(business_ids)) != len(business_ids):
            raise ValidationError("Duplicate business_id in accesses", field="accesses")
        if business_ids:
            known = set(
                (
                    await self.session.execute(
                        select(Business.business_id).where(Business.business_id.in_(business_ids))
                    )
                ).scalars()
            )
            missing = [str(b) for b in business_ids if b not in known]
            if missing:
                raise ValidationError(
                    f"Unknown business(es): {', '.join(missing)}", field="accesses"
                )

        existing = {g.business_id: g for g in await self._grants(partner_id)}
        requested = {a.business_id: a for a in accesses}

        for business_id, grant in existing.items():
            if business_id not in requested:
                await self.session.delete(grant)

        for business_id, access in requested.items():
            permissions = _normalize_permissions(access.permissions)
            grant = existing.get(business_id)
            if grant is None:
                self.session.add(
                    PartnerBusiness(
                        partner_id=partner_id,
                        business_id=business_id,
                        permissions=permissions,
                        can_edit=access.can_edit,
                        is_active=access.is_active,
                    )
                )
            else:
                grant.permissions = permissions
                grant.can_edit = access.can_edit
                grant.is_active = access.is_active

        await flush(self.session)
        logger.info(
            "Grants for partner %s replaced by %s: %d business(es)",
            partner_id,
            actor.user_id,
            len(requested),
        )
        return await self._grants(partner_id)
