"""Amount-threshold approval rules and their management."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.database import flush
from backoffice_engine.errors import NotFoundError, ValidationError
from backoffice_engine.models import ApprovalRule, Role
from backoffice_engine.services.access_resolver import Actor, require_role
from backoffice_engine.services.patch import ApprovalRulePatch

logger = logging.getLogger(__name__)

APPROVER_ROLES = {Role.MEMBER.value, Role.MANAGER.value, Role.ADMIN.value}


def select_rule(rules: Iterable[ApprovalRule], amount: int) -> ApprovalRule | None:
    """First active rule, by sort_order, whose [min, max) contains amount."""
    ordered = sorted(
        (r for r in rules if r.is_active),
        key=lambda r: (r.sort_order, r.min_amount),
    )
    for rule in ordered:
        if rule.contains(amount):
            return rule
    return None


class ApprovalRuleEngine:
    """Selects the rule that governs a payment amount."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_rules(self) -> list[ApprovalRule]:
        result = await self.session.execute(
            select(ApprovalRule)
            .where(ApprovalRule.is_active.is_(True))
            .order_by(ApprovalRule.sort_order, ApprovalRule.min_amount)
        )
        return list(result.scalars().all())

    async def resolve_rule(self, amount: int) -> ApprovalRule | None:
        """Rule for amount, or None for the default managerial path."""
        return select_rule(await self.active_rules(), amount)


@dataclass(frozen=True)
class ApprovalRuleInput:
    name: str
    min_amount: int
    required_role: str
    max_amount: int | None = None
    auto_approve: bool = False
    sort_order: int = 0


def _validate_rule(
    name: str,
    min_amount: int,
    max_amount: int | None,
    required_role: str,
) -> None:
    if not name or not name.strip():
        raise ValidationError("name is required", field="name")
    if min_amount < 0:
        raise ValidationError("min_amount must be >= 0", field="min_amount")
    if max_amount is not None and max_amount <= min_amount:
        raise ValidationError("max_amount must be greater than min_amount", field="max_amount")
    if required_role not in APPROVER_ROLES:
        raise ValidationError(
            f"required_role must be one of {', '.join(sorted(APPROVER_ROLES))}",
            field="required_role",
        )


DEFAULT_RULES = (
    ApprovalRuleInput(
        name="Under 100,000: auto-approve",
        min_amount=0,
        max_amount=100_000,
        required_role=Role.MEMBER.value,
        auto_approve=True,
        sort_order=1,
    ),
    ApprovalRuleInput(
        name="100,000 to 1,000,000: manager approval",
        min_amount=100_000,
        max_amount=1_000_000,
        required_role=Role.MANAGER.value,
        sort_order=2,
    ),
    ApprovalRuleInput(
        name="1,000,000 and over: admin approval",
        min_amount=1_000_000,
        required_role=Role.ADMIN.value,
        sort_order=3,
    ),
)


async def seed_default_rules(session: AsyncSession) -> int:
    """Insert DEFAULT_RULES when no rule exists yet. Returns the number added."""
    if await session.scalar(select(ApprovalRule.rule_id).limit(1)) is not None:
        return 0
    for data in DEFAULT_RULES:
        session.add(
            ApprovalRule(
                name=data.name,
                min_amount=data.min_amount,
                max_amount=data.max_amount,
                required_role=data.required_role,
                auto_approve=data.auto_approve,
                sort_order=data.sort_order,
            )
        )
    await flush(session)
    logger.info("Seeded %d default approval rules", len(DEFAULT_RULES))
    return len(DEFAULT_RULES)


class ApprovalRuleService:
    """CRUD over approval rules. Deletion deactivates."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.engine = ApprovalRuleEngine(session)

    async def list_rules(self, actor: Actor) -> list[ApprovalRule]:
        require_role(actor, Role.MANAGER.value, "view approval rules")
        return await self.engine.active_rules()

    async def get_rule(self, rule_id: UUID) -> ApprovalRule:
        rule = await self.session.get(ApprovalRule, rule_id)
        if rule is None:
            raise NotFoundError("ApprovalRule", rule_id)
        return rule

    async def create_rule(self, actor: Actor, data: ApprovalRuleInput) -> ApprovalRule:
        require_role(actor, Role.ADMIN.value, "manage approval rules")
        _validate_rule(data.name, data.min_amount, data.max_amount, data.required_role)

        rule = ApprovalRule(
            name=data.name.strip(),
            min_amount=data.min_amount,
            max_amount=data.max_amount,
            required_role=data.required_role,
            auto_approve=data.auto_approve,
            sort_order=data.sort_order,
            is_active=True,
        )
        self.session.add(rule)
        await flush(self.session)
        logger.info("Approval rule %s created by %s", rule.rule_id, actor.user_id)
        return rule

    async def update_rule(
        self,
        actor: Actor,
        rule_id: UUID,
        patch: ApprovalRulePatch,
    ) -> ApprovalRule:
        require_role(actor, Role.ADMIN.value, "manage approval rules")
        rule = await self.get_rule(rule_id)

        changes = patch.provided()
        for key, value in changes.items():
            if value is None and key != "max_amount":
                raise ValidationError(f"{key} cannot be null", field=key)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        merged = {
            "name": changes.get("name", rule.name),
            "min_amount": changes.get("min_amount", rule.min_amount),
            "max_amount": changes.get("max_amount", rule.max_amount),
            "required_role": changes.get("required_role", rule.required_role),
        }
        _validate_rule(**merged)

        for key, value in changes.items():
            setattr(rule, key, value)
        await flush(self.session)
        return rule

    async def deactivate_rule(self, actor: Actor, rule_id: UUID) -> ApprovalRule:
        """Soft-delete: past payments still reference the rule through history."""
        require_role(actor, Role.ADMIN.value, "manage approval rules")
        rule = await self.get_rule(rule_id)
        rule.is_active = False
        await flush(self.session)
        logger.info("Approval rule %s deactivated by %s", rule_id, actor.user_id)
        return rule
