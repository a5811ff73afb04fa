"""Settings endpoints: partner access grants and approval rules."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from backoffice_engine.api.dependencies import CurrentActor, DbSession
from backoffice_engine.api.schemas import (
    ApprovalRuleCreate,
    ApprovalRuleResponse,
    ApprovalRuleUpdate,
    ErrorResponse,
    PartnerAccessItem,
    PartnerAccessResponse,
    PartnerAccessUpdate,
)
from backoffice_engine.database import commit
from backoffice_engine.services.approval_rules import ApprovalRuleInput, ApprovalRuleService
from backoffice_engine.services.grant_service import GrantInput, GrantService
from backoffice_engine.services.patch import ApprovalRulePatch

router = APIRouter(prefix="/settings", tags=["settings"])


# ============================================================================
# Partner access
# ============================================================================


@router.get(
    "/partner-access/{partner_id}",
    response_model=PartnerAccessResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_partner_access(
    db: DbSession,
    actor: CurrentActor,
    partner_id: Annotated[UUID, Path()],
) -> PartnerAccessResponse:
    grants = await GrantService(db).list_grants(actor, partner_id)
    return PartnerAccessResponse(
        partner_id=partner_id,
        accesses=[PartnerAccessItem.model_validate(g) for g in grants],
    )


@router.put(
    "/partner-access/{partner_id}",
    response_model=PartnerAccessResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def replace_partner_access(
    db: DbSession,
    actor: CurrentActor,
    partner_id: Annotated[UUID, Path()],
    payload: PartnerAccessUpdate,
) -> PartnerAccessResponse:
    """Replace the partner's full grant set."""
    accesses = [GrantInput(**a.model_dump()) for a in payload.accesses]
    grants = await GrantService(db).replace_grants(actor, partner_id, accesses)
    await commit(db)
    return PartnerAccessResponse(
        partner_id=partner_id,
        accesses=[PartnerAccessItem.model_validate(g) for g in grants],
    )


# ============================================================================
# Approval rules
# ============================================================================


@router.get("/approval-rules", response_model=list[ApprovalRuleResponse])
async def list_approval_rules(db: DbSession, actor: CurrentActor) -> list[ApprovalRuleResponse]:
    rules = await ApprovalRuleService(db).list_rules(actor)
    return [ApprovalRuleResponse.model_validate(r) for r in rules]


@router.post(
    "/approval-rules",
    response_model=ApprovalRuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def create_approval_rule(
    db: DbSession,
    actor: CurrentActor,
    payload: ApprovalRuleCreate,
) -> ApprovalRuleResponse:
    rule = await ApprovalRuleService(db).create_rule(actor, ApprovalRuleInput(**payload.model_dump()))
    await commit(db)
    return ApprovalRuleResponse.model_validate(rule)


@router.put(
    "/approval-rules/{rule_id}",
    response_model=ApprovalRuleResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def update_approval_rule(
    db: DbSession,
    actor: CurrentActor,
    rule_id: Annotated[UUID, Path()],
    payload: ApprovalRuleUpdate,
) -> ApprovalRuleResponse:
    patch = ApprovalRulePatch.from_mapping(payload.model_dump(exclude_unset=True))
    rule = await ApprovalRuleService(db).update_rule(actor, rule_id, patch)
    await commit(db)
    return ApprovalRuleResponse.model_validate(rule)


@router.delete(
    "/approval-rules/{rule_id}",
    response_model=ApprovalRuleResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_approval_rule(
    db: DbSession,
    actor: CurrentActor,
    rule_id: Annotated[UUID, Path()],
) -> ApprovalRuleResponse:
    """Deactivate a rule. Rules are never physically removed."""
    rule = await ApprovalRuleService(db).deactivate_rule(actor, rule_id)
    await commit(db)
    return ApprovalRuleResponse.model_validate(rule)
