"""Health check endpoints.

Readiness also confirms the schema is in place: payment creation depends on
the approval_rule table, so a database without it is reported not ready.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_engine.api.dependencies import DbSession
from backoffice_engine.models import ApprovalRule

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    active_approval_rules: int | None = None


class ReadinessResponse(BaseModel):
    status: str
    active_approval_rules: int | None = None


async def _count_active_rules(db: AsyncSession) -> int | None:
    """Active rule count, or None when the database or schema is unavailable."""
    try:
        return await db.scalar(
            select(func.count())
            .select_from(ApprovalRule)
            .where(ApprovalRule.is_active.is_(True))
        )
    except SQLAlchemyError as exc:
        logger.warning("Approval rule lookup failed: %s", exc)
        await db.rollback()
        return None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    rules = await _count_active_rules(db)
    db_status = "unhealthy" if rules is None else "healthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        active_approval_rules=rules,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready once the schema answers; zero rules is valid (every payment starts in DRAFT)."""
    rules = await _count_active_rules(db)
    if rules is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready")
    return ReadinessResponse(status="ready", active_approval_rules=rules)


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
