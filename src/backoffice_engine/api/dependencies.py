"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice_engine.database import init_db
from backoffice_engine.errors import UnauthorizedError, ValidationError
from backoffice_engine.models import AppUser, Partner
from backoffice_engine.services.access_resolver import Actor


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    _, factory = init_db()
    return factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


async def get_current_actor(
    db: DbSession,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Actor:
    """Resolve the X-User-ID header to an active user and its partner binding."""
    if not x_user_id:
        raise UnauthorizedError()
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise UnauthorizedError("Invalid X-User-ID format") from None

    user = await db.get(AppUser, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError()

    partner_id = await db.scalar(
        select(Partner.partner_id).where(
            Partner.user_id == user.user_id,
            Partner.deleted_at.is_(None),
        )
    )
    return Actor(user_id=user.user_id, role=user.role, partner_id=partner_id, name=user.name)


async def get_expected_version(
    if_match: Annotated[str | None, Header()] = None,
) -> int | None:
    """Parse an If-Match header carrying the payment version the client last read."""
    if if_match is None:
        return None
    try:
        return int(if_match.strip().strip('"').removeprefix("W/").strip('"'))
    except ValueError:
        raise ValidationError("If-Match must carry an integer version", field="If-Match") from None


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
ExpectedVersion = Annotated[int | None, Depends(get_expected_version)]
