"""Database connection and session management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from backoffice_engine.config import get_settings
from backoffice_engine.errors import ConflictError, TransientError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def get_engine() -> AsyncEngine:
    """Create async database engine."""
    settings = get_settings()
    if settings.is_sqlite:
        return create_async_engine(settings.database_url, echo=False)
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory with the engine's standard session options."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine()
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine, if one was created."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            await session.rollback()
            raise


async def flush(session: AsyncSession) -> None:
    """Flush pending writes, translating storage failures into domain errors.

    StaleDataError (optimistic version mismatch) and IntegrityError (a
    concurrent writer took the same unique key) become ConflictError; any
    other SQLAlchemy failure becomes TransientError.
    """
    try:
        await session.flush()
    except StaleDataError as exc:
        raise ConflictError("Record was modified concurrently") from exc
    except IntegrityError as exc:
        raise ConflictError("Record conflicts with a concurrent write") from exc
    except SQLAlchemyError as exc:
        logger.exception("Flush failed")
        raise TransientError("Storage unavailable, retry the request") from exc


async def commit(session: AsyncSession) -> None:
    """Commit the session's transaction with the same error translation as flush."""
    try:
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConflictError("Record was modified concurrently") from exc
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Record conflicts with a concurrent write") from exc
    except SQLAlchemyError as exc:
        logger.exception("Commit failed")
        await session.rollback()
        raise TransientError("Storage unavailable, retry the request") from exc
