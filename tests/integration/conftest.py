"""Integration test fixtures: the FastAPI app wired to the test database."""

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice_engine.api.app import create_app
from backoffice_engine.api.dependencies import get_session_factory
from backoffice_engine.models import AppUser


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth() -> Callable[[AppUser], dict[str, str]]:
    """Build the identity header for a seeded user."""

    def headers(user: AppUser) -> dict[str, str]:
        return {"X-User-ID": str(user.user_id)}

    return headers
