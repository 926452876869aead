"""Shared test fixtures.

Every test gets a fresh SQLite database file with the schema created from
the ORM models and the reference data seeded.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("HABITZ_REDIS_URL", "")
os.environ.setdefault("HABITZ_EMAIL_PROVIDER", "log")
os.environ.setdefault("HABITZ_LOG_FORMAT", "console")
os.environ.setdefault("HABITZ_REFERENCE_TIMEZONE", "UTC")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from habitz.config import get_settings
from habitz.database import close_db, get_engine, get_session_factory, init_db
from habitz.db.base import Base
from habitz.db.models import ActivityType
from habitz.email.service import reset_email_service
from habitz.gamification.seed import seed_reference_data
from habitz.main import create_app


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[str, None]:
    """Create an empty, seeded SQLite database and point the app at it."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'habitz.db'}"
    os.environ["HABITZ_DATABASE_URL"] = url
    get_settings.cache_clear()
    reset_email_service()

    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_reference_data(session)

    yield url

    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(database: str) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need several independent sessions."""
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def activity_types(db_session: AsyncSession) -> dict[str, int]:
    """Seeded activity type ids by name."""
    result = await db_session.execute(select(ActivityType.id, ActivityType.name))
    ids = {row.name: row.id for row in result}
    await db_session.rollback()
    return ids


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client bound to the test database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def as_user():
    """Build the identity header the auth gateway would set."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"X-User-Id": user_id}

    return _headers

