"""Shared test fixtures.

Every test that touches the database gets a fresh SQLite file with the schema
created from the ORM metadata and the catalogue seeded. SQLite transactions
take the write lock at BEGIN, so a test must not keep a transaction open in
one session while another session (or an API request) needs the database.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riyaz.auth.jwt import create_access_token
from riyaz.config import Settings, get_settings
from riyaz.database import close_db, get_engine, get_session_factory, init_db
from riyaz.db.base import Base
from riyaz.db.models import Profile
from riyaz.gamification.seed import seed_catalogue

TEST_JWT_SECRET = "test-jwt-secret-for-riyaz-suite-0123456789"
TEST_CRON_SECRET = "test-cron-secret"

# Saturday 2026-10-17, 12:30 in Tehran
NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)

_invite_codes = count(1)


def at(days: int = 0, hours: int = 0) -> datetime:
    """NOW shifted by whole days (and optionally hours)."""
    return NOW + timedelta(days=days, hours=hours)


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    monkeypatch.setenv("RIYAZ_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'riyaz.db'}")
    monkeypatch.setenv("RIYAZ_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("RIYAZ_CRON_SECRET", TEST_CRON_SECRET)
    monkeypatch.setenv("RIYAZ_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Initialized engine with schema and seeded catalogue. Yields the session factory."""
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_catalogue(session)
    yield get_session_factory()
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with database() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a fresh app (lifespan not run, so no rate limiter)."""
    from riyaz.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


ProfileFactory = Callable[..., Awaitable[Profile]]


@pytest_asyncio.fixture
async def make_profile(database: async_sessionmaker[AsyncSession]) -> ProfileFactory:
    """Create and commit a profile in its own session. Returns a detached, loaded Profile."""

    async def _make(**overrides: Any) -> Profile:
        n = next(_invite_codes)
        values: dict[str, Any] = {
            "first_name": f"Player{n}",
            "last_name": "Test",
            "instrument": "setar",
            "level": "beginner",
            "tz": "Asia/Tehran",
            "is_premium": False,
            "invite_code": f"INV{n:05d}",
        }
        values.update(overrides)
        async with database() as session:
            profile = Profile(**values)
            session.add(profile)
            await session.commit()
            return profile

    return _make


@pytest_asyncio.fixture
async def premium_profile(make_profile: ProfileFactory) -> Profile:
    """A profile that passes every league eligibility check."""
    return await make_profile(is_premium=True, subscription_expires_at=NOW + timedelta(days=30))


def auth_headers(profile: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


def cron_headers(secret: str = TEST_CRON_SECRET) -> dict[str, str]:
    return {"X-Cron-Secret": secret}
