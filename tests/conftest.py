"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from questline.config import Settings
from questline.database import close_db, create_all, get_session_factory, init_db

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, database_url=TEST_DATABASE_URL, environment="test")


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)  # Wednesday


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory schema per test."""
    await init_db(TEST_DATABASE_URL)
    await create_all()
    yield get_session_factory()
    await close_db()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()
