"""
Shared fixtures
In-memory SQLite per test, services wired with no backoff waits
"""

from typing import List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from engagement_core.app.config import reset_config
from engagement_core.app.dependencies import build_services
from engagement_core.app.models import Base
from engagement_core.infrastructure.clients import LocalIdentityProvider
from engagement_core.services import BackoffPolicy

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test reads configuration from a clean slate"""
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,  # Required for in-memory SQLite
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the counter service"""
    return []


@pytest_asyncio.fixture
async def services(session_factory, sleeps):
    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return build_services(
        session_factory,
        identity_provider=LocalIdentityProvider(session_factory, rounds=4),
        policy=BackoffPolicy.immediate(),
        sleep=record_sleep,
    )


# ============================================================================
# Seed Helpers
# ============================================================================


@pytest_asyncio.fixture
async def seed(session_factory):
    """Insert rows and return them; usage: await seed(UserAccount(...), ...)"""

    async def _seed(*rows):
        async with session_factory() as session:
            async with session.begin():
                session.add_all(rows)
        return rows

    return _seed
