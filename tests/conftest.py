"""
Pytest configuration and fixtures for testing
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, enable_sqlite_savepoints
from crud.profile import ProfileRepository
from utils.clock import FrozenClock

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create test engine; StaticPool keeps a single connection so the in-memory DB persists
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    future=True,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
enable_sqlite_savepoints(test_engine)

# Create test session factory
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def ms(year, month, day, hour=12, minute=0):
    """Epoch milliseconds for a UTC wall-clock time."""
    return int(datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
async def test_db():
    """
    Fixture that provides an isolated, in-memory SQLite database connection for each test.

    This fixture:
    - Creates all tables before the test runs
    - Yields a clean AsyncSession for the test
    - Drops all tables after the test completes
    """
    # Create all tables
    async with test_engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    # Create a session for the test
    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock():
    """Frozen clock pinned to 2024-01-31 12:00 UTC (end-of-month edge)."""
    return FrozenClock(ms(2024, 1, 31))


@pytest.fixture
def make_profile(test_db, clock):
    """Factory creating free profiles."""
    counter = {"n": 0}

    async def _make(email=None):
        counter["n"] += 1
        repo = ProfileRepository(test_db)
        return await repo.create({
            "email": email or f"user{counter['n']}@example.com",
            "created_at": clock.now_ms(),
        })

    return _make
