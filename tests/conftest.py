"""
Pytest configuration and fixtures for testing
"""
import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from utils.cache import local_cache
from utils.rate_limit import trial_rate_limiter

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_USER = {
    "user_id": "4f1c2a9e-0000-4000-8000-000000000001",
    "email": "owner@shop.example",
}


@pytest.fixture(autouse=True)
def reset_process_state():
    """Caches and rate limit buckets live for the whole process; isolate tests."""
    local_cache.clear()
    trial_rate_limiter.reset()
    yield
    local_cache.clear()
    trial_rate_limiter.reset()


@pytest.fixture
async def test_engine():
    """
    Fresh in-memory database per test.
    StaticPool keeps the single connection (and so the data) alive.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated AsyncSession for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def current_user():
    return dict(TEST_USER)


@pytest.fixture
async def async_client(session_factory, current_user):
    """
    Async HTTP client with the test database and a fixed authenticated user.
    """
    from main import app
    from auth import get_current_user

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_current_user():
        return current_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
