"""
Async database engine and session helpers for the profile store.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator, Optional

from config.settings import settings, IS_PRODUCTION

SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./trulybot.db"

# driverless prefixes used by hosted Postgres providers
_POSTGRES_PREFIXES = ("postgres://", "postgresql://")


def resolve_database_url(raw_url: Optional[str], production: bool = False) -> str:
    """
    Turn the configured DATABASE_URL into an async SQLAlchemy URL.

    Production must run on Postgres: a missing URL or a SQLite URL raises RuntimeError.
    """
    if production:
        if not raw_url:
            raise RuntimeError("DATABASE_URL must be set in production. SQLite is not allowed in production.")
        if "sqlite" in raw_url.lower():
            raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")

    url = raw_url or SQLITE_FALLBACK_URL
    for prefix in _POSTGRES_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


DATABASE_URL = resolve_database_url(settings.database_url, IS_PRODUCTION)

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    # hosted Postgres drops idle connections
    pool_pre_ping=DATABASE_URL.startswith("postgresql"),
)

Base = declarative_base()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db():
    """Create the profiles table if it does not exist."""
    async with engine.begin() as conn:
        from database_models import Profile  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Commits when the route returns normally,
    rolls back on any exception.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
