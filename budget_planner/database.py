"""Async engine and session factory for the budget database."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from budget_planner.config import settings
from budget_planner.logging_config import get_logger
from budget_planner.models import Base

logger = get_logger(__name__)


def to_async_url(url: str) -> str:
    """Return the asyncpg form of a plain postgresql:// URL."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    return url


# Cron jobs run once a day or month, so stale pooled connections are
# pinged and recycled before use.
async_engine = create_async_engine(
    to_async_url(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_recycle=settings.database_pool_recycle,
    pool_pre_ping=True,
    echo=settings.debug,
)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success and rolls back on error.

    Yields:
        AsyncSession: Session bound to the shared engine
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Request transaction rolled back", error=str(e), exc_info=True)
            raise


async def init_db() -> None:
    """Create any budget tables that do not exist yet."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Budget schema ready", tables=len(Base.metadata.tables))


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await async_engine.dispose()
    logger.info("Database pool disposed")


__all__ = ["Base", "AsyncSessionLocal", "async_engine", "get_db", "init_db", "close_db", "to_async_url"]
