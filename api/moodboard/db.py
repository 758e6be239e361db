"""Async engine, session factory and the request-scoped session dependency."""

from typing import AsyncGenerator
from fastapi import HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from moodboard.config import settings
from moodboard.logging_config import logger


def async_database_url(url: str) -> str:
    """Point a Postgres URL at the asyncpg driver.

    Supabase and Heroku style ``postgres://`` URLs are accepted too; URLs
    that already name a driver are returned unchanged.
    """
    scheme, sep, rest = url.partition("://")
    if not sep or "+" in scheme:
        return url
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+asyncpg://{rest}"
    return url


def build_engine(url: str) -> AsyncEngine:
    if settings.debug:
        # No pooling while debugging; every checkout is a fresh connection
        return create_async_engine(url, echo=True, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


DATABASE_URL = async_database_url(settings.postgres_url)
engine = build_engine(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session, committed when the route returns.

    Routes that must persist something before a later step can fail (the
    image quota, the single-use OAuth state) commit explicitly.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except HTTPException:
            # Quota, plan and validation errors are expected; nothing to log here
            await session.rollback()
            raise
        except Exception as e:
            await session.rollback()
            logger.error("Database session error", error=str(e), exc_info=True)
            raise


async def init_db():
    """Fail startup early when the database is unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e), exc_info=True)
        raise
    logger.info("Database connection established", host=engine.url.host, database=engine.url.database)


async def close_db():
    await engine.dispose()
    logger.info("Database connection closed")
