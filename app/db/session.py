"""
Database engine and session lifecycle.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Any, Dict, Type, TypeVar

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.db.base import Base

logger = logging.getLogger("edunotify.db")

RepositoryType = TypeVar("RepositoryType")


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for server databases; SQLite manages its own pool."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL)
)

async_session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session that commits on success and rolls back on error.

    Repositories commit their own writes; the final commit here covers
    anything a caller added directly to the session.
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Database session rolled back: {e}")
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with get_session() as session:
        yield session


@asynccontextmanager
async def get_repository_context(repo_type: Type[RepositoryType]) -> AsyncGenerator[RepositoryType, None]:
    """
    Build a repository on a fresh session, for code running outside a request.

    Usage:
        async with get_repository_context(DeliveryRecordRepository) as repository:
            ...
    """
    async with get_session() as session:
        yield repo_type(session)


async def initialize_database(create_tables: bool = False) -> None:
    """
    Verify the database is reachable, creating missing tables if asked.

    Args:
        create_tables: Run ``create_all`` for every model
    """
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        if create_tables:
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Ensured tables: {', '.join(sorted(Base.metadata.tables))}")


async def close_database_connections() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()
    logger.info("Database connections closed")
