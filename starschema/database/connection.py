"""
Database Connection Management

Async SQLAlchemy 2.0 engine and session handling for persisting the
warehouse. PostgreSQL via asyncpg in deployment, SQLite via aiosqlite for
local runs and tests.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from starschema.config import get_settings
from starschema.database.models import Base

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Async database URL (default: configured database)

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    database = get_settings().database
    url = url or database.async_url

    # asyncpg pools its own connections
    _engine = create_async_engine(
        url,
        echo=database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established", dialect=_engine.dialect.name)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        raise

    return _engine


async def create_schema() -> None:
    """Create the star schema tables that do not exist yet"""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Star schema tables created", tables=sorted(Base.metadata.tables))


async def close_database() -> None:
    """Dispose of the engine"""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Commits on success, rolls back on error and always closes.

    Example:
        async with get_db() as db:
            await WarehouseRepository(db).save(warehouse)
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when get_db() called")
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()
