"""
Database connection and session management.

Provides the lazily created async SQLAlchemy engine and session factory the
relational provider runs on.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from data_provider.core.config import normalize_async_url, settings
from data_provider.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_async_engine_for(url: str) -> AsyncEngine:
    """Create a fresh async engine without caching.

    Pool sizing only applies to server databases; SQLite (used in tests)
    keeps SQLAlchemy's defaults.
    """
    url = normalize_async_url(url)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        pool_size=20,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=False,
        connect_args={"timeout": 30},
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


def get_async_engine() -> AsyncEngine:
    """
    Create and configure the process-wide async engine.

    Returns:
        Configured async SQLAlchemy engine

    Raises:
        ConfigurationError: If DATABASE_URL is not configured
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    url = settings.async_url
    if not url:
        raise ConfigurationError("DATABASE_URL is required for the relational data provider")

    _async_engine = create_async_engine_for(url)
    logger.info("Created async database engine")
    return _async_engine


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async sessionmaker.

    Returns:
        Async sessionmaker factory
    """
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    _async_sessionmaker = create_sessionmaker(get_async_engine())
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Dispose the async engine and forget the sessionmaker.

    Useful for tests and for process shutdown.
    """
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None
