"""Database engine and session factory for command-line entry points.

Library code never touches this module: stores receive an explicit
``async_sessionmaker``. Scripts that run against the configured database
(``Settings.database_url``) use ``AsyncSessionLocal`` and call ``close_db``
when done.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import Settings
from ..config import settings as default_settings

logger = logging.getLogger(__name__)


def build_engine(config: Optional[Settings] = None) -> AsyncEngine:
    """Create an async engine for the configured PostgreSQL database.

    Connections are pinged before use and recycled hourly so a server that
    idles out connections does not surface stale-connection errors.
    """
    config = config or default_settings
    return create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_size=5,
        max_overflow=10,
    )


engine: AsyncEngine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def close_db() -> None:
    """Dispose of the engine and every pooled connection."""
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed")
