"""
Async SQLAlchemy engine management for the record store.

Every engine operation opens its own short transaction; the merge executor
relies on this to commit one dependent table at a time.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from src.exceptions import StoreUnavailableError
from src.settings import settings
from src.store.tables import metadata

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and hands out transactional connections."""

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        self.url = database_url or settings.database_url
        self._engine: AsyncEngine = create_async_engine(
            self.url,
            echo=settings.database_echo if echo is None else echo,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Connection inside a transaction: commit on success, rollback on error."""
        async with self._engine.begin() as conn:
            yield conn

    async def create_all(self) -> None:
        """Create missing tables."""
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Ensured record store tables exist (%s)", _safe_url(self.url))

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("Database ping failed: %s", e)
            return False
        return True

    async def dispose(self) -> None:
        await self._engine.dispose()


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise SQLAlchemy failures as ``StoreUnavailableError``."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Record store error during %s: %s", operation, e)
        raise StoreUnavailableError(f"Record store unavailable during {operation}") from e


def _safe_url(url: str) -> str:
    """Strip credentials from a database URL for logging."""
    return url.split("@")[-1] if "@" in url else url
