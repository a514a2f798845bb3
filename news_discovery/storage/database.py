"""
PostgreSQL connection pool shared by the source store and the feed store.

Both stores take the same Database and open/close it as part of their own
lifecycle, so connect() and close() tolerate being called more than once.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from news_discovery.config.settings import get_settings

logger = logging.getLogger(__name__)


class Database:
    """
    asyncpg pool wrapper.

    Usage:
        db = Database()
        await db.connect()
        rows = await db.fetch("SELECT * FROM sources")
        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        settings = get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = settings.db_command_timeout

        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the pool unless it already exists."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                self._database_url,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
            )
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise
        logger.info(f"Database connected (pool: {self._min_size}-{self._max_size})")

    async def close(self) -> None:
        """
        Close the pool.

        asyncpg waits for every acquired connection to be released. If the
        close is cancelled (for instance by a caller's timeout), connections
        still in use are terminated instead.
        """
        pool, self._pool = self._pool, None
        if pool is None:
            return

        try:
            await pool.close()
        except asyncio.CancelledError:
            pool.terminate()
            logger.warning("Database pool terminated with connections still in use")
            raise
        logger.info("Database connection closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run statements on one connection inside a transaction."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception:
            return False
