"""
Feed stores: where discovered items are persisted.

The feed store owns deduplication by item id. The discovery service hands
every batch to ``FeedStore.add()`` and never writes items any other way, so
an entry seen on several polls is stored exactly once.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from news_discovery.feeds.schemas import DiscoveredItem
from news_discovery.storage.database import Database

logger = logging.getLogger(__name__)


class FeedStore(ABC):
    """
    Interface for discovered-item persistence.

    Implementations must be safe for concurrent add() calls from several
    fetch tasks.
    """

    async def connect(self) -> None:
        """Open underlying resources (no-op by default)."""

    async def close(self) -> None:
        """Release underlying resources (no-op by default)."""

    @abstractmethod
    async def add(self, items: Sequence[DiscoveredItem]) -> int:
        """
        Store items, skipping any whose id is already present.

        Returns:
            Number of items that were new
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Total number of stored items."""
        ...

    async def health_check(self) -> bool:
        """Check whether the store is reachable."""
        return True


class InMemoryFeedStore(FeedStore):
    """Process-local feed store keyed by item id."""

    def __init__(self) -> None:
        self._items: dict[str, DiscoveredItem] = {}
        self._lock = asyncio.Lock()

    async def add(self, items: Sequence[DiscoveredItem]) -> int:
        added = 0
        async with self._lock:
            for item in items:
                if item.id in self._items:
                    continue
                self._items[item.id] = item
                added += 1
        return added

    async def count(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> DiscoveredItem | None:
        return self._items.get(item_id)

    @property
    def items(self) -> list[DiscoveredItem]:
        return list(self._items.values())


_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS discovered_items (
    id            TEXT PRIMARY KEY,
    source_id     TEXT NOT NULL,
    url           TEXT NOT NULL DEFAULT '',
    title         TEXT NOT NULL,
    summary       TEXT NOT NULL DEFAULT '',
    authors       TEXT[] NOT NULL DEFAULT '{}',
    published_at  TIMESTAMPTZ NOT NULL,
    discovered_at TIMESTAMPTZ NOT NULL,
    payload       JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_discovered_items_source
    ON discovered_items(source_id, published_at DESC);
CREATE INDEX IF NOT EXISTS idx_discovered_items_published
    ON discovered_items(published_at DESC);
"""

# authors are passed as JSON text per row because unnest() flattens
# multi-dimensional arrays.
_BULK_INSERT_SQL = """
INSERT INTO discovered_items (
    id, source_id, url, title, summary, authors, published_at, discovered_at, payload
)
SELECT
    i.id, i.source_id, i.url, i.title, i.summary,
    ARRAY(SELECT jsonb_array_elements_text(i.authors::jsonb)),
    i.published_at, i.discovered_at, i.payload::jsonb
FROM unnest(
    $1::text[], $2::text[], $3::text[], $4::text[], $5::text[],
    $6::text[], $7::timestamptz[], $8::timestamptz[], $9::text[]
) AS i(id, source_id, url, title, summary, authors, published_at, discovered_at, payload)
ON CONFLICT (id) DO NOTHING
RETURNING id
"""


class PostgresFeedStore(FeedStore):
    """discovered_items table with primary-key deduplication."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def connect(self) -> None:
        """Open the shared pool and ensure the schema exists."""
        await self._db.connect()
        await self.create_table()

    async def close(self) -> None:
        await self._db.close()

    async def create_table(self) -> None:
        """Create the discovered_items table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Discovered items table ensured")

    async def add(self, items: Sequence[DiscoveredItem]) -> int:
        if not items:
            return 0

        # Same id twice in one batch: keep the first
        unique: dict[str, DiscoveredItem] = {}
        for item in items:
            unique.setdefault(item.id, item)
        batch = list(unique.values())

        async with self._db.transaction() as conn:
            rows = await conn.fetch(
                _BULK_INSERT_SQL,
                [i.id for i in batch],
                [i.source_id for i in batch],
                [i.url for i in batch],
                [i.title for i in batch],
                [i.summary for i in batch],
                [json.dumps(i.authors) for i in batch],
                [i.published_at for i in batch],
                [i.discovered_at for i in batch],
                [json.dumps(i.payload, default=str) for i in batch],
            )

        logger.debug("Stored %d of %d items", len(rows), len(batch))
        return len(rows)

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM discovered_items")

    async def health_check(self) -> bool:
        return await self._db.health_check()
