"""PostgreSQL-backed source store."""

import json
import logging
from typing import Any

from news_discovery.sources.schemas import Source
from news_discovery.sources.store import (
    SourceNotFoundError,
    SourceStore,
    validate_update_fields,
)
from news_discovery.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    source_id             TEXT PRIMARY KEY,
    source_type           TEXT NOT NULL,
    url                   TEXT NOT NULL UNIQUE,
    name                  TEXT NOT NULL DEFAULT '',
    config                JSONB NOT NULL DEFAULT '{}',
    poll_interval_seconds INTEGER,
    consecutive_failures  INTEGER NOT NULL DEFAULT 0,
    disabled              BOOLEAN NOT NULL DEFAULT FALSE,
    last_polled_at        TIMESTAMPTZ,
    last_success_at       TIMESTAMPTZ,
    last_error            TEXT,
    created_at            TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at            TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (consecutive_failures >= 0)
);

CREATE INDEX IF NOT EXISTS idx_sources_enabled
    ON sources(last_polled_at) WHERE disabled = FALSE;
"""

_INSERT_SQL = """
INSERT INTO sources (
    source_id, source_type, url, name, config, poll_interval_seconds,
    consecutive_failures, disabled, last_polled_at, last_success_at, last_error
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
RETURNING *
"""


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    config = record["config"]
    if isinstance(config, str):
        config = json.loads(config)
    return Source(
        source_id=record["source_id"],
        source_type=record["source_type"],
        url=record["url"],
        name=record["name"],
        config=dict(config) if config else {},
        poll_interval_seconds=record["poll_interval_seconds"],
        consecutive_failures=record["consecutive_failures"],
        disabled=record["disabled"],
        last_polled_at=record["last_polled_at"],
        last_success_at=record["last_success_at"],
        last_error=record["last_error"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class PostgresSourceStore(SourceStore):
    """CRUD operations for the sources table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def connect(self) -> None:
        """Open the shared pool and ensure the schema exists."""
        await self._db.connect()
        await self.create_table()

    async def close(self) -> None:
        await self._db.close()

    async def create_table(self) -> None:
        """Create the sources table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sources table ensured")

    async def list_sources(self, enabled_only: bool = False) -> list[Source]:
        where_clause = " WHERE disabled = FALSE" if enabled_only else ""
        rows = await self._db.fetch(
            f"SELECT * FROM sources{where_clause} ORDER BY created_at, source_id"
        )
        return [_record_to_source(r) for r in rows]

    async def get(self, source_id: str) -> Source:
        row = await self._db.fetchrow(
            "SELECT * FROM sources WHERE source_id = $1",
            source_id,
        )
        if row is None:
            raise SourceNotFoundError(source_id)
        return _record_to_source(row)

    async def add(self, source: Source) -> Source:
        row = await self._db.fetchrow(
            _INSERT_SQL,
            source.source_id,
            source.source_type,
            source.url,
            source.name,
            json.dumps(source.config),
            source.poll_interval_seconds,
            source.consecutive_failures,
            source.disabled,
            source.last_polled_at,
            source.last_success_at,
            source.last_error,
        )
        logger.info("Added source %s (%s)", source.source_id, source.url)
        return _record_to_source(row)

    async def update(self, source_id: str, **fields: Any) -> Source:
        validate_update_fields(fields)
        if not fields:
            return await self.get(source_id)

        # Column names come from the UPDATABLE_FIELDS whitelist
        set_clauses: list[str] = []
        params: list[Any] = []
        for idx, (column, value) in enumerate(fields.items(), start=1):
            if column == "config":
                value = json.dumps(value)
            set_clauses.append(f"{column} = ${idx}")
            params.append(value)
        params.append(source_id)

        sql = f"""
            UPDATE sources SET {", ".join(set_clauses)}, updated_at = NOW()
            WHERE source_id = ${len(params)}
            RETURNING *
        """
        row = await self._db.fetchrow(sql, *params)
        if row is None:
            raise SourceNotFoundError(source_id)
        return _record_to_source(row)

    async def count(self) -> int:
        """Count total sources in the table."""
        return await self._db.fetchval("SELECT COUNT(*) FROM sources")

    async def health_check(self) -> bool:
        return await self._db.health_check()
