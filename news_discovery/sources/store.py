"""
Abstract source store and an in-memory implementation.

The source store is the durable metadata collaborator of the discovery
service: it persists Source records (descriptor plus health state) and must
survive restarts with state intact. ``PostgresSourceStore`` in
``news_discovery.sources.repository`` is the durable backend;
``InMemorySourceStore`` backs tests and one-shot runs.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from news_discovery.sources.schemas import UPDATABLE_FIELDS, Source


class SourceNotFoundError(LookupError):
    """Raised when a source id does not exist in the store."""


def validate_update_fields(fields: dict[str, Any]) -> None:
    """Reject field names that SourceStore.update() does not accept."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown source fields: {sorted(unknown)}")


class SourceStore(ABC):
    """
    Interface for source metadata persistence.

    All methods are async to support non-blocking I/O. Implementations
    must tolerate concurrent calls for different sources.
    """

    async def connect(self) -> None:
        """Open underlying resources (no-op by default)."""

    async def close(self) -> None:
        """Release underlying resources (no-op by default)."""

    @abstractmethod
    async def list_sources(self, enabled_only: bool = False) -> list[Source]:
        """List all sources, optionally only the non-disabled ones."""
        ...

    @abstractmethod
    async def get(self, source_id: str) -> Source:
        """
        Fetch one source.

        Raises:
            SourceNotFoundError: If the id is unknown
        """
        ...

    @abstractmethod
    async def add(self, source: Source) -> Source:
        """Insert a new source and return the stored record."""
        ...

    @abstractmethod
    async def update(self, source_id: str, **fields: Any) -> Source:
        """
        Update the given fields of one source and return the stored record.

        Raises:
            SourceNotFoundError: If the id is unknown
            ValueError: If a field name is not updatable
        """
        ...

    async def health_check(self) -> bool:
        """Check whether the store is reachable."""
        return True


class InMemorySourceStore(SourceStore):
    """
    Process-local source store.

    Returns copies so callers never mutate stored records directly; all
    changes go through update().
    """

    def __init__(self, sources: list[Source] | None = None) -> None:
        self._sources: dict[str, Source] = {}
        self._lock = asyncio.Lock()
        for source in sources or []:
            self._sources[source.source_id] = replace(source)

    async def list_sources(self, enabled_only: bool = False) -> list[Source]:
        async with self._lock:
            return [
                replace(s)
                for s in self._sources.values()
                if not (enabled_only and s.disabled)
            ]

    async def get(self, source_id: str) -> Source:
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)
            return replace(source)

    async def add(self, source: Source) -> Source:
        async with self._lock:
            if source.source_id in self._sources:
                raise ValueError(f"Source {source.source_id} already exists")
            now = datetime.now(timezone.utc)
            stored = replace(
                source,
                created_at=source.created_at or now,
                updated_at=now,
            )
            self._sources[stored.source_id] = stored
            return replace(stored)

    async def update(self, source_id: str, **fields: Any) -> Source:
        validate_update_fields(fields)
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)
            stored = replace(source, updated_at=datetime.now(timezone.utc), **fields)
            self._sources[source_id] = stored
            return replace(stored)
