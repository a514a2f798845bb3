"""
Source registry: the discovery service's view of the source store.

Wraps a SourceStore with:
- due-ness computation (``list_due``) using the effective poll interval
- per-source read-modify-write of health fields under an asyncio.Lock
- translation of every store failure into RegistryError

Different sources may be updated concurrently; updates to the same source
are serialized by its lock.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from news_discovery.discovery.config import DiscoveryConfig, SchedulerConfig
from news_discovery.errors import RegistryError
from news_discovery.sources.schemas import Source, SourceHealth
from news_discovery.sources.store import SourceNotFoundError, SourceStore

logger = logging.getLogger(__name__)

HealthTransition = Callable[[SourceHealth], SourceHealth]


class SourceRegistry:
    """
    Scheduling and health adapter over a SourceStore.

    Usage:
        registry = SourceRegistry(store, DiscoveryConfig())
        for source in await registry.list_due(now):
            ...
        await registry.mark_polled(source.source_id, now)
    """

    def __init__(
        self,
        store: SourceStore,
        config: DiscoveryConfig,
        scheduler_config: SchedulerConfig | None = None,
    ):
        self._store = store
        self._config = config
        self._scheduler_config = scheduler_config or SchedulerConfig()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> SourceStore:
        return self._store

    def _lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    def effective_interval(self, source: Source) -> timedelta:
        """Per-source override clamped to the configured range, else the default."""
        if source.poll_interval_seconds is None:
            return self._config.poll_interval
        seconds = min(
            max(source.poll_interval_seconds, self._scheduler_config.min_poll_interval_seconds),
            self._scheduler_config.max_poll_interval_seconds,
        )
        return timedelta(seconds=seconds)

    def is_due(self, source: Source, now: datetime) -> bool:
        if source.disabled:
            return False
        if source.last_polled_at is None:
            return True
        return source.last_polled_at + self.effective_interval(source) <= now

    async def list_sources(self, enabled_only: bool = False) -> list[Source]:
        try:
            return await self._store.list_sources(enabled_only=enabled_only)
        except Exception as e:
            raise RegistryError(f"failed to list sources: {e}") from e

    async def list_due(self, now: datetime) -> list[Source]:
        """Non-disabled sources never polled or whose interval has elapsed."""
        sources = await self.list_sources(enabled_only=True)
        return [s for s in sources if self.is_due(s, now)]

    async def get(self, source_id: str) -> Source:
        try:
            return await self._store.get(source_id)
        except SourceNotFoundError:
            raise
        except Exception as e:
            raise RegistryError(f"failed to read source {source_id}: {e}") from e

    async def _update(self, source_id: str, **fields) -> Source:
        try:
            return await self._store.update(source_id, **fields)
        except SourceNotFoundError:
            raise
        except Exception as e:
            raise RegistryError(f"failed to update source {source_id}: {e}") from e

    async def mark_polled(self, source_id: str, now: datetime) -> Source:
        """Record a poll attempt, whatever its outcome."""
        async with self._lock_for(source_id):
            return await self._update(source_id, last_polled_at=now)

    async def apply_health(
        self,
        source_id: str,
        transition: HealthTransition,
    ) -> tuple[SourceHealth, SourceHealth]:
        """
        Atomically apply a health transition to one source.

        Args:
            source_id: Source to update
            transition: Pure function from current to next health

        Returns:
            (previous, current) health snapshots
        """
        async with self._lock_for(source_id):
            source = await self.get(source_id)
            previous = SourceHealth.of(source)
            current = transition(previous)
            if current != previous:
                await self._update(source_id, **current.as_updates())
            return previous, current

    async def enable(self, source_id: str) -> Source:
        """Re-enable a source, resetting its failure count and last error."""
        async with self._lock_for(source_id):
            source = await self._update(
                source_id,
                disabled=False,
                consecutive_failures=0,
                last_error=None,
            )
        logger.info("Source %s enabled", source_id)
        return source

    async def disable(self, source_id: str) -> Source:
        """Disable a source by external request."""
        async with self._lock_for(source_id):
            source = await self._update(source_id, disabled=True)
        logger.info("Source %s disabled", source_id)
        return source

    async def count_enabled(self) -> int:
        return len(await self.list_sources(enabled_only=True))
