"""
Fetch executor: one bounded fetch-and-store cycle for one source.

For a (source, now) pair:
1. Call the fetch logic with deadline ``now + fetch_timeout``, bounded by
   asyncio.wait_for in case the fetch logic ignores the deadline.
2. On success hand the items to the feed store with the remaining budget.
   Nothing is written when the fetch fails.
3. Mark the source polled, exactly once, whatever the outcome.
4. Report the outcome to the failure tracker.

Steps 3 and 4 are skipped once the executor has been abandoned at shutdown.

No per-source error escapes execute(): fetch errors, timeouts, store-write
errors and unexpected exceptions from the fetch logic all become a failure
outcome. Registry errors while recording the attempt are logged only.
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog

from news_discovery.discovery.config import DiscoveryConfig
from news_discovery.discovery.health import FailureTracker
from news_discovery.discovery.registry import SourceRegistry
from news_discovery.errors import (
    DiscoveryError,
    FetchError,
    FetchTimeoutError,
    RegistryError,
    StoreWriteError,
)
from news_discovery.feeds.fetchers import SourceFetcher
from news_discovery.feeds.schemas import DiscoveredItem
from news_discovery.feeds.store import FeedStore
from news_discovery.observability.metrics import MetricsCollector, get_metrics
from news_discovery.observability.tracing import get_tracer, traced
from news_discovery.sources.schemas import Source
from news_discovery.sources.store import SourceNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class FetchOutcome:
    """Terminal result of one executor invocation."""

    source_id: str
    success: bool
    items_fetched: int = 0
    items_stored: int = 0
    duration_seconds: float = 0.0
    error: DiscoveryError | None = None


class FetchExecutor:
    """
    Runs fetch-and-store cycles and records their outcome.

    Usage:
        executor = FetchExecutor(registry, tracker, fetcher, feed_store, config)
        outcome = await executor.execute(source, now)
    """

    def __init__(
        self,
        registry: SourceRegistry,
        tracker: FailureTracker,
        fetcher: SourceFetcher,
        feed_store: FeedStore,
        config: DiscoveryConfig,
        metrics: MetricsCollector | None = None,
    ):
        self._registry = registry
        self._tracker = tracker
        self._fetcher = fetcher
        self._feed_store = feed_store
        self._config = config
        self._metrics = metrics or get_metrics()
        self._tracer = get_tracer("news_discovery.discovery")
        self._abandoned = False

    def abandon(self) -> None:
        """
        Stop recording outcomes.

        Called once shutdown gives up on in-flight fetches: the stores and
        the HTTP client are closed under them, so whatever they report next
        says nothing about the source.
        """
        self._abandoned = True

    async def execute(self, source: Source, now: datetime) -> FetchOutcome:
        """
        Execute one fetch-and-store cycle.

        Args:
            source: Source to poll
            now: Scheduling time of this attempt (UTC)

        Returns:
            FetchOutcome describing success or the contained failure
        """
        start = time.monotonic()
        items_fetched = 0
        items_stored = 0
        error: DiscoveryError | None = None

        with traced(
            self._tracer,
            "discovery.fetch",
            {"source.id": source.source_id, "source.type": source.source_type},
        ) as span:
            try:
                items = await self._fetch(source, now)
                items_fetched = len(items)
                items_stored = await self._store(items, start)
            except DiscoveryError as e:
                error = e

            duration = time.monotonic() - start
            outcome = FetchOutcome(
                source_id=source.source_id,
                success=error is None,
                items_fetched=items_fetched,
                items_stored=items_stored,
                duration_seconds=duration,
                error=error,
            )
            span.set_attribute("fetch.success", outcome.success)
            span.set_attribute("fetch.items_stored", items_stored)

            if self._abandoned:
                logger.info(
                    "Fetch finished after shutdown, outcome not recorded",
                    source_id=source.source_id,
                    success=outcome.success,
                )
            else:
                await self._record(source, now, outcome)

        self._metrics.record_fetch(
            source.source_type,
            success=outcome.success,
            latency=duration,
            error_type=type(error).__name__ if error else None,
        )
        self._metrics.record_items(source.source_type, items_fetched, items_stored)

        if outcome.success:
            logger.info(
                "Source fetched",
                source_id=source.source_id,
                source=source.label,
                items=items_fetched,
                new_items=items_stored,
                elapsed_seconds=round(duration, 2),
            )
        else:
            logger.warning(
                "Source fetch failed",
                source_id=source.source_id,
                source=source.label,
                error_type=type(error).__name__,
                error=str(error),
                elapsed_seconds=round(duration, 2),
            )
        return outcome

    async def _fetch(self, source: Source, now: datetime) -> list[DiscoveredItem]:
        timeout = self._config.fetch_timeout_seconds
        deadline = now + self._config.fetch_timeout
        try:
            items = await asyncio.wait_for(
                self._fetcher.fetch(source, deadline),
                timeout=timeout,
            )
            return list(items or [])
        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"fetch exceeded {timeout:g}s deadline") from e
        except Exception as e:
            raise FetchError(f"{type(e).__name__}: {e}") from e

    async def _store(self, items: Sequence[DiscoveredItem], start: float) -> int:
        if not items:
            return 0
        remaining = self._config.fetch_timeout_seconds - (time.monotonic() - start)
        if remaining <= 0:
            raise FetchTimeoutError("no time left to store fetched items")
        try:
            return await asyncio.wait_for(self._feed_store.add(items), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError("feed store write exceeded deadline") from e
        except Exception as e:
            raise StoreWriteError(f"{type(e).__name__}: {e}") from e

    async def _record(self, source: Source, now: datetime, outcome: FetchOutcome) -> None:
        """Mark polled and update health; registry trouble is logged only."""
        try:
            await self._registry.mark_polled(source.source_id, now)
        except (RegistryError, SourceNotFoundError) as e:
            self._metrics.record_registry_error("mark_polled")
            logger.error(
                "Failed to mark source polled",
                source_id=source.source_id,
                error=str(e),
            )

        try:
            if outcome.success:
                await self._tracker.record_success(source.source_id, now)
            else:
                await self._tracker.record_failure(source.source_id, outcome.error)
        except (RegistryError, SourceNotFoundError) as e:
            self._metrics.record_registry_error("record_health")
            logger.error(
                "Failed to record source health",
                source_id=source.source_id,
                error=str(e),
            )
