"""
Discovery service - polls sources and stores discovered items.

Wires the registry, failure tracker, fetch executor, worker pool, scheduler
and shutdown coordinator together around two collaborators: a SourceStore
for source metadata and a FeedStore for discovered items.

Features:
- Bounded concurrent fetching with per-source exclusion
- Automatic disabling of chronically failing sources
- Graceful, deadline-bounded shutdown
- Manual one-shot sync of one or all sources
- Periodic stats logging and health reporting
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from news_discovery.discovery.config import DiscoveryConfig, SchedulerConfig
from news_discovery.discovery.executor import FetchExecutor, FetchOutcome
from news_discovery.discovery.health import FailureTracker
from news_discovery.discovery.pool import PoolClosedError, WorkerPool
from news_discovery.discovery.registry import SourceRegistry
from news_discovery.discovery.scheduler import Scheduler
from news_discovery.discovery.shutdown import ShutdownCoordinator, ShutdownTrigger
from news_discovery.errors import RegistryError, StartupError
from news_discovery.feeds.fetchers import FeedFetcher, FetcherRouter, SourceFetcher
from news_discovery.feeds.store import FeedStore
from news_discovery.observability.metrics import MetricsCollector, get_metrics
from news_discovery.sources.schemas import Source
from news_discovery.sources.store import SourceStore

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiscoveryStats:
    """Counters accumulated since the service was constructed."""

    sources_enabled: int | None = None
    fetches_succeeded: int = 0
    fetches_failed: int = 0
    items_discovered: int = 0
    items_stored: int = 0
    sources_disabled: int = 0


@dataclass
class SyncResult:
    """Outcome of a manual sync."""

    outcomes: list[FetchOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def items_fetched(self) -> int:
        return sum(o.items_fetched for o in self.outcomes)

    @property
    def items_stored(self) -> int:
        return sum(o.items_stored for o in self.outcomes)

    @property
    def errors(self) -> dict[str, str]:
        return {o.source_id: str(o.error) for o in self.outcomes if o.error is not None}


def default_fetcher(scheduler_config: SchedulerConfig) -> SourceFetcher:
    """RSS/Atom fetch logic with the configured first-sync cap."""
    feed_fetcher = FeedFetcher(
        item_limit=scheduler_config.initial_item_limit,
        stale_after=timedelta(days=scheduler_config.stale_after_days),
    )
    return FetcherRouter({"rss": feed_fetcher, "atom": feed_fetcher})


class DiscoveryService:
    """
    Service that discovers new items from registered sources.

    A service instance runs once: after run() returns, build a new one to
    start again.

    Usage:
        service = DiscoveryService(source_store, feed_store, DiscoveryConfig())
        await service.run()  # Runs until stop() or cancellation
    """

    def __init__(
        self,
        source_store: SourceStore,
        feed_store: FeedStore,
        config: DiscoveryConfig | None = None,
        *,
        fetcher: SourceFetcher | None = None,
        scheduler_config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize discovery service.

        Args:
            source_store: Durable source metadata store
            feed_store: Store for discovered items (deduplicates by id)
            config: Poll interval, concurrency, fetch timeout, disable threshold
            fetcher: Per-source fetch logic (defaults to RSS/Atom)
            scheduler_config: Tick cadence, shutdown deadline and related knobs
            clock: Source of the current UTC time
            metrics: Metrics collector (defaults to the global one)
        """
        self._config = config or DiscoveryConfig()
        self._scheduler_config = scheduler_config or SchedulerConfig()
        self._clock = clock or _utc_now
        self._metrics = metrics or get_metrics()

        self._source_store = source_store
        self._feed_store = feed_store
        self._fetcher = fetcher or default_fetcher(self._scheduler_config)

        self._registry = SourceRegistry(source_store, self._config, self._scheduler_config)
        self._tracker = FailureTracker(
            self._registry,
            threshold=self._config.disable_threshold,
            disable_on_permanent_error=self._scheduler_config.disable_on_permanent_error,
            metrics=self._metrics,
        )
        self._executor = FetchExecutor(
            self._registry,
            self._tracker,
            self._fetcher,
            feed_store,
            self._config,
            metrics=self._metrics,
        )
        self._pool = WorkerPool(self._config.concurrency)
        self._coordinator = ShutdownCoordinator(
            self._scheduler_config.shutdown_timeout_seconds,
            pool=self._pool,
        )
        self._scheduler = Scheduler(
            self._registry,
            self._pool,
            self._execute,
            self._scheduler_config,
            clock=self._clock,
            on_stats=self.log_stats,
            metrics=self._metrics,
        )

        self._stats = DiscoveryStats()
        self._running = False
        self._started = False
        self._stores_open = False

        logger.info(
            "Discovery service initialized",
            poll_interval=self._config.poll_interval_seconds,
            concurrency=self._config.concurrency,
            fetch_timeout=self._config.fetch_timeout_seconds,
            disable_threshold=self._config.disable_threshold,
        )

    @property
    def config(self) -> DiscoveryConfig:
        return self._config

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def coordinator(self) -> ShutdownCoordinator:
        return self._coordinator

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> DiscoveryStats:
        self._stats.sources_disabled = self._tracker.disabled_count
        return self._stats

    async def run(self, cancel_event: asyncio.Event | None = None) -> None:
        """
        Run the discovery loop until stopped or cancelled.

        Setting ``cancel_event`` and cancelling the task both drain in-flight
        fetches first. The former returns normally; the latter re-raises
        CancelledError once the drain is over.

        Args:
            cancel_event: Optional cancellation token; setting it triggers a
                graceful stop

        Raises:
            StartupError: If a store cannot be opened (before any polling)
        """
        if self._running:
            raise RuntimeError("Discovery service is already running")
        if self._started:
            raise RuntimeError("Discovery service has already run; create a new one")

        await self._open_stores()
        self._started = True
        self._running = True
        logger.info("Starting discovery service")

        watcher: asyncio.Task | None = None
        if cancel_event is not None:
            watcher = asyncio.create_task(
                self._coordinator.watch(cancel_event),
                name="discovery_cancel_watch",
            )
        scheduler_task = asyncio.create_task(
            self._scheduler.run(self._coordinator.stop_event),
            name="discovery_scheduler",
        )

        cancelled: asyncio.CancelledError | None = None
        try:
            await scheduler_task
        except asyncio.CancelledError as e:
            cancelled = e
            self._coordinator.request(ShutdownTrigger.CANCEL)
            logger.info("Discovery service cancelled")
        finally:
            if watcher is not None:
                watcher.cancel()
            if not scheduler_task.done():
                scheduler_task.cancel()
            drained = await self._coordinator.drain(self._pool)
            if not drained:
                self._executor.abandon()
            await self.log_stats()
            await self._close_stores(
                timeout=None if drained else self._scheduler_config.close_timeout_seconds
            )
            self._running = False
            logger.info("Discovery service stopped")

        # Drained; let the canceller see its cancellation
        if cancelled is not None:
            raise cancelled

    async def stop(self) -> None:
        """Request a graceful stop. Safe to call repeatedly and before run()."""
        self._coordinator.request(ShutdownTrigger.STOP)

    def reload(self) -> None:
        """Accept a reload request. Nothing is reloaded."""
        self._coordinator.request(ShutdownTrigger.RELOAD)

    async def sync_sources(self, source_id: str | None = None) -> SyncResult:
        """
        Fetch one source, or every enabled source, right now.

        Uses the same executor and concurrency bound as the scheduled path.
        A source already being fetched is skipped, as is every source once a
        running service has been asked to stop. When the service is not
        running, the stores are opened for the duration of the sync.

        Args:
            source_id: Source to sync (None syncs all enabled sources)

        Returns:
            SyncResult with one outcome per fetched source

        Raises:
            SourceNotFoundError: If source_id is unknown
            RegistryError: If the source list cannot be read
        """
        opened_here = not self._stores_open
        if opened_here:
            await self._open_stores()

        try:
            if source_id is not None:
                sources = [await self._registry.get(source_id)]
            else:
                sources = await self._registry.list_sources(enabled_only=True)

            pool = self._pool if self._running else WorkerPool(self._config.concurrency)
            now = self._clock()
            result = SyncResult()
            tasks = []
            for source in sources:
                if pool.closed or pool.is_running(source.source_id):
                    result.skipped.append(source.source_id)
                    continue
                try:
                    task = await pool.submit(
                        source.source_id,
                        lambda s=source: self._execute(s, now),
                    )
                except PoolClosedError:
                    result.skipped.append(source.source_id)
                    continue
                tasks.append(task)

            for outcome in await asyncio.gather(*tasks):
                if outcome is not None:
                    result.outcomes.append(outcome)

            logger.info(
                "Manual sync completed",
                sources=len(sources),
                succeeded=result.succeeded,
                failed=result.failed,
                new_items=result.items_stored,
            )
            return result
        finally:
            if opened_here:
                await self._close_stores()

    async def log_stats(self) -> None:
        """Log a summary of the counters."""
        stats = self.stats
        try:
            stats.sources_enabled = await self._registry.count_enabled()
            self._metrics.set_sources_enabled(stats.sources_enabled)
        except RegistryError as e:
            logger.warning("Could not count enabled sources", error=str(e))

        logger.info(
            "Discovery stats",
            sources_enabled=stats.sources_enabled,
            fetches_succeeded=stats.fetches_succeeded,
            fetches_failed=stats.fetches_failed,
            items_discovered=stats.items_discovered,
            items_stored=stats.items_stored,
            sources_disabled=stats.sources_disabled,
            in_flight=self._pool.active,
        )

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the discovery service.

        Returns:
            Dictionary with health status
        """
        try:
            source_store_healthy = await self._source_store.health_check()
        except Exception:
            source_store_healthy = False
        try:
            feed_store_healthy = await self._feed_store.health_check()
        except Exception:
            feed_store_healthy = False

        return {
            "running": self._running,
            "stop_requested": self._coordinator.stop_requested,
            "source_store_healthy": source_store_healthy,
            "feed_store_healthy": feed_store_healthy,
            "in_flight": self._pool.active,
            "capacity": self._pool.capacity,
        }

    async def _execute(self, source: Source, now: datetime) -> FetchOutcome:
        outcome = await self._executor.execute(source, now)
        if outcome.success:
            self._stats.fetches_succeeded += 1
        else:
            self._stats.fetches_failed += 1
        self._stats.items_discovered += outcome.items_fetched
        self._stats.items_stored += outcome.items_stored
        return outcome

    async def _open_stores(self) -> None:
        try:
            await self._source_store.connect()
        except Exception as e:
            raise StartupError(f"failed to open source store: {e}") from e

        try:
            await self._feed_store.connect()
        except Exception as e:
            await self._source_store.close()
            raise StartupError(f"failed to open feed store: {e}") from e

        self._stores_open = True

    async def _close_stores(self, timeout: float | None = None) -> None:
        """Close fetcher and stores, giving up on the lot after ``timeout`` seconds."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for name, close in (
            ("fetcher", self._fetcher.aclose),
            ("feed_store", self._feed_store.close),
            ("source_store", self._source_store.close),
        ):
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            try:
                await asyncio.wait_for(close(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning(
                    "Gave up waiting for resource to close",
                    resource=name,
                    timeout_seconds=timeout,
                )
            except Exception as e:
                logger.error("Failed to close resource", resource=name, error=str(e))
        self._stores_open = False
