"""
Tick-driven scheduling loop.

Every ``tick_interval_seconds`` the scheduler asks the registry which
sources are due and offers each to the worker pool without blocking. A
source refused because the pool is saturated stays due and is offered
again on the next tick. The loop exits once the stop event is set; waiting
for in-flight fetches is the shutdown coordinator's job.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from news_discovery.discovery.config import SchedulerConfig
from news_discovery.discovery.pool import WorkerPool
from news_discovery.discovery.registry import SourceRegistry
from news_discovery.errors import RegistryError
from news_discovery.observability.metrics import MetricsCollector, get_metrics
from news_discovery.sources.schemas import Source

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """
    Dispatches due sources to the worker pool.

    Usage:
        scheduler = Scheduler(registry, pool, executor.execute, SchedulerConfig())
        await scheduler.run(stop_event)
    """

    def __init__(
        self,
        registry: SourceRegistry,
        pool: WorkerPool,
        execute: Callable[[Source, datetime], Awaitable[Any]],
        config: SchedulerConfig,
        clock: Callable[[], datetime] = _utc_now,
        on_stats: Callable[[], Awaitable[None]] | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize scheduler.

        Args:
            registry: Source registry to query for due sources
            pool: Worker pool bounding concurrent fetches
            execute: Fetch-and-store job run for each dispatched source
            config: Tick cadence and stats interval
            clock: Source of the current UTC time
            on_stats: Called every metrics_log_interval_seconds
            metrics: Metrics collector (defaults to the global one)
        """
        self._registry = registry
        self._pool = pool
        self._execute = execute
        self._config = config
        self._clock = clock
        self._on_stats = on_stats
        self._metrics = metrics or get_metrics()
        self._ticks = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    async def tick(self) -> int:
        """
        Run one scheduling pass.

        Returns:
            Number of sources dispatched
        """
        self._ticks += 1
        now = self._clock()

        try:
            due = await self._registry.list_due(now)
        except RegistryError as e:
            self._metrics.record_registry_error("list_due")
            self._metrics.record_tick()
            logger.error("Failed to list due sources", error=str(e))
            return 0

        if self._pool.closed:
            # stop arrived while listing
            logger.debug("Pool closed, skipping dispatch", due=len(due))
            self._metrics.record_tick()
            return 0

        dispatched = 0
        refused = 0
        for source in due:
            if self._pool.is_running(source.source_id):
                continue
            admitted = await self._pool.try_submit(
                source.source_id,
                lambda s=source: self._execute(s, now),
            )
            if admitted:
                dispatched += 1
            else:
                refused += 1

        self._metrics.record_tick(refused=refused)
        self._metrics.set_in_flight(self._pool.active)

        if due:
            logger.debug(
                "Scheduler tick",
                due=len(due),
                dispatched=dispatched,
                refused=refused,
                in_flight=self._pool.active,
            )
        return dispatched

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick immediately, then every tick interval, until stop_event is set."""
        logger.info(
            "Scheduler started",
            tick_interval=self._config.tick_interval_seconds,
            capacity=self._pool.capacity,
        )
        last_stats = time.monotonic()

        while not stop_event.is_set():
            await self.tick()

            if (
                self._on_stats is not None
                and time.monotonic() - last_stats >= self._config.metrics_log_interval_seconds
            ):
                await self._on_stats()
                last_stats = time.monotonic()

            try:
                await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=self._config.tick_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped", ticks=self._ticks)
