"""Per-source failure tracking with automatic disabling.

State machine per source:

    ACTIVE --success--> ACTIVE (count = 0)
    ACTIVE --failure--> ACTIVE (count + 1), or DISABLED once count + 1 >= threshold
    DISABLED            terminal for automatic transitions

Only an external re-enable (``SourceRegistry.enable``) returns a source to
ACTIVE. One source being disabled has no effect on any other source.

Usage:
    tracker = FailureTracker(registry, threshold=10)
    await tracker.record_failure(source_id, FetchError("boom"))
    await tracker.record_success(source_id, now)
"""

import enum
from dataclasses import replace
from datetime import datetime

import structlog

from news_discovery.discovery.registry import SourceRegistry
from news_discovery.errors import PermanentFetchError
from news_discovery.observability.metrics import MetricsCollector, get_metrics
from news_discovery.sources.schemas import Source, SourceHealth

logger = structlog.get_logger(__name__)


class SourceState(enum.Enum):
    """Health states of a source."""

    ACTIVE = "active"
    DISABLED = "disabled"


def state_of(source: Source | SourceHealth) -> SourceState:
    return SourceState.DISABLED if source.disabled else SourceState.ACTIVE


class FailureTracker:
    """Consecutive-failure counter and disable switch for every source.

    Args:
        registry: Registry used for atomic health updates.
        threshold: Consecutive failures that disable a source.
        disable_on_permanent_error: Disable at once on PermanentFetchError.
        metrics: Metrics collector (defaults to the global one).
    """

    def __init__(
        self,
        registry: SourceRegistry,
        threshold: int,
        disable_on_permanent_error: bool = False,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self._registry = registry
        self._threshold = threshold
        self._disable_on_permanent_error = disable_on_permanent_error
        self._metrics = metrics or get_metrics()
        self.disabled_count = 0

    @property
    def threshold(self) -> int:
        return self._threshold

    def transition(
        self,
        health: SourceHealth,
        error: BaseException | None,
        now: datetime,
    ) -> SourceHealth:
        """Next health after one attempt; ``error is None`` means success."""
        if error is None:
            return self.on_success(health, now)
        return self.on_failure(health, error)

    def on_success(self, health: SourceHealth, now: datetime) -> SourceHealth:
        if health.disabled:
            return health
        return replace(
            health,
            consecutive_failures=0,
            last_success_at=now,
            last_error=None,
        )

    def on_failure(self, health: SourceHealth, error: BaseException) -> SourceHealth:
        if health.disabled:
            return replace(health, last_error=str(error) or type(error).__name__)
        count = health.consecutive_failures + 1
        disabled = count >= self._threshold or (
            self._disable_on_permanent_error and isinstance(error, PermanentFetchError)
        )
        return replace(
            health,
            consecutive_failures=count,
            disabled=disabled,
            last_error=str(error) or type(error).__name__,
        )

    async def record_success(self, source_id: str, now: datetime) -> SourceHealth:
        _, current = await self._registry.apply_health(
            source_id, lambda h: self.transition(h, None, now)
        )
        return current

    async def record_failure(
        self,
        source_id: str,
        error: BaseException,
    ) -> SourceHealth:
        previous, current = await self._registry.apply_health(
            source_id, lambda h: self.on_failure(h, error)
        )
        if current.disabled and not previous.disabled:
            self.disabled_count += 1
            self._metrics.record_source_disabled()
            logger.warning(
                "Source disabled after repeated failures",
                source_id=source_id,
                consecutive_failures=current.consecutive_failures,
                threshold=self._threshold,
                last_error=current.last_error,
            )
        return current
