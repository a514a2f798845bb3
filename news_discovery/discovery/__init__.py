"""Discovery core: scheduling, bounded fetching, failure tracking and shutdown."""

from news_discovery.discovery.config import (
    SHUTDOWN_TIMEOUT_SECONDS,
    DiscoveryConfig,
    SchedulerConfig,
)
from news_discovery.discovery.executor import FetchExecutor, FetchOutcome
from news_discovery.discovery.health import FailureTracker, SourceState
from news_discovery.discovery.pool import WorkerPool
from news_discovery.discovery.registry import SourceRegistry
from news_discovery.discovery.scheduler import Scheduler
from news_discovery.discovery.service import DiscoveryService, DiscoveryStats, SyncResult
from news_discovery.discovery.shutdown import ShutdownCoordinator, ShutdownTrigger

__all__ = [
    "SHUTDOWN_TIMEOUT_SECONDS",
    "DiscoveryConfig",
    "DiscoveryService",
    "DiscoveryStats",
    "FailureTracker",
    "FetchExecutor",
    "FetchOutcome",
    "Scheduler",
    "SchedulerConfig",
    "ShutdownCoordinator",
    "ShutdownTrigger",
    "SourceRegistry",
    "SourceState",
    "SyncResult",
    "WorkerPool",
]
