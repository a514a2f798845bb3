"""Discovery service configuration.

``DiscoveryConfig`` holds the four process-lifetime knobs of the discovery
core and is frozen after construction. ``SchedulerConfig`` carries the
operational tuning around it (tick cadence, shutdown deadline, override
clamps). Both can be overridden via ``DISCOVERY_*`` and ``SCHEDULER_*``
environment variables respectively.
"""

from datetime import timedelta

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Maximum time to wait for in-flight fetches after a shutdown trigger
SHUTDOWN_TIMEOUT_SECONDS = 60.0


class DiscoveryConfig(BaseSettings):
    """Immutable configuration supplied once at service construction."""

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    poll_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Default poll interval for sources without an override",
    )
    concurrency: int = Field(
        default=5,
        ge=1,
        description="Maximum fetch tasks in flight, system-wide",
    )
    fetch_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Deadline for one fetch-and-store cycle",
    )
    disable_threshold: int = Field(
        default=10,
        ge=1,
        description="Consecutive failures before a source is auto-disabled",
    )

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)

    @property
    def fetch_timeout(self) -> timedelta:
        return timedelta(seconds=self.fetch_timeout_seconds)


class SchedulerConfig(BaseSettings):
    """Operational tuning for the scheduling loop and shutdown."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    tick_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between scheduling passes",
    )
    shutdown_timeout_seconds: float = Field(
        default=SHUTDOWN_TIMEOUT_SECONDS,
        ge=0,
        description="Seconds to wait for in-flight fetches on shutdown",
    )
    close_timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds to wait for stores to close after abandoning fetches",
    )

    # Clamp for per-source poll interval overrides
    min_poll_interval_seconds: float = Field(default=300.0, gt=0)
    max_poll_interval_seconds: float = Field(default=86400.0, gt=0)

    metrics_log_interval_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Seconds between stats summaries in the log",
    )
    disable_on_permanent_error: bool = Field(
        default=False,
        description="Disable a source at once on 404/410/unparseable/unsupported",
    )

    # First-sync / stale-source item cap applied by the feed fetcher
    stale_after_days: int = Field(default=15, ge=1)
    initial_item_limit: int = Field(default=20, ge=1)

    @model_validator(mode="after")
    def check_clamp(self) -> "SchedulerConfig":
        if self.min_poll_interval_seconds > self.max_poll_interval_seconds:
            raise ValueError(
                "min_poll_interval_seconds must not exceed max_poll_interval_seconds"
            )
        return self
