"""Tests for DiscoveryConfig and SchedulerConfig."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from news_discovery.discovery.config import (
    SHUTDOWN_TIMEOUT_SECONDS,
    DiscoveryConfig,
    SchedulerConfig,
)


class TestDiscoveryConfig:
    """Process-lifetime discovery settings."""

    def test_defaults(self) -> None:
        config = DiscoveryConfig()
        assert config.poll_interval == timedelta(hours=1)
        assert config.concurrency == 5
        assert config.fetch_timeout == timedelta(seconds=60)
        assert config.disable_threshold == 10

    def test_immutable(self) -> None:
        config = DiscoveryConfig()
        with pytest.raises(ValidationError):
            config.concurrency = 10

    @pytest.mark.parametrize(
        "field,value",
        [
            ("concurrency", 0),
            ("disable_threshold", 0),
            ("fetch_timeout_seconds", 0),
            ("poll_interval_seconds", -1),
        ],
    )
    def test_rejects_non_positive(self, field: str, value) -> None:
        with pytest.raises(ValidationError):
            DiscoveryConfig(**{field: value})

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("DISCOVERY_CONCURRENCY", "12")
        monkeypatch.setenv("DISCOVERY_DISABLE_THRESHOLD", "3")

        config = DiscoveryConfig()

        assert config.concurrency == 12
        assert config.disable_threshold == 3


class TestSchedulerConfig:
    """Operational scheduler settings."""

    def test_defaults(self) -> None:
        config = SchedulerConfig()
        assert config.tick_interval_seconds == 5
        assert config.shutdown_timeout_seconds == SHUTDOWN_TIMEOUT_SECONDS == 60
        assert config.min_poll_interval_seconds == 300
        assert config.max_poll_interval_seconds == 86400
        assert config.disable_on_permanent_error is False
        assert config.initial_item_limit == 20

    def test_clamp_bounds_validated(self) -> None:
        with pytest.raises(ValidationError):
            SchedulerConfig(min_poll_interval_seconds=600, max_poll_interval_seconds=300)

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS", "5")
        assert SchedulerConfig().shutdown_timeout_seconds == 5
