"""
Prometheus metrics for monitoring the discovery service.

Defines and exposes metrics for:
- Fetch outcomes and latency per source type
- Items fetched and newly stored
- Scheduler ticks and pool saturation
- Source health (enabled count, auto-disables)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from news_discovery.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for fetch latency histograms (in seconds)
FETCH_LATENCY_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the discovery service.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_fetch("rss", success=True, latency=0.4)
        metrics.record_items("rss", fetched=20, stored=3)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Fetch outcomes
        self.fetches_total = Counter(
            "news_discovery_fetches_total",
            "Total source fetch attempts",
            ["source_type", "outcome"],  # outcome: success, failure
        )

        self.fetch_errors = Counter(
            "news_discovery_fetch_errors_total",
            "Total fetch failures by error type",
            ["source_type", "error_type"],
        )

        self.fetch_latency = Histogram(
            "news_discovery_fetch_latency_seconds",
            "Time to fetch and store one source",
            ["source_type"],
            buckets=FETCH_LATENCY_BUCKETS,
        )

        # Items
        self.items_fetched = Counter(
            "news_discovery_items_fetched_total",
            "Items returned by source fetch logic",
            ["source_type"],
        )

        self.items_stored = Counter(
            "news_discovery_items_stored_total",
            "New (non-duplicate) items written to the feed store",
            ["source_type"],
        )

        # Scheduler and pool
        self.scheduler_ticks = Counter(
            "news_discovery_scheduler_ticks_total",
            "Scheduler ticks executed",
        )

        self.dispatch_refused = Counter(
            "news_discovery_dispatch_refused_total",
            "Due sources not admitted because the worker pool was saturated",
        )

        self.fetches_in_flight = Gauge(
            "news_discovery_fetches_in_flight",
            "Fetch tasks currently executing",
        )

        self.registry_errors = Counter(
            "news_discovery_registry_errors_total",
            "Metadata store failures seen by the discovery service",
            ["operation"],
        )

        # Source health
        self.sources_enabled = Gauge(
            "news_discovery_sources_enabled",
            "Number of enabled (non-disabled) sources",
        )

        self.sources_disabled = Counter(
            "news_discovery_sources_auto_disabled_total",
            "Sources automatically disabled after repeated failures",
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_fetch(
        self,
        source_type: str,
        success: bool,
        latency: float | None = None,
        error_type: str | None = None,
    ) -> None:
        """
        Record the terminal outcome of one fetch execution.

        Args:
            source_type: Source type (rss, atom, ...)
            success: Whether the fetch-and-store cycle succeeded
            latency: Optional duration in seconds
            error_type: Error class name for failures
        """
        outcome = "success" if success else "failure"
        self.fetches_total.labels(source_type=source_type, outcome=outcome).inc()

        if not success and error_type:
            self.fetch_errors.labels(
                source_type=source_type,
                error_type=error_type,
            ).inc()

        if latency is not None:
            self.fetch_latency.labels(source_type=source_type).observe(latency)

    def record_items(self, source_type: str, fetched: int, stored: int) -> None:
        """Record items returned by a fetch and how many were new."""
        if fetched:
            self.items_fetched.labels(source_type=source_type).inc(fetched)
        if stored:
            self.items_stored.labels(source_type=source_type).inc(stored)

    def record_tick(self, refused: int = 0) -> None:
        """Record a scheduler tick and how many due sources were refused."""
        self.scheduler_ticks.inc()
        if refused:
            self.dispatch_refused.inc(refused)

    def record_registry_error(self, operation: str) -> None:
        """Record a metadata store failure."""
        self.registry_errors.labels(operation=operation).inc()

    def record_source_disabled(self) -> None:
        """Record an automatic source disable."""
        self.sources_disabled.inc()

    def set_in_flight(self, count: int) -> None:
        """Set the number of in-flight fetch tasks."""
        self.fetches_in_flight.set(count)

    def set_sources_enabled(self, count: int) -> None:
        """Set the number of enabled sources."""
        self.sources_enabled.set(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
