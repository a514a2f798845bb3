"""Observability layer - logging, metrics, and tracing."""

from news_discovery.observability.logging import setup_logging
from news_discovery.observability.metrics import MetricsCollector, get_metrics
from news_discovery.observability.tracing import get_tracer, setup_tracing

__all__ = ["setup_logging", "MetricsCollector", "get_metrics", "setup_tracing", "get_tracer"]
