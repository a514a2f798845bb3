"""
Command-line interface for news-discovery.

Provides commands to run the discovery service, sync sources on demand,
initialize the database, and manage the registered sources.

Usage:
    news-discovery run                 # Run the discovery service
    news-discovery sync                # Fetch all enabled sources once
    news-discovery init-db             # Initialize database
    news-discovery sources list        # Show registered sources
    news-discovery sources add URL     # Register a feed
"""

import asyncio
import signal
import sys
from typing import Any

import click

from news_discovery.config.settings import get_settings
from news_discovery.observability.logging import setup_logging
from news_discovery.observability.metrics import get_metrics


def _build_config(**overrides: Any):
    """DiscoveryConfig from the environment, with CLI flags taking precedence."""
    from news_discovery.discovery.config import DiscoveryConfig

    return DiscoveryConfig(**{k: v for k, v in overrides.items() if v is not None})


def _build_service(config=None):
    from news_discovery.discovery.service import DiscoveryService
    from news_discovery.feeds.store import PostgresFeedStore
    from news_discovery.sources.repository import PostgresSourceStore
    from news_discovery.storage.database import Database

    db = Database()
    return DiscoveryService(
        PostgresSourceStore(db),
        PostgresFeedStore(db),
        config or _build_config(),
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """News Discovery - scheduled polling of RSS/Atom sources."""
    setup_logging("DEBUG" if debug else None)

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from news_discovery.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, service) -> None:
    """SIGTERM/SIGINT request a graceful stop; SIGHUP requests a reload."""
    from news_discovery.discovery.shutdown import ShutdownTrigger

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, service.coordinator.request, ShutdownTrigger.STOP)
    loop.add_signal_handler(signal.SIGHUP, service.reload)


@main.command()
@click.option("--poll-interval", type=float, default=None, help="Default poll interval (seconds)")
@click.option("--concurrency", type=int, default=None, help="Maximum concurrent fetches")
@click.option("--fetch-timeout", type=float, default=None, help="Per-fetch timeout (seconds)")
@click.option("--disable-threshold", type=int, default=None, help="Failures before auto-disable")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def run(
    poll_interval: float | None,
    concurrency: int | None,
    fetch_timeout: float | None,
    disable_threshold: int | None,
    metrics: bool,
    metrics_port: int | None,
) -> None:
    """Run the discovery service until SIGTERM/SIGINT."""
    from news_discovery.errors import StartupError

    config = _build_config(
        poll_interval_seconds=poll_interval,
        concurrency=concurrency,
        fetch_timeout_seconds=fetch_timeout,
        disable_threshold=disable_threshold,
    )

    async def _run():
        service = _build_service(config)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        _install_signal_handlers(asyncio.get_running_loop(), service)

        await service.run()

    try:
        asyncio.run(_run())
    except StartupError as e:
        click.echo(click.style(f"Startup failed: {e}", fg="red"), err=True)
        sys.exit(1)


@main.command()
@click.option("--source-id", default=None, help="Sync a single source")
def sync(source_id: str | None) -> None:
    """Fetch sources once, outside the schedule."""
    from news_discovery.errors import DiscoveryError
    from news_discovery.sources.store import SourceNotFoundError

    async def _sync():
        service = _build_service()
        return await service.sync_sources(source_id)

    try:
        result = asyncio.run(_sync())
    except SourceNotFoundError:
        click.echo(click.style(f"Source not found: {source_id}", fg="red"), err=True)
        sys.exit(1)
    except DiscoveryError as e:
        click.echo(click.style(f"Sync failed: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(
        f"Synced {len(result.outcomes)} source(s): "
        f"{result.succeeded} ok, {result.failed} failed, "
        f"{result.items_stored} new item(s)"
    )
    for sid, error in result.errors.items():
        click.echo(click.style(f"  ✗ {sid}: {error}", fg="red"))
    if result.failed:
        sys.exit(1)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from news_discovery.feeds.store import PostgresFeedStore
    from news_discovery.sources.repository import PostgresSourceStore
    from news_discovery.storage.database import Database

    async def _init():
        db = Database()
        await db.connect()
        try:
            await PostgresSourceStore(db).create_table()
            await PostgresFeedStore(db).create_table()
        finally:
            await db.close()

        click.echo("Database initialized successfully")

    asyncio.run(_init())


@main.group()
def sources() -> None:
    """Manage registered sources."""


async def _with_registry(action):
    """Run ``action(registry)`` against the Postgres source store."""
    from news_discovery.discovery.registry import SourceRegistry
    from news_discovery.sources.repository import PostgresSourceStore
    from news_discovery.storage.database import Database

    store = PostgresSourceStore(Database())
    await store.connect()
    try:
        return await action(SourceRegistry(store, _build_config()))
    finally:
        await store.close()


@sources.command("list")
@click.option("--enabled-only", is_flag=True, help="Hide disabled sources")
def list_sources(enabled_only: bool) -> None:
    """List registered sources and their health."""

    async def action(registry):
        return await registry.list_sources(enabled_only=enabled_only)

    rows = asyncio.run(_with_registry(action))
    if not rows:
        click.echo("No sources registered")
        return

    for source in rows:
        status = click.style("disabled", fg="red") if source.disabled else click.style("active", fg="green")
        last_polled = source.last_polled_at.isoformat() if source.last_polled_at else "never"
        click.echo(
            f"{source.source_id}  {source.source_type:<5} {status}  "
            f"failures={source.consecutive_failures}  polled={last_polled}  {source.label}"
        )
        if source.last_error:
            click.echo(f"    last error: {source.last_error}")


@sources.command("add")
@click.argument("url")
@click.option("--type", "source_type", default="rss", type=click.Choice(["rss", "atom"]))
@click.option("--name", default="", help="Display name")
@click.option("--interval", type=int, default=None, help="Poll interval override (seconds)")
def add_source(url: str, source_type: str, name: str, interval: int | None) -> None:
    """Register a new feed."""
    from news_discovery.sources.schemas import Source

    source = Source(
        source_type=source_type,
        url=url,
        name=name,
        poll_interval_seconds=interval,
    )

    async def action(registry):
        return await registry.store.add(source)

    stored = asyncio.run(_with_registry(action))
    click.echo(f"Added source {stored.source_id} ({stored.url})")


def _set_enabled(source_id: str, enabled: bool) -> None:
    from news_discovery.sources.store import SourceNotFoundError

    async def action(registry):
        if enabled:
            return await registry.enable(source_id)
        return await registry.disable(source_id)

    try:
        source = asyncio.run(_with_registry(action))
    except SourceNotFoundError:
        click.echo(click.style(f"Source not found: {source_id}", fg="red"), err=True)
        sys.exit(1)

    state = "enabled" if not source.disabled else "disabled"
    click.echo(f"Source {source.source_id} {state}")


@sources.command("enable")
@click.argument("source_id")
def enable_source(source_id: str) -> None:
    """Re-enable a source and reset its failure count."""
    _set_enabled(source_id, enabled=True)


@sources.command("disable")
@click.argument("source_id")
def disable_source(source_id: str) -> None:
    """Stop polling a source."""
    _set_enabled(source_id, enabled=False)


if __name__ == "__main__":
    main()
