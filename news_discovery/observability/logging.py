"""
structlog setup for the discovery process.

Service modules log through ``structlog.get_logger(__name__)`` with keyword
fields (source_id, trigger, in_flight, ...). Repositories and third-party
libraries log through the standard library, which is routed to the same
stream. Production renders JSON lines; every other environment renders
coloured console output.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from news_discovery.config.settings import Settings, get_settings
from news_discovery.observability.tracing import add_trace_context

# Libraries that are chatty at INFO (one line per HTTP request or query)
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg")


def _processors(settings: Settings) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Overrides ``Settings.log_level`` (the CLI passes "DEBUG"
            for --debug)
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper())

    structlog.configure(
        processors=_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
