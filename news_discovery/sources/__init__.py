"""Sources: source records and their metadata stores."""

from news_discovery.sources.repository import PostgresSourceStore
from news_discovery.sources.schemas import Source, SourceHealth
from news_discovery.sources.store import (
    InMemorySourceStore,
    SourceNotFoundError,
    SourceStore,
)

__all__ = [
    "InMemorySourceStore",
    "PostgresSourceStore",
    "Source",
    "SourceHealth",
    "SourceNotFoundError",
    "SourceStore",
]
