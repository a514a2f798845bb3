"""Storage layer: shared PostgreSQL connection management."""

from news_discovery.storage.database import Database

__all__ = ["Database"]
