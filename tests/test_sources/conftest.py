"""Shared fixtures for sources tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def mock_database() -> AsyncMock:
    """Mock Database instance matching the Database API."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="CREATE TABLE")
    return db


@pytest.fixture
def sample_db_row() -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {
        "source_id": "5f0c8f7e-0000-4000-8000-000000000001",
        "source_type": "rss",
        "url": "https://semianalysis.substack.com/feed",
        "name": "SemiAnalysis",
        "config": '{"category": "analyst"}',
        "poll_interval_seconds": None,
        "consecutive_failures": 2,
        "disabled": False,
        "last_polled_at": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        "last_success_at": datetime(2025, 1, 1, 11, 0, tzinfo=timezone.utc),
        "last_error": "feed returned HTTP 503",
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
    }
