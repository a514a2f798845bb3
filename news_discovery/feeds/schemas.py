"""
Discovered item schema.

A DiscoveredItem is what source fetch logic produces and what the feed store
persists. Its ``id`` is a stable hash of the entry's identity (guid, else
link, else title) so the same entry seen on two polls maps to the same id and
the feed store can deduplicate it.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    Uses SHA256 truncated to 16 hex characters (64 bits). Unlike Python's
    built-in hash(), this is deterministic across process restarts.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def item_id_for(source_id: str, identity: str) -> str:
    """Build the dedup key for an entry of a given source."""
    return f"{source_id[:8]}_{stable_hash(identity)}"


class DiscoveredItem(BaseModel):
    """A single content item found while polling a source."""

    # Identity
    id: str = Field(..., min_length=1, description="Stable dedup key")
    source_id: str = Field(..., description="Source that produced the item")

    # Content
    url: str = Field(default="", description="Canonical link of the item")
    title: str = Field(default="(No title)")
    summary: str = Field(default="")
    authors: list[str] = Field(default_factory=list)

    # Timestamps
    published_at: datetime = Field(default_factory=_utc_now)
    discovered_at: datetime = Field(default_factory=_utc_now)

    # Anything else the fetch logic wants to keep (publisher, tags, ...)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("published_at", "discovered_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Ensure timestamps are timezone-aware (UTC)."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("title")
    @classmethod
    def default_title(cls, v: str) -> str:
        return v.strip() or "(No title)"
