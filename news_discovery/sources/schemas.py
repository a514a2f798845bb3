"""Data models for the sources module."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

# Fields the discovery service is allowed to change after a poll attempt.
HEALTH_FIELDS = frozenset({
    "consecutive_failures",
    "disabled",
    "last_success_at",
    "last_error",
})

# Every field an update may touch (external management included).
UPDATABLE_FIELDS = HEALTH_FIELDS | frozenset({
    "name",
    "url",
    "config",
    "poll_interval_seconds",
    "last_polled_at",
})


def new_source_id() -> str:
    """Generate a fresh source identifier."""
    return str(uuid.uuid4())


@dataclass
class Source:
    """A polled content origin (RSS/Atom feed or other fetchable endpoint).

    ``source_type``, ``url`` and ``config`` together form the fetch
    descriptor; they are interpreted only by the fetch logic. The health
    fields (``consecutive_failures``, ``disabled``, ``last_*``) are owned by
    the discovery service once the source exists.
    """

    source_type: str
    url: str
    name: str = ""
    source_id: str = field(default_factory=new_source_id)
    config: dict = field(default_factory=dict)
    poll_interval_seconds: int | None = None
    consecutive_failures: int = 0
    disabled: bool = False
    last_polled_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def label(self) -> str:
        """Human-readable name for logs."""
        return self.name or self.url


@dataclass(frozen=True)
class SourceHealth:
    """Snapshot of the health fields the failure tracker transitions."""

    consecutive_failures: int = 0
    disabled: bool = False
    last_success_at: datetime | None = None
    last_error: str | None = None

    @classmethod
    def of(cls, source: Source) -> "SourceHealth":
        return cls(
            consecutive_failures=source.consecutive_failures,
            disabled=source.disabled,
            last_success_at=source.last_success_at,
            last_error=source.last_error,
        )

    def as_updates(self) -> dict:
        """Field mapping suitable for SourceStore.update()."""
        return {
            "consecutive_failures": self.consecutive_failures,
            "disabled": self.disabled,
            "last_success_at": self.last_success_at,
            "last_error": self.last_error,
        }
