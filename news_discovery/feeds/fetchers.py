"""
Per-source fetch logic.

A SourceFetcher turns a Source descriptor into DiscoveredItems before a
deadline. The discovery core only knows the SourceFetcher interface; the
FetcherRouter picks an implementation by ``source.source_type``.

FeedFetcher handles RSS and Atom:
- httpx for the request, bounded by the remaining time to the deadline
- feedparser for both formats (it normalizes RSS and Atom entries)
- a cap of the N most recent entries for first-time syncs and for sources
  not polled for a long time, so a new source does not flood the feed
"""

import calendar
import logging
import socket
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import feedparser
import httpx

from news_discovery.config.settings import get_settings
from news_discovery.errors import FetchError, FetchTimeoutError, PermanentFetchError
from news_discovery.feeds.schemas import DiscoveredItem, item_id_for
from news_discovery.sources.schemas import Source

logger = logging.getLogger(__name__)

# HTTP statuses that mean the feed is gone rather than temporarily broken
PERMANENT_HTTP_STATUSES = frozenset({404, 410})

# getaddrinfo answers meaning the host does not exist (EAI_AGAIN stays transient)
UNKNOWN_HOST_ERRNOS = frozenset(
    code
    for code in (socket.EAI_NONAME, getattr(socket, "EAI_NODATA", None))
    if code is not None
)

DEFAULT_ITEM_LIMIT = 20
DEFAULT_STALE_AFTER = timedelta(days=15)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_unknown_host(exc: BaseException) -> bool:
    """Look down the exception chain for a "no such host" resolver error."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror) and current.errno in UNKNOWN_HOST_ERRNOS:
            return True
        current = current.__cause__ or current.__context__
    return False


class SourceFetcher(ABC):
    """Retrieves the current items of one source."""

    @abstractmethod
    async def fetch(self, source: Source, deadline: datetime) -> list[DiscoveredItem]:
        """
        Fetch items from a source.

        Args:
            source: Source descriptor
            deadline: Absolute time by which the fetch should give up

        Returns:
            Items currently offered by the source (duplicates of earlier
            polls included; the feed store drops them)

        Raises:
            FetchError: On any retrieval or parse failure
        """
        ...

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""


class FeedFetcher(SourceFetcher):
    """
    RSS/Atom fetcher.

    Usage:
        fetcher = FeedFetcher()
        items = await fetcher.fetch(source, deadline)
        await fetcher.aclose()
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        item_limit: int = DEFAULT_ITEM_LIMIT,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize feed fetcher.

        Args:
            client: Shared HTTP client (created lazily if omitted)
            item_limit: Max entries kept on first-time or stale syncs
            stale_after: Time since last poll after which a source is stale
            clock: Source of the current UTC time
        """
        self._client = client
        self._owns_client = client is None
        self._item_limit = item_limit
        self._stale_after = stale_after
        self._clock = clock

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            settings = get_settings()
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                headers={"User-Agent": settings.http_user_agent},
                timeout=httpx.Timeout(30.0, connect=settings.http_connect_timeout),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def should_apply_limit(self, source: Source, now: datetime) -> bool:
        """Cap entries for never-polled sources and sources idle past stale_after."""
        if source.last_polled_at is None:
            return True
        return now - source.last_polled_at > self._stale_after

    async def fetch(self, source: Source, deadline: datetime) -> list[DiscoveredItem]:
        now = self._clock()
        remaining = (deadline - now).total_seconds()
        if remaining <= 0:
            raise FetchTimeoutError(f"deadline already passed for {source.url}")

        try:
            response = await self._get_client().get(source.url, timeout=remaining)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in PERMANENT_HTTP_STATUSES:
                raise PermanentFetchError(f"feed returned HTTP {status}") from e
            raise FetchError(f"feed returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"request timed out: {e}") from e
        except httpx.InvalidURL as e:
            raise PermanentFetchError(f"invalid url: {e}") from e
        except httpx.ConnectError as e:
            if _is_unknown_host(e):
                raise PermanentFetchError(f"unknown host: {e}") from e
            raise FetchError(f"request failed: {e}") from e
        except httpx.RequestError as e:
            raise FetchError(f"request failed: {e}") from e

        parsed = feedparser.parse(response.content)
        if parsed.get("bozo") and not parsed.get("entries"):
            reason = parsed.get("bozo_exception", "no entries")
            raise PermanentFetchError(f"failed to parse feed: {reason}")

        feed_title = parsed.get("feed", {}).get("title", "")
        items = [
            self._to_item(entry, feed_title, source, now)
            for entry in parsed.get("entries", [])
        ]
        items.sort(key=lambda i: i.published_at, reverse=True)

        if self.should_apply_limit(source, now):
            items = items[: self._item_limit]

        logger.debug("Parsed %d entries from %s", len(items), source.url)
        return items

    def _to_item(
        self,
        entry: dict[str, Any],
        feed_title: str,
        source: Source,
        now: datetime,
    ) -> DiscoveredItem:
        """Map a feedparser entry to a DiscoveredItem."""
        identity = (
            entry.get("id")
            or entry.get("guid")
            or entry.get("link")
            or entry.get("title", "")
        )
        payload: dict[str, Any] = {}
        if feed_title:
            payload["publisher"] = feed_title
        tags = [t.get("term", "") for t in entry.get("tags", []) if t.get("term")]
        if tags:
            payload["tags"] = tags

        return DiscoveredItem(
            id=item_id_for(source.source_id, str(identity)),
            source_id=source.source_id,
            url=entry.get("link", ""),
            title=entry.get("title", ""),
            summary=entry.get("summary", ""),
            authors=self._authors(entry),
            published_at=self._published_at(entry) or now,
            discovered_at=now,
            payload=payload,
        )

    @staticmethod
    def _authors(entry: dict[str, Any]) -> list[str]:
        """Collect author names, case-insensitively unique, in feed order."""
        names: list[str] = []
        candidates = [entry.get("author", "")]
        candidates.extend(a.get("name", "") for a in entry.get("authors", []))
        for name in candidates:
            if name and name.lower() not in {n.lower() for n in names}:
                names.append(name)
        return names

    @staticmethod
    def _published_at(entry: dict[str, Any]) -> datetime | None:
        """Prefer the updated timestamp (most current), then published."""
        for field in ("updated_parsed", "published_parsed"):
            parsed = entry.get(field)
            if parsed:
                return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
        return None


class FetcherRouter(SourceFetcher):
    """Dispatches each source to the fetcher registered for its type."""

    def __init__(self, fetchers: dict[str, SourceFetcher] | None = None):
        if fetchers is None:
            feed_fetcher = FeedFetcher()
            fetchers = {"rss": feed_fetcher, "atom": feed_fetcher}
        self._fetchers = fetchers

    @property
    def source_types(self) -> list[str]:
        return sorted(self._fetchers)

    def register(self, source_type: str, fetcher: SourceFetcher) -> None:
        self._fetchers[source_type] = fetcher

    async def fetch(self, source: Source, deadline: datetime) -> list[DiscoveredItem]:
        fetcher = self._fetchers.get(source.source_type)
        if fetcher is None:
            raise PermanentFetchError(f"unsupported source type: {source.source_type}")
        return await fetcher.fetch(source, deadline)

    async def aclose(self) -> None:
        # The same fetcher may serve several types
        for fetcher in {id(f): f for f in self._fetchers.values()}.values():
            await fetcher.aclose()
