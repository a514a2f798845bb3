"""Tests for the RSS/Atom fetcher and the fetcher router."""

import socket
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from news_discovery.errors import FetchError, FetchTimeoutError, PermanentFetchError
from news_discovery.feeds.fetchers import FeedFetcher, FetcherRouter

FEED_URL = "https://example.com/feed.xml"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _rss(entries: int) -> str:
    items = "".join(
        f"""
        <item>
            <title>Post {i}</title>
            <link>https://example.com/posts/{i}</link>
            <guid>post-{i}</guid>
            <description>Summary {i}</description>
            <author>writer@example.com (Writer)</author>
            <pubDate>{(NOW - timedelta(hours=i)).strftime('%a, %d %b %Y %H:%M:%S +0000')}</pubDate>
        </item>"""
        for i in range(entries)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Feed</title>
    <link>https://example.com</link>
    <description>Example</description>{items}
  </channel>
</rss>"""


ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <id>urn:example:feed</id>
  <updated>2025-06-01T10:00:00Z</updated>
  <entry>
    <title>Atom entry</title>
    <id>urn:example:entry:1</id>
    <link href="https://example.com/atom/1"/>
    <updated>2025-06-01T10:00:00Z</updated>
    <author><name>Alice</name></author>
    <author><name>Bob</name></author>
    <summary>Hello</summary>
  </entry>
</feed>"""


def _resolver_failure(errno: int):
    """respx side effect raising ConnectError caused by a getaddrinfo error."""

    def raise_error(request: httpx.Request):
        try:
            raise socket.gaierror(errno, "resolver error")
        except socket.gaierror as e:
            raise httpx.ConnectError(str(e), request=request) from e

    return raise_error


@pytest.fixture
async def client():
    async with httpx.AsyncClient() as c:
        yield c


@pytest.fixture
def feed_fetcher(client) -> FeedFetcher:
    return FeedFetcher(client=client, clock=lambda: NOW)


@pytest.fixture
def rss_source(make_source):
    return make_source("feed-source-1", url=FEED_URL, last_polled_at=NOW - timedelta(hours=1))


class TestFeedFetcher:
    """Fetching and parsing feeds."""

    @respx.mock
    async def test_parses_rss_entries(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=_rss(3)))

        items = await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

        assert [i.title for i in items] == ["Post 0", "Post 1", "Post 2"]
        first = items[0]
        assert first.url == "https://example.com/posts/0"
        assert first.source_id == rss_source.source_id
        assert first.published_at == NOW
        assert first.payload["publisher"] == "Example Feed"

    @respx.mock
    async def test_item_ids_stable_across_polls(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=_rss(2)))
        deadline = NOW + timedelta(seconds=30)

        first = await feed_fetcher.fetch(rss_source, deadline)
        second = await feed_fetcher.fetch(rss_source, deadline)

        assert [i.id for i in first] == [i.id for i in second]

    @respx.mock
    async def test_parses_atom_authors(self, feed_fetcher, make_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=ATOM))
        source = make_source("atom-1", source_type="atom", url=FEED_URL)

        [item] = await feed_fetcher.fetch(source, NOW + timedelta(seconds=30))

        assert item.title == "Atom entry"
        assert item.url == "https://example.com/atom/1"
        assert "Alice" in item.authors
        assert "Bob" in item.authors

    @respx.mock
    async def test_first_sync_capped(self, feed_fetcher, make_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=_rss(25)))
        source = make_source("new-source", url=FEED_URL)

        items = await feed_fetcher.fetch(source, NOW + timedelta(seconds=30))

        assert len(items) == 20
        assert items[0].title == "Post 0"

    @respx.mock
    async def test_recent_source_not_capped(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=_rss(25)))

        items = await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

        assert len(items) == 25

    @respx.mock
    async def test_stale_source_capped(self, feed_fetcher, make_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=_rss(25)))
        source = make_source("stale", url=FEED_URL, last_polled_at=NOW - timedelta(days=16))

        items = await feed_fetcher.fetch(source, NOW + timedelta(seconds=30))

        assert len(items) == 20

    @pytest.mark.parametrize("status", [404, 410])
    @respx.mock
    async def test_gone_feed_is_permanent(self, feed_fetcher, rss_source, status) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(status))

        with pytest.raises(PermanentFetchError, match=str(status)):
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

    @respx.mock
    async def test_server_error_is_transient(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(FetchError) as exc_info:
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))
        assert not isinstance(exc_info.value, PermanentFetchError)

    @respx.mock
    async def test_unparseable_body_is_permanent(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="this is not a feed"))

        with pytest.raises(PermanentFetchError, match="parse"):
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

    @respx.mock
    async def test_connection_error_is_fetch_error(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(FetchError, match="request failed") as exc_info:
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))
        assert not isinstance(exc_info.value, PermanentFetchError)

    @respx.mock
    async def test_unknown_host_is_permanent(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(side_effect=_resolver_failure(socket.EAI_NONAME))

        with pytest.raises(PermanentFetchError, match="unknown host"):
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

    @respx.mock
    async def test_resolver_hiccup_is_transient(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(side_effect=_resolver_failure(socket.EAI_AGAIN))

        with pytest.raises(FetchError) as exc_info:
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))
        assert not isinstance(exc_info.value, PermanentFetchError)

    @respx.mock
    async def test_request_timeout(self, feed_fetcher, rss_source) -> None:
        respx.get(FEED_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(FetchTimeoutError):
            await feed_fetcher.fetch(rss_source, NOW + timedelta(seconds=30))

    async def test_past_deadline_fails_without_request(self, feed_fetcher, rss_source) -> None:
        with pytest.raises(FetchTimeoutError):
            await feed_fetcher.fetch(rss_source, NOW - timedelta(seconds=1))


class TestFetcherRouter:
    """Dispatch by source type."""

    async def test_unsupported_type_is_permanent(self, make_source) -> None:
        router = FetcherRouter({})
        with pytest.raises(PermanentFetchError, match="unsupported"):
            await router.fetch(make_source("x", source_type="website"), NOW)

    async def test_dispatches_to_registered_fetcher(self, make_source, fetcher, make_items) -> None:
        fetcher.default = make_items("x", 2)
        router = FetcherRouter({"rss": fetcher})

        items = await router.fetch(make_source("x"), NOW)

        assert len(items) == 2
        assert router.source_types == ["rss"]

    def test_default_routes_rss_and_atom(self) -> None:
        assert FetcherRouter().source_types == ["atom", "rss"]
