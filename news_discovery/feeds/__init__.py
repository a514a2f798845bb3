"""Feeds: discovered items, their stores, and per-source fetch logic."""

from news_discovery.feeds.fetchers import FeedFetcher, FetcherRouter, SourceFetcher
from news_discovery.feeds.schemas import DiscoveredItem
from news_discovery.feeds.store import FeedStore, InMemoryFeedStore, PostgresFeedStore

__all__ = [
    "DiscoveredItem",
    "FeedFetcher",
    "FeedStore",
    "FetcherRouter",
    "InMemoryFeedStore",
    "PostgresFeedStore",
    "SourceFetcher",
]
