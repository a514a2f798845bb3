"""news-discovery: scheduled source polling with health tracking."""

__version__ = "0.1.0"
