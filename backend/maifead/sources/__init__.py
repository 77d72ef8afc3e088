"""
Source adapters for Maifead, one per upstream type.
"""
from maifead.core.clock import Clock, utcnow
from maifead.models.domain import SourceType
from maifead.services.data_ingestion.http import FeedHttpClient
from maifead.sources.base import SourceAdapter
from maifead.sources.bluesky import BlueskyAdapter
from maifead.sources.reddit import RedditAdapter
from maifead.sources.rss import RSSAdapter
from maifead.sources.youtube import YouTubeAdapter

ADAPTERS: dict[SourceType, type[SourceAdapter]] = {
    SourceType.RSS: RSSAdapter,
    SourceType.YOUTUBE: YouTubeAdapter,
    SourceType.REDDIT: RedditAdapter,
    SourceType.BLUESKY: BlueskyAdapter,
}


def get_adapter(source_type: SourceType, http: FeedHttpClient, clock: Clock = utcnow) -> SourceAdapter:
    """Instantiate the adapter for a source type."""
    return ADAPTERS[SourceType(source_type)](http, clock=clock)


__all__ = [
    "ADAPTERS",
    "SourceAdapter",
    "RSSAdapter",
    "YouTubeAdapter",
    "RedditAdapter",
    "BlueskyAdapter",
    "get_adapter",
]
