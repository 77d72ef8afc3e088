"""
Generic RSS/Atom adapter. The user-supplied URL is the feed URL.
"""
from typing import Optional
from urllib.parse import urlsplit

from maifead.errors import FetchError
from maifead.models.domain import (
    FeedEntry,
    NormalizedItem,
    ParsedFeed,
    ResolvedSource,
    Source,
    SourceType,
)
from maifead.services.content import extract_image_url, sanitize_html
from maifead.services.data_ingestion.feed_parser import FeedFetcher
from maifead.sources.base import SourceAdapter

FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain={host}&sz=128"


class RSSAdapter(SourceAdapter):
    """Adapter for plain RSS 2.0 / Atom feeds."""

    source_type = SourceType.RSS

    async def resolve(self, raw: str) -> Optional[ResolvedSource]:
        url = (raw or "").strip()
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return None
        return ResolvedSource(type=SourceType.RSS, feed_url=url)

    async def _discover_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed],
    ) -> Optional[str]:
        if feed is None:
            try:
                feed = await FeedFetcher(self.http).fetch(resolved.feed_url)
            except FetchError:
                feed = None

        if feed and feed.image_url:
            return feed.image_url

        # Favicon service as a reliable fallback
        host = urlsplit(resolved.feed_url).hostname
        return FAVICON_SERVICE.format(host=host) if host else None

    async def normalize(self, entry: FeedEntry, source: Source) -> Optional[NormalizedItem]:
        content = sanitize_html(entry.content or entry.description)
        return self.build_item(
            entry,
            source,
            content=content,
            text=entry.description or content,
            image_url=extract_image_url(entry),
        )
