"""
Base interface for source adapters.
Every source type (RSS, YouTube, Reddit, Bluesky) implements this interface.
"""
from abc import ABC, abstractmethod
from typing import ClassVar, Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from maifead.core.clock import Clock, utcnow
from maifead.errors import EnrichmentError
from maifead.models.domain import (
    FeedEntry,
    NormalizedItem,
    ParsedFeed,
    ResolvedSource,
    Source,
    SourceType,
)
from maifead.services.content import create_excerpt, generate_title, strip_tags
from maifead.services.data_ingestion.http import FeedHttpClient

logger = structlog.get_logger(__name__)


def find_meta_content(page: str, *keys: str) -> Optional[str]:
    """
    Content of the first <meta> whose property/name/itemprop matches one
    of ``keys``, tried in the order given.
    """
    soup = BeautifulSoup(page or "", "html.parser")
    metas = soup.find_all("meta")

    for key in keys:
        for meta in metas:
            label = meta.get("property") or meta.get("name") or meta.get("itemprop")
            content = meta.get("content", "").strip()
            if label == key and content:
                return content
    return None


class SourceAdapter(ABC):
    """Abstract base class for source adapters."""

    source_type: ClassVar[SourceType]

    def __init__(self, http: FeedHttpClient, clock: Clock = utcnow):
        self.http = http
        self.clock = clock

    @abstractmethod
    async def resolve(self, raw: str) -> Optional[ResolvedSource]:
        """
        Turn user input into a canonical identifier and feed URL.

        Malformed input is an expected case: return None, never raise.
        """
        pass

    async def fetch_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed] = None,
    ) -> Optional[str]:
        """Best-effort icon/avatar discovery. Failures return None."""
        try:
            return await self._discover_icon(resolved, feed)
        except (httpx.HTTPError, EnrichmentError, ValueError, KeyError, TypeError) as e:
            logger.info("Icon discovery failed", type=self.source_type.value, error=str(e))
            return None

    async def _discover_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed],
    ) -> Optional[str]:
        return None

    async def accepts(self, entry: FeedEntry, source: Source) -> bool:
        """Source-type policy filters (shorts, minimum score). Default: accept."""
        return True

    @abstractmethod
    async def normalize(self, entry: FeedEntry, source: Source) -> Optional[NormalizedItem]:
        """
        Transform a raw entry into a NormalizedItem.

        Enrichment failures degrade the item; they are never raised.
        """
        pass

    def build_item(
        self,
        entry: FeedEntry,
        source: Source,
        content: str,
        text: str,
        image_url: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> NormalizedItem:
        """
        Assemble the item, applying the title and excerpt fallbacks.

        Args:
            content: Safe HTML body
            text: Plain text (or markup) the excerpt and fallback title come from
        """
        title = " ".join(strip_tags(title if title is not None else entry.title).split())
        if not title:
            title = generate_title(text or content)

        excerpt = create_excerpt(text or content) or title

        return NormalizedItem(
            source_id=source.id,
            title=title,
            link=entry.link,
            content=content,
            excerpt=excerpt,
            author=author or entry.author,
            published_at=entry.published_at,
            image_url=image_url,
            created_at=self.clock(),
        )
