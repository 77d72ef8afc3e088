"""
Source creation and icon maintenance.

Creating a source runs the resolver once: user input is turned into a
canonical identifier and feed URL, the feed is fetched to prove it works,
and an icon is looked up on a best-effort basis.
"""
from typing import Optional

import structlog

from maifead.config import Settings, get_settings
from maifead.core.clock import Clock, utcnow
from maifead.errors import FetchError, ResolutionError
from maifead.models.domain import ResolvedSource, Source, SourceFilters, SourceType
from maifead.services.data_ingestion.feed_parser import FeedFetcher
from maifead.services.data_ingestion.http import FeedHttpClient
from maifead.sources import get_adapter
from maifead.storage.base import ItemRepository

logger = structlog.get_logger(__name__)

IDENTITY_FIELDS = {"type", "channel_id", "reddit_name", "reddit_source_type", "bluesky_handle"}


class SourceRegistrar:
    """Creates sources and backfills missing icons."""

    def __init__(
        self,
        repository: ItemRepository,
        http: FeedHttpClient,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        self.repository = repository
        self.http = http
        self.settings = settings or get_settings()
        self.clock = clock
        self.fetcher = FeedFetcher(http)

    async def create_source(
        self,
        user_id: str,
        name: str,
        source_type: SourceType,
        url: str,
        filters: Optional[SourceFilters] = None,
        retention_days: Optional[int] = None,
    ) -> Source:
        """
        Resolve, validate and persist a new source.

        Raises:
            ResolutionError: the reference could not be resolved or its feed
                could not be fetched
        """
        source_type = SourceType(source_type)
        adapter = get_adapter(source_type, self.http, clock=self.clock)

        resolved = await adapter.resolve(url)
        if resolved is None:
            raise ResolutionError(f"Could not resolve {source_type.value} source from {url!r}")

        try:
            feed = await self.fetcher.fetch(resolved.feed_url)
        except FetchError as e:
            raise ResolutionError(f"Feed for {url!r} is not reachable: {e}") from e

        icon_url = await adapter.fetch_icon(resolved, feed)

        now = self.clock()
        source = Source(
            user_id=user_id,
            name=name or feed.title or url,
            url=resolved.feed_url,
            icon_url=icon_url,
            filters=filters or SourceFilters(),
            retention_days=(
                self.settings.default_retention_days if retention_days is None else retention_days
            ),
            created_at=now,
            updated_at=now,
            **resolved.model_dump(exclude={"feed_url"}),
        )
        source = await self.repository.add_source(source)

        logger.info(
            "Source created",
            source_id=source.id,
            type=source_type.value,
            feed_url=source.url,
            has_icon=icon_url is not None,
        )
        return source

    async def refresh_missing_icons(self) -> int:
        """Look up icons for sources that have none. Returns how many were found."""
        sources = await self.repository.sources_missing_icon()
        updated = 0

        for source in sources:
            adapter = get_adapter(source.type, self.http, clock=self.clock)
            resolved = ResolvedSource(
                feed_url=source.url,
                **source.model_dump(include=IDENTITY_FIELDS),
            )
            icon_url = await adapter.fetch_icon(resolved)
            if icon_url:
                await self.repository.update_source_icon(source.id, icon_url)
                updated += 1

        logger.info("Icon backfill completed", checked=len(sources), updated=updated)
        return updated

