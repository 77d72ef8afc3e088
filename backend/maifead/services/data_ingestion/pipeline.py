"""
Refresh pipeline: fetch -> filter/dedup -> normalize -> persist.

Each source is refreshed independently. A failing source is recorded in
its RefreshResult and never stops the rest of the batch.
"""
import asyncio
import time
from typing import Optional

import structlog

from maifead.config import Settings, get_settings
from maifead.core.clock import Clock, utcnow
from maifead.errors import EnrichmentError, IngestionError
from maifead.models.domain import (
    FeedEntry,
    RefreshResult,
    RefreshSummary,
    Source,
)
from maifead.services.data_ingestion.feed_parser import FeedFetcher
from maifead.services.data_ingestion.filters import FilterOutcome, evaluate_entry
from maifead.services.data_ingestion.http import FeedHttpClient
from maifead.sources import get_adapter
from maifead.sources.base import SourceAdapter
from maifead.storage.base import ItemRepository

logger = structlog.get_logger(__name__)


class FeedPipeline:
    """
    Orchestrates refreshes for one source, one user, or every source.

    Sources run concurrently up to ``max_concurrent_sources``; outbound
    calls to the same upstream host are additionally capped by the HTTP
    client's rate limiter.
    """

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

    # ------------------------------------------------------------------
    # Single source
    # ------------------------------------------------------------------

    async def refresh_source(self, source: Source) -> RefreshResult:
        """
        Refresh one source and return its counts.

        Raises:
            FetchError: the primary feed could not be retrieved; last_fetched_at
                is left unchanged
            PersistenceError: the item store failed
        """
        start = time.monotonic()
        result = RefreshResult(source_id=source.id, source_name=source.name)
        adapter = get_adapter(source.type, self.http, clock=self.clock)

        feed = await self.fetcher.fetch(source.url)
        result.entries_seen = len(feed.entries)

        for entry in feed.entries:
            await self._process_entry(entry, source, adapter, result)

        await self.repository.update_last_fetched(source.id, self.clock())

        result.duration_seconds = time.monotonic() - start
        logger.info(
            "Source refreshed",
            source_id=source.id,
            source=source.name,
            type=source.type.value,
            seen=result.entries_seen,
            new=result.items_new,
            duplicate=result.items_duplicate,
            filtered=result.items_filtered,
            failed=result.items_failed,
        )
        return result

    async def _process_entry(
        self,
        entry: FeedEntry,
        source: Source,
        adapter: SourceAdapter,
        result: RefreshResult,
    ):
        if not entry.link:
            result.items_failed += 1
            logger.debug("Skipping entry without link", source_id=source.id, title=entry.title)
            return

        outcome = await evaluate_entry(entry, source, adapter, self.repository)
        if outcome == FilterOutcome.DUPLICATE:
            result.items_duplicate += 1
            return
        if outcome == FilterOutcome.FILTERED:
            result.items_filtered += 1
            return

        try:
            item = await adapter.normalize(entry, source)
        except (EnrichmentError, ValueError, KeyError, TypeError) as e:
            result.items_failed += 1
            logger.warning("Entry normalization failed", source_id=source.id, link=entry.link, error=str(e))
            return

        if item is None:
            result.items_failed += 1
            return

        if await self.repository.insert_item(item):
            result.items_new += 1
        else:
            # Stored concurrently since the dedup check
            result.items_duplicate += 1

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def refresh_many(self, sources: list[Source]) -> RefreshSummary:
        """Refresh sources concurrently with per-source failure isolation."""
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_sources)

        async def bounded(source: Source) -> RefreshResult:
            async with semaphore:
                return await asyncio.wait_for(
                    self.refresh_source(source),
                    timeout=self.settings.source_timeout_seconds,
                )

        outcomes = await asyncio.gather(
            *(bounded(source) for source in sources),
            return_exceptions=True,
        )

        summary = RefreshSummary()
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                summary.results.append(self._failed_result(source, outcome))
            else:
                summary.results.append(outcome)

        logger.info(
            "Refresh batch completed",
            sources=len(sources),
            new=summary.total_new,
            failed=len(summary.failed),
        )
        return summary

    def _failed_result(self, source: Source, exc: BaseException) -> RefreshResult:
        timed_out = isinstance(exc, (asyncio.TimeoutError, TimeoutError))
        if timed_out:
            message = f"Timed out after {self.settings.source_timeout_seconds:.0f}s"
        elif isinstance(exc, IngestionError):
            message = str(exc)
        else:
            message = f"{type(exc).__name__}: {exc}"

        if timed_out or isinstance(exc, IngestionError):
            logger.error("Source refresh failed", source_id=source.id, source=source.name, error=message)
        else:
            logger.error(
                "Source refresh crashed",
                source_id=source.id,
                source=source.name,
                error=message,
                exc_info=exc,
            )
        return RefreshResult(source_id=source.id, source_name=source.name, errors=[message])

    async def refresh_source_by_id(self, source_id: str) -> Optional[RefreshResult]:
        """Refresh one stored source; None if it does not exist."""
        source = await self.repository.get_source(source_id)
        if source is None:
            return None
        summary = await self.refresh_many([source])
        return summary.results[0]

    async def refresh_user_sources(self, user_id: str) -> RefreshSummary:
        sources = await self.repository.list_sources(user_id=user_id)
        logger.info("Refreshing user sources", user_id=user_id, sources=len(sources))
        return await self.refresh_many(sources)

    async def refresh_all_sources(self) -> RefreshSummary:
        sources = await self.repository.list_sources()
        logger.info("Refreshing all sources", sources=len(sources))
        return await self.refresh_many(sources)
