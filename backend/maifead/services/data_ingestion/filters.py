"""
Filter & dedup stage.

Applied per entry before normalization, in order:
1. dedup on (source_id, link)
2. YouTube shorts policy
3. Reddit minimum upvotes (fail-open when the score lookup fails)

Keyword allow/deny lists are stored on sources but not enforced here.
"""
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

import structlog

from maifead.errors import EnrichmentError
from maifead.models.domain import FeedEntry, ShortsFilter, Source
from maifead.storage.base import ItemRepository

if TYPE_CHECKING:
    from maifead.sources.base import SourceAdapter

logger = structlog.get_logger(__name__)


class FilterOutcome(str, Enum):
    ACCEPT = "accept"
    DUPLICATE = "duplicate"
    FILTERED = "filtered"


def shorts_filter_allows(policy: ShortsFilter, is_short: bool) -> bool:
    """``exclude`` drops shorts, ``only`` drops regular videos, ``all`` passes everything."""
    if policy == ShortsFilter.EXCLUDE:
        return not is_short
    if policy == ShortsFilter.ONLY:
        return is_short
    return True


async def min_upvotes_allows(
    threshold: Optional[int],
    score_lookup: Callable[[], Awaitable[int]],
    link: str = "",
) -> bool:
    """
    Compare a post's score against the source threshold.

    The lookup only runs when a threshold is set. A failed lookup keeps
    the item.
    """
    if threshold is None:
        return True

    try:
        score = await score_lookup()
    except EnrichmentError as e:
        logger.info("Score lookup failed, keeping item", link=link, error=str(e))
        return True

    return score >= threshold


async def evaluate_entry(
    entry: FeedEntry,
    source: Source,
    adapter: "SourceAdapter",
    repository: ItemRepository,
) -> FilterOutcome:
    """Run the filter stage for one entry."""
    if await repository.exists_by_link(source.id, entry.link):
        return FilterOutcome.DUPLICATE

    if not await adapter.accepts(entry, source):
        return FilterOutcome.FILTERED

    return FilterOutcome.ACCEPT
