"""
Retention sweeper.

Deletes items older than their source's retention window. Items pinned
to a collection, items without a publish date and sources with
retention_days = 0 are never swept.
"""
from datetime import datetime
from typing import Optional
import logging

from maifead.core.clock import Clock, ensure_utc, utcnow
from maifead.storage.base import ItemRepository

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Runs the retention sweep against a repository."""

    def __init__(self, repository: ItemRepository, clock: Clock = utcnow):
        self.repository = repository
        self.clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired items.

        Args:
            now: Snapshot time for the whole batch (default: the clock, read once)

        Returns:
            Number of deleted items
        """
        snapshot = ensure_utc(now) if now is not None else self.clock()
        logger.info(f"Starting retention sweep at {snapshot.isoformat()}")

        deleted = await self.repository.delete_expired(snapshot)

        logger.info(f"Retention sweep removed {deleted} items")
        return deleted
