"""
Repository interface for sources and normalized items.
Every store the engine can write to implements this interface.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from maifead.models.domain import NormalizedItem, Source


class ItemRepository(ABC):
    """Abstract persistence sink for the ingestion engine."""

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_sources(self, user_id: Optional[str] = None) -> list[Source]:
        """
        List configured sources.

        Args:
            user_id: Restrict to one user's sources (None = all users)
        """
        pass

    @abstractmethod
    async def get_source(self, source_id: str) -> Optional[Source]:
        pass

    @abstractmethod
    async def add_source(self, source: Source) -> Source:
        pass

    @abstractmethod
    async def update_source_icon(self, source_id: str, icon_url: str) -> None:
        pass

    async def sources_missing_icon(self) -> list[Source]:
        return [s for s in await self.list_sources() if not s.icon_url]

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    @abstractmethod
    async def exists_by_link(self, source_id: str, link: str) -> bool:
        """Whether an item with this dedup key is already stored."""
        pass

    @abstractmethod
    async def insert_item(self, item: NormalizedItem) -> bool:
        """
        Insert an item unless its (source_id, link) pair is already stored.

        The check and the write are atomic per item.

        Returns:
            True if the item was inserted, False if it already existed
        """
        pass

    @abstractmethod
    async def update_last_fetched(self, source_id: str, fetched_at: datetime) -> None:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """
        Delete items past their source's retention window.

        An item is deleted iff its source has retention_days > 0, it
        belongs to no collection, it has a published_at, and
        now - published_at exceeds retention_days.

        Returns:
            Number of deleted items
        """
        pass
