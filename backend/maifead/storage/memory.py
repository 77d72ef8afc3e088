"""
In-memory repository, used by tests and dry runs.
"""
from datetime import datetime, timedelta
from typing import Optional

from maifead.core.clock import ensure_utc
from maifead.models.domain import NormalizedItem, Source
from maifead.storage.base import ItemRepository


class InMemoryItemRepository(ItemRepository):
    """Dict-backed store with the same semantics as the SQL repository."""

    def __init__(self):
        self.sources: dict[str, Source] = {}
        self.items: dict[str, NormalizedItem] = {}
        self.collection_items: set[tuple[str, str]] = set()  # (collection_id, item_id)
        self._keys: set[tuple[str, str]] = set()

    async def list_sources(self, user_id: Optional[str] = None) -> list[Source]:
        sources = sorted(self.sources.values(), key=lambda s: s.created_at)
        if user_id is not None:
            sources = [s for s in sources if s.user_id == user_id]
        return sources

    async def get_source(self, source_id: str) -> Optional[Source]:
        return self.sources.get(source_id)

    async def add_source(self, source: Source) -> Source:
        self.sources[source.id] = source
        return source

    async def update_source_icon(self, source_id: str, icon_url: str) -> None:
        source = self.sources.get(source_id)
        if source:
            self.sources[source_id] = source.model_copy(update={"icon_url": icon_url})

    async def exists_by_link(self, source_id: str, link: str) -> bool:
        return (source_id, link) in self._keys

    async def insert_item(self, item: NormalizedItem) -> bool:
        # No await between check and write, so this is atomic on the event loop
        key = (item.source_id, item.link)
        if key in self._keys:
            return False
        self._keys.add(key)
        self.items[item.id] = item
        return True

    async def update_last_fetched(self, source_id: str, fetched_at: datetime) -> None:
        source = self.sources.get(source_id)
        if source:
            self.sources[source_id] = source.model_copy(update={"last_fetched_at": fetched_at})

    async def delete_expired(self, now: datetime) -> int:
        now = ensure_utc(now)
        pinned = {item_id for _, item_id in self.collection_items}
        expired = []

        for item in self.items.values():
            source = self.sources.get(item.source_id)
            if source is None or source.retention_days <= 0:
                continue
            if item.id in pinned or item.published_at is None:
                continue
            if now - ensure_utc(item.published_at) > timedelta(days=source.retention_days):
                expired.append(item)

        for item in expired:
            del self.items[item.id]
            self._keys.discard((item.source_id, item.link))
        return len(expired)

    # Collection membership is owned elsewhere; tests use this to pin items.
    def add_to_collection(self, collection_id: str, item_id: str) -> None:
        self.collection_items.add((collection_id, item_id))

    def items_for(self, source_id: str) -> list[NormalizedItem]:
        return [i for i in self.items.values() if i.source_id == source_id]
