"""
Tests for the SQLAlchemy repository against a temporary SQLite file.
"""

from datetime import timedelta

import pytest

from maifead.models.database import Database, DBCollectionItem
from maifead.models.domain import NormalizedItem, SourceFilters, SourceType
from maifead.storage.sql import SqlItemRepository

from conftest import FIXED_NOW, make_source


async def open_repository(tmp_path) -> SqlItemRepository:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'maifead.db'}")
    await database.create_tables()
    return SqlItemRepository(database)


def make_item(source_id: str, link: str, age_days: float = 1) -> NormalizedItem:
    return NormalizedItem(
        source_id=source_id,
        title="Title",
        link=link,
        content="<p>Body</p>",
        excerpt="Body",
        published_at=FIXED_NOW - timedelta(days=age_days),
        created_at=FIXED_NOW,
    )


class TestSqlRepository:
    """Tests for source and item persistence."""

    @pytest.mark.asyncio
    async def test_source_round_trip(self, tmp_path):
        repository = await open_repository(tmp_path)
        try:
            source = make_source(
                SourceType.REDDIT,
                url="https://www.reddit.com/r/pics.rss",
                filters=SourceFilters(reddit_min_upvotes=25, blacklist_keywords=["spoiler"]),
            )
            await repository.add_source(source)

            loaded = await repository.get_source(source.id)

            assert loaded.model_dump() == source.model_dump()
            assert loaded.created_at.tzinfo is not None
            assert await repository.get_source("missing") is None
        finally:
            await repository.database.dispose()

    @pytest.mark.asyncio
    async def test_list_sources_by_user(self, tmp_path):
        repository = await open_repository(tmp_path)
        try:
            mine = await repository.add_source(make_source(user_id="user-1"))
            await repository.add_source(make_source(user_id="user-2"))

            assert [s.id for s in await repository.list_sources(user_id="user-1")] == [mine.id]
            assert len(await repository.list_sources()) == 2
        finally:
            await repository.database.dispose()

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, tmp_path):
        repository = await open_repository(tmp_path)
        try:
            source = await repository.add_source(make_source())

            assert await repository.insert_item(make_item(source.id, "https://example.com/a"))
            assert not await repository.insert_item(make_item(source.id, "https://example.com/a"))
            assert await repository.exists_by_link(source.id, "https://example.com/a")
            assert not await repository.exists_by_link(source.id, "https://example.com/b")
        finally:
            await repository.database.dispose()

    @pytest.mark.asyncio
    async def test_source_updates(self, tmp_path):
        repository = await open_repository(tmp_path)
        try:
            source = await repository.add_source(make_source())

            await repository.update_last_fetched(source.id, FIXED_NOW)
            await repository.update_source_icon(source.id, "https://example.com/icon.png")

            loaded = await repository.get_source(source.id)
            assert loaded.last_fetched_at == FIXED_NOW
            assert loaded.icon_url == "https://example.com/icon.png"
            assert await repository.sources_missing_icon() == []
        finally:
            await repository.database.dispose()

    @pytest.mark.asyncio
    async def test_delete_expired(self, tmp_path):
        repository = await open_repository(tmp_path)
        try:
            source = await repository.add_source(make_source(retention_days=30))
            forever = await repository.add_source(make_source(retention_days=0, user_id="user-2"))

            old = make_item(source.id, "https://example.com/old", age_days=45)
            pinned = make_item(source.id, "https://example.com/pinned", age_days=45)
            for item in (
                old,
                pinned,
                make_item(source.id, "https://example.com/new", age_days=2),
                make_item(forever.id, "https://example.com/old", age_days=400),
            ):
                await repository.insert_item(item)

            async with repository.database.async_session() as session:
                session.add(DBCollectionItem(collection_id="favourites", feed_item_id=pinned.id))
                await session.commit()

            assert await repository.delete_expired(FIXED_NOW) == 1
            assert not await repository.exists_by_link(source.id, old.link)
            assert await repository.exists_by_link(source.id, pinned.link)
            assert await repository.exists_by_link(forever.id, "https://example.com/old")
        finally:
            await repository.database.dispose()
