"""
SQLAlchemy-backed repository.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from maifead.core.clock import ensure_utc
from maifead.errors import PersistenceError
from maifead.models.database import Database, DBCollectionItem, DBFeedItem, DBSource
from maifead.models.domain import (
    NormalizedItem,
    RedditSourceType,
    ShortsFilter,
    Source,
    SourceFilters,
    SourceType,
)
from maifead.storage.base import ItemRepository

logger = structlog.get_logger(__name__)


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Columns store naive UTC."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _row_to_source(row: DBSource) -> Source:
    return Source(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        type=SourceType(row.type or "rss"),
        url=row.url,
        icon_url=row.icon_url,
        channel_id=row.channel_id,
        reddit_name=row.reddit_name,
        reddit_source_type=RedditSourceType(row.reddit_source_type) if row.reddit_source_type else None,
        bluesky_handle=row.bluesky_handle,
        filters=SourceFilters(
            youtube_shorts_filter=ShortsFilter(row.youtube_shorts_filter or "all"),
            reddit_min_upvotes=row.reddit_min_upvotes,
            whitelist_keywords=row.whitelist_keywords_json or [],
            blacklist_keywords=row.blacklist_keywords_json or [],
        ),
        retention_days=row.retention_days if row.retention_days is not None else 30,
        last_fetched_at=_from_db_time(row.last_fetched_at),
        created_at=_from_db_time(row.created_at),
        updated_at=_from_db_time(row.updated_at),
    )


def _source_to_row(source: Source) -> DBSource:
    return DBSource(
        id=source.id,
        user_id=source.user_id,
        name=source.name,
        type=source.type.value,
        url=source.url,
        icon_url=source.icon_url,
        channel_id=source.channel_id,
        reddit_name=source.reddit_name,
        reddit_source_type=source.reddit_source_type.value if source.reddit_source_type else None,
        bluesky_handle=source.bluesky_handle,
        youtube_shorts_filter=source.filters.youtube_shorts_filter.value,
        reddit_min_upvotes=source.filters.reddit_min_upvotes,
        whitelist_keywords_json=source.filters.whitelist_keywords or None,
        blacklist_keywords_json=source.filters.blacklist_keywords or None,
        retention_days=source.retention_days,
        last_fetched_at=_to_db_time(source.last_fetched_at),
        created_at=_to_db_time(source.created_at),
        updated_at=_to_db_time(source.updated_at),
    )


class SqlItemRepository(ItemRepository):
    """Repository over the async SQLAlchemy models."""

    def __init__(self, database: Database):
        self.database = database

    async def list_sources(self, user_id: Optional[str] = None) -> list[Source]:
        query = select(DBSource).order_by(DBSource.created_at)
        if user_id is not None:
            query = query.where(DBSource.user_id == user_id)
        try:
            async with self.database.async_session() as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list sources: {e}") from e
        return [_row_to_source(row) for row in rows]

    async def get_source(self, source_id: str) -> Optional[Source]:
        try:
            async with self.database.async_session() as session:
                row = await session.get(DBSource, source_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load source {source_id}: {e}") from e
        return _row_to_source(row) if row else None

    async def add_source(self, source: Source) -> Source:
        try:
            async with self.database.async_session() as session:
                session.add(_source_to_row(source))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store source {source.name}: {e}") from e
        return source

    async def update_source_icon(self, source_id: str, icon_url: str) -> None:
        await self._update_source(source_id, icon_url=icon_url)

    async def update_last_fetched(self, source_id: str, fetched_at: datetime) -> None:
        await self._update_source(source_id, last_fetched_at=_to_db_time(fetched_at))

    async def _update_source(self, source_id: str, **values) -> None:
        try:
            async with self.database.async_session() as session:
                await session.execute(
                    update(DBSource).where(DBSource.id == source_id).values(**values)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update source {source_id}: {e}") from e

    async def exists_by_link(self, source_id: str, link: str) -> bool:
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBFeedItem.id)
                    .where(DBFeedItem.source_id == source_id, DBFeedItem.link == link)
                    .limit(1)
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to check item {link}: {e}") from e

    async def insert_item(self, item: NormalizedItem) -> bool:
        row = DBFeedItem(
            id=item.id,
            source_id=item.source_id,
            title=item.title,
            link=item.link,
            content=item.content,
            excerpt=item.excerpt,
            author=item.author,
            published_at=_to_db_time(item.published_at),
            image_url=item.image_url,
            read=item.read,
            saved=item.saved,
            created_at=_to_db_time(item.created_at),
        )
        try:
            async with self.database.async_session() as session:
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    # Unique (source_id, link) index lost a race
                    await session.rollback()
                    logger.debug("Duplicate item ignored", source_id=item.source_id, link=item.link)
                    return False
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to insert item {item.link}: {e}") from e
        return True

    async def delete_expired(self, now: datetime) -> int:
        pinned = select(DBCollectionItem.feed_item_id)
        deleted = 0
        try:
            async with self.database.async_session() as session:
                policies = (
                    await session.execute(
                        select(DBSource.id, DBSource.retention_days).where(DBSource.retention_days > 0)
                    )
                ).all()

                for source_id, retention_days in policies:
                    cutoff = _to_db_time(now - timedelta(days=retention_days))
                    result = await session.execute(
                        delete(DBFeedItem)
                        .where(
                            DBFeedItem.source_id == source_id,
                            DBFeedItem.published_at.is_not(None),
                            DBFeedItem.published_at < cutoff,
                            DBFeedItem.id.not_in(pinned),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    deleted += result.rowcount or 0

                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Retention sweep failed: {e}") from e
        return deleted
