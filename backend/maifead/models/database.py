"""
SQLAlchemy database models for Maifead ingestion.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Sources
# =============================================================================

class DBSource(Base):
    """A configured upstream (RSS feed, YouTube channel, Reddit feed, Bluesky profile)."""
    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="rss")
    url: Mapped[str] = mapped_column(Text, nullable=False)  # Canonical feed URL
    icon_url: Mapped[Optional[str]] = mapped_column(Text)

    # Canonical identifiers (one set per type)
    channel_id: Mapped[Optional[str]] = mapped_column(String(64))
    reddit_name: Mapped[Optional[str]] = mapped_column(String(255))
    reddit_source_type: Mapped[Optional[str]] = mapped_column(String(20))
    bluesky_handle: Mapped[Optional[str]] = mapped_column(String(255))

    # Filters
    youtube_shorts_filter: Mapped[str] = mapped_column(String(10), default="all")
    reddit_min_upvotes: Mapped[Optional[int]] = mapped_column(Integer)
    whitelist_keywords_json: Mapped[Optional[list]] = mapped_column(JSON)
    blacklist_keywords_json: Mapped[Optional[list]] = mapped_column(JSON)

    retention_days: Mapped[int] = mapped_column(Integer, default=30)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    items: Mapped[list["DBFeedItem"]] = relationship(
        back_populates="source", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_sources_user_id", "user_id"),
    )


# =============================================================================
# Feed items
# =============================================================================

class DBFeedItem(Base):
    """A normalized item produced by a fetch cycle."""
    __tablename__ = "feed_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    excerpt: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    saved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    # Relationships
    source: Mapped["DBSource"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_feed_items_source_link", "source_id", "link", unique=True),
        Index("ix_feed_items_published_at", "published_at"),
    )


class DBCollectionItem(Base):
    """
    Collection membership. Owned by the collections feature; read here
    only to protect pinned items from the retention sweep.
    """
    __tablename__ = "collection_items"

    collection_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    feed_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("feed_items.id", ondelete="CASCADE"), primary_key=True
    )
    added_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_collection_items_feed_item_id", "feed_item_id"),
    )


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    module = type(dbapi_connection).__module__
    if "sqlite" in module:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

