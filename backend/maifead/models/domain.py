"""
Domain models for Maifead ingestion.
These are the core entities, independent of database/API representation.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from maifead.core.clock import utcnow


# =============================================================================
# Enums
# =============================================================================

class SourceType(str, Enum):
    """Upstream kinds a user can subscribe to."""
    RSS = "rss"
    YOUTUBE = "youtube"
    REDDIT = "reddit"
    BLUESKY = "bluesky"


class ShortsFilter(str, Enum):
    """How YouTube Shorts are treated for a channel."""
    ALL = "all"
    EXCLUDE = "exclude"
    ONLY = "only"


class RedditSourceType(str, Enum):
    """Whether a Reddit source follows a subreddit or a user's submissions."""
    SUBREDDIT = "subreddit"
    USER = "user"


# =============================================================================
# Sources
# =============================================================================

class SourceFilters(BaseModel):
    """Per-source ingestion policies."""
    youtube_shorts_filter: ShortsFilter = ShortsFilter.ALL
    reddit_min_upvotes: Optional[int] = Field(default=None, ge=0)
    whitelist_keywords: list[str] = Field(default_factory=list)
    blacklist_keywords: list[str] = Field(default_factory=list)


class SourceIdentity(BaseModel):
    """
    Canonical identifier fields shared by resolved and stored sources.

    Exactly one identifier set is populated, chosen by ``type``:
    youtube -> channel_id, reddit -> reddit_name + reddit_source_type,
    bluesky -> bluesky_handle, rss -> none.
    """
    type: SourceType
    channel_id: Optional[str] = None
    reddit_name: Optional[str] = None
    reddit_source_type: Optional[RedditSourceType] = None
    bluesky_handle: Optional[str] = None

    @model_validator(mode="after")
    def check_identifier_set(self):
        populated = {
            SourceType.YOUTUBE: self.channel_id is not None,
            SourceType.REDDIT: self.reddit_name is not None or self.reddit_source_type is not None,
            SourceType.BLUESKY: self.bluesky_handle is not None,
        }
        for source_type, present in populated.items():
            if present and source_type != self.type:
                raise ValueError(f"{source_type.value} identifier set on a {self.type.value} source")

        if self.type == SourceType.YOUTUBE and not self.channel_id:
            raise ValueError("YouTube sources require channel_id")
        if self.type == SourceType.REDDIT and not (self.reddit_name and self.reddit_source_type):
            raise ValueError("Reddit sources require reddit_name and reddit_source_type")
        if self.type == SourceType.BLUESKY and not self.bluesky_handle:
            raise ValueError("Bluesky sources require bluesky_handle")
        return self


class ResolvedSource(SourceIdentity):
    """Output of identifier resolution: canonical identity plus feed URL."""
    feed_url: str


class Source(SourceIdentity):
    """A configured upstream a user subscribes to."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str
    url: str  # Canonical, fetchable feed URL
    icon_url: Optional[str] = None
    filters: SourceFilters = Field(default_factory=SourceFilters)
    retention_days: int = Field(default=30, ge=0)  # 0 = keep forever
    last_fetched_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Items
# =============================================================================

class NormalizedItem(BaseModel):
    """The uniform post representation stored regardless of origin type."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: str
    title: str = Field(min_length=1)
    link: str
    content: str = ""  # Safe HTML
    excerpt: str = Field(min_length=1)  # Plain text, <= 200 chars + ellipsis
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    read: bool = False
    saved: bool = False
    created_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Raw feed data (ephemeral, never persisted as-is)
# =============================================================================

@dataclass
class FeedEntry:
    """
    One raw entry from an RSS/Atom document.

    Carries the extended media fields YouTube and Reddit rely on in
    addition to the base RSS/Atom fields.
    """
    title: str = ""
    link: str = ""
    guid: Optional[str] = None
    content: str = ""  # content:encoded or Atom <content>
    description: str = ""  # <description>, Atom <summary> or media:description
    author: Optional[str] = None
    published_at: Optional[datetime] = None

    media_group_thumbnails: list[str] = field(default_factory=list)
    media_group_contents: list[str] = field(default_factory=list)
    media_group_description: str = ""
    media_thumbnails: list[str] = field(default_factory=list)
    media_contents: list[str] = field(default_factory=list)
    enclosure_url: Optional[str] = None

    video_id: Optional[str] = None  # yt:videoId

    @property
    def body(self) -> str:
        """Richest markup available for the entry."""
        return self.content or self.description or self.media_group_description


@dataclass
class ParsedFeed:
    """A parsed feed document."""
    url: str
    title: str = ""
    link: str = ""
    image_url: Optional[str] = None
    entries: list[FeedEntry] = field(default_factory=list)


# =============================================================================
# Refresh results
# =============================================================================

@dataclass
class RefreshResult:
    """Result of refreshing a single source."""
    source_id: str
    source_name: str
    entries_seen: int = 0
    items_new: int = 0
    items_duplicate: int = 0
    items_filtered: int = 0
    items_failed: int = 0  # Entries that could not be normalized
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        return (
            f"[{status}] {self.source_name}: "
            f"seen={self.entries_seen}, new={self.items_new}, "
            f"duplicate={self.items_duplicate}, filtered={self.items_filtered}, failed={self.items_failed}, "
            f"errors={len(self.errors)}, time={self.duration_seconds:.1f}s"
        )


@dataclass
class RefreshSummary:
    """Aggregated per-source results for a batch refresh."""
    results: list[RefreshResult] = field(default_factory=list)

    @property
    def total_new(self) -> int:
        return sum(r.items_new for r in self.results)

    @property
    def failed(self) -> list[RefreshResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> dict:
        return {
            "total_new": self.total_new,
            "sources": len(self.results),
            "failed": [
                {"source_id": r.source_id, "source_name": r.source_name, "errors": r.errors}
                for r in self.failed
            ],
            "results": [
                {
                    "source_id": r.source_id,
                    "source_name": r.source_name,
                    "items_new": r.items_new,
                    "items_duplicate": r.items_duplicate,
                    "items_filtered": r.items_filtered,
                    "items_failed": r.items_failed,
                }
                for r in self.results
            ],
        }
