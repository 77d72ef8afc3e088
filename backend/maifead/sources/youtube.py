"""
YouTube channel adapter.

Channels are followed through YouTube's public per-channel Atom feed.
Handles, custom URLs, legacy user URLs and video links need one scrape
of the channel (or video) page to find the UC... channel ID.
"""
import html
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import structlog

from maifead.models.domain import (
    FeedEntry,
    NormalizedItem,
    ParsedFeed,
    ResolvedSource,
    Source,
    SourceType,
)
from maifead.services.content import (
    escape_html,
    extract_image_url,
    linkify_timestamps,
    linkify_urls,
    newlines_to_breaks,
    sanitize_html,
    strip_tags,
)
from maifead.services.data_ingestion.filters import shorts_filter_allows
from maifead.sources.base import SourceAdapter, find_meta_content

logger = structlog.get_logger(__name__)

FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
DEFAULT_ICON = "https://www.youtube.com/s/desktop/8f4c562e/img/favicon_144x144.png"

CHANNEL_ID = r"UC[\w-]{22}"
CHANNEL_ID_RE = re.compile(rf"^{CHANNEL_ID}$")
YOUTUBE_HOSTS = ("youtube.com", "youtu.be")

VIDEO_ID_PATTERNS = [
    re.compile(r"[?&]v=([\w-]{11})"),
    re.compile(r"youtu\.be/([\w-]{11})"),
    re.compile(r"/shorts/([\w-]{11})"),
    re.compile(r"/embed/([\w-]{11})"),
    re.compile(r"/live/([\w-]{11})"),
]

# Tried in this order against the page HTML
CHANNEL_ID_SCRAPE_PATTERNS = [
    re.compile(rf'"channelId":"({CHANNEL_ID})"'),
    re.compile(rf'"externalId":"({CHANNEL_ID})"'),
    re.compile(rf'<meta itemprop="(?:channelId|identifier)" content="({CHANNEL_ID})"'),
    re.compile(rf'<link rel="canonical" href="https://www\.youtube\.com/channel/({CHANNEL_ID})"'),
    re.compile(rf'"browseId":"({CHANNEL_ID})"'),
]

THUMBNAIL_LINK_RE = re.compile(r'<link itemprop="thumbnailUrl" href="([^"]+)"')
AVATAR_JSON_RE = re.compile(r'"avatar":\{"thumbnails":\[\{"url":"([^"]+)"')

IFRAME_ALLOW = (
    "accelerometer; autoplay; clipboard-write; encrypted-media; "
    "gyroscope; picture-in-picture; web-share"
)


@dataclass(frozen=True)
class ChannelReference:
    """What a user-entered YouTube string points at."""
    kind: str  # channel | handle | custom | user | video
    value: str

    @property
    def needs_scrape(self) -> bool:
        return self.kind != "channel"

    @property
    def page_url(self) -> str:
        if self.kind == "channel":
            return f"https://www.youtube.com/channel/{self.value}"
        if self.kind == "handle":
            return f"https://www.youtube.com/{self.value}"
        if self.kind == "custom":
            return f"https://www.youtube.com/c/{self.value}"
        if self.kind == "user":
            return f"https://www.youtube.com/user/{self.value}"
        return f"https://www.youtube.com/watch?v={self.value}"


def extract_video_id(url: str) -> Optional[str]:
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def is_short(link: str) -> bool:
    return "/shorts/" in (urlsplit(link or "").path or "")


def parse_channel_reference(raw: str) -> Optional[ChannelReference]:
    """
    Classify a YouTube URL or handle without touching the network.

    Accepts /@handle, /c/name, /channel/ID, /user/name, feed URLs with
    ?channel_id=, video/shorts URLs, a bare @handle or a bare channel ID.
    """
    text = (raw or "").strip()
    if not text:
        return None

    if CHANNEL_ID_RE.match(text):
        return ChannelReference("channel", text)
    if re.fullmatch(r"@[\w.-]+", text):
        return ChannelReference("handle", text)

    url = text if "://" in text else f"https://{text}"
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if not any(host == h or host.endswith("." + h) for h in YOUTUBE_HOSTS):
        return None

    channel_ids = parse_qs(parts.query).get("channel_id", [])
    if channel_ids and CHANNEL_ID_RE.match(channel_ids[0]):
        return ChannelReference("channel", channel_ids[0])

    path = parts.path
    patterns = [
        ("channel", rf"^/channel/({CHANNEL_ID})"),
        ("handle", r"^/(@[\w.-]+)"),
        ("custom", r"^/c/([^/?#]+)"),
        ("user", r"^/user/([^/?#]+)"),
    ]
    for kind, pattern in patterns:
        match = re.match(pattern, path)
        if match:
            return ChannelReference(kind, match.group(1))

    video_id = extract_video_id(url)
    if video_id:
        return ChannelReference("video", video_id)
    return None


def scrape_channel_id(page: str) -> Optional[str]:
    for pattern in CHANNEL_ID_SCRAPE_PATTERNS:
        match = pattern.search(page or "")
        if match:
            return match.group(1)
    return None


def build_embed(video_id: str, short: bool) -> str:
    src = f"https://www.youtube.com/embed/{video_id}"
    if short:
        return (
            '<div class="youtube-embed youtube-short" '
            'style="display:flex;justify-content:center;">'
            f'<iframe width="315" height="560" src="{src}" title="YouTube video player" '
            f'frameborder="0" allow="{IFRAME_ALLOW}" allowfullscreen></iframe>'
            "</div>"
        )
    return (
        '<div class="youtube-embed" '
        'style="position:relative;padding-bottom:56.25%;height:0;overflow:hidden;">'
        f'<iframe src="{src}" title="YouTube video player" frameborder="0" '
        f'allow="{IFRAME_ALLOW}" allowfullscreen '
        'style="position:absolute;top:0;left:0;width:100%;height:100%;"></iframe>'
        "</div>"
    )


def format_description(text: str, video_id: str) -> str:
    """Escape first, then linkify URLs and timestamps, then keep line breaks."""
    if not text or not text.strip():
        return ""
    markup = escape_html(text.strip())
    markup = linkify_urls(markup)
    markup = linkify_timestamps(markup, video_id)
    return newlines_to_breaks(markup)


class YouTubeAdapter(SourceAdapter):
    """Adapter for YouTube channels."""

    source_type = SourceType.YOUTUBE

    async def resolve(self, raw: str) -> Optional[ResolvedSource]:
        reference = parse_channel_reference(raw)
        if reference is None:
            return None

        channel_id = reference.value
        if reference.needs_scrape:
            channel_id = await self._scrape_channel_id(reference)
            if channel_id is None:
                return None

        return ResolvedSource(
            type=SourceType.YOUTUBE,
            feed_url=FEED_URL.format(channel_id=channel_id),
            channel_id=channel_id,
        )

    async def _scrape_channel_id(self, reference: ChannelReference) -> Optional[str]:
        try:
            page = await self.http.get_text(reference.page_url)
        except httpx.HTTPError as e:
            logger.warning("YouTube page fetch failed", url=reference.page_url, error=str(e))
            return None

        channel_id = scrape_channel_id(page)
        if channel_id is None:
            logger.info("No channel ID found on YouTube page", url=reference.page_url)
        return channel_id

    async def fetch_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed] = None,
    ) -> Optional[str]:
        return await super().fetch_icon(resolved, feed) or DEFAULT_ICON

    async def _discover_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed],
    ) -> Optional[str]:
        page = await self.http.get_text(ChannelReference("channel", resolved.channel_id).page_url)

        icon = find_meta_content(page, "og:image", "twitter:image")
        if icon:
            return icon
        for pattern in (THUMBNAIL_LINK_RE, AVATAR_JSON_RE):
            match = pattern.search(page)
            if match:
                return html.unescape(match.group(1))
        return None

    async def accepts(self, entry: FeedEntry, source: Source) -> bool:
        return shorts_filter_allows(source.filters.youtube_shorts_filter, is_short(entry.link))

    async def normalize(self, entry: FeedEntry, source: Source) -> Optional[NormalizedItem]:
        video_id = entry.video_id or extract_video_id(entry.link)
        description = entry.media_group_description or strip_tags(entry.description)

        if not video_id:
            # Not a video entry; keep whatever the feed gave us
            return self.build_item(
                entry,
                source,
                content=sanitize_html(entry.body),
                text=description,
                image_url=extract_image_url(entry),
            )

        content = build_embed(video_id, is_short(entry.link))
        description_html = format_description(description, video_id)
        if description_html:
            content += f'<div class="youtube-description">{description_html}</div>'

        return self.build_item(
            entry,
            source,
            content=content,
            text=description,
            image_url=extract_image_url(entry) or f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
        )
