"""
Reddit adapter for subreddits and user submissions.

The Atom feed gives us a post permalink and a small HTML body. Media is
recovered from that body, with an optional call to the post's JSON for
galleries and scores.

Content transform precedence:
1. Redgifs link -> iframe embed
2. Native video (v.redd.it, <video src>, preview mp4) -> <video> block
3. Gallery post -> image gallery from the JSON API
4. Inline images -> image gallery
"""
import html
import logging
import re
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from maifead.errors import EnrichmentError
from maifead.models.domain import (
    FeedEntry,
    NormalizedItem,
    ParsedFeed,
    RedditSourceType,
    ResolvedSource,
    Source,
    SourceType,
)
from maifead.services.content import (
    build_image_gallery,
    escape_html,
    extract_image_url,
    sanitize_html,
    strip_query,
)
from maifead.services.data_ingestion.filters import min_upvotes_allows
from maifead.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

REDDIT_BASE = "https://www.reddit.com"
VIDEO_QUALITIES = (720, 480, 360, 240, 96)
THUMBNAIL_HOSTS = ("thumbs.redditmedia.com", "b.thumbs.redditmedia.com")

NAME = r"[A-Za-z0-9_-]+"
SUBREDDIT_PATH_RE = re.compile(rf"^/?r/({NAME})/?$")
USER_PATH_RE = re.compile(rf"^/?(?:u|user)/({NAME})(?:/submitted)?/?$")
BARE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")

REDGIFS_RE = re.compile(r"redgifs\.com/(?:watch|ifr)/([A-Za-z0-9]+)", re.IGNORECASE)
VREDDIT_RE = re.compile(r"v\.redd\.it/([A-Za-z0-9]+)")
VIDEO_SRC_RE = re.compile(r"""<video\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
PREVIEW_MP4_RE = re.compile(r"""https?://preview\.redd\.it/[^\s"'<>]+?\.mp4[^\s"'<>]*""")
GALLERY_RE = re.compile(r"reddit\.com/gallery/([A-Za-z0-9]+)")

ANCHOR_RE = re.compile(r"<a\b[^>]*>(.*?)</a>", re.IGNORECASE | re.DOTALL)
IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
IMG_SRC_ATTR_RE = re.compile(r"""\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
WRAPPED_IMG_RE = re.compile(r"<a\b[^>]*>\s*<img\b[^>]*>\s*</a>", re.IGNORECASE)
IREDDIT_ANCHOR_RE = re.compile(
    r"""<a\b[^>]*?\bhref\s*=\s*["'](https?://i\.redd\.it/[^"']+)["'][^>]*>.*?</a>""",
    re.IGNORECASE | re.DOTALL,
)
EMPTY_MARKUP_RE = re.compile(r"^(?:\s|&#32;|<br\s*/?>)*$", re.IGNORECASE)


# =============================================================================
# Pure helpers
# =============================================================================

def parse_reddit_reference(raw: str) -> Optional[tuple[RedditSourceType, str]]:
    """
    Accepts reddit.com/r/<name>, /u/<name>, /user/<name>, r/<name>,
    u/<name> or a bare name (treated as a subreddit).
    """
    text = (raw or "").strip()
    if not text:
        return None

    is_url = "reddit.com" in text.lower() or "://" in text
    if is_url:
        url = text if "://" in text else f"https://{text}"
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        if not (host == "reddit.com" or host.endswith(".reddit.com")):
            return None
        path = parts.path
    else:
        path = text

    match = SUBREDDIT_PATH_RE.match(path)
    if match:
        return RedditSourceType.SUBREDDIT, match.group(1)
    match = USER_PATH_RE.match(path)
    if match:
        return RedditSourceType.USER, match.group(1)
    if not is_url and BARE_NAME_RE.match(text):
        return RedditSourceType.SUBREDDIT, text
    return None


def feed_url_for(kind: RedditSourceType, name: str) -> str:
    if kind == RedditSourceType.USER:
        return f"{REDDIT_BASE}/user/{name}/submitted.rss"
    return f"{REDDIT_BASE}/r/{name}.rss"


def about_url_for(kind: RedditSourceType, name: str) -> str:
    if kind == RedditSourceType.USER:
        return f"{REDDIT_BASE}/user/{name}/about.json"
    return f"{REDDIT_BASE}/r/{name}/about.json"


def post_json_url(link: str) -> str:
    """Permalink -> its JSON API endpoint."""
    return strip_query(link).rstrip("/") + ".json"


def upgrade_reddit_image(url: str) -> str:
    """preview.redd.it serves resized copies; i.redd.it serves the original."""
    parts = urlsplit(url)
    if parts.hostname == "preview.redd.it":
        return f"https://i.redd.it{parts.path}"
    return url


def dedupe_urls(urls: list[str]) -> list[str]:
    seen = set()
    unique = []
    for url in urls:
        key = strip_query(url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(url)
    return unique


def _img_src(tag: str) -> Optional[str]:
    match = IMG_SRC_ATTR_RE.search(tag)
    return html.unescape(match.group(1)) if match else None


def _is_thumbnail_host(url: str) -> bool:
    return (urlsplit(url).hostname or "") in THUMBNAIL_HOSTS


def _is_empty(markup: str) -> bool:
    return bool(EMPTY_MARKUP_RE.match(markup))


def extract_inline_images(markup: str) -> list[str]:
    """i.redd.it anchors first, then <img> tags, skipping thumbnail hosts."""
    urls = [html.unescape(u) for u in IREDDIT_ANCHOR_RE.findall(markup)]
    for tag in IMG_TAG_RE.findall(markup):
        src = _img_src(tag)
        if src and not _is_thumbnail_host(src):
            urls.append(src)
    return dedupe_urls([upgrade_reddit_image(u) for u in urls])


def gallery_urls_from_post(post: dict) -> list[str]:
    """Highest-resolution URL per gallery item, in gallery order."""
    metadata = post.get("media_metadata") or {}
    urls = []
    for item in (post.get("gallery_data") or {}).get("items", []):
        media = metadata.get(item.get("media_id"), {})
        best = media.get("s") or {}
        url = best.get("u") or best.get("gif") or best.get("mp4")
        if url:
            urls.append(upgrade_reddit_image(html.unescape(url)))
    return dedupe_urls(urls)


def build_redgifs_embed(gif_id: str) -> str:
    return (
        '<div class="redgifs-embed" '
        'style="position:relative;padding-bottom:56.25%;height:0;overflow:hidden;">'
        f'<iframe src="https://www.redgifs.com/ifr/{gif_id}" frameborder="0" scrolling="no" '
        'allowfullscreen style="position:absolute;top:0;left:0;width:100%;height:100%;"></iframe>'
        "</div>"
    )


def build_video_block(sources: list[str], permalink: str, poster: Optional[str] = None) -> str:
    poster_attr = f' poster="{escape_html(poster)}"' if poster else ""
    tags = "".join(
        f'<source src="{escape_html(src)}" type="video/mp4" />' for src in sources
    )
    return (
        '<div class="reddit-video">'
        f'<video controls preload="metadata" playsinline{poster_attr}>{tags}</video>'
        '<p class="reddit-video-notice">Video plays without audio. '
        f'<a href="{escape_html(permalink)}" target="_blank" rel="noopener noreferrer">'
        "Click through to Reddit</a> for sound.</p>"
        "</div>"
    )


def find_video_sources(markup: str) -> list[str]:
    match = VREDDIT_RE.search(markup)
    if match:
        video_id = match.group(1)
        return [f"https://v.redd.it/{video_id}/DASH_{q}.mp4" for q in VIDEO_QUALITIES]

    match = VIDEO_SRC_RE.search(markup)
    if match:
        return [html.unescape(match.group(1))]

    match = PREVIEW_MP4_RE.search(markup)
    if match:
        return [html.unescape(match.group(0))]
    return []


# =============================================================================
# Adapter
# =============================================================================

class RedditAdapter(SourceAdapter):
    """Adapter for subreddits and Reddit users."""

    source_type = SourceType.REDDIT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # One JSON lookup per post per refresh, shared by score and gallery
        self._post_cache: dict[str, dict] = {}

    async def resolve(self, raw: str) -> Optional[ResolvedSource]:
        reference = parse_reddit_reference(raw)
        if reference is None:
            return None
        kind, name = reference
        return ResolvedSource(
            type=SourceType.REDDIT,
            feed_url=feed_url_for(kind, name),
            reddit_name=name,
            reddit_source_type=kind,
        )

    async def _discover_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed],
    ) -> Optional[str]:
        kind = resolved.reddit_source_type
        payload = await self.http.get_json(about_url_for(kind, resolved.reddit_name))
        data = payload.get("data") or {}

        if kind == RedditSourceType.USER:
            keys = ("icon_img", "snoovatar_img")
        else:
            keys = ("community_icon", "icon_img", "header_img")

        for key in keys:
            value = data.get(key)
            if value:
                return html.unescape(value)
        return None

    async def fetch_post(self, json_url: str) -> dict:
        """
        Fetch a post's data object from the JSON API.

        Raises:
            EnrichmentError: on any network or shape problem
        """
        if json_url in self._post_cache:
            return self._post_cache[json_url]

        try:
            payload: Any = await self.http.get_json(json_url)
            post = payload[0]["data"]["children"][0]["data"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Reddit post lookup failed for {json_url}: {e}") from e

        self._post_cache[json_url] = post
        return post

    async def fetch_score(self, link: str) -> int:
        post = await self.fetch_post(post_json_url(link))
        try:
            return int(post.get("score", post.get("ups")))
        except (TypeError, ValueError) as e:
            raise EnrichmentError(f"Reddit post {link} has no score") from e

    async def accepts(self, entry: FeedEntry, source: Source) -> bool:
        return await min_upvotes_allows(
            source.filters.reddit_min_upvotes,
            lambda: self.fetch_score(entry.link),
            link=entry.link,
        )

    async def normalize(self, entry: FeedEntry, source: Source) -> Optional[NormalizedItem]:
        raw = sanitize_html(entry.body)
        content, image_url = await self.transform_content(raw, entry.link)

        return self.build_item(
            entry,
            source,
            content=content,
            text=raw,
            image_url=image_url or extract_image_url(entry),
        )

    async def transform_content(self, markup: str, permalink: str) -> tuple[str, Optional[str]]:
        """Apply the media precedence rules; returns (content, lead image)."""
        redgifs = REDGIFS_RE.search(markup)
        if redgifs:
            return self._redgifs_content(markup, redgifs.group(1).lower()), None

        video_sources = find_video_sources(markup)
        if video_sources:
            return self._video_content(markup, video_sources, permalink), None

        gallery = GALLERY_RE.search(markup) or GALLERY_RE.search(permalink)
        if gallery:
            urls = await self._gallery_urls(gallery.group(1))
            if urls:
                return build_image_gallery(urls), urls[0]

        images = extract_inline_images(markup)
        if images:
            remaining = IREDDIT_ANCHOR_RE.sub("", markup)
            remaining = WRAPPED_IMG_RE.sub("", remaining)
            remaining = IMG_TAG_RE.sub("", remaining)
            return build_image_gallery(images) + remaining, images[0]

        return markup, None

    def _redgifs_content(self, markup: str, gif_id: str) -> str:
        remaining = ANCHOR_RE.sub(r"\1", markup)
        remaining = IMG_TAG_RE.sub(
            lambda m: "" if self._is_redgifs_or_preview(_img_src(m.group(0)) or "") else m.group(0),
            remaining,
        )
        return build_redgifs_embed(gif_id) + remaining

    @staticmethod
    def _is_redgifs_or_preview(src: str) -> bool:
        host = urlsplit(src).hostname or ""
        return "redgifs.com" in host or host == "external-preview.redd.it"

    def _video_content(self, markup: str, sources: list[str], permalink: str) -> str:
        poster = None
        for tag in IMG_TAG_RE.findall(markup):
            poster = _img_src(tag)
            if poster:
                break

        remaining = WRAPPED_IMG_RE.sub("", markup)
        remaining = re.sub(r"<video\b[^>]*>.*?</video>", "", remaining, flags=re.IGNORECASE | re.DOTALL)
        remaining = IMG_TAG_RE.sub("", remaining)
        block = build_video_block(sources, permalink, poster=poster)
        return block if _is_empty(remaining) else block + remaining

    async def _gallery_urls(self, gallery_id: str) -> list[str]:
        try:
            post = await self.fetch_post(f"{REDDIT_BASE}/comments/{gallery_id}.json")
        except EnrichmentError as e:
            logger.info(f"Gallery lookup failed for {gallery_id}: {e}")
            return []
        return gallery_urls_from_post(post)
