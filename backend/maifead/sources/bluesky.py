"""
Bluesky profile adapter.

Profiles expose an RSS feed with the post text only. Images, link cards,
videos and quote posts come from the public AppView API, one thread
lookup per new post.
"""
import re
from typing import Any, Optional
from urllib.parse import quote, urlsplit

import httpx
import structlog

from maifead.errors import EnrichmentError
from maifead.models.domain import (
    FeedEntry,
    NormalizedItem,
    ParsedFeed,
    ResolvedSource,
    Source,
    SourceType,
)
from maifead.services.content import build_image_gallery, escape_html, format_plain_text, strip_tags
from maifead.sources.base import SourceAdapter, find_meta_content

logger = structlog.get_logger(__name__)

PROFILE_URL = "https://bsky.app/profile/{handle}"
FEED_URL = "https://bsky.app/profile/{handle}/rss"
PUBLIC_API = "https://public.api.bsky.app/xrpc"

LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
HANDLE_RE = re.compile(rf"^@?({LABEL}(?:\.{LABEL})+)$")
DID_RE = re.compile(r"^did:[a-z]+:[A-Za-z0-9._:%-]+$")
PROFILE_PATH_RE = re.compile(r"^/profile/([^/?#]+)")
POST_PATH_RE = re.compile(r"/profile/([^/?#]+)/post/([A-Za-z0-9]+)")

EMBED_IMAGES = "app.bsky.embed.images#view"
EMBED_EXTERNAL = "app.bsky.embed.external#view"
EMBED_VIDEO = "app.bsky.embed.video#view"
EMBED_RECORD = "app.bsky.embed.record#view"
EMBED_RECORD_WITH_MEDIA = "app.bsky.embed.recordWithMedia#view"


def parse_bluesky_handle(raw: str) -> Optional[str]:
    """Profile URL, ``@handle`` or bare handle -> lowercased handle."""
    text = (raw or "").strip()
    if not text:
        return None

    if "bsky.app" in text.lower() or "://" in text:
        url = text if "://" in text else f"https://{text}"
        parts = urlsplit(url)
        match = PROFILE_PATH_RE.match(parts.path)
        if not match:
            return None
        candidate = match.group(1)
        if DID_RE.match(candidate):
            return candidate
        text = candidate

    match = HANDLE_RE.match(text)
    return match.group(1).lower() if match else None


def images_from_view(view: dict) -> list[str]:
    urls = []
    for image in view.get("images") or []:
        url = image.get("fullsize") or image.get("thumb")
        if url:
            urls.append(url)
    return urls


def build_external_card(external: dict) -> str:
    uri = external.get("uri") or ""
    host = urlsplit(uri).hostname or ""
    thumb = external.get("thumb")

    parts = [f'<a class="bluesky-external" href="{escape_html(uri)}" target="_blank" rel="noopener noreferrer">']
    if thumb:
        parts.append(f'<img src="{escape_html(thumb)}" alt="" loading="lazy" />')
    parts.append('<div class="bluesky-external-body">')
    if external.get("title"):
        parts.append(f'<strong>{escape_html(external["title"])}</strong>')
    if external.get("description"):
        parts.append(f'<p>{escape_html(external["description"])}</p>')
    parts.append(f'<span class="bluesky-external-host">{escape_html(host)}</span>')
    parts.append("</div></a>")
    return "".join(parts)


def build_video(view: dict) -> str:
    playlist = view.get("playlist")
    if not playlist:
        return ""
    poster = view.get("thumbnail")
    poster_attr = f' poster="{escape_html(poster)}"' if poster else ""
    return (
        f'<div class="bluesky-video"><video controls playsinline preload="metadata"{poster_attr}>'
        f'<source src="{escape_html(playlist)}" type="application/x-mpegURL" />'
        "</video></div>"
    )


def build_quote(record: dict) -> str:
    """Blockquote card for a quoted post (app.bsky.embed.record#viewRecord)."""
    author = record.get("author") or {}
    handle = author.get("handle") or ""
    name = author.get("displayName") or handle
    text = (record.get("value") or {}).get("text") or ""

    images = []
    for embed in record.get("embeds") or []:
        if embed.get("$type") == EMBED_IMAGES:
            images.extend(images_from_view(embed))

    parts = ['<blockquote class="bluesky-quote">']
    parts.append(
        f'<p class="bluesky-quote-author"><strong>{escape_html(name)}</strong> '
        f"@{escape_html(handle)}</p>"
    )
    if text:
        parts.append(f"<p>{format_plain_text(text)}</p>")
    if images:
        parts.append(build_image_gallery(images))
    parts.append("</blockquote>")
    return "".join(parts)


def render_embed(embed: Optional[dict]) -> tuple[str, Optional[str]]:
    """
    Markup for a post embed view, plus the lead image it offers.

    Unknown embed types render nothing.
    """
    if not embed:
        return "", None

    kind = embed.get("$type")
    if kind == EMBED_IMAGES:
        urls = images_from_view(embed)
        return build_image_gallery(urls), (urls[0] if urls else None)

    if kind == EMBED_EXTERNAL:
        external = embed.get("external") or {}
        return build_external_card(external), external.get("thumb")

    if kind == EMBED_VIDEO:
        return build_video(embed), embed.get("thumbnail")

    if kind == EMBED_RECORD:
        return _render_record(embed.get("record")), None

    if kind == EMBED_RECORD_WITH_MEDIA:
        media_html, image = render_embed(embed.get("media"))
        quoted = (embed.get("record") or {}).get("record")
        return media_html + _render_record(quoted), image

    return "", None


def _render_record(record: Optional[dict]) -> str:
    # Blocked, deleted or not-found records carry no value to show
    if not record or "value" not in record:
        return ""
    return build_quote(record)


class BlueskyAdapter(SourceAdapter):
    """Adapter for Bluesky profiles."""

    source_type = SourceType.BLUESKY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._did_cache: dict[str, str] = {}

    async def resolve(self, raw: str) -> Optional[ResolvedSource]:
        handle = parse_bluesky_handle(raw)
        if handle is None:
            return None
        return ResolvedSource(
            type=SourceType.BLUESKY,
            feed_url=FEED_URL.format(handle=handle),
            bluesky_handle=handle,
        )

    async def _discover_icon(
        self,
        resolved: ResolvedSource,
        feed: Optional[ParsedFeed],
    ) -> Optional[str]:
        page = await self.http.get_text(PROFILE_URL.format(handle=resolved.bluesky_handle))
        return find_meta_content(page, "og:image", "twitter:image")

    async def resolve_did(self, actor: str) -> str:
        if DID_RE.match(actor):
            return actor
        if actor in self._did_cache:
            return self._did_cache[actor]

        payload = await self._api(
            f"{PUBLIC_API}/com.atproto.identity.resolveHandle?handle={quote(actor)}"
        )
        did = payload.get("did") if isinstance(payload, dict) else None
        if not did:
            raise EnrichmentError(f"Handle {actor} did not resolve to a DID")

        self._did_cache[actor] = did
        return did

    async def post_uri(self, entry: FeedEntry) -> str:
        """at:// URI of the post behind a feed entry."""
        if entry.guid and entry.guid.startswith("at://"):
            return entry.guid

        match = POST_PATH_RE.search(urlsplit(entry.link).path)
        if not match:
            raise EnrichmentError(f"Not a Bluesky post link: {entry.link}")
        actor, rkey = match.groups()
        did = await self.resolve_did(actor)
        return f"at://{did}/app.bsky.feed.post/{rkey}"

    async def fetch_post(self, entry: FeedEntry) -> dict:
        uri = await self.post_uri(entry)
        payload = await self._api(
            f"{PUBLIC_API}/app.bsky.feed.getPostThread?uri={quote(uri, safe='')}&depth=0"
        )
        try:
            return payload["thread"]["post"]
        except (KeyError, TypeError) as e:
            raise EnrichmentError(f"Unexpected thread payload for {uri}") from e

    async def _api(self, url: str) -> Any:
        try:
            return await self.http.get_json(url)
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentError(f"Bluesky API call failed: {e}") from e

    async def normalize(self, entry: FeedEntry, source: Source) -> Optional[NormalizedItem]:
        text = strip_tags(entry.description or entry.content)

        embed_html, image_url = "", None
        try:
            post = await self.fetch_post(entry)
            text = (post.get("record") or {}).get("text") or text
            embed_html, image_url = render_embed(post.get("embed"))
        except EnrichmentError as e:
            logger.info("Bluesky enrichment skipped", link=entry.link, error=str(e))

        content = f"<p>{format_plain_text(text)}</p>" if text.strip() else ""
        content += embed_html

        return self.build_item(
            entry,
            source,
            content=content,
            text=text,
            image_url=image_url,
            title="",
        )
