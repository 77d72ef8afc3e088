"""
RSS/Atom feed retrieval and parsing.

Parses RSS 2.0 and Atom documents, including the Media RSS extension
(media:group, media:content, media:thumbnail) used by YouTube and Reddit,
content:encoded, and YouTube's yt:videoId.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional
from xml.etree import ElementTree
import logging

import httpx

from maifead.core.clock import ensure_utc
from maifead.errors import FetchError
from maifead.models.domain import FeedEntry, ParsedFeed
from maifead.services.data_ingestion.http import FeedHttpClient

logger = logging.getLogger(__name__)

# XML namespaces
ATOM_NS = "{http://www.w3.org/2005/Atom}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"
MEDIA_NS = "{http://search.yahoo.com/mrss/}"
YT_NS = "{http://www.youtube.com/xml/schemas/2015}"


class FeedFetcher:
    """Fetches a feed URL and turns it into a ParsedFeed."""

    def __init__(self, http: FeedHttpClient):
        self.http = http

    async def fetch(self, url: str) -> ParsedFeed:
        """
        Retrieve and parse a feed.

        Raises:
            FetchError: on network failure, non-2xx status, or unparseable XML
        """
        try:
            response = await self.http.get_with_retry(url)
        except httpx.HTTPError as e:
            raise FetchError(url, e) from e

        try:
            feed = parse_feed(response.content, url)
        except ElementTree.ParseError as e:
            raise FetchError(url, e) from e

        logger.debug(f"Parsed {len(feed.entries)} entries from {url}")
        return feed


def parse_feed(document: bytes | str, url: str = "") -> ParsedFeed:
    """Parse an RSS 2.0 or Atom document."""
    if isinstance(document, str):
        document = document.encode("utf-8")
    root = ElementTree.fromstring(document.strip())

    if root.tag == f"{ATOM_NS}feed":
        return _parse_atom(root, url)
    if root.find("channel") is not None:
        return _parse_rss(root, url)
    raise ElementTree.ParseError(f"Unrecognized feed root element: {root.tag}")


# =============================================================================
# RSS 2.0
# =============================================================================

def _parse_rss(root: ElementTree.Element, url: str) -> ParsedFeed:
    channel = root.find("channel")
    feed = ParsedFeed(
        url=url,
        title=_text(channel, "title"),
        link=_text(channel, "link"),
        image_url=_text(channel, "image/url") or None,
    )

    for item in channel.findall("item"):
        try:
            feed.entries.append(_parse_rss_item(item))
        except Exception as e:
            logger.warning(f"Failed to parse RSS item from {url}: {e}")

    return feed


def _parse_rss_item(item: ElementTree.Element) -> FeedEntry:
    entry = FeedEntry(
        title=_text(item, "title"),
        link=_text(item, "link"),
        guid=_text(item, "guid") or None,
        content=item.findtext(f"{CONTENT_NS}encoded", "") or "",
        description=item.findtext("description", "") or "",
        author=_text(item, f"{DC_NS}creator") or _text(item, "author") or None,
        published_at=_parse_rss_date(item.findtext("pubDate") or item.findtext(f"{DC_NS}date")),
    )

    enclosure = item.find("enclosure")
    if enclosure is not None and enclosure.get("url"):
        entry.enclosure_url = enclosure.get("url")

    if not entry.link and entry.guid and entry.guid.startswith("http"):
        entry.link = entry.guid

    _parse_media(item, entry)
    return entry


# =============================================================================
# Atom
# =============================================================================

def _parse_atom(root: ElementTree.Element, url: str) -> ParsedFeed:
    feed = ParsedFeed(
        url=url,
        title=_text(root, f"{ATOM_NS}title"),
        link=_atom_link(root) or "",
        image_url=_text(root, f"{ATOM_NS}icon") or _text(root, f"{ATOM_NS}logo") or None,
    )

    for element in root.findall(f"{ATOM_NS}entry"):
        try:
            feed.entries.append(_parse_atom_entry(element))
        except Exception as e:
            logger.warning(f"Failed to parse Atom entry from {url}: {e}")

    return feed


def _parse_atom_entry(element: ElementTree.Element) -> FeedEntry:
    entry_id = _text(element, f"{ATOM_NS}id")
    published_str = element.findtext(f"{ATOM_NS}published")
    updated_str = element.findtext(f"{ATOM_NS}updated")

    author = None
    author_el = element.find(f"{ATOM_NS}author")
    if author_el is not None:
        author = _text(author_el, f"{ATOM_NS}name") or None

    entry = FeedEntry(
        title=_text(element, f"{ATOM_NS}title"),
        link=_atom_link(element) or entry_id,
        guid=entry_id or None,
        content=_markup(element.find(f"{ATOM_NS}content")),
        description=_markup(element.find(f"{ATOM_NS}summary")),
        author=author,
        published_at=_parse_atom_date(published_str or updated_str),
        video_id=_text(element, f"{YT_NS}videoId") or None,
    )

    for link_el in element.findall(f"{ATOM_NS}link"):
        if link_el.get("rel") == "enclosure" and link_el.get("href"):
            entry.enclosure_url = link_el.get("href")
            break

    _parse_media(element, entry)
    return entry


def _atom_link(element: ElementTree.Element) -> Optional[str]:
    for link_el in element.findall(f"{ATOM_NS}link"):
        if link_el.get("rel", "alternate") == "alternate" and link_el.get("href"):
            return link_el.get("href").strip()
    return None


# =============================================================================
# Shared helpers
# =============================================================================

def _parse_media(element: ElementTree.Element, entry: FeedEntry) -> None:
    """Collect Media RSS fields. Direct children and media:group are kept apart."""
    group = element.find(f"{MEDIA_NS}group")
    if group is not None:
        entry.media_group_thumbnails = _urls(group, f"{MEDIA_NS}thumbnail")
        entry.media_group_contents = _urls(group, f"{MEDIA_NS}content")
        entry.media_group_description = group.findtext(f"{MEDIA_NS}description", "") or ""

    entry.media_thumbnails = _urls(element, f"{MEDIA_NS}thumbnail")
    entry.media_contents = _urls(element, f"{MEDIA_NS}content")


def _urls(element: ElementTree.Element, tag: str) -> list[str]:
    return [el.get("url") for el in element.findall(tag) if el.get("url")]


def _text(element: ElementTree.Element, path: str) -> str:
    return (element.findtext(path, "") or "").strip()


def _markup(element: Optional[ElementTree.Element]) -> str:
    """Text of an Atom text construct; inline XHTML is serialized back to markup."""
    if element is None:
        return ""
    if element.get("type") == "xhtml" and len(element):
        return "".join(
            ElementTree.tostring(child, encoding="unicode", method="html") for child in element
        ).strip()
    return (element.text or "").strip()


def _parse_rss_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse RSS date format (RFC 822)."""
    if not date_str:
        return None

    try:
        return ensure_utc(parsedate_to_datetime(date_str.strip()))
    except (ValueError, TypeError):
        pass

    # Try ISO format as fallback
    return _parse_atom_date(date_str)


def _parse_atom_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse Atom/ISO date format."""
    if not date_str:
        return None
    date_str = date_str.strip()

    try:
        return ensure_utc(datetime.fromisoformat(date_str.replace("Z", "+00:00")))
    except ValueError:
        pass

    try:
        # Try without timezone
        return ensure_utc(datetime.fromisoformat(date_str[:19]))
    except ValueError:
        return None
