"""
Shared content normalization helpers.

Text cleanup, excerpt and title generation, safe linkification and the
image fallback chain used by every source adapter.
"""
import html
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup, Comment

from maifead.models.domain import FeedEntry

EXCERPT_LENGTH = 200
TITLE_LENGTH = 100
ELLIPSIS = "..."
UNTITLED = "Untitled"

TAG_RE = re.compile(r"<[^>]*>")
IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"'>]+)["']""", re.IGNORECASE)
ANCHOR_BLOCK_RE = re.compile(r"(<a\b[^>]*>.*?</a>)", re.IGNORECASE | re.DOTALL)

# Matches URLs in already-escaped text; stops at escaped quotes/brackets.
URL_RE = re.compile(r"https?://(?:(?!&quot;|&#x27;|&lt;|&gt;)[^\s<>\"'])+")
URL_TRAILING_PUNCTUATION = ".,;:!?)]}"

# H:MM:SS or M:SS, not part of a longer digit/colon run
TIMESTAMP_RE = re.compile(r"(?<![\d:])(?:(\d{1,2}):)?(\d{1,2}):([0-5]\d)(?![\d:])")

# Tags and attributes that survive sanitizing. Anything else is unwrapped
# (text kept) unless it is in DROPPED_TAGS, which go with their contents.
ALLOWED_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "caption", "cite", "code", "dd",
    "del", "details", "div", "dl", "dt", "em", "figcaption", "figure",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "iframe", "img", "ins",
    "kbd", "li", "mark", "ol", "p", "pre", "q", "s", "small", "source",
    "span", "strong", "sub", "summary", "sup", "table", "tbody", "td",
    "tfoot", "th", "thead", "tr", "u", "ul", "video",
})
DROPPED_TAGS = frozenset({
    "applet", "base", "button", "embed", "form", "frame", "frameset", "head",
    "input", "link", "math", "meta", "noscript", "object", "script",
    "select", "style", "svg", "template", "textarea", "title",
})
GLOBAL_ATTRIBUTES = frozenset({"class", "title", "alt", "width", "height"})
ALLOWED_ATTRIBUTES = {
    "a": frozenset({"href", "target", "rel"}),
    "blockquote": frozenset({"cite"}),
    "iframe": frozenset({"src", "allow", "allowfullscreen", "frameborder"}),
    "img": frozenset({"src", "loading"}),
    "ol": frozenset({"start"}),
    "q": frozenset({"cite"}),
    "source": frozenset({"src", "type"}),
    "td": frozenset({"colspan", "rowspan"}),
    "th": frozenset({"colspan", "rowspan"}),
    "video": frozenset({"src", "poster", "controls", "preload", "playsinline", "muted", "loop"}),
}
URL_ATTRIBUTES = frozenset({"href", "src", "poster", "cite"})
SAFE_URL_SCHEMES = frozenset({"", "http", "https"})
# Tags that are pointless once their source URL is gone
SOURCE_REQUIRED_TAGS = frozenset({"iframe", "img", "source"})
URL_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")


# =============================================================================
# Plain text
# =============================================================================

def strip_tags(markup: str) -> str:
    """Remove all tags and decode entities."""
    if not markup:
        return ""
    return html.unescape(TAG_RE.sub("", markup))


def create_excerpt(text: str, max_length: int = EXCERPT_LENGTH) -> str:
    """Plain-text excerpt: first ``max_length`` characters, ellipsis if cut."""
    stripped = strip_tags(text).strip()
    if len(stripped) <= max_length:
        return stripped
    return stripped[:max_length] + ELLIPSIS


def generate_title(text: str, max_length: int = TITLE_LENGTH) -> str:
    """
    Derive a title for entries that have none (Bluesky posts, mostly).

    Prefers the first sentence; otherwise cuts at a word boundary past 60%
    of the limit; otherwise hard-truncates. Falls back to "Untitled".
    """
    plain = strip_tags(text).strip()
    if not plain:
        return UNTITLED

    sentence = _first_sentence(plain)
    if sentence and len(sentence) <= max_length:
        return sentence

    flat = " ".join(plain.split())
    if len(flat) <= max_length:
        return flat

    budget = max_length - len(ELLIPSIS)
    cut = flat[:budget]
    boundary = cut.rfind(" ")
    if boundary > budget * 0.6:
        return cut[:boundary].rstrip() + ELLIPSIS
    return cut.rstrip() + ELLIPSIS


def _first_sentence(text: str) -> str:
    for i, char in enumerate(text):
        if char == "\n":
            return " ".join(text[:i].split())
        if char in ".!?" and (i + 1 == len(text) or text[i + 1].isspace()):
            return " ".join(text[: i + 1].split())
    return " ".join(text.split())


# =============================================================================
# Safe markup synthesis
# =============================================================================

def escape_html(text: str) -> str:
    return html.escape(text or "", quote=True)


def linkify_urls(escaped: str) -> str:
    """Wrap http(s) URLs in anchors. Input must already be HTML-escaped."""

    def replace(match: re.Match) -> str:
        url = match.group(0)
        tail = ""
        while url and url[-1] in URL_TRAILING_PUNCTUATION:
            tail = url[-1] + tail
            url = url[:-1]
        return f'<a href="{url}" target="_blank" rel="noopener noreferrer">{url}</a>{tail}'

    return URL_RE.sub(replace, escaped)


def timestamp_to_seconds(hours: Optional[str], minutes: str, seconds: str) -> int:
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)


def linkify_timestamps(markup: str, video_id: str) -> str:
    """Turn MM:SS / HH:MM:SS outside existing anchors into seek links."""

    def replace(match: re.Match) -> str:
        offset = timestamp_to_seconds(*match.groups())
        return (
            f'<a href="https://www.youtube.com/watch?v={video_id}&t={offset}s" '
            f'target="_blank" rel="noopener noreferrer">{match.group(0)}</a>'
        )

    parts = ANCHOR_BLOCK_RE.split(markup)
    for i in range(0, len(parts), 2):
        parts[i] = TIMESTAMP_RE.sub(replace, parts[i])
    return "".join(parts)


def newlines_to_breaks(markup: str) -> str:
    return markup.replace("\r\n", "\n").replace("\n", "<br />\n")


def format_plain_text(text: str) -> str:
    """Escape untrusted text, then linkify URLs and keep line breaks."""
    return newlines_to_breaks(linkify_urls(escape_html(text)))


def is_safe_url(value: str) -> bool:
    """Relative, http or https. Entities and embedded whitespace are ignored."""
    compact = URL_NOISE_RE.sub("", html.unescape(value)).lower()
    try:
        return urlsplit(compact).scheme in SAFE_URL_SCHEMES
    except ValueError:
        return False


def sanitize_html(markup: str) -> str:
    """
    Allowlist sanitizer for feed-supplied HTML.

    Known-dangerous elements are removed with their contents, other unknown
    elements are unwrapped, and only allowlisted attributes are kept. URL
    attributes must be relative or http(s).
    """
    if not markup:
        return ""

    soup = BeautifulSoup(markup, "html.parser")
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in soup.find_all(list(DROPPED_TAGS)):
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue

        allowed = GLOBAL_ATTRIBUTES | ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
        for name in list(tag.attrs):
            value = tag.attrs[name]
            if name not in allowed:
                del tag.attrs[name]
            elif name in URL_ATTRIBUTES and not (isinstance(value, str) and is_safe_url(value)):
                del tag.attrs[name]

        if tag.name in SOURCE_REQUIRED_TAGS and not tag.get("src"):
            tag.decompose()

    return str(soup)


def build_image_gallery(urls: Iterable[str], css_class: str = "image-gallery") -> str:
    images = "".join(
        f'<img src="{escape_html(url)}" alt="" loading="lazy" />' for url in urls
    )
    if not images:
        return ""
    return f'<div class="{css_class}">{images}</div>'


# =============================================================================
# Images
# =============================================================================

def first_img_src(markup: str) -> Optional[str]:
    match = IMG_SRC_RE.search(markup or "")
    return html.unescape(match.group(1)) if match else None


def extract_image_url(entry: FeedEntry) -> Optional[str]:
    """
    Lead image for an entry, first match wins:
    media:group thumbnail (largest = last) -> media:group content ->
    media:thumbnail -> media:content -> enclosure -> first inline <img>.
    """
    if entry.media_group_thumbnails:
        return entry.media_group_thumbnails[-1]
    if entry.media_group_contents:
        return entry.media_group_contents[0]
    if entry.media_thumbnails:
        return entry.media_thumbnails[0]
    if entry.media_contents:
        return entry.media_contents[0]
    if entry.enclosure_url:
        return entry.enclosure_url
    return first_img_src(entry.content) or first_img_src(entry.description)


def strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
