"""
Tests for feed retrieval and parsing.

These tests use mocked HTTP responses to verify parsing logic
without requiring network access.
"""

from datetime import datetime, timezone

import pytest

from maifead.errors import FetchError
from maifead.services.data_ingestion.feed_parser import FeedFetcher, parse_feed

from samples import (
    RSS_FEED_URL,
    SAMPLE_REDDIT_FEED,
    SAMPLE_RSS_FEED,
    SAMPLE_YOUTUBE_FEED,
    YOUTUBE_FEED_URL,
)

SAMPLE_ATOM_XHTML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>XHTML Feed</title>
  <icon>https://example.org/icon.png</icon>
  <entry>
    <id>urn:uuid:1</id>
    <title>Inline markup</title>
    <link rel="alternate" href="https://example.org/1"/>
    <link rel="enclosure" href="https://example.org/1.jpg" type="image/jpeg"/>
    <updated>2024-01-10T08:30:00Z</updated>
    <content type="xhtml"><div xmlns="http://www.w3.org/1999/xhtml"><p>Hello <em>there</em></p></div></content>
  </entry>
</feed>
"""


class TestParseRSS:
    """Tests for RSS 2.0 parsing."""

    def test_parse_rss(self):
        """Test channel and item fields."""
        feed = parse_feed(SAMPLE_RSS_FEED, RSS_FEED_URL)

        assert feed.title == "Example Blog"
        assert feed.image_url == "https://example.com/logo.png"
        assert len(feed.entries) == 2

        entry = feed.entries[0]
        assert entry.title == "The Future of Feeds"
        assert entry.link == "https://example.com/posts/future-of-feeds"
        assert entry.author == "Jane Writer"
        assert entry.description == "Where feeds are headed."
        assert "Long form <b>body</b>" in entry.content
        assert entry.media_thumbnails == ["https://example.com/thumb.jpg"]
        assert entry.published_at == datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)

    def test_enclosure(self):
        """Test enclosure URL is captured."""
        feed = parse_feed(SAMPLE_RSS_FEED, RSS_FEED_URL)
        assert feed.entries[1].enclosure_url == "https://example.com/ep12.jpg"

    def test_guid_used_when_link_missing(self):
        """Test permalink guid fills in a missing link."""
        document = """<rss version="2.0"><channel><title>t</title>
          <item><title>x</title><guid>https://example.com/x</guid></item>
        </channel></rss>"""

        feed = parse_feed(document)
        assert feed.entries[0].link == "https://example.com/x"


class TestParseAtom:
    """Tests for Atom parsing, including YouTube's Media RSS fields."""

    def test_parse_youtube_feed(self):
        """Test yt:videoId and media:group are extracted."""
        feed = parse_feed(SAMPLE_YOUTUBE_FEED, YOUTUBE_FEED_URL)

        assert feed.title == "Test Channel"
        assert len(feed.entries) == 2

        entry = feed.entries[0]
        assert entry.video_id == "dQw4w9WgXcQ"
        assert entry.link == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert entry.author == "Test Channel"
        assert entry.media_group_thumbnails == ["https://i1.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"]
        assert entry.media_group_description.startswith("Chapters:")
        # Group fields are not mixed into the direct media lists
        assert entry.media_thumbnails == []
        # published wins over updated
        assert entry.published_at == datetime(2024, 2, 20, 10, 0, tzinfo=timezone.utc)

    def test_parse_reddit_feed(self):
        """Test HTML content is decoded."""
        feed = parse_feed(SAMPLE_REDDIT_FEED)

        entry = feed.entries[0]
        assert entry.title == "A nice picture"
        assert entry.author == "/u/bob"
        assert '<a href="https://i.redd.it/full.jpg">[link]</a>' in entry.content

    def test_xhtml_content_and_enclosure(self):
        """Test inline XHTML content and rel=enclosure links."""
        feed = parse_feed(SAMPLE_ATOM_XHTML)

        assert feed.image_url == "https://example.org/icon.png"
        entry = feed.entries[0]
        assert "Hello" in entry.content
        assert "there" in entry.content
        assert entry.enclosure_url == "https://example.org/1.jpg"
        assert entry.published_at == datetime(2024, 1, 10, 8, 30, tzinfo=timezone.utc)


class TestFeedFetcher:
    """Tests for the fetch wrapper."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, upstream, http):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)

        feed = await FeedFetcher(http).fetch(RSS_FEED_URL)

        assert feed.url == RSS_FEED_URL
        assert len(feed.entries) == 2

    @pytest.mark.asyncio
    async def test_http_error_becomes_fetch_error(self, upstream, http):
        upstream.add(RSS_FEED_URL, "boom", status=500)

        with pytest.raises(FetchError) as exc_info:
            await FeedFetcher(http).fetch(RSS_FEED_URL)

        assert exc_info.value.url == RSS_FEED_URL
        assert exc_info.value.cause is not None

    @pytest.mark.asyncio
    async def test_invalid_xml_becomes_fetch_error(self, upstream, http):
        upstream.add(RSS_FEED_URL, "<html><body>not a feed")

        with pytest.raises(FetchError):
            await FeedFetcher(http).fetch(RSS_FEED_URL)

    @pytest.mark.asyncio
    async def test_html_page_is_not_a_feed(self, upstream, http):
        upstream.add(RSS_FEED_URL, "<html><body><p>hi</p></body></html>")

        with pytest.raises(FetchError):
            await FeedFetcher(http).fetch(RSS_FEED_URL)
