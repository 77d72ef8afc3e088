"""
Tests for the refresh pipeline.

Each test wires the pipeline to an in-memory repository and canned
upstream responses, then checks counts and stored items end to end.
"""

import asyncio

import httpx
import pytest

from maifead.config import Settings
from maifead.errors import FetchError
from maifead.models.domain import ShortsFilter, SourceFilters, SourceType
from maifead.services.data_ingestion.pipeline import FeedPipeline

from conftest import FIXED_NOW, fixed_clock, make_source
from samples import (
    REDDIT_FEED_URL,
    REDDIT_POST_JSON,
    RSS_FEED_URL,
    SAMPLE_REDDIT_FEED,
    SAMPLE_RSS_FEED,
    SAMPLE_YOUTUBE_FEED,
    YOUTUBE_FEED_URL,
    reddit_post_payload,
)

BROKEN_FEED_URL = "https://broken.example.com/feed.xml"


def make_pipeline(repository, http, **settings) -> FeedPipeline:
    return FeedPipeline(repository, http, settings=Settings(**settings), clock=fixed_clock)


class TestRefreshSource:
    """Tests for single-source refreshes."""

    @pytest.mark.asyncio
    async def test_new_items_stored(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        source = await repository.add_source(make_source())

        result = await make_pipeline(repository, http).refresh_source(source)

        assert result.success
        assert result.entries_seen == 2
        assert result.items_new == 2
        items = sorted(repository.items_for(source.id), key=lambda i: i.link)
        assert [i.title for i in items] == ["Podcast Episode 12", "The Future of Feeds"]
        article = items[1]
        assert "<script>" not in article.content
        assert "onclick" not in article.content
        assert article.author == "Jane Writer"
        assert article.image_url == "https://example.com/thumb.jpg"
        assert items[0].image_url == "https://example.com/ep12.jpg"
        assert article.created_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        source = await repository.add_source(make_source())
        pipeline = make_pipeline(repository, http)

        first = await pipeline.refresh_source(source)
        second = await pipeline.refresh_source(source)

        assert first.items_new == 2
        assert second.items_new == 0
        assert second.items_duplicate == 2
        assert len(repository.items) == 2

    @pytest.mark.asyncio
    async def test_same_link_in_two_sources(self, upstream, http, repository):
        """The dedup key includes the source."""
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        first = await repository.add_source(make_source())
        second = await repository.add_source(make_source(user_id="user-2"))
        pipeline = make_pipeline(repository, http)

        await pipeline.refresh_source(first)
        result = await pipeline.refresh_source(second)

        assert result.items_new == 2
        assert len(repository.items) == 4

    @pytest.mark.asyncio
    async def test_last_fetched_updated(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        source = await repository.add_source(make_source())

        await make_pipeline(repository, http).refresh_source(source)

        assert (await repository.get_source(source.id)).last_fetched_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_fetch_failure_raises(self, upstream, http, repository):
        upstream.add(RSS_FEED_URL, "boom", status=500)
        source = await repository.add_source(make_source())

        with pytest.raises(FetchError):
            await make_pipeline(repository, http).refresh_source(source)

        assert (await repository.get_source(source.id)).last_fetched_at is None

    @pytest.mark.asyncio
    async def test_entry_without_link_counted_as_failed(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, """<rss version="2.0"><channel><title>t</title>
          <item><title>No link here</title></item>
          <item><title>Linked</title><link>https://example.com/linked</link></item>
        </channel></rss>""")
        source = await repository.add_source(make_source())

        result = await make_pipeline(repository, http).refresh_source(source)

        assert result.items_failed == 1
        assert result.items_new == 1


class TestPolicyFilters:
    """Tests for shorts and upvote filters in a full refresh."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "policy, expected_links",
        [
            (ShortsFilter.ALL, {"dQw4w9WgXcQ", "abcdefghijk"}),
            (ShortsFilter.EXCLUDE, {"dQw4w9WgXcQ"}),
            (ShortsFilter.ONLY, {"abcdefghijk"}),
        ],
    )
    async def test_shorts_policy(self, upstream, http, repository, policy, expected_links):
        upstream.add_xml(YOUTUBE_FEED_URL, SAMPLE_YOUTUBE_FEED)
        source = await repository.add_source(make_source(
            SourceType.YOUTUBE,
            url=YOUTUBE_FEED_URL,
            filters=SourceFilters(youtube_shorts_filter=policy),
        ))

        result = await make_pipeline(repository, http).refresh_source(source)

        stored = {item.link.rsplit("/", 1)[-1].replace("watch?v=", "") for item in repository.items.values()}
        assert stored == expected_links
        assert result.items_filtered == 2 - len(expected_links)

    @pytest.mark.asyncio
    async def test_low_score_filtered(self, upstream, http, repository):
        upstream.add_xml(REDDIT_FEED_URL, SAMPLE_REDDIT_FEED)
        upstream.add_json(REDDIT_POST_JSON, reddit_post_payload(score=3))
        source = await repository.add_source(make_source(
            SourceType.REDDIT,
            url=REDDIT_FEED_URL,
            filters=SourceFilters(reddit_min_upvotes=50),
        ))

        result = await make_pipeline(repository, http).refresh_source(source)

        assert result.items_filtered == 1
        assert repository.items == {}

    @pytest.mark.asyncio
    async def test_score_lookup_failure_keeps_item(self, upstream, http, repository):
        upstream.add_xml(REDDIT_FEED_URL, SAMPLE_REDDIT_FEED)
        upstream.add_json(REDDIT_POST_JSON, {"error": 500}, status=500)
        source = await repository.add_source(make_source(
            SourceType.REDDIT,
            url=REDDIT_FEED_URL,
            filters=SourceFilters(reddit_min_upvotes=50),
        ))

        result = await make_pipeline(repository, http).refresh_source(source)

        assert result.items_new == 1
        item = next(iter(repository.items.values()))
        assert item.image_url == "https://i.redd.it/full.jpg"


class TestBatches:
    """Tests for concurrent refreshes and failure isolation."""

    @pytest.mark.asyncio
    async def test_failing_source_does_not_stop_batch(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        upstream.add(BROKEN_FEED_URL, "boom", status=500)
        broken = await repository.add_source(make_source(url=BROKEN_FEED_URL, name="Broken"))
        healthy = await repository.add_source(make_source(name="Healthy"))

        summary = await make_pipeline(repository, http).refresh_all_sources()

        assert summary.total_new == 2
        assert [r.source_name for r in summary.failed] == ["Broken"]
        assert "Failed to fetch feed" in summary.failed[0].errors[0]
        assert (await repository.get_source(broken.id)).last_fetched_at is None
        assert (await repository.get_source(healthy.id)).last_fetched_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_timeout_isolated(self, upstream, http, repository):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, text=SAMPLE_RSS_FEED)

        upstream.add_handler(BROKEN_FEED_URL, slow)
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        await repository.add_source(make_source(url=BROKEN_FEED_URL, name="Slow"))
        await repository.add_source(make_source(name="Fast"))

        pipeline = make_pipeline(repository, http, source_timeout_seconds=0.05)
        summary = await pipeline.refresh_all_sources()

        assert summary.total_new == 2
        assert len(summary.failed) == 1
        assert summary.failed[0].errors[0].startswith("Timed out")

    @pytest.mark.asyncio
    async def test_user_scoping(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        mine = await repository.add_source(make_source(user_id="user-1"))
        await repository.add_source(make_source(user_id="user-2"))

        summary = await make_pipeline(repository, http).refresh_user_sources("user-1")

        assert [r.source_id for r in summary.results] == [mine.id]
        assert summary.to_dict()["total_new"] == 2

    @pytest.mark.asyncio
    async def test_refresh_by_id(self, upstream, http, repository):
        upstream.add_xml(RSS_FEED_URL, SAMPLE_RSS_FEED)
        source = await repository.add_source(make_source())
        pipeline = make_pipeline(repository, http)

        result = await pipeline.refresh_source_by_id(source.id)

        assert result.items_new == 2
        assert await pipeline.refresh_source_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, upstream, http, repository):
        active = 0
        peak = 0

        async def tracked(request):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200, text=SAMPLE_RSS_FEED)

        for i in range(5):
            url = f"https://site{i}.example.com/feed.xml"
            upstream.add_handler(url, tracked)
            await repository.add_source(make_source(url=url))

        summary = await make_pipeline(repository, http, max_concurrent_sources=2).refresh_all_sources()

        assert len(summary.results) == 5
        assert not summary.failed
        assert peak <= 2
