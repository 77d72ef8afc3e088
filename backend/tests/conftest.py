"""
Shared fixtures for ingestion tests.

Network access is replaced by an httpx.MockTransport that serves canned
responses by URL; unknown URLs get a 404.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from maifead.models.domain import Source, SourceType
from maifead.services.data_ingestion.http import FeedHttpClient
from maifead.storage.memory import InMemoryItemRepository

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeUpstream:
    """URL -> response table used as the MockTransport handler."""

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], Any]] = {}
        self.calls: list[str] = []

    @staticmethod
    def _key(url: Union[str, httpx.URL]) -> str:
        return str(httpx.URL(str(url)))

    def add(
        self,
        url: str,
        body: Union[str, bytes] = "",
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
    ):
        content = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[self._key(url)] = lambda request: httpx.Response(
            status, content=content, headers={"Content-Type": content_type}
        )

    def add_xml(self, url: str, body: str, status: int = 200):
        self.add(url, body, status=status, content_type="application/xml; charset=utf-8")

    def add_json(self, url: str, payload: Any, status: int = 200):
        self.add(url, json.dumps(payload), status=status, content_type="application/json")

    def add_handler(self, url: str, handler: Callable[[httpx.Request], Any]):
        """Register a (possibly async) callable producing the response."""
        self.routes[self._key(url)] = handler

    def called(self, url: str) -> bool:
        return self._key(url) in self.calls

    def call_count(self, url: str) -> int:
        return self.calls.count(self._key(url))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        key = self._key(request.url)
        self.calls.append(key)

        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, content=b"not found")

        response = route(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http(upstream) -> FeedHttpClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream), follow_redirects=True)
    return FeedHttpClient(client, retries=1, retry_wait_max=0.01)


@pytest.fixture
def repository() -> InMemoryItemRepository:
    return InMemoryItemRepository()


def make_source(
    source_type: SourceType = SourceType.RSS,
    url: str = "https://example.com/feed.xml",
    user_id: str = "user-1",
    name: Optional[str] = None,
    **kwargs,
) -> Source:
    identity = {
        SourceType.RSS: {},
        SourceType.YOUTUBE: {"channel_id": "UCabcdefghijklmnopqrstuv"},
        SourceType.REDDIT: {"reddit_name": "pics", "reddit_source_type": "subreddit"},
        SourceType.BLUESKY: {"bluesky_handle": "alice.bsky.social"},
    }[source_type]
    identity.update(kwargs.pop("identity", {}))

    return Source(
        type=source_type,
        user_id=user_id,
        name=name or f"{source_type.value} source",
        url=url,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
        **identity,
        **kwargs,
    )
