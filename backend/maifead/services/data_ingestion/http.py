"""
Outbound HTTP for ingestion.

All network access goes through ``FeedHttpClient``, which wraps an injected
``httpx.AsyncClient`` so tests can swap in a mock transport.
"""
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from maifead.config import Settings, get_settings
from maifead.services.data_ingestion.rate_limiter import RateLimiter

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def create_http_client(settings: Optional[Settings] = None, **kwargs) -> httpx.AsyncClient:
    """Build the shared async client with the configured timeout and UA."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
        **kwargs,
    )


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class FeedHttpClient:
    """Host-limited HTTP access for the fetcher and the source adapters."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        rate_limiter: Optional[RateLimiter] = None,
        retries: int = 3,
        retry_wait_max: float = 10.0,
    ):
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retries = retries
        self.retry_wait_max = retry_wait_max

    async def get(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        """Single GET under the host's limits; raises for non-2xx."""
        async with self.rate_limiter.limit(url):
            response = await self.client.get(url, headers=headers)
        response.raise_for_status()
        return response

    async def get_text(self, url: str, headers: Optional[dict] = None) -> str:
        response = await self.get(url, headers={"Accept": BROWSER_ACCEPT, **(headers or {})})
        return response.text

    async def get_json(self, url: str) -> Any:
        response = await self.get(url, headers={"Accept": "application/json"})
        return response.json()

    async def get_with_retry(self, url: str) -> httpx.Response:
        """GET with exponential backoff on transport errors, 429 and 5xx."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=1, min=1, max=self.retry_wait_max),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self.get(url)

    async def aclose(self):
        await self.client.aclose()
