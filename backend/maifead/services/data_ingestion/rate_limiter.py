"""
Rate limiting for outbound requests.

Each upstream host family (reddit, youtube, bluesky, everything else) is a
shared resource: it gets a concurrency cap and a sliding request window,
regardless of which source is making the call.
"""

import asyncio
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from urllib.parse import urlparse
import logging

from maifead.config import HostLimits

logger = logging.getLogger(__name__)

HOST_FAMILIES = {
    "reddit": ("reddit.com", "redd.it", "redditmedia.com"),
    "youtube": ("youtube.com", "youtu.be", "ytimg.com"),
    "bluesky": ("bsky.app", "bsky.social", "bsky.network"),
}


def host_family(url: str) -> str:
    """Map a URL to the rate-limit bucket of its upstream host."""
    host = (urlparse(url).hostname or "").lower()
    for family, suffixes in HOST_FAMILIES.items():
        if any(host == s or host.endswith("." + s) for s in suffixes):
            return family
    return "default"


class RateLimiter:
    """
    Sliding-window rate limiter with per-family concurrency caps.

    Features:
    - Per-family request budgets
    - Per-family concurrent request caps
    - Async-safe with locks
    - Automatic request spacing
    """

    def __init__(self, limits: Optional[HostLimits] = None):
        limits = limits or HostLimits()
        self._request_times: dict[str, list[float]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._concurrency = {
            "reddit": limits.reddit,
            "youtube": limits.youtube,
            "bluesky": limits.bluesky,
            "default": limits.default,
        }
        self._windows = {
            "reddit": (limits.reddit_requests_per_minute, 60),
            "default": (limits.default_requests_per_minute, 60),
        }
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    def set_limit(self, family: str, requests: int, period_seconds: int):
        """Set custom request window for a host family."""
        self._windows[family] = (requests, period_seconds)

    def _get_limit(self, family: str) -> tuple[int, int]:
        return self._windows.get(family, self._windows["default"])

    def _semaphore(self, family: str) -> asyncio.Semaphore:
        if family not in self._semaphores:
            cap = self._concurrency.get(family, self._concurrency["default"])
            self._semaphores[family] = asyncio.Semaphore(cap)
        return self._semaphores[family]

    async def acquire(self, family: str, timeout: Optional[float] = 30.0) -> bool:
        """
        Reserve a slot in the family's request window.

        Args:
            family: Host family name
            timeout: Max seconds to wait (None = wait forever)

        Returns:
            True if acquired, False if timed out
        """
        start_time = time.monotonic()
        max_requests, period_seconds = self._get_limit(family)

        async with self._locks[family]:
            while True:
                now = time.monotonic()
                cutoff = now - period_seconds

                # Clean old request times
                self._request_times[family] = [
                    t for t in self._request_times[family] if t > cutoff
                ]

                if len(self._request_times[family]) < max_requests:
                    self._request_times[family].append(now)
                    return True

                oldest = min(self._request_times[family])
                wait_seconds = oldest + period_seconds - now

                if timeout is not None:
                    elapsed = now - start_time
                    if elapsed + wait_seconds > timeout:
                        logger.warning(
                            f"Rate limit timeout for {family}: "
                            f"would need to wait {wait_seconds:.1f}s"
                        )
                        return False

                logger.debug(f"Rate limited for {family}, waiting {wait_seconds:.1f}s")
                await asyncio.sleep(min(wait_seconds + 0.1, 1.0))

    @asynccontextmanager
    async def limit(self, url: str) -> AsyncIterator[str]:
        """Hold a concurrency slot and a window slot for one request to ``url``."""
        family = host_family(url)
        async with self._semaphore(family):
            await self.acquire(family, timeout=None)
            yield family

    def get_status(self, family: str) -> dict:
        """Get current rate limit status for a host family."""
        max_requests, period_seconds = self._get_limit(family)
        cutoff = time.monotonic() - period_seconds
        recent = [t for t in self._request_times[family] if t > cutoff]

        return {
            "family": family,
            "max_requests": max_requests,
            "period_seconds": period_seconds,
            "max_concurrent": self._concurrency.get(family, self._concurrency["default"]),
            "current_requests": len(recent),
            "available": max_requests - len(recent),
        }

