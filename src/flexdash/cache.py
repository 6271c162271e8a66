"""Throttled cache for Flex API snapshots.

Provides a generic asyncio-safe cache that rate-limits expensive API fetches,
returning the previous snapshot while within the throttle window.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class AsyncThrottledCache(Generic[T]):
    """Cache that refreshes at most once per throttle window.

    Concurrent callers are serialized on an asyncio lock, so a burst of
    scrapes on a cold cache results in a single fetch.
    """

    def __init__(self, limit: float):
        """Initialize the cache.

        Args:
            limit: Minimum seconds between cache refreshes.
        """
        self._lock = asyncio.Lock()
        self._last_fetch: float | None = None
        self._limit = limit
        self._cache: T | None = None

    async def fetch_or_throttle(
        self,
        fetch_func: Callable[[], Awaitable[T]],
    ) -> tuple[T, float | None]:
        """Fetch data or return cached data if within throttle limit.

        Args:
            fetch_func: Coroutine function fetching fresh data.

        Returns:
            Tuple of (data, fetch_duration) where:
            - data: Cached or fresh data of type T
            - fetch_duration: Duration in seconds if fetched, None if cache hit
        """
        async with self._lock:
            elapsed: float | None = (
                time.monotonic() - self._last_fetch
                if self._last_fetch is not None
                else None
            )
            if (
                self._cache is not None
                and elapsed is not None
                and elapsed < self._limit
            ):
                logger.debug("Using cached data", age_seconds=round(elapsed, 2))
                return self._cache, None

            start = time.monotonic()
            data = await fetch_func()
            duration = time.monotonic() - start
            self._cache = data
            self._last_fetch = time.monotonic()
            logger.debug("Fetched fresh data", duration_seconds=duration)
            return data, duration
