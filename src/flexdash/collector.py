"""Prometheus collector for Flex API data.

Splits a scrape in two steps: an async ``refresh`` that pulls a snapshot
from the Flex API through a throttled cache, and the synchronous ``collect``
required by prometheus_client, which renders the last snapshot.
"""

from collections.abc import Awaitable, Callable, Iterator
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .cache import AsyncThrottledCache

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Fetcher: TypeAlias = Callable[[], Awaitable[T]]
MetricsGenerator: TypeAlias = Callable[[T], Iterator[Metric]]


class FlexCollector(Collector, Generic[T]):
    """Prometheus collector composed of a fetcher and a metrics generator.

    The fetcher has its dependencies (the API client) bound at construction
    time. A failed refresh is counted and logged; the scrape still succeeds
    and only reports the scrape metadata.
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        metric_prefix: str,
        poll_limit: float,
        scraper_description: str,
    ):
        """Initialize the collector.

        Args:
            fetcher: Coroutine function returning a fresh snapshot.
            generator: Function that generates Prometheus metrics from a
                snapshot.
            metric_prefix: Metric name prefix (e.g., "stats", "flexlet").
            poll_limit: Minimum seconds between cache refreshes.
            scraper_description: Description of the data source for metric
                help texts (e.g., API base URL).
        """
        self._fetcher = fetcher
        self._generator = generator
        self._metric_prefix = metric_prefix
        self._cache = AsyncThrottledCache[T](poll_limit)
        self._error_count = 0
        self._scraper_desc = scraper_description

        self._data: T | None = None
        self._duration = -1.0

    async def refresh(self) -> None:
        """Pull a snapshot for the next ``collect`` call.

        Never raises; on failure the snapshot is cleared and the error
        counter incremented.
        """
        try:
            data, fetch_duration = await self._cache.fetch_or_throttle(self._fetcher)
        except Exception:
            logger.exception(
                "Failed to fetch metrics for collection",
                metric_prefix=self._metric_prefix,
            )
            self._error_count += 1
            self._data = None
            self._duration = -1.0
            return

        self._data = data
        self._duration = fetch_duration if fetch_duration is not None else -1.0

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for a Prometheus scrape.

        Yields scrape metadata (duration and error count) followed by the
        generator's metrics for the last refreshed snapshot.
        """
        # -1 indicates cache hit or error, >= 0 a fresh fetch
        scrape_duration = GaugeMetricFamily(
            f"flex_{self._metric_prefix}_scrape_duration",
            f"scrape duration from {self._scraper_desc} in seconds, "
            f"-1 indicates cache hit or error",
        )
        scrape_duration.add_metric([], self._duration)
        yield scrape_duration

        error_counter = CounterMetricFamily(
            f"flex_{self._metric_prefix}_scrape_error",
            f"flex {self._metric_prefix} scrape errors",
        )
        error_counter.add_metric([], self._error_count)
        yield error_counter

        if self._data is not None:
            yield from self._generator(self._data)
