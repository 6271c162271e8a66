"""Aggregate metrics collector for Flex.

Exports the server's job and flexlet counters as labelled gauges. Values are
passed through as reported; the server is authoritative for them.
"""

from collections.abc import Iterator

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from ..flexapi import FlexApiClient
from ..flexapi.types import Stats


async def fetch(client: FlexApiClient) -> Stats:
    """Fetch aggregate counters from the Flex API.

    Args:
        client: API client to use for fetching.

    Returns:
        Stats snapshot.
    """
    return await client.get_stats()


def generate_metrics(stats: Stats) -> Iterator[Metric]:
    """Generate Prometheus metrics from a stats snapshot.

    Args:
        stats: Aggregate counters.

    Yields:
        Prometheus Metric objects.
    """
    jobs = GaugeMetricFamily("flex_jobs", "Flex jobs per state", labels=["state"])
    jobs.add_metric(["pending"], stats.job.pending_jobs)
    jobs.add_metric(["running"], stats.job.running_jobs)
    yield jobs

    flexlets = GaugeMetricFamily(
        "flex_flexlets",
        "Flexlets per state",
        labels=["state"],
    )
    flexlets.add_metric(["online"], stats.flexlet.online_flexlets)
    flexlets.add_metric(["offline"], stats.flexlet.offline_flexlets)
    yield flexlets

    cores = GaugeMetricFamily(
        "flex_cores",
        "Flexlet cores per state",
        labels=["state"],
    )
    cores.add_metric(["busy"], stats.flexlet.busy_cores)
    cores.add_metric(["idle"], stats.flexlet.idle_cores)
    yield cores
