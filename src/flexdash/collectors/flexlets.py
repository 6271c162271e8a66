"""Flexlet metrics collector for Flex.

Fetches the flexlet list from the Flex API and exports per-flexlet state,
capacity and load. Flexlets reporting a negative core count have unknown
capacity; their current job count is exported as capacity instead.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .. import views
from ..flexapi import FlexApiClient
from ..flexapi.types import FlexletState, FlexletStatus


@dataclass
class FlexletMetric:
    """Normalized flexlet data for export."""

    name: str
    online: bool
    cores: int
    current_jobs: int


def _transform_flexlet(status: FlexletStatus) -> FlexletMetric:
    return FlexletMetric(
        name=status.flexlet.name,
        online=status.state == FlexletState.ONLINE,
        cores=views.flexlet_capacity(status),
        current_jobs=len(status.current_jobs),
    )


async def fetch(client: FlexApiClient) -> list[FlexletMetric]:
    """Fetch flexlet metrics from the Flex API.

    Args:
        client: API client to use for fetching.

    Returns:
        List of flexlet metrics.
    """
    flexlets = await client.list_flexlets()
    return [_transform_flexlet(flexlet) for flexlet in flexlets]


def generate_metrics(flexlets: list[FlexletMetric]) -> Iterator[Metric]:
    """Generate Prometheus metrics from flexlet data.

    Args:
        flexlets: List of flexlet metrics.

    Yields:
        Prometheus Metric objects.
    """
    up = GaugeMetricFamily(
        "flex_flexlet_up",
        "Whether the flexlet is online",
        labels=["name"],
    )
    cores = GaugeMetricFamily(
        "flex_flexlet_cores",
        "Flexlet cores, current job count when capacity is unknown",
        labels=["name"],
    )
    current_jobs = GaugeMetricFamily(
        "flex_flexlet_current_jobs",
        "Jobs currently assigned to the flexlet",
        labels=["name"],
    )

    for flexlet in flexlets:
        up.add_metric([flexlet.name], 1 if flexlet.online else 0)
        cores.add_metric([flexlet.name], flexlet.cores)
        current_jobs.add_metric([flexlet.name], flexlet.current_jobs)

    yield up
    yield cores
    yield current_jobs
