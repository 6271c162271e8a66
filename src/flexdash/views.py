"""Dashboard view logic for Flex jobs and flexlets.

Presentation-neutral helpers shared by anything that displays Flex data:
job state labels, flexlet load with the unknown-capacity fallback, cursor
paging, and best-effort loading of job output. Output that cannot be loaded
is reported as None so that the job metadata can still be shown.
"""

import asyncio
import enum
import shlex
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass

import httpx
import structlog

from .flexapi import FlexApiClient
from .flexapi.types import (
    FlexletState,
    FlexletStatus,
    Job,
    JobOutputType,
    JobPackage,
    JobState,
    JobStatus,
    Stats,
)

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class StateLabel(str, enum.Enum):
    """Human-readable job state as shown on the dashboard."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILURE = "Failure"
    UNSPECIFIED = "Unspecified"


def state_label(status: JobStatus) -> StateLabel:
    """Derive the display label of a job.

    Finished jobs are split into success and failure by exit code.
    """
    if status.state == JobState.PENDING:
        return StateLabel.PENDING
    if status.state == JobState.RUNNING:
        return StateLabel.RUNNING
    if status.state == JobState.FINISHED:
        if status.result.exit_code != 0:
            return StateLabel.FAILURE
        return StateLabel.SUCCESS
    return StateLabel.UNSPECIFIED


def flexlet_capacity(status: FlexletStatus) -> int:
    """Return the number of cores of a flexlet.

    A negative core count means the capacity is unknown; the number of
    currently assigned jobs is used instead.
    """
    cores = status.flexlet.spec.cores
    if cores < 0:
        return len(status.current_jobs)
    return cores


def flexlet_load(status: FlexletStatus) -> str:
    """Format flexlet load as "<running jobs> / <cores>"."""
    return f"{len(status.current_jobs)} / {flexlet_capacity(status)}"


def online_flexlets(flexlets: Iterable[FlexletStatus]) -> list[FlexletStatus]:
    return [f for f in flexlets if f.state == FlexletState.ONLINE]


def total_cores(stats: Stats) -> int:
    return stats.flexlet.busy_cores + stats.flexlet.idle_cores


def command_line(job: Job) -> str:
    """Render the job command as a shell-quoted string."""
    return shlex.join(job.spec.command.args)


def package_label(package: JobPackage) -> str:
    if package.tag == "":
        return package.hash
    return f"{package.hash} ({package.tag})"


def next_before(jobs: list[JobStatus]) -> str | None:
    """Return the cursor of the page following ``jobs``.

    None when the page is empty, meaning there are no older jobs.
    """
    if not jobs:
        return None
    return jobs[-1].job.id


async def iter_jobs(
    client: FlexApiClient,
    page_size: int = DEFAULT_PAGE_SIZE,
    before: str | None = None,
    state: JobState | None = None,
    label: str | None = None,
) -> AsyncIterator[JobStatus]:
    """Iterate over jobs from newest to oldest, one page per request.

    Follows the ``before`` cursor until the server returns an empty page.
    Each page is an independent snapshot; jobs created while iterating are
    not picked up.

    Args:
        client: Flex API client.
        page_size: Number of jobs requested per page.
        before: Optional cursor to start from.
        state: Optional state filter.
        label: Optional label filter.

    Yields:
        JobStatus objects in server order.
    """
    cursor = before
    while True:
        page = await client.list_jobs(
            limit=page_size,
            before=cursor,
            state=state,
            label=label,
        )
        if not page:
            return
        for status in page:
            yield status
        cursor = next_before(page)


async def read_job_output(
    client: FlexApiClient,
    job_id: str,
    output_type: JobOutputType | str,
) -> str | None:
    """Load job output as text, or None if it is unavailable.

    Never raises for missing output, HTTP errors or transport failures; the
    failure is logged instead.
    """
    output_type = JobOutputType(output_type)
    try:
        response = await client.get_job_output(job_id, output_type)
        try:
            if not response.is_success:
                logger.info(
                    "Job output unavailable",
                    job_id=job_id,
                    output_type=output_type.value,
                    status_code=response.status_code,
                    reason=response.reason_phrase,
                )
                return None
            await response.aread()
            return response.text
        finally:
            await response.aclose()
    except httpx.HTTPError as e:
        logger.warning(
            "Failed to load job output",
            job_id=job_id,
            output_type=output_type.value,
            error=str(e),
        )
        return None


@dataclass(frozen=True)
class JobDetail:
    """A job with its output streams.

    stdout and stderr are None when the job has not finished or when the
    output could not be loaded.
    """

    status: JobStatus
    stdout: str | None = None
    stderr: str | None = None

    @property
    def label(self) -> StateLabel:
        return state_label(self.status)


async def load_job_detail(client: FlexApiClient, job_id: str) -> JobDetail:
    """Fetch a job and, once finished, both of its output streams.

    Errors fetching the job itself propagate. Output streams are loaded
    concurrently and on a best-effort basis.
    """
    status = await client.get_job(job_id)
    if status.state != JobState.FINISHED:
        return JobDetail(status=status)

    stdout, stderr = await asyncio.gather(
        read_job_output(client, job_id, JobOutputType.STDOUT),
        read_job_output(client, job_id, JobOutputType.STDERR),
    )
    return JobDetail(status=status, stdout=stdout, stderr=stderr)
