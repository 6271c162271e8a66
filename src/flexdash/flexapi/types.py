"""Resource types for the Flex REST API.

Pydantic models mirroring the JSON documents served by the Flex API. Field
names are snake_case in Python and camelCase on the wire. Models are frozen
and sequences are stored as tuples, so decoded values are read-only
snapshots.
"""

import enum
from typing import Annotated, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


class JobState(str, enum.Enum):
    """Lifecycle state of a job."""

    UNSPECIFIED = "UNSPECIFIED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"


class FlexletState(str, enum.Enum):
    """Connection state of a flexlet."""

    OFFLINE = "OFFLINE"
    ONLINE = "ONLINE"


class JobOutputType(str, enum.Enum):
    """Output stream of a finished job."""

    STDOUT = "stdout"
    STDERR = "stderr"


class FlexModel(BaseModel):
    """Base for all API models: camelCase aliases, immutable instances."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def _empty_if_none(value):
    return () if value is None else value


T = TypeVar("T")

# The server omits empty repeated fields, or sends them as null.
Repeated = Annotated[tuple[T, ...], BeforeValidator(_empty_if_none)]


class JobCommand(FlexModel):
    args: Repeated[str] = ()


class JobPackage(FlexModel):
    """An input package materialized for a job.

    ``tag`` is an empty string for untagged packages, never None.
    """

    hash: str
    tag: str
    install_dir: str


class JobInputs(FlexModel):
    packages: Repeated[JobPackage] = ()


class JobLimits(FlexModel):
    time: str


class JobConstraints(FlexModel):
    priority: int


class JobAnnotations(FlexModel):
    labels: Repeated[str] = ()


class JobSpec(FlexModel):
    command: JobCommand
    inputs: JobInputs
    limits: JobLimits
    constraints: JobConstraints
    annotations: JobAnnotations


class Job(FlexModel):
    id: str
    spec: JobSpec


class TaskResult(FlexModel):
    """Outcome of a task run.

    ``time`` must be present on the wire; ``null`` (job never ran) is kept as
    None and is distinct from a zero duration.
    """

    exit_code: int
    message: str
    time: str | None


class JobStatus(FlexModel):
    """A job together with its scheduling state.

    ``result`` is only meaningful when ``state`` is FINISHED.
    """

    job: Job
    state: JobState
    task_id: str
    flexlet_name: str
    result: TaskResult


class FlexletSpec(FlexModel):
    # Negative means the capacity is unknown.
    cores: int


class Flexlet(FlexModel):
    name: str
    spec: FlexletSpec


class FlexletStatus(FlexModel):
    flexlet: Flexlet
    state: FlexletState
    current_jobs: Repeated[Job] = ()


class JobStats(FlexModel):
    pending_jobs: int
    running_jobs: int


class FlexletStats(FlexModel):
    online_flexlets: int
    offline_flexlets: int
    busy_cores: int
    idle_cores: int


class Stats(FlexModel):
    """Point-in-time counters reported by the server."""

    job: JobStats
    flexlet: FlexletStats


# Response envelopes


class ListJobsResponse(FlexModel):
    jobs: Repeated[JobStatus] = ()


class GetJobResponse(FlexModel):
    job: JobStatus


class ListFlexletsResponse(FlexModel):
    flexlets: Repeated[FlexletStatus] = ()


class GetStatsResponse(FlexModel):
    stats: Stats
