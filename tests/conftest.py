"""Shared fixtures: Flex API payload builders and an in-memory Flex server."""

import urllib.parse
from collections.abc import Callable

import httpx
import pytest

from flexdash.flexapi import FlexApiClient

BASE_URL = "http://flex.test"


def build_job(
    job_id: str,
    args: tuple[str, ...] = ("echo", "hello"),
    labels: tuple[str, ...] = (),
    packages: tuple[dict, ...] = (),
) -> dict:
    return {
        "id": job_id,
        "spec": {
            "command": {"args": list(args)},
            "inputs": {"packages": list(packages)},
            "limits": {"time": "60s"},
            "constraints": {"priority": 0},
            "annotations": {"labels": list(labels)},
        },
    }


def build_job_status(
    job_id: str,
    state: str = "PENDING",
    exit_code: int = 0,
    message: str = "",
    time: str | None = None,
    flexlet_name: str = "",
    **job_kwargs,
) -> dict:
    return {
        "job": build_job(job_id, **job_kwargs),
        "state": state,
        "taskId": f"task-{job_id}" if state != "PENDING" else "",
        "flexletName": flexlet_name,
        "result": {"exitCode": exit_code, "message": message, "time": time},
    }


def build_flexlet_status(
    name: str,
    cores: int = 4,
    state: str = "ONLINE",
    job_ids: tuple[str, ...] = (),
) -> dict:
    return {
        "flexlet": {"name": name, "spec": {"cores": cores}},
        "state": state,
        "currentJobs": [build_job(job_id) for job_id in job_ids],
    }


def build_stats(
    pending: int = 0,
    running: int = 0,
    online: int = 0,
    offline: int = 0,
    busy: int = 0,
    idle: int = 0,
) -> dict:
    return {
        "job": {"pendingJobs": pending, "runningJobs": running},
        "flexlet": {
            "onlineFlexlets": online,
            "offlineFlexlets": offline,
            "busyCores": busy,
            "idleCores": idle,
        },
    }


class FakeFlexServer:
    """Minimal in-memory implementation of the Flex REST API.

    Jobs are listed newest first (by numeric ID) and honour the limit,
    before, state and label filters. Every handled request is recorded.
    """

    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.outputs: dict[tuple[str, str], str] = {}
        self.flexlets: list[dict] = []
        self.stats: dict = build_stats()
        self.requests: list[httpx.Request] = []

    def add_job(self, job_id: str, **kwargs) -> dict:
        status = build_job_status(job_id, **kwargs)
        self.jobs[job_id] = status
        return status

    def _list_jobs(self, params: httpx.QueryParams) -> list[dict]:
        jobs = sorted(self.jobs.values(), key=lambda j: -int(j["job"]["id"]))
        if "before" in params:
            before = int(params["before"])
            jobs = [j for j in jobs if int(j["job"]["id"]) < before]
        if "state" in params:
            jobs = [j for j in jobs if j["state"] == params["state"]]
        if "label" in params:
            jobs = [
                j
                for j in jobs
                if params["label"] in j["job"]["spec"]["annotations"]["labels"]
            ]
        return jobs[: int(params.get("limit", 100))]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raw_parts = request.url.raw_path.decode("ascii").split("?")[0].strip("/")
        parts = [urllib.parse.unquote(p) for p in raw_parts.split("/")]

        match parts:
            case ["api", "jobs"]:
                return httpx.Response(
                    200,
                    json={"jobs": self._list_jobs(request.url.params)},
                )
            case ["api", "jobs", job_id]:
                if job_id not in self.jobs:
                    return httpx.Response(404, text="job not found")
                return httpx.Response(200, json={"job": self.jobs[job_id]})
            case ["api", "jobs", job_id, ("stdout" | "stderr") as kind]:
                if (job_id, kind) not in self.outputs:
                    return httpx.Response(404, text="output not found")
                return httpx.Response(200, text=self.outputs[(job_id, kind)])
            case ["api", "flexlets"]:
                return httpx.Response(200, json={"flexlets": self.flexlets})
            case ["api", "stats"]:
                return httpx.Response(200, json={"stats": self.stats})
        return httpx.Response(404, text="no route")


@pytest.fixture
def flex_server() -> FakeFlexServer:
    """Empty in-memory Flex server."""
    return FakeFlexServer()


@pytest.fixture
def make_client() -> Callable[..., FlexApiClient]:
    """Factory building a FlexApiClient on top of a mock transport handler."""

    def _make(handler: Callable, base_url: str = BASE_URL, **kwargs) -> FlexApiClient:
        return FlexApiClient(
            base_url,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make


@pytest.fixture
def client(flex_server: FakeFlexServer, make_client) -> FlexApiClient:
    """FlexApiClient wired to the in-memory Flex server."""
    return make_client(flex_server.handler)


@pytest.fixture
def job_status_json() -> Callable[..., dict]:
    """Builder for JobStatus wire documents."""
    return build_job_status


@pytest.fixture
def flexlet_status_json() -> Callable[..., dict]:
    """Builder for FlexletStatus wire documents."""
    return build_flexlet_status


@pytest.fixture
def stats_json() -> Callable[..., dict]:
    """Builder for Stats wire documents."""
    return build_stats
