"""Flex REST API client.

Provides an async HTTP client that turns typed calls into requests against a
single Flex API base URL and validates JSON responses with Pydantic models.
"""

import time
import urllib.parse
from typing import Any, TypeVar

import httpx
import pydantic
import structlog

from .types import (
    FlexletStatus,
    GetJobResponse,
    GetStatsResponse,
    JobOutputType,
    JobState,
    JobStatus,
    ListFlexletsResponse,
    ListJobsResponse,
    Stats,
)

logger = structlog.get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=pydantic.BaseModel)

# Sentinel for "use the timeout the client was built with".
USE_CLIENT_DEFAULT = httpx.USE_CLIENT_DEFAULT


class FlexApiError(Exception):
    """Base class for errors raised by the Flex API client."""


class ResponseDecodeError(FlexApiError):
    """Raised when a successful response does not match the expected schema."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(f"Failed to decode response from {endpoint}: {reason}")
        self.endpoint = endpoint


def _job_path(job_id: str) -> str:
    """Build the path of a job resource, escaping the ID as one segment.

    Raises:
        ValueError: If job_id is empty or a dot segment.
    """
    if job_id in ("", ".", ".."):
        msg = f"invalid job ID: {job_id!r}"
        raise ValueError(msg)
    return f"/api/jobs/{urllib.parse.quote(job_id, safe='')}"


class FlexApiClient:
    """HTTP client for the Flex REST API.

    Stateless apart from the immutable base URL and the underlying httpx
    connection pool, so one instance can serve any number of concurrent
    tasks. Every method performs exactly one request: there is no retry and
    no caching.

    Decoding methods raise ``httpx.HTTPError`` on transport failures,
    ``httpx.HTTPStatusError`` on non-success status and
    :class:`ResponseDecodeError` on malformed bodies. :meth:`get_job_output`
    returns the raw response whatever its status.

    Can be used as an async context manager for automatic cleanup.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the API client.

        Args:
            base_url: Base URL of the Flex API (e.g., "http://localhost:7111").
                A path prefix is kept, so "http://host/flex" resolves
                "api/jobs" to "http://host/flex/api/jobs".
            headers: Extra headers sent with every request.
            timeout: Default request timeout in seconds. None (the default)
                imposes no timeout.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.

        Raises:
            ValueError: If base_url is empty.
        """
        if not base_url:
            msg = "base_url cannot be empty"
            raise ValueError(msg)

        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json", **(headers or {})},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """Base URL every request is resolved against."""
        return self._base_url

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager and release connections."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if open."""
        if not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(
        self,
        endpoint: str,
        response_type: type[ResponseT],
        params: dict[str, Any] | None = None,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> ResponseT:
        """Make a GET request and validate the JSON body.

        Args:
            endpoint: API endpoint path (e.g., "/api/jobs").
            response_type: Pydantic model describing the response envelope.
            params: Optional query parameters. Only supplied keys are sent.
            timeout: Per-request timeout passed through to httpx.

        Returns:
            Validated response envelope.

        Raises:
            httpx.HTTPError: If the request fails or the status is not 2xx.
            ResponseDecodeError: If the body is not valid JSON or does not
                match response_type.
        """
        start_time = time.monotonic()
        params = params or {}

        try:
            logger.debug(
                "Making API request",
                method="GET",
                endpoint=endpoint,
                params=params,
            )
            response = await self._client.get(endpoint, params=params, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError:
            logger.exception(
                "API request failed",
                endpoint=endpoint,
                duration_seconds=round(time.monotonic() - start_time, 3),
            )
            raise

        logger.debug(
            "API request completed",
            endpoint=endpoint,
            duration_seconds=round(time.monotonic() - start_time, 3),
        )

        try:
            data = response.json()
        except ValueError as e:
            raise ResponseDecodeError(endpoint, f"invalid JSON: {e}") from e

        try:
            return response_type.model_validate(data)
        except pydantic.ValidationError as e:
            logger.error(
                "API response failed validation",
                endpoint=endpoint,
                error_count=e.error_count(),
            )
            raise ResponseDecodeError(endpoint, str(e)) from e

    async def list_jobs(
        self,
        limit: int | None = None,
        before: str | None = None,
        state: JobState | None = None,
        label: str | None = None,
        *,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> list[JobStatus]:
        """List jobs, newest first.

        Parameters left as None are not sent, so the server defaults apply.
        An empty list means there are no (more) jobs to page through.

        Args:
            limit: Page size. Must be positive.
            before: Job ID cursor; only jobs older than this one are returned.
            state: Only return jobs in this state.
            label: Only return jobs carrying this label.
            timeout: Per-request timeout passed through to httpx.

        Returns:
            List of validated JobStatus objects in server order.

        Raises:
            ValueError: If limit is not a positive integer.
            httpx.HTTPError: If the HTTP request fails.
            ResponseDecodeError: If the response is malformed.
        """
        params: dict[str, Any] = {}
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                msg = f"limit must be a positive integer, got {limit!r}"
                raise ValueError(msg)
            params["limit"] = str(limit)
        if before is not None:
            params["before"] = before
        if state is not None:
            params["state"] = JobState(state).value
        if label is not None:
            params["label"] = label

        data = await self._get_json(
            "/api/jobs",
            ListJobsResponse,
            params=params,
            timeout=timeout,
        )
        return list(data.jobs)

    async def get_job(
        self,
        job_id: str,
        *,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> JobStatus:
        """Fetch a single job by ID.

        Raises:
            ValueError: If job_id is empty or a dot segment.
            httpx.HTTPStatusError: If the job does not exist (or any other
                non-success status).
            httpx.HTTPError: If the HTTP request fails.
            ResponseDecodeError: If the response is malformed.
        """
        data = await self._get_json(
            _job_path(job_id),
            GetJobResponse,
            timeout=timeout,
        )
        return data.job

    async def get_job_output(
        self,
        job_id: str,
        output_type: JobOutputType | str,
        *,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        """Open the stdout or stderr stream of a job.

        The response is returned without checking its status and with the
        body unread. Missing output is an expected condition, so callers
        inspect ``response.is_success``, read with ``await response.aread()``
        and release the connection with ``await response.aclose()``.

        Args:
            job_id: Job ID.
            output_type: "stdout" or "stderr".
            timeout: Per-request timeout passed through to httpx.

        Returns:
            Streaming httpx.Response.

        Raises:
            ValueError: If output_type is not stdout or stderr, or job_id
                is invalid.
            httpx.HTTPError: If the HTTP request itself fails.
        """
        output_type = JobOutputType(output_type)
        endpoint = f"{_job_path(job_id)}/{output_type.value}"
        logger.debug("Opening job output", method="GET", endpoint=endpoint)
        request = self._client.build_request("GET", endpoint, timeout=timeout)
        response = await self._client.send(request, stream=True)
        if not response.is_success:
            logger.debug(
                "Job output unavailable",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        return response

    async def list_flexlets(
        self,
        *,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> list[FlexletStatus]:
        """Fetch all flexlets, online and offline."""
        data = await self._get_json(
            "/api/flexlets",
            ListFlexletsResponse,
            timeout=timeout,
        )
        return list(data.flexlets)

    async def get_stats(
        self,
        *,
        timeout: Any = USE_CLIENT_DEFAULT,
    ) -> Stats:
        """Fetch the server's aggregate job and flexlet counters."""
        data = await self._get_json("/api/stats", GetStatsResponse, timeout=timeout)
        return data.stats
