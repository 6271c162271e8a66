"""Flex REST API client package.

Provides an async HTTP client for the Flex job-execution service that
returns validated, immutable resource types. Presentation logic lives in
:mod:`flexdash.views`.

Exports:
    FlexApiClient: Async HTTP client bound to one base URL.
    FlexApiError: Base class of client errors.
    ResponseDecodeError: Raised on malformed API responses.
    types: Module containing Pydantic models for API resources.
"""

from . import types
from .client import FlexApiClient, FlexApiError, ResponseDecodeError

__all__ = [
    "FlexApiClient",
    "FlexApiError",
    "ResponseDecodeError",
    "types",
]
