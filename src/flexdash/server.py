"""HTTP server exposing Flex metrics to Prometheus."""

import asyncio
import contextlib
import logging
import os
import pathlib
from typing import Literal

import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, flexapi
from .collectors import flexlets, stats

CONFIG_ENV_VAR = "FLEXDASH_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "/config.json"
logger = structlog.get_logger(__name__)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["logfmt", "json"]


class ExporterConfig(pydantic.BaseModel):
    """Configuration for the Flex exporter.

    The exporter is an ASGI app; the listening address belongs to the ASGI
    server that runs it.
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    flex_url: str = pydantic.Field(description="Base URL of the Flex API", min_length=1)
    flex_timeout: float | None = pydantic.Field(
        None,
        description="Request timeout in seconds, no timeout when unset",
        gt=0,
    )
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
        pattern=r"^/",
    )
    poll_limit: float = pydantic.Field(
        30.0,
        description="Minimum seconds between cache refreshes",
        gt=0,
    )
    log_level: LogLevel = pydantic.Field("INFO", description="Logging level")
    log_format: LogFormat = pydantic.Field("logfmt", description="Log line renderer")

    @pydantic.field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


def configure_logging(level: LogLevel = "INFO", fmt: LogFormat = "logfmt") -> None:
    """Route structlog output to stdout as logfmt or JSON lines.

    Events below ``level`` are dropped before any processor runs.
    """
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.LogfmtRenderer(
            key_order=("timestamp", "level", "msg"),
        )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def resolve_config_path(config_path: str | None = None) -> pathlib.Path:
    """Pick the explicit path, then $FLEXDASH_CONFIG_PATH, then the default."""
    return pathlib.Path(
        config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH,
    )


def load_config(config_path: str | os.PathLike[str]) -> ExporterConfig:
    """Read and validate an exporter config JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the file is not valid JSON or a field
            is missing or out of range.
    """
    path = pathlib.Path(config_path)
    if not path.is_file():
        msg = f"Configuration file not found: {path}"
        raise FileNotFoundError(msg)
    return ExporterConfig.model_validate_json(path.read_bytes())


def create_collectors(
    client: flexapi.FlexApiClient,
    poll_limit: float,
) -> list[collector.FlexCollector]:
    """Create the stats and flexlet collectors bound to one API client."""
    description = f"Flex API {client.base_url}"
    return [
        collector.FlexCollector(
            fetcher=lambda: stats.fetch(client),
            generator=stats.generate_metrics,
            metric_prefix="stats",
            poll_limit=poll_limit,
            scraper_description=description,
        ),
        collector.FlexCollector(
            fetcher=lambda: flexlets.fetch(client),
            generator=flexlets.generate_metrics,
            metric_prefix="flexlet",
            poll_limit=poll_limit,
            scraper_description=description,
        ),
    ]


def create_registry(
    collectors: list[collector.FlexCollector],
) -> prometheus_client.core.CollectorRegistry:
    """Register collectors on a custom (non-global) registry."""
    registry = prometheus_client.core.CollectorRegistry()
    for c in collectors:
        registry.register(c)
    return registry


def create_starlette_app(
    metrics_path: str,
    collectors: list[collector.FlexCollector],
    client: flexapi.FlexApiClient | None = None,
) -> starlette.applications.Starlette:
    """Create a Starlette application serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        collectors: Collectors to refresh and render on each scrape.
        client: API client to close on shutdown, if owned by the app.

    Returns:
        Configured Starlette application.
    """
    registry = create_registry(collectors)

    async def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        await asyncio.gather(*(c.refresh() for c in collectors))
        metrics_output = prometheus_client.generate_latest(registry)
        logger.info(
            "HTTP request",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    @contextlib.asynccontextmanager
    async def lifespan(app: starlette.applications.Starlette):
        yield
        if client is not None:
            await client.aclose()

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes, lifespan=lifespan)


def create_exporter(config: ExporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config."""
    client = flexapi.FlexApiClient(
        base_url=config.flex_url,
        timeout=config.flex_timeout,
    )
    logger.info("Created Flex API client", base_url=config.flex_url)

    collectors = create_collectors(client, poll_limit=config.poll_limit)
    return create_starlette_app(
        metrics_path=config.metrics_path,
        collectors=collectors,
        client=client,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """ASGI factory for ``uvicorn --factory flexdash.server:create_app``."""
    path = resolve_config_path(config_path)
    config = load_config(path)
    configure_logging(config.log_level, config.log_format)
    logger.info(
        "Loaded exporter config",
        path=str(path),
        flex_url=config.flex_url,
        metrics_path=config.metrics_path,
    )
    return create_exporter(config)
