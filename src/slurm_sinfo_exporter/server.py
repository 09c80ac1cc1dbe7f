"""HTTP server for the Slurm sinfo Prometheus Exporter."""

import json
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

from . import cache, collector, fetchers, parser, slurmrestapi
from .collectors import nodes

CONFIG_ENV_VAR = "SLURM_EXPORTER_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class ExporterConfig(pydantic.BaseModel):
    """Configuration for the Slurm sinfo Prometheus Exporter."""

    source: Literal["cli", "rest", "file"] = pydantic.Field(
        "cli",
        description="Where the node inventory is read from",
    )
    sinfo_command: list[str] = pydantic.Field(
        default_factory=lambda: list(fetchers.DEFAULT_SINFO_COMMAND),
        description="Command printing the node inventory as JSON",
        min_length=1,
    )
    cli_timeout: float = pydantic.Field(
        fetchers.DEFAULT_CLI_TIMEOUT,
        description="Command timeout in seconds",
        gt=0,
    )
    rest_api_url: str | None = pydantic.Field(
        None,
        description="Base URL for SLURM REST API",
    )
    rest_api_token_file: str | None = pydantic.Field(
        None,
        description="Path to file containing API auth token",
    )
    rest_api_version: str = pydantic.Field(
        slurmrestapi.DEFAULT_API_VERSION,
        description="SLURM REST API version",
    )
    rest_api_timeout: float = pydantic.Field(
        slurmrestapi.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    payload_file: str | None = pydantic.Field(
        None,
        description="Path to a node inventory JSON file",
    )
    port: int = pydantic.Field(9092, description="HTTP server port", gt=0, lt=65536)
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    poll_limit: float = pydantic.Field(
        10.0,
        description="Minimum seconds between fetches from the data source",
        ge=0,
    )
    serve_stale: bool = pydantic.Field(
        False,
        description="Serve the last good payload when a fetch fails",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")

    @pydantic.model_validator(mode="after")
    def _check_source_settings(self) -> "ExporterConfig":
        if self.source == "rest" and not self.rest_api_url:
            msg = "rest_api_url is required when source is 'rest'"
            raise ValueError(msg)
        if self.source == "file" and not self.payload_file:
            msg = "payload_file is required when source is 'file'"
            raise ValueError(msg)
        return self


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> ExporterConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ExporterConfig(**data)


def create_fetcher(config: ExporterConfig) -> tuple[fetchers.Fetcher, str]:
    """Build the fetcher for the configured source.

    Returns:
        Tuple of (fetcher, description) where the description names the
        data source for logging.
    """
    if config.source == "rest":
        rest_client = slurmrestapi.SlurmRestApiClient(
            base_url=config.rest_api_url,
            token_file=config.rest_api_token_file,
            api_version=config.rest_api_version,
            timeout=config.rest_api_timeout,
        )
        return rest_client.get_nodes_payload, f"REST API {rest_client.base_url}"

    if config.source == "file":
        file_fetcher = fetchers.FileFetcher(config.payload_file)
        return file_fetcher, f"file {file_fetcher.path}"

    cli_fetcher = fetchers.CliFetcher(config.sinfo_command, timeout=config.cli_timeout)
    return cli_fetcher, f"command {' '.join(cli_fetcher.command)}"


def create_registry_with_collectors(
    fetcher: fetchers.Fetcher,
    poll_limit: float,
    serve_stale: bool = False,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with SLURM collectors.

    Creates a custom registry (not the global one) and registers the nodes
    collector. The throttled cache is created once here and owned by the
    collector.

    Args:
        fetcher: Zero-argument callable returning the raw node inventory.
        poll_limit: Minimum seconds between fetches from the data source.
        serve_stale: Serve the last good payload when a fetch fails.

    Returns:
        Configured Prometheus registry with injected dependencies.
    """
    # Create a custom registry instead of using the global REGISTRY
    registry = prometheus_client.core.CollectorRegistry()

    nodes_cache = cache.AtomicThrottledCache(
        fetcher,
        limit=poll_limit,
        serve_stale=serve_stale,
    )
    nodes_collector = collector.SlurmCollector(
        cache=nodes_cache,
        parser=parser.parse_nodes,
        generator=nodes.generate_samples,
        descriptors=nodes.DESCRIPTORS,
        metric_prefix="node",
    )
    registry.register(nodes_collector)
    logger.info("Registered collector", collector="nodes", metric_prefix="node")

    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
) -> starlette.applications.Starlette:
    """Create a Starlette application for serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Run a collection cycle and render it in the text exposition format."""
        metrics_output = prometheus_client.generate_latest(registry)
        logger.info(
            "Served node metrics scrape",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_exporter(config: ExporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config."""
    fetcher, source_description = create_fetcher(config)
    logger.info("Created node inventory fetcher", source=source_description)

    registry = create_registry_with_collectors(
        fetcher=fetcher,
        poll_limit=config.poll_limit,
        serve_stale=config.serve_stale,
    )

    return create_starlette_app(
        metrics_path=config.metrics_path,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the exporter ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_exporter(config)
