"""Run command: start the routing pipeline and its HTTP endpoints."""

from pathlib import Path
from typing import Optional

import click
from kafka.errors import KafkaError
from rich.console import Console

from cdc_router.common.config import PipelineConfig, get_settings, load_router_config
from cdc_router.common.exceptions import ConfigError, ConsumerError
from cdc_router.observability.http_server import OperationsServer
from cdc_router.observability.logging_config import get_logger, setup_logging
from cdc_router.observability.metrics import get_metrics_sink
from cdc_router.pipeline.kafka_clients import consumer_factory, create_producer
from cdc_router.pipeline.router import CDCRouterPipeline
from cdc_router.routing.table import RoutingTable

console = Console(stderr=True)
logger = get_logger(__name__)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Routing file (default: $ROUTER_CONFIG_PATH or config.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (default: $LOG_LEVEL or INFO)",
)
@click.option("--http-port", type=int, default=None, help="Port for /version, /metrics and /health")
@click.option("--max-in-flight", type=click.IntRange(min=1), default=None, help="Concurrent publish limit")
@click.option(
    "--commit-policy",
    type=click.Choice(["after_forward", "auto"]),
    default=None,
    help="Commit offsets after forwards complete, or let the consumer auto-commit",
)
@click.option("--publish-timeout", type=float, default=None, help="Publish timeout in seconds")
def run(
    config_path: Optional[Path],
    log_level: Optional[str],
    http_port: Optional[int],
    max_in_flight: Optional[int],
    commit_policy: Optional[str],
    publish_timeout: Optional[float],
) -> None:
    """
    Consume change events and forward them according to the routing file.

    Runs until SIGINT/SIGTERM, then waits for in-flight forwards before exiting.
    """
    settings = get_settings()
    setup_logging(log_level or settings.app.log_level)

    overrides = {
        "config_path": config_path,
        "max_in_flight": max_in_flight,
        "commit_policy": commit_policy,
        "publish_timeout_seconds": publish_timeout,
    }
    pipeline_config = PipelineConfig(
        **{
            **settings.pipeline.model_dump(),
            **{key: value for key, value in overrides.items() if value is not None},
        }
    )

    try:
        router_config = load_router_config(pipeline_config.config_path)
        routing_table = RoutingTable.load(router_config.transforms)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        console.print(f"[red]✗ {e}[/red]")
        raise click.Abort()

    routing_table.warn_unbound_topics(router_config.kafka.bindings)

    try:
        producer = create_producer(router_config.kafka, pipeline_config)
    except KafkaError as e:
        logger.error(f"Unable to create producer: {e}")
        console.print(f"[red]✗ Unable to connect producer: {e}[/red]")
        raise click.Abort()

    metrics = get_metrics_sink()
    pipeline = CDCRouterPipeline(
        routing_table=routing_table,
        consumer_factory=consumer_factory(router_config.kafka, pipeline_config),
        producer=producer,
        metrics=metrics,
        config=pipeline_config,
    )

    server = OperationsServer(metrics, is_running=lambda: pipeline.running, port=http_port)
    server.start()
    logger.info(f"Operational endpoints listening on port {server.port}")

    pipeline.install_signal_handlers()
    try:
        pipeline.run()
    except ConsumerError as e:
        logger.error(f"Consumer failed permanently: {e}")
        console.print(f"[red]✗ {e}[/red]")
        raise click.Abort()
    finally:
        server.stop()
