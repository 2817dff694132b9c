"""Resolve command: show where an event would be routed."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from cdc_router.common.config import get_settings, load_router_config
from cdc_router.common.exceptions import ConfigError
from cdc_router.routing.table import RoutingTable

console = Console()


@click.command()
@click.argument("source_topic")
@click.argument("database")
@click.argument("table")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Routing file (default: $ROUTER_CONFIG_PATH or config.yaml)",
)
@click.pass_context
def resolve(
    ctx: click.Context,
    source_topic: str,
    database: str,
    table: str,
    config_path: Optional[Path],
) -> None:
    """
    Print the destination topic for SOURCE_TOPIC, DATABASE and TABLE.

    Exits with status 1 when no rule matches.
    """
    config_path = config_path or get_settings().pipeline.config_path

    try:
        routing_table = RoutingTable.load(load_router_config(config_path).transforms)
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise click.Abort()

    destination = routing_table.resolve(source_topic, database, table)
    if destination is None:
        console.print(f"[yellow]No route for {source_topic} {database}.{table}[/yellow]")
        ctx.exit(1)

    console.print(destination)
