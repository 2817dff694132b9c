"""Validate command: compile the routing file and show its rules."""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from cdc_router.common.config import get_settings, load_router_config
from cdc_router.common.exceptions import ConfigError
from cdc_router.routing.table import RoutingTable

console = Console()


@click.command("validate-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Routing file (default: $ROUTER_CONFIG_PATH or config.yaml)",
)
def validate_config(config_path: Optional[Path]) -> None:
    """
    Check that the routing file loads and every table pattern compiles.

    Rules are listed in priority order.
    """
    config_path = config_path or get_settings().pipeline.config_path

    try:
        router_config = load_router_config(config_path)
        routing_table = RoutingTable.load(router_config.transforms)
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise click.Abort()

    table = Table(title=f"Routing rules ({config_path})")
    table.add_column("#", justify="right")
    table.add_column("Source topic", style="cyan")
    table.add_column("Database")
    table.add_column("Table pattern", style="magenta")
    table.add_column("Destination topic", style="green")

    for index, rule in enumerate(routing_table):
        table.add_row(
            str(index),
            rule.source_topic,
            rule.database,
            rule.table_pattern.pattern,
            rule.destination_topic,
        )

    console.print(table)
    console.print(
        f"Consumer group [cyan]{router_config.kafka.group}[/cyan] on "
        f"{router_config.kafka.bootstrap_servers}, bindings: "
        f"{', '.join(router_config.kafka.bindings)}"
    )

    unbound = routing_table.warn_unbound_topics(router_config.kafka.bindings)
    for topic in unbound:
        console.print(f"[yellow]! Topic {topic} is routed but not consumed[/yellow]")

    console.print(f"[green]✓ {len(routing_table)} rules valid[/green]")
