"""Main CLI entry point for the CDC router."""

import click

from cdc_router import __version__
from cdc_router.cli.commands.resolve import resolve
from cdc_router.cli.commands.run import run
from cdc_router.cli.commands.validate import validate_config


@click.group()
@click.version_option(version=__version__, prog_name="cdc-router")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    CDC Router - forwards Debezium change events between Kafka topics.

    Events are matched against an ordered list of rules keyed by source
    topic, database and a table name regular expression. The first matching
    rule decides the destination topic; delete events are never forwarded.
    """
    ctx.ensure_object(dict)


# Register commands
cli.add_command(run)
cli.add_command(validate_config)
cli.add_command(resolve)


if __name__ == "__main__":
    cli()
