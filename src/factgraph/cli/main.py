"""factgraph CLI - factgraph command."""

from pathlib import Path

import click

from factgraph.cli.build import build_command
from factgraph.cli.corpus import corpus_group
from factgraph.cli.query import (
    callers_command,
    chain_command,
    find_command,
    hierarchy_command,
    stats_command,
)
from factgraph.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="factgraph")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """factgraph - Code fact graph index and queries over CodeQL databases."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    # Commands report through click; structlog events reach the terminal only with -v
    if verbose:
        configure_logging(level="DEBUG")
    else:
        configure_logging(level="INFO", console_level="WARNING")


cli.add_command(corpus_group, name="corpus")
cli.add_command(build_command, name="build")
cli.add_command(find_command, name="find")
cli.add_command(callers_command, name="callers")
cli.add_command(chain_command, name="chain")
cli.add_command(hierarchy_command, name="hierarchy")
cli.add_command(stats_command, name="stats")


if __name__ == "__main__":
    cli()
