"""factgraph build command - extract and index a corpus."""

import click
from rich.console import Console

from factgraph.cli.utils import echo_json, handle_errors, open_index
from factgraph.core.formatting import pluralize
from factgraph.core.logging import clear_operation_id, set_operation_id


@click.command()
@click.argument("corpus")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def build_command(ctx: click.Context, corpus: str, as_json: bool) -> None:
    """Build (or rebuild) the graph index of CORPUS.

    Runs every extraction query, then replaces the corpus's facts in one
    transaction. Queries keep answering from the previous build meanwhile.
    """
    console = Console(stderr=True)
    set_operation_id()
    try:
        with open_index(ctx) as index:
            with console.status(f"Building graph index for {corpus}..."):
                result = index.build_index(corpus)
    finally:
        clear_operation_id()

    if as_json:
        echo_json(result.to_dict())
        return

    console.print(f"[green]✓[/green] Built [bold]{corpus}[/bold] in {result.duration_ms} ms")
    for name, facts in result.facts.items():
        if not facts.available:
            click.echo(f"  {name}: unavailable")
            continue
        line = f"  {name}: {pluralize(facts.inserted, 'row')}"
        if facts.skipped_duplicates:
            line += f", {facts.skipped_duplicates} duplicates skipped"
        if facts.malformed:
            line += f", {facts.malformed} malformed"
        click.echo(line)
    click.echo(f"  resolved references: {result.resolution.total}")
