"""factgraph query commands - find, callers, chain, hierarchy, stats."""

from dataclasses import asdict

import click
from rich.console import Console
from rich.table import Table

from factgraph.cli.utils import echo_json, handle_errors, open_index
from factgraph.core.formatting import (
    compress_path,
    format_call_chain,
    format_caller,
    format_hierarchy,
    format_hot_spot,
    format_location,
    pluralize,
)

_json_option = click.option("--json", "as_json", is_flag=True, help="Output as JSON")


@click.command()
@click.argument("corpus")
@click.argument("pattern")
@click.option("-n", "--limit", type=int, default=None, help="Maximum results (max 100)")
@_json_option
@click.pass_context
@handle_errors
def find_command(
    ctx: click.Context, corpus: str, pattern: str, limit: int | None, as_json: bool
) -> None:
    """Fuzzy-search functions by name in CORPUS."""
    with open_index(ctx) as index:
        matches = index.find_function(corpus, pattern, limit)

    if as_json:
        echo_json(matches)
        return
    if not matches:
        click.echo(f"No functions matching '{pattern}'")
        return

    table = Table(title=f"{pluralize(len(matches), 'match', 'matches')} for '{pattern}'")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Location")
    table.add_column("Params", justify="right")
    table.add_column("Score", justify="right")
    for m in matches:
        table.add_row(
            m.name,
            format_location(compress_path(m.file), m.line),
            "" if m.param_count is None else str(m.param_count),
            "exact" if m.exact else f"{m.similarity:.2f}",
        )
    Console().print(table)


@click.command()
@click.argument("corpus")
@click.argument("function_name")
@_json_option
@click.pass_context
@handle_errors
def callers_command(ctx: click.Context, corpus: str, function_name: str, as_json: bool) -> None:
    """List call sites of FUNCTION_NAME in CORPUS."""
    with open_index(ctx) as index:
        callers = index.find_callers(corpus, function_name)

    if as_json:
        echo_json(callers)
        return
    if not callers:
        click.echo(f"No callers of '{function_name}'")
        return

    click.echo(f"{pluralize(len(callers), 'call site')} of {function_name}:")
    for record in callers:
        click.echo(f"  {format_caller(record)}")


@click.command()
@click.argument("corpus")
@click.argument("source")
@click.argument("target")
@click.option("-d", "--max-depth", type=int, default=None, help="Maximum call depth (max 20)")
@_json_option
@click.pass_context
@handle_errors
def chain_command(
    ctx: click.Context,
    corpus: str,
    source: str,
    target: str,
    max_depth: int | None,
    as_json: bool,
) -> None:
    """Find the shortest call chain from SOURCE to TARGET in CORPUS."""
    with open_index(ctx) as index:
        chain = index.find_call_chain(corpus, source, target, max_depth)

    if as_json:
        echo_json({**asdict(chain), "found": chain.found, "depth": chain.depth})
        return
    if not chain.found:
        click.echo(f"No call chain from {source} to {target} within depth {chain.max_depth}")
        if chain.truncated:
            click.echo("Search was cut short at the frontier limit; a path may still exist.")
        return

    click.echo(format_call_chain(chain.path))
    click.echo(f"depth: {chain.depth}")
    if chain.target_file:
        click.echo(f"target: {chain.target_file}")


@click.command()
@click.argument("corpus")
@click.argument("class_name")
@_json_option
@click.pass_context
@handle_errors
def hierarchy_command(ctx: click.Context, corpus: str, class_name: str, as_json: bool) -> None:
    """Show the ancestors of CLASS_NAME in CORPUS, root first."""
    with open_index(ctx) as index:
        hierarchy = index.get_class_hierarchy(corpus, class_name)
        preview = index.config.limits.method_preview

    if as_json:
        echo_json(hierarchy)
        return
    if not hierarchy.found:
        click.echo(f"Class '{class_name}' not found")
        return

    for line in format_hierarchy(hierarchy.entries, preview):
        click.echo(line)


@click.command()
@click.argument("corpus")
@click.option("-k", "--top", "top_k", type=int, default=None, help="Hot spots to show")
@_json_option
@click.pass_context
@handle_errors
def stats_command(ctx: click.Context, corpus: str, top_k: int | None, as_json: bool) -> None:
    """Show fact counts and the most-called functions of CORPUS."""
    with open_index(ctx) as index:
        stats = index.get_stats(corpus, top_k)

    if as_json:
        echo_json(stats)
        return

    click.echo(f"Corpus: {stats.corpus}")
    for fact_type, count in stats.counts.items():
        click.echo(f"  {fact_type}: {count}")
    if stats.build is not None:
        unavailable = stats.build.stats.get("unavailable") or []
        if unavailable:
            click.echo(f"  unavailable: {', '.join(unavailable)}")

    if stats.hot_spots:
        click.echo("Hot spots:")
        for rank, spot in enumerate(stats.hot_spots, start=1):
            click.echo(f"  {format_hot_spot(rank, spot)}")
