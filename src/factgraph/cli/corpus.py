"""factgraph corpus commands - manage registered analysis databases."""

from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from factgraph.cli.utils import echo_json, handle_errors, open_index
from factgraph.core.formatting import pluralize


def _timestamp(value: float | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
def corpus_group() -> None:
    """Create, register, inspect and delete corpora."""


@corpus_group.command("create")
@click.argument("source_path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-l", "--language", required=True, help="Source language (e.g. python, java)")
@click.option("--name", default=None, help="Corpus name (default: source directory name)")
@click.option("--command", "build_command", default=None, help="Build command for compiled code")
@click.pass_context
@handle_errors
def create_command(
    ctx: click.Context,
    source_path: Path,
    language: str,
    name: str | None,
    build_command: str | None,
) -> None:
    """Create an analysis database from SOURCE_PATH and register it."""
    console = Console(stderr=True)
    with open_index(ctx) as index:
        with console.status(f"Creating database for {source_path}..."):
            corpus = index.create_corpus(source_path, language, name, build_command)
    console.print(f"[green]✓[/green] Created corpus [bold]{corpus.name}[/bold]")
    click.echo(corpus.database_path)


@corpus_group.command("register")
@click.argument("name")
@click.argument("database_path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-l", "--language", required=True, help="Language of the analysis database")
@click.option(
    "--source",
    "source_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Source root the database was created from",
)
@click.pass_context
@handle_errors
def register_command(
    ctx: click.Context,
    name: str,
    database_path: Path,
    language: str,
    source_path: Path | None,
) -> None:
    """Register an existing analysis database at DATABASE_PATH as NAME."""
    with open_index(ctx) as index:
        corpus = index.register_corpus(name, language, database_path, source_path)
    Console(stderr=True).print(f"[green]✓[/green] Registered corpus [bold]{corpus.name}[/bold]")


@corpus_group.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def list_command(ctx: click.Context, as_json: bool) -> None:
    """List registered corpora."""
    with open_index(ctx) as index:
        corpora = index.list_corpora()

    if as_json:
        echo_json(corpora)
        return
    if not corpora:
        click.echo("No corpora registered")
        return

    table = Table(title=pluralize(len(corpora), "corpus", "corpora"))
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Language")
    table.add_column("Built")
    table.add_column("Database")
    for info in corpora:
        built = _timestamp(info.build.completed_at) if info.is_built else "no"
        table.add_row(info.name, info.language, built, info.database_path)
    Console().print(table)


@corpus_group.command("info")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def info_command(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show registry entry, build state and fact counts of NAME."""
    with open_index(ctx) as index:
        info = index.get_corpus_info(name)

    if as_json:
        echo_json(info)
        return

    click.echo(f"Corpus: {info.name}")
    click.echo(f"Language: {info.language}")
    click.echo(f"Database: {info.database_path}")
    if info.source_path:
        click.echo(f"Source: {info.source_path}")
    click.echo(f"Created: {_timestamp(info.created_at)}")
    if info.build is None:
        click.echo("Build: never built")
    else:
        last = _timestamp(info.build.completed_at)
        click.echo(f"Build: {info.build.status} (last complete: {last})")
        if info.build.error:
            click.echo(f"Last error: {info.build.error}")
    for fact_type, count in info.counts.items():
        click.echo(f"  {fact_type}: {count}")


@corpus_group.command("upgrade")
@click.argument("name")
@click.pass_context
@handle_errors
def upgrade_command(ctx: click.Context, name: str) -> None:
    """Upgrade the analysis database of NAME to the installed CodeQL version."""
    console = Console(stderr=True)
    with open_index(ctx) as index:
        with console.status(f"Upgrading {name}..."):
            index.upgrade_corpus(name)
    console.print(f"[green]✓[/green] Upgraded corpus [bold]{name}[/bold]")


@corpus_group.command("delete")
@click.argument("name")
@click.option("--keep-files", is_flag=True, help="Keep the analysis database on disk")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
@handle_errors
def delete_command(ctx: click.Context, name: str, keep_files: bool, yes: bool) -> None:
    """Delete corpus NAME and its graph facts."""
    if not yes:
        click.confirm(f"Delete corpus '{name}'? This cannot be undone.", abort=True)
    with open_index(ctx) as index:
        removed = index.delete_corpus(name, remove_files=not keep_files)
    Console(stderr=True).print(
        f"[green]✓[/green] Deleted corpus [bold]{name}[/bold] "
        f"({pluralize(sum(removed.values()), 'fact')})"
    )
