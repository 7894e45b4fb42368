"""CLI utilities."""

from __future__ import annotations

import functools
import json
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, TypeVar

import click

from factgraph.config.loader import load_config
from factgraph.core.errors import FactGraphError
from factgraph.core.logging import configure_logging
from factgraph.index.ops import GraphIndex

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Turn FactGraphError into a ClickException carrying its message."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except FactGraphError as e:
            raise click.ClickException(e.message) from e

    return wrapper  # type: ignore[return-value]


@contextmanager
def open_index(ctx: click.Context) -> Generator[GraphIndex, None, None]:
    """Open the GraphIndex for this invocation and close it afterwards.

    ``ctx.obj["index_factory"]`` replaces construction (used by tests).
    """
    obj = ctx.find_root().obj or {}
    factory = obj.get("index_factory")
    if factory is not None:
        index = factory()
    else:
        config_path: Path | None = obj.get("config_path")
        config = load_config(config_path)
        if not obj.get("verbose"):
            configure_logging(config=config.logging, console_level="WARNING")
        index = GraphIndex(config)
    try:
        yield index
    finally:
        index.close()


def echo_json(data: Any) -> None:
    """Print dataclasses, lists of them, or plain data as JSON."""
    click.echo(json.dumps(_jsonable(data), indent=2, default=str))


def _jsonable(data: Any) -> Any:
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    if isinstance(data, list):
        return [_jsonable(item) for item in data]
    return data
