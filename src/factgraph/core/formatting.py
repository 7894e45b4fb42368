"""Text rendering for graph query results.

Design principles:
- One fact per line, plain text (CLI adds color on top)
- Hierarchies read root first, indentation grows toward the queried class
- Grammatically correct counts (1 caller vs 2 callers)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from factgraph.index._internal.indexing.graph import (
        CallerRecord,
        HierarchyEntry,
        HotSpot,
    )

CHAIN_SEPARATOR = " → "


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return grammatically correct singular/plural form.

    Examples:
        pluralize(1, "caller") -> "1 caller"
        pluralize(3, "caller") -> "3 callers"
        pluralize(2, "class", "classes") -> "2 classes"
    """
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count} {word}"


def compress_path(path: str, max_len: int = 40) -> str:
    """Compress path to fit within max_len.

    Examples:
        src/app/services/billing/invoice.py -> src/.../invoice.py
        short/path.py -> short/path.py (unchanged)
    """
    if len(path) <= max_len:
        return path

    parts = path.split("/")
    if len(parts) <= 2:
        return path

    compressed = f"{parts[0]}/.../{parts[-1]}"
    if len(compressed) <= max_len:
        return compressed
    return parts[-1]


def format_location(file: str, line: int | None) -> str:
    return f"{file}:{line}" if line is not None else file


def format_method_preview(methods: Sequence[str], limit: int = 5) -> str:
    """Render up to ``limit`` method names; a longer list ends with ``...``.

    Examples:
        ["a", "b"] -> "[a, b]"
        ["a", "b", "c", "d", "e", "f"] with limit 5 -> "[a, b, c, d, e...]"
        [] -> ""
    """
    if not methods:
        return ""
    shown = ", ".join(methods[:limit])
    suffix = "..." if len(methods) > limit else ""
    return f"[{shown}{suffix}]"


def format_hierarchy(entries: Sequence[HierarchyEntry], method_preview: int = 5) -> list[str]:
    """Render a root-to-leaf class chain, one indented line per class.

    The root has no indentation; each step toward the queried class adds
    two spaces.
    """
    if not entries:
        return []
    top = max(entry.level for entry in entries)
    lines: list[str] = []
    for entry in entries:
        indent = "  " * (top - entry.level)
        line = f"{indent}{entry.name} ({format_location(entry.file, entry.line)})"
        preview = format_method_preview(entry.methods, method_preview)
        if preview:
            line = f"{line} {preview}"
        lines.append(line)
    return lines


def format_call_chain(path: Sequence[str]) -> str:
    """Render a call chain path as ``A → B → C``."""
    return CHAIN_SEPARATOR.join(path)


def format_caller(record: CallerRecord) -> str:
    """One line per call site; unresolved callers are flagged."""
    marker = "" if record.resolved else " (unresolved)"
    return (
        f"{record.caller_name}{marker} calls {record.callee_name} "
        f"at {format_location(record.file, record.line)}"
    )


def format_hot_spot(rank: int, spot: HotSpot) -> str:
    location = f" ({compress_path(spot.file)})" if spot.file else ""
    line = (
        f"{rank}. {spot.name}{location}: {pluralize(spot.call_count, 'call')} "
        f"from {pluralize(spot.caller_count, 'caller')}"
    )
    if spot.unresolved_count:
        line += f", {spot.unresolved_count} unresolved"
    return line
