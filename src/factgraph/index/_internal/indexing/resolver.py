"""Reference resolution: textual natural-key references to foreign keys.

Runs after every fact type of a corpus is ingested. Each pass is one
set-based UPDATE scoped to the corpus and restricted to rows whose target id
is still NULL, so running the resolver again updates nothing.

Passes:
- function_calls.caller_id  <- functions by caller_key
- function_calls.callee_id  <- functions by callee_key
- classes.parent_id         <- classes by parent_key
- class_methods.class_id    <- classes by class_key
- class_methods.method_id   <- functions by method_key

References that match nothing stay NULL; call edges keep their
``callee_name`` so name-based queries still find them.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from factgraph.index._internal.db.database import BulkWriter

log = structlog.get_logger()


@dataclass
class ResolutionStats:
    """Rows updated per resolver pass."""

    call_callers: int = 0
    call_callees: int = 0
    class_parents: int = 0
    method_classes: int = 0
    method_functions: int = 0

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class _Pass:
    stat: str
    table: str
    target_column: str
    source_table: str
    key_column: str


_PASSES: tuple[_Pass, ...] = (
    _Pass("call_callers", "function_calls", "caller_id", "functions", "caller_key"),
    _Pass("call_callees", "function_calls", "callee_id", "functions", "callee_key"),
    _Pass("class_parents", "classes", "parent_id", "classes", "parent_key"),
    _Pass("method_classes", "class_methods", "class_id", "classes", "class_key"),
    _Pass("method_functions", "class_methods", "method_id", "functions", "method_key"),
)


def _pass_sql(p: _Pass) -> str:
    match = (
        f"SELECT src.id FROM {p.source_table} AS src "
        f"WHERE src.corpus = {p.table}.corpus AND src.natural_key = {p.table}.{p.key_column}"
    )
    return (
        f"UPDATE {p.table} SET {p.target_column} = ({match} LIMIT 1) "
        f"WHERE {p.table}.corpus = :corpus "
        f"AND {p.table}.{p.target_column} IS NULL "
        f"AND {p.table}.{p.key_column} IS NOT NULL "
        f"AND EXISTS ({match})"
    )


class ReferenceResolver:
    """Links textual references to row ids within one corpus."""

    def __init__(self, writer: BulkWriter) -> None:
        self._writer = writer

    def resolve(self, corpus: str) -> ResolutionStats:
        stats = ResolutionStats()
        for p in _PASSES:
            updated = self._writer.execute(_pass_sql(p), {"corpus": corpus})
            setattr(stats, p.stat, updated)
        log.info("references_resolved", corpus=corpus, **stats.to_dict())
        return stats


def resolve_references(writer: BulkWriter, corpus: str) -> ResolutionStats:
    """Convenience wrapper around ReferenceResolver.resolve()."""
    return ReferenceResolver(writer).resolve(corpus)
