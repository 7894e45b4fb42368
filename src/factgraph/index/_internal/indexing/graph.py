"""Graph queries over the fact tables of one corpus.

Supports:
- Fuzzy function search (trigram similarity, exact match first)
- Caller lookup through resolved callee ids or fallback callee names
- Shortest call chain between two function names (bounded BFS)
- Ancestor hierarchy of a class with its methods
- Hot spots: most-called names with caller and unresolved counts

Every query is scoped by corpus. Callers pass a connection opened with
Database.read_snapshot() so multi-statement queries see one consistent state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import bindparam, text

from factgraph.config.constants import (
    CALL_CHAIN_MAX_DEPTH,
    CALL_CHAIN_MAX_STATES,
    CALLERS_MAX_LIMIT,
    HIERARCHY_MAX_DEPTH,
    SEARCH_MAX_LIMIT,
    TRIGRAM_SIMILARITY_THRESHOLD,
)
from factgraph.index.models import FACT_MODELS, CallResolution

if TYPE_CHECKING:
    from sqlalchemy import Connection

log = structlog.get_logger()

# Ids bound per IN (...) clause
ID_CHUNK_SIZE = 500


@dataclass
class FunctionMatch:
    """A fuzzy search hit."""

    id: int
    name: str
    file: str
    line: int
    param_count: int | None
    signature: str | None
    similarity: float
    exact: bool


@dataclass
class CallerRecord:
    """One call site of a function."""

    edge_id: int
    caller_name: str
    caller_key: str
    callee_name: str | None
    file: str
    line: int
    resolved: bool

    @property
    def resolution(self) -> CallResolution:
        return CallResolution.RESOLVED if self.resolved else CallResolution.UNRESOLVED


@dataclass
class CallChain:
    """Result of a call-chain search. ``path`` is empty when no chain was found."""

    source: str
    target: str
    max_depth: int
    path: list[str] = field(default_factory=list)
    target_file: str | None = None
    truncated: bool = False

    @property
    def found(self) -> bool:
        return bool(self.path)

    @property
    def depth(self) -> int:
        return len(self.path) - 1 if self.path else -1


@dataclass
class HierarchyEntry:
    """A class on the ancestor chain. ``level`` 0 is the queried class."""

    id: int
    name: str
    file: str
    line: int
    level: int
    methods: list[str] = field(default_factory=list)


@dataclass
class ClassHierarchy:
    """Ancestors of a class, ordered root first."""

    class_name: str
    entries: list[HierarchyEntry] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.entries)


@dataclass
class HotSpot:
    """A frequently called function name."""

    name: str
    file: str | None
    call_count: int
    caller_count: int
    unresolved_count: int


@dataclass
class _ChainState:
    function_id: int
    path: tuple[str, ...]


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _chunks(ids: list[int], size: int = ID_CHUNK_SIZE) -> list[list[int]]:
    return [ids[i : i + size] for i in range(0, len(ids), size)]


_SEARCH_SQL = text(
    """
    SELECT id, name, file, line, param_count, signature,
           similarity(name, :pattern) AS score,
           name = :pattern AS exact
    FROM functions
    WHERE corpus = :corpus
      AND (name = :pattern OR similarity(name, :pattern) >= :threshold)
    ORDER BY exact DESC, score DESC, name ASC, id ASC
    LIMIT :limit
    """
)

_CALLERS_SQL = text(
    """
    SELECT fc.id AS edge_id,
           COALESCE(caller.name, fc.caller_key) AS caller_name,
           fc.caller_key AS caller_key,
           COALESCE(callee.name, fc.callee_name) AS callee_name,
           fc.file AS file,
           fc.line AS line,
           fc.callee_id IS NOT NULL AS resolved
    FROM function_calls AS fc
    LEFT JOIN functions AS caller ON caller.id = fc.caller_id
    LEFT JOIN functions AS callee ON callee.id = fc.callee_id
    WHERE fc.corpus = :corpus
      AND (callee.name = :name OR fc.callee_name = :name)
    ORDER BY COALESCE(caller.file, fc.file), fc.line, fc.id
    LIMIT :limit
    """
)

_CHAIN_EXPAND_SQL = text(
    """
    SELECT DISTINCT fc.caller_id AS source_id,
           callee.id AS target_id,
           callee.name AS target_name,
           callee.file AS target_file
    FROM function_calls AS fc
    JOIN functions AS callee
      ON callee.corpus = fc.corpus
     AND (callee.id = fc.callee_id OR callee.name = fc.callee_name)
    WHERE fc.corpus = :corpus AND fc.caller_id IN :ids
    ORDER BY target_name, target_id
    """
).bindparams(bindparam("ids", expanding=True))

_CLASS_PARENTS_SQL = text(
    """
    SELECT id, name, file, line, parent_id
    FROM classes
    WHERE corpus = :corpus AND id IN :ids
    """
).bindparams(bindparam("ids", expanding=True))

_CLASS_METHODS_SQL = text(
    """
    SELECT cm.class_id AS class_id,
           COALESCE(cm.method_name, f.name) AS method_name
    FROM class_methods AS cm
    LEFT JOIN functions AS f ON f.id = cm.method_id
    WHERE cm.corpus = :corpus AND cm.class_id IN :ids
    ORDER BY method_name, cm.id
    """
).bindparams(bindparam("ids", expanding=True))

_HOT_SPOTS_SQL = text(
    """
    SELECT COALESCE(callee.name, fc.callee_name) AS name,
           MIN(callee.file) AS file,
           COUNT(*) AS call_count,
           COUNT(DISTINCT fc.caller_key) AS caller_count,
           SUM(CASE WHEN fc.callee_id IS NULL THEN 1 ELSE 0 END) AS unresolved_count
    FROM function_calls AS fc
    LEFT JOIN functions AS callee ON callee.id = fc.callee_id
    WHERE fc.corpus = :corpus
      AND COALESCE(callee.name, fc.callee_name) IS NOT NULL
    GROUP BY COALESCE(callee.name, fc.callee_name)
    HAVING COUNT(*) > 1
    ORDER BY call_count DESC, name ASC
    LIMIT :limit
    """
)


class GraphQueries:
    """
    Read-only graph queries for one store connection.

    Usage::

        with db.read_snapshot() as conn:
            queries = GraphQueries(conn)
            chain = queries.find_call_chain("app-v1", "main", "save", max_depth=5)
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def _rows(self, stmt: Any, **params: Any) -> list[Any]:
        return list(self._conn.execute(stmt, params).mappings())

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def find_functions(self, corpus: str, pattern: str, limit: int) -> list[FunctionMatch]:
        """Fuzzy search by name. An exact match is always included and ranked first."""
        rows = self._rows(
            _SEARCH_SQL,
            corpus=corpus,
            pattern=pattern,
            threshold=TRIGRAM_SIMILARITY_THRESHOLD,
            limit=_clamp(limit, 1, SEARCH_MAX_LIMIT),
        )
        return [
            FunctionMatch(
                id=r["id"],
                name=r["name"],
                file=r["file"],
                line=r["line"],
                param_count=r["param_count"],
                signature=r["signature"],
                similarity=float(r["score"]),
                exact=bool(r["exact"]),
            )
            for r in rows
        ]

    def find_callers(
        self, corpus: str, name: str, limit: int = CALLERS_MAX_LIMIT
    ) -> list[CallerRecord]:
        """Call sites whose callee is ``name``, resolved or not."""
        rows = self._rows(
            _CALLERS_SQL,
            corpus=corpus,
            name=name,
            limit=_clamp(limit, 1, CALLERS_MAX_LIMIT),
        )
        return [
            CallerRecord(
                edge_id=r["edge_id"],
                caller_name=r["caller_name"],
                caller_key=r["caller_key"],
                callee_name=r["callee_name"],
                file=r["file"],
                line=r["line"],
                resolved=bool(r["resolved"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Call chain
    # ------------------------------------------------------------------

    def find_call_chain(self, corpus: str, source: str, target: str, max_depth: int) -> CallChain:
        """Shortest chain of calls from any function named ``source`` to ``target``.

        Breadth-first over partial paths. A path never revisits a function
        name, and no path grows beyond ``max_depth`` edges.
        """
        max_depth = _clamp(max_depth, 0, CALL_CHAIN_MAX_DEPTH)
        result = CallChain(source=source, target=target, max_depth=max_depth)

        starts = self._rows(
            text(
                "SELECT id, name, file FROM functions "
                "WHERE corpus = :corpus AND name = :name ORDER BY id"
            ),
            corpus=corpus,
            name=source,
        )
        if not starts:
            return result
        if source == target:
            result.path = [source]
            result.target_file = starts[0]["file"]
            return result

        frontier = [_ChainState(function_id=r["id"], path=(source,)) for r in starts]
        seen: set[tuple[int, frozenset[str]]] = {
            (s.function_id, frozenset(s.path)) for s in frontier
        }

        for _depth in range(1, max_depth + 1):
            edges = self._expand(corpus, sorted({s.function_id for s in frontier}))
            next_frontier: list[_ChainState] = []

            for state in frontier:
                for edge in edges.get(state.function_id, []):
                    name = edge["target_name"]
                    if name in state.path:
                        continue
                    path = (*state.path, name)
                    if name == target:
                        result.path = list(path)
                        result.target_file = edge["target_file"]
                        return result
                    key = (edge["target_id"], frozenset(path))
                    if key in seen:
                        continue
                    seen.add(key)
                    next_frontier.append(_ChainState(function_id=edge["target_id"], path=path))

            if len(next_frontier) > CALL_CHAIN_MAX_STATES:
                log.warning(
                    "call_chain_frontier_truncated",
                    corpus=corpus,
                    source=source,
                    target=target,
                    states=len(next_frontier),
                )
                next_frontier = next_frontier[:CALL_CHAIN_MAX_STATES]
                result.truncated = True
            if not next_frontier:
                break
            frontier = next_frontier

        return result

    def _expand(self, corpus: str, ids: list[int]) -> dict[int, list[Any]]:
        edges: dict[int, list[Any]] = {}
        for chunk in _chunks(ids):
            for row in self._rows(_CHAIN_EXPAND_SQL, corpus=corpus, ids=chunk):
                edges.setdefault(row["source_id"], []).append(row)
        return edges

    # ------------------------------------------------------------------
    # Class hierarchy
    # ------------------------------------------------------------------

    def get_class_hierarchy(
        self, corpus: str, class_name: str, max_depth: int = HIERARCHY_MAX_DEPTH
    ) -> ClassHierarchy:
        """Walk resolved parent links upward from every class named ``class_name``.

        Stops after ``max_depth`` levels or on a class already visited.
        """
        max_depth = _clamp(max_depth, 0, HIERARCHY_MAX_DEPTH)
        hierarchy = ClassHierarchy(class_name=class_name)

        starts = self._rows(
            text("SELECT id FROM classes WHERE corpus = :corpus AND name = :name ORDER BY id"),
            corpus=corpus,
            name=class_name,
        )
        entries: dict[int, HierarchyEntry] = {}
        level_ids = [r["id"] for r in starts]
        level = 0

        while level_ids:
            parents: list[int] = []
            for chunk in _chunks(level_ids):
                for row in self._rows(_CLASS_PARENTS_SQL, corpus=corpus, ids=chunk):
                    entries[row["id"]] = HierarchyEntry(
                        id=row["id"],
                        name=row["name"],
                        file=row["file"],
                        line=row["line"],
                        level=level,
                    )
                    if row["parent_id"] is not None:
                        parents.append(row["parent_id"])
            if level >= max_depth:
                break
            level += 1
            level_ids = sorted({p for p in parents if p not in entries})

        if not entries:
            return hierarchy

        for chunk in _chunks(sorted(entries)):
            for row in self._rows(_CLASS_METHODS_SQL, corpus=corpus, ids=chunk):
                if row["method_name"]:
                    entries[row["class_id"]].methods.append(row["method_name"])

        hierarchy.entries = sorted(entries.values(), key=lambda e: (-e.level, e.name, e.id))
        return hierarchy

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def count_facts(self, corpus: str) -> dict[str, int]:
        """Row count per fact table for ``corpus``."""
        counts: dict[str, int] = {}
        for fact_type, model in FACT_MODELS.items():
            table = model.__tablename__
            row = self._conn.execute(
                text(f"SELECT COUNT(*) FROM {table} WHERE corpus = :corpus"),
                {"corpus": corpus},
            ).scalar_one()
            counts[fact_type.value] = int(row)
        return counts

    def hot_spots(self, corpus: str, top_k: int) -> list[HotSpot]:
        """Most-called names, resolved and unresolved edges grouped together."""
        rows = self._rows(_HOT_SPOTS_SQL, corpus=corpus, limit=max(1, top_k))
        return [
            HotSpot(
                name=r["name"],
                file=r["file"],
                call_count=int(r["call_count"]),
                caller_count=int(r["caller_count"]),
                unresolved_count=int(r["unresolved_count"] or 0),
            )
            for r in rows
        ]
