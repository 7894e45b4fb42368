"""Indexing layers: row parsing, ingestion, reference resolution, graph queries."""

from factgraph.index._internal.indexing.graph import (
    CallChain,
    CallerRecord,
    ClassHierarchy,
    FunctionMatch,
    GraphQueries,
    HierarchyEntry,
    HotSpot,
)
from factgraph.index._internal.indexing.ingest import (
    IngestionPipeline,
    IngestResult,
    PreparedFacts,
)
from factgraph.index._internal.indexing.parsing import (
    coerce_int,
    derive_callee_name,
    parse_rows,
)
from factgraph.index._internal.indexing.resolver import (
    ReferenceResolver,
    ResolutionStats,
    resolve_references,
)

__all__ = [
    # Parsing
    "coerce_int",
    "derive_callee_name",
    "parse_rows",
    # Ingestion
    "IngestionPipeline",
    "IngestResult",
    "PreparedFacts",
    # Resolution
    "ReferenceResolver",
    "ResolutionStats",
    "resolve_references",
    # Queries
    "GraphQueries",
    "FunctionMatch",
    "CallerRecord",
    "CallChain",
    "ClassHierarchy",
    "HierarchyEntry",
    "HotSpot",
]
