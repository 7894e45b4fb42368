"""Index module - fact graph store, builds and queries.

This module provides:
- Extraction: CodeQL extraction queries per language and fact type
- Ingestion: deduplicated, batched loading of decoded rows
- Resolution: natural-key references to foreign keys
- Queries: fuzzy search, callers, call chains, hierarchies, hot spots

Public API is in `factgraph.index.ops`:
- GraphIndex: High-level orchestration
- BuildResult, CorpusInfo, GraphStats: Result types

Internal implementations are in `factgraph.index._internal/`.
"""

from factgraph.index.models import (
    BuildStatus,
    CallEdge,
    CallResolution,
    ClassFact,
    ClassMethod,
    Corpus,
    FactType,
    FunctionFact,
    IndexBuild,
    SchemaMigration,
    VariableFact,
)
from factgraph.index.ops import BuildResult, CorpusInfo, GraphIndex, GraphStats

__all__ = [
    # Models
    "BuildStatus",
    "CallEdge",
    "CallResolution",
    "ClassFact",
    "ClassMethod",
    "Corpus",
    "FactType",
    "FunctionFact",
    "IndexBuild",
    "SchemaMigration",
    "VariableFact",
    # Ops
    "BuildResult",
    "CorpusInfo",
    "GraphIndex",
    "GraphStats",
]
