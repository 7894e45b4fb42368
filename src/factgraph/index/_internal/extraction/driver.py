"""Extraction driver: run one fact type's query against a corpus.

The driver knows nothing about the store. It returns the decoded CSV text of
a query (header row included) and whether the fact type is available for the
corpus's language at all.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from factgraph.core.errors import ExtractionError
from factgraph.index._internal.extraction.registry import FACT_SPECS, get_capability

if TYPE_CHECKING:
    from factgraph.index._internal.tools.manager import CodeQLTool
    from factgraph.index.models import Corpus, FactType

log = structlog.get_logger()


@dataclass
class ExtractionResult:
    """Decoded rows of one fact type for one corpus."""

    fact_type: FactType
    rows: str
    available: bool = True
    duration_ms: int = 0

    @classmethod
    def unavailable(cls, fact_type: FactType) -> ExtractionResult:
        return cls(fact_type=fact_type, rows="", available=False)


class FactExtractor(Protocol):
    """Anything that can produce decoded rows for a corpus and fact type."""

    def extract(self, corpus: Corpus, fact_type: FactType) -> ExtractionResult: ...


class CodeQLExtractor:
    """Runs extraction queries with the CodeQL CLI.

    For each fact type: ``query run`` into a BQRS file, then ``bqrs decode``
    to CSV. Both temp files live in a scratch directory removed afterwards.
    """

    def __init__(self, tool: CodeQLTool, queries_dir: Path, timeout_sec: float) -> None:
        self.tool = tool
        self.queries_dir = queries_dir
        self.timeout_sec = timeout_sec

    def extract(self, corpus: Corpus, fact_type: FactType) -> ExtractionResult:
        """Run the extraction query for ``fact_type``.

        Raises:
            ExtractionError: UNSUPPORTED_LANGUAGE; CAPABILITY_MISSING when a
                required query file is absent; tool failures.
        """
        capability = get_capability(corpus.language)
        spec = FACT_SPECS[fact_type]
        query = capability.query_path(self.queries_dir, fact_type)

        if not query.is_file():
            if spec.required:
                raise ExtractionError.capability_missing(
                    fact_type.value, corpus.language, str(query)
                )
            log.info(
                "fact_type_unavailable",
                corpus=corpus.name,
                fact_type=fact_type.value,
                query=str(query),
            )
            return ExtractionResult.unavailable(fact_type)

        log.info("extract_start", corpus=corpus.name, fact_type=fact_type.value)
        with tempfile.TemporaryDirectory(prefix="factgraph_") as scratch:
            bqrs_path = Path(scratch) / f"{spec.query_file}.bqrs"
            csv_path = Path(scratch) / f"{spec.query_file}.csv"
            run = self.tool.query_run(
                query, Path(corpus.database_path), bqrs_path, timeout=self.timeout_sec
            )
            decode = self.tool.bqrs_decode(bqrs_path, csv_path, timeout=self.timeout_sec)
            rows = csv_path.read_text(encoding="utf-8") if csv_path.exists() else ""

        duration_ms = run.duration_ms + decode.duration_ms
        log.info(
            "extract_complete",
            corpus=corpus.name,
            fact_type=fact_type.value,
            bytes=len(rows),
            duration_ms=duration_ms,
        )
        return ExtractionResult(fact_type=fact_type, rows=rows, duration_ms=duration_ms)
