"""Ingestion pipeline: decoded rows to fact table inserts.

Per fact type:
1. Parse CSV rows (header skipped, fields trimmed, empty -> NULL)
2. Drop malformed rows: wrong column count, NULL in a required column,
   non-integer value in an integer column
3. Drop rows whose dedup key was already seen in this run
4. Derive ``callee_name`` for call edges
5. Tag every row with the corpus and insert in multi-row batches

Malformed and duplicate rows are counted, never fatal. Insert failures
propagate and fail the build.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from factgraph.config.constants import DEFAULT_MAX_PARAMETERS
from factgraph.index._internal.extraction.registry import FACT_SPECS, FactSpec
from factgraph.index._internal.indexing.parsing import (
    Row,
    coerce_int,
    derive_callee_name,
    parse_rows,
)
from factgraph.index.models import FactType

if TYPE_CHECKING:
    from factgraph.index._internal.db.database import BulkWriter

log = structlog.get_logger()


@dataclass
class IngestResult:
    """Counts for one fact type of one build."""

    fact_type: FactType
    inserted: int = 0
    skipped_duplicates: int = 0
    malformed: int = 0
    available: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "skipped_duplicates": self.skipped_duplicates,
            "malformed": self.malformed,
            "available": self.available,
        }


@dataclass
class PreparedFacts:
    """Validated, deduplicated records ready to insert."""

    fact_type: FactType
    records: list[dict[str, Any]]
    skipped_duplicates: int = 0
    malformed: int = 0


class IngestionPipeline:
    """Turns decoded rows into batched inserts for one corpus.

    Usage::

        pipeline = IngestionPipeline(max_parameters=8000)
        with db.bulk_writer() as writer:
            result = pipeline.ingest(writer, "app-v1", FactType.FUNCTIONS, csv_text)
    """

    def __init__(self, max_parameters: int = DEFAULT_MAX_PARAMETERS) -> None:
        self.max_parameters = max_parameters

    def prepare(self, corpus: str, fact_type: FactType, text: str) -> PreparedFacts:
        """Parse, validate and deduplicate rows without touching the store."""
        spec = FACT_SPECS[fact_type]
        prepared = PreparedFacts(fact_type=fact_type, records=[])
        seen: set[tuple[Any, ...]] = set()

        for row in parse_rows(text):
            record = _to_record(spec, row)
            if record is None:
                prepared.malformed += 1
                continue

            key = tuple(record[col] for col in spec.dedup_key)
            if key in seen:
                prepared.skipped_duplicates += 1
                log.debug("duplicate_fact_skipped", fact_type=fact_type.value, key=key)
                continue
            seen.add(key)

            record["corpus"] = corpus
            if fact_type is FactType.CALLS:
                record["callee_name"] = derive_callee_name(record["callee_key"])
            prepared.records.append(record)

        if prepared.skipped_duplicates:
            log.warning(
                "duplicate_facts_skipped",
                corpus=corpus,
                fact_type=fact_type.value,
                count=prepared.skipped_duplicates,
            )
        if prepared.malformed:
            log.warning(
                "malformed_rows_dropped",
                corpus=corpus,
                fact_type=fact_type.value,
                count=prepared.malformed,
            )
        return prepared

    def ingest(
        self,
        writer: BulkWriter,
        corpus: str,
        fact_type: FactType,
        text: str,
    ) -> IngestResult:
        """Prepare rows and insert them through ``writer``."""
        return self.write(writer, self.prepare(corpus, fact_type, text))

    def write(self, writer: BulkWriter, prepared: PreparedFacts) -> IngestResult:
        spec = FACT_SPECS[prepared.fact_type]
        inserted = writer.insert_batched(spec.model, prepared.records, self.max_parameters)
        log.info(
            "ingest_complete",
            fact_type=prepared.fact_type.value,
            table=spec.table,
            rows=inserted,
            skipped_duplicates=prepared.skipped_duplicates,
            malformed=prepared.malformed,
        )
        return IngestResult(
            fact_type=prepared.fact_type,
            inserted=inserted,
            skipped_duplicates=prepared.skipped_duplicates,
            malformed=prepared.malformed,
        )


def _to_record(spec: FactSpec, row: Row) -> dict[str, Any] | None:
    """Map a row onto the fact type's columns; None when the row is malformed."""
    if len(row) != len(spec.columns):
        return None

    record: dict[str, Any] = dict(zip(spec.columns, row, strict=True))
    for col in spec.not_null:
        if record[col] is None:
            return None
    for col in spec.int_columns:
        try:
            record[col] = coerce_int(record[col])
        except ValueError:
            return None
    return record
