"""High-level orchestration of the fact graph.

This module implements GraphIndex - the entry point for all store operations.
It owns the Database handle and wires the components:

Extraction Driver -> Ingestion Pipeline -> Store -> Reference Resolver -> Queries

Build invariants:
- One builder per corpus at a time (lease row in index_builds)
- Extraction finishes before the store is touched
- Clearing, ingesting, resolving and marking the build complete happen in
  one write transaction, so readers see the old corpus or the new one
- Other corpora are never touched, but their builds queue on the store's single
  write lock; a build that cannot get it fails with STORE_BUSY
"""

from __future__ import annotations

import shutil
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import inspect
from sqlmodel import select

from factgraph.config.models import FactGraphConfig
from factgraph.core.errors import ConfigError, ErrorCode, FactGraphError, IndexStateError
from factgraph.index._internal.db import (
    BuildInfo,
    BuildLease,
    Database,
    acquire_build_lease,
    apply_migrations,
    complete_build_lease,
    create_additional_indexes,
    fail_build_lease,
    get_build_info,
    is_database_locked_error,
)
from factgraph.index._internal.extraction import (
    BUILD_ORDER,
    CodeQLExtractor,
    ExtractionResult,
    FactExtractor,
    get_capability,
)
from factgraph.index._internal.indexing import (
    CallChain,
    CallerRecord,
    ClassHierarchy,
    FunctionMatch,
    GraphQueries,
    HotSpot,
    IngestionPipeline,
    IngestResult,
    ReferenceResolver,
    ResolutionStats,
)
from factgraph.index._internal.tools import CodeQLTool, find_codeql
from factgraph.index.models import CLEAR_ORDER, FACT_MODELS, Corpus, FactType, IndexBuild

if TYPE_CHECKING:
    from factgraph.index._internal.db import BulkWriter

log = structlog.get_logger()


@dataclass
class BuildResult:
    """Outcome of a successful corpus build."""

    corpus: str
    facts: dict[str, IngestResult] = field(default_factory=dict)
    resolution: ResolutionStats = field(default_factory=ResolutionStats)
    cleared_rows: int = 0
    duration_ms: int = 0

    @property
    def unavailable(self) -> list[str]:
        return [name for name, result in self.facts.items() if not result.available]

    def to_dict(self) -> dict[str, Any]:
        return {
            "corpus": self.corpus,
            "facts": {name: result.to_dict() for name, result in self.facts.items()},
            "resolution": self.resolution.to_dict(),
            "unavailable": self.unavailable,
            "cleared_rows": self.cleared_rows,
            "duration_ms": self.duration_ms,
        }


@dataclass
class GraphStats:
    """Row counts, hot spots and last build of a corpus."""

    corpus: str
    counts: dict[str, int]
    hot_spots: list[HotSpot]
    build: BuildInfo | None = None


@dataclass
class CorpusInfo:
    """A registered corpus with its build state."""

    name: str
    language: str
    database_path: str
    source_path: str | None
    build_command: str | None
    managed: bool
    created_at: float
    build: BuildInfo | None = None
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def is_built(self) -> bool:
        return self.build is not None and self.build.is_built


class GraphIndex:
    """
    Entry point for corpus management, index builds and graph queries.

    Usage::

        with GraphIndex(load_config()) as index:
            index.register_corpus("app-v1", "python", Path("/dbs/app-v1"))
            index.build_index("app-v1")
            chain = index.find_call_chain("app-v1", "main", "save")

    The Database handle lives as long as the GraphIndex. Call close() (or
    use it as a context manager) to dispose of pooled connections.
    """

    def __init__(
        self,
        config: FactGraphConfig | None = None,
        *,
        extractor: FactExtractor | None = None,
        tool: CodeQLTool | None = None,
    ) -> None:
        self.config = config or FactGraphConfig()
        db_cfg = self.config.database
        ql_cfg = self.config.codeql

        self.db = Database(
            Path(db_cfg.path).expanduser(),
            busy_timeout_ms=db_cfg.busy_timeout_ms,
            max_retries=db_cfg.max_retries,
            retry_base_delay=db_cfg.retry_base_delay_sec,
        )
        self.db.create_all()
        create_additional_indexes(self.db.engine)
        apply_migrations(self.db)

        self.tool = tool or CodeQLTool(
            find_codeql(ql_cfg.path),
            codeql_home=Path(ql_cfg.home).expanduser(),
            threads=ql_cfg.threads,
        )
        self.extractor: FactExtractor = extractor or CodeQLExtractor(
            self.tool,
            Path(ql_cfg.queries_dir).expanduser(),
            timeout_sec=ql_cfg.query_timeout_sec,
        )
        self.pipeline = IngestionPipeline(max_parameters=self.config.index.max_parameters)

    def close(self) -> None:
        self.db.dispose()

    def __enter__(self) -> GraphIndex:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ==================================================================
    # Corpus registry
    # ==================================================================

    def create_corpus(
        self,
        source_path: Path,
        language: str,
        name: str | None = None,
        command: str | None = None,
    ) -> Corpus:
        """Create a tool database from a source tree and register it.

        The database directory is owned by factgraph and removed again by
        delete_corpus().

        Raises:
            IndexStateError: CORPUS_EXISTS
            ConfigError: source directory missing
            ExtractionError: tool failures
        """
        source = source_path.expanduser().resolve()
        if not source.is_dir():
            raise ConfigError.invalid_value("source_path", str(source), "not a directory")
        corpus_name = name or source.name
        database_path = Path(self.config.codeql.databases_dir).expanduser() / corpus_name

        existing = self._find_corpus(corpus_name)
        if existing is not None:
            raise IndexStateError.corpus_exists(corpus_name, existing.database_path)
        if database_path.exists():
            raise IndexStateError.corpus_exists(corpus_name, str(database_path))

        log.info(
            "corpus_create_start",
            corpus=corpus_name,
            language=language,
            source=str(source),
        )
        database_path.parent.mkdir(parents=True, exist_ok=True)
        self.tool.database_create(
            database_path,
            language,
            source,
            timeout=self.config.codeql.create_timeout_sec,
            command=command,
        )
        corpus = self._insert_corpus(
            Corpus(
                name=corpus_name,
                language=language,
                database_path=str(database_path),
                source_path=str(source),
                build_command=command,
                managed=True,
                created_at=time.time(),
            )
        )
        log.info("corpus_created", corpus=corpus_name, database_path=str(database_path))
        return corpus

    def register_corpus(
        self,
        name: str,
        language: str,
        database_path: Path,
        source_path: Path | None = None,
    ) -> Corpus:
        """Register an existing tool database under ``name``.

        Raises:
            IndexStateError: CORPUS_EXISTS
            ConfigError: database directory missing
        """
        path = database_path.expanduser().resolve()
        if not path.is_dir():
            raise ConfigError.invalid_value("database_path", str(path), "not a directory")
        existing = self._find_corpus(name)
        if existing is not None:
            raise IndexStateError.corpus_exists(name, existing.database_path)

        corpus = self._insert_corpus(
            Corpus(
                name=name,
                language=language,
                database_path=str(path),
                source_path=str(source_path) if source_path else None,
                managed=False,
                created_at=time.time(),
            )
        )
        log.info("corpus_registered", corpus=name, database_path=str(path))
        return corpus

    def list_corpora(self) -> list[CorpusInfo]:
        """Every registered corpus, by name, with its last build."""
        with self.db.session() as session:
            rows = list(session.exec(select(Corpus).order_by(Corpus.name)).all())
        return [self._corpus_info(row) for row in rows]

    def get_corpus_info(self, name: str) -> CorpusInfo:
        """Registry entry, build state and fact counts of one corpus.

        Raises:
            IndexStateError: CORPUS_NOT_FOUND
        """
        info = self._corpus_info(self._require_corpus(name))
        with self.db.read_snapshot() as conn:
            info.counts = GraphQueries(conn).count_facts(name)
        return info

    def upgrade_corpus(self, name: str) -> CorpusInfo:
        """Upgrade the corpus's tool database to the installed tool version."""
        corpus = self._require_corpus(name)
        self.tool.database_upgrade(
            Path(corpus.database_path), timeout=self.config.codeql.create_timeout_sec
        )
        log.info("corpus_upgraded", corpus=name)
        return self._corpus_info(corpus)

    def delete_corpus(self, name: str, *, remove_files: bool = True) -> dict[str, int]:
        """Remove a corpus: its facts, build record and registry entry.

        A managed tool database directory is deleted too unless
        ``remove_files`` is False. Registered (unmanaged) databases are never
        deleted from disk.

        Raises:
            IndexStateError: CORPUS_NOT_FOUND; BUILD_IN_PROGRESS
        """
        corpus = self._require_corpus(name)
        lease = acquire_build_lease(self.db, name, self.config.index.build_lease_timeout_sec)
        try:
            with self.db.bulk_writer() as writer:
                removed = self._clear_corpus(writer, name)
                writer.delete_where(IndexBuild, "corpus = :corpus", {"corpus": name})
                writer.delete_where(Corpus, "name = :name", {"name": name})
        except Exception as e:
            self._fail_lease(lease, f"delete failed: {e}")
            if is_database_locked_error(e):
                raise IndexStateError.store_busy(f"delete of '{name}'") from e
            raise

        db_dir = Path(corpus.database_path)
        if corpus.managed and remove_files and db_dir.exists():
            shutil.rmtree(db_dir)
            log.info("corpus_database_removed", corpus=name, path=str(db_dir))

        log.info("corpus_deleted", corpus=name, rows=sum(removed.values()))
        return removed

    # ==================================================================
    # Build
    # ==================================================================

    def build_index(self, corpus_name: str) -> BuildResult:
        """Extract, ingest and resolve every fact type of a corpus.

        Raises:
            IndexStateError: CORPUS_NOT_FOUND, BUILD_IN_PROGRESS, BUILD_FAILED, STORE_BUSY
            ExtractionError: UNSUPPORTED_LANGUAGE, CAPABILITY_MISSING, tool failures
        """
        corpus = self._require_corpus(corpus_name)
        get_capability(corpus.language)

        start = time.monotonic()
        lease = acquire_build_lease(self.db, corpus_name, self.config.index.build_lease_timeout_sec)
        log.info("build_start", corpus=corpus_name, language=corpus.language)

        try:
            extracted = self._extract_all(corpus)
            result = BuildResult(corpus=corpus_name)

            with self.db.bulk_writer() as writer:
                result.cleared_rows = sum(self._clear_corpus(writer, corpus_name).values())
                for fact_type, extraction in extracted:
                    if not extraction.available:
                        result.facts[fact_type.value] = IngestResult(
                            fact_type=fact_type, available=False
                        )
                        continue
                    prepared = self.pipeline.prepare(corpus_name, fact_type, extraction.rows)
                    result.facts[fact_type.value] = self.pipeline.write(writer, prepared)

                result.resolution = ReferenceResolver(writer).resolve(corpus_name)
                result.duration_ms = int((time.monotonic() - start) * 1000)
                complete_build_lease(writer, lease, result.to_dict())
        except FactGraphError as e:
            self._fail_lease(lease, e.message)
            log.error("build_failed", corpus=corpus_name, error=e.error_name, message=e.message)
            raise
        except Exception as e:
            self._fail_lease(lease, str(e))
            if is_database_locked_error(e):
                log.error("build_failed", corpus=corpus_name, error="STORE_BUSY")
                raise IndexStateError.store_busy(f"build of '{corpus_name}'") from e
            log.exception("build_failed", corpus=corpus_name)
            raise IndexStateError.build_failed(corpus_name, str(e)) from e

        self.db.checkpoint()
        log.info(
            "build_complete",
            corpus=corpus_name,
            duration_ms=result.duration_ms,
            unavailable=result.unavailable,
            **{name: r.inserted for name, r in result.facts.items()},
        )
        return result

    def _extract_all(self, corpus: Corpus) -> list[tuple[FactType, ExtractionResult]]:
        return [(ft, self.extractor.extract(corpus, ft)) for ft in BUILD_ORDER]

    def _clear_corpus(self, writer: BulkWriter, corpus: str) -> dict[str, int]:
        removed: dict[str, int] = {}
        for model in CLEAR_ORDER:
            table = model.__tablename__
            removed[str(table)] = writer.delete_where(model, "corpus = :corpus", {"corpus": corpus})
        return removed

    # ==================================================================
    # Queries
    # ==================================================================

    @contextmanager
    def _queries(self, corpus: str) -> Generator[GraphQueries, None, None]:
        self._ensure_built(corpus)
        with self.db.read_snapshot() as conn:
            yield GraphQueries(conn)

    def _ensure_built(self, corpus: str) -> None:
        inspector = inspect(self.db.engine)
        tables_present = all(
            inspector.has_table(str(model.__tablename__)) for model in FACT_MODELS.values()
        )
        if not tables_present:
            raise IndexStateError.not_built(corpus)
        build = get_build_info(self.db, corpus)
        if build is None or not build.is_built:
            raise IndexStateError.not_built(corpus)

    def find_function(
        self, corpus: str, pattern: str, limit: int | None = None
    ) -> list[FunctionMatch]:
        """Fuzzy function search; an exact name match ranks first."""
        with self._queries(corpus) as q:
            return q.find_functions(corpus, pattern, limit or self.config.limits.search_default)

    def find_callers(self, corpus: str, function_name: str) -> list[CallerRecord]:
        """Call sites of ``function_name``, resolved or matched by callee name."""
        with self._queries(corpus) as q:
            return q.find_callers(corpus, function_name, self.config.limits.callers_max)

    def find_call_chain(
        self, corpus: str, source: str, target: str, max_depth: int | None = None
    ) -> CallChain:
        """Shortest call chain from ``source`` to ``target``."""
        depth = self.config.limits.chain_depth_default if max_depth is None else max_depth
        with self._queries(corpus) as q:
            return q.find_call_chain(corpus, source, target, depth)

    def get_class_hierarchy(self, corpus: str, class_name: str) -> ClassHierarchy:
        """Ancestors of ``class_name``, root first, with their methods."""
        with self._queries(corpus) as q:
            return q.get_class_hierarchy(
                corpus, class_name, self.config.limits.hierarchy_max_depth
            )

    def get_stats(self, corpus: str, top_k: int | None = None) -> GraphStats:
        """Fact counts, hot spots and the last build of a corpus."""
        with self._queries(corpus) as q:
            counts = q.count_facts(corpus)
            hot = q.hot_spots(corpus, top_k or self.config.limits.hot_spots_top_k)
        return GraphStats(
            corpus=corpus,
            counts=counts,
            hot_spots=hot,
            build=get_build_info(self.db, corpus),
        )

    # ==================================================================
    # Helpers
    # ==================================================================

    def _find_corpus(self, name: str) -> Corpus | None:
        with self.db.session() as session:
            return session.exec(select(Corpus).where(Corpus.name == name)).first()

    def _fail_lease(self, lease: BuildLease, reason: str) -> None:
        """Record a failed build; a store still locked leaves the lease to go stale."""
        try:
            fail_build_lease(self.db, lease, reason)
        except IndexStateError as e:
            if e.code != ErrorCode.STORE_BUSY:
                raise
            log.warning("build_lease_release_failed", corpus=lease.corpus, error=e.message)

    def _require_corpus(self, name: str) -> Corpus:
        corpus = self._find_corpus(name)
        if corpus is None:
            raise IndexStateError.corpus_not_found(name)
        return corpus

    def _insert_corpus(self, corpus: Corpus) -> Corpus:
        with self.db.session() as session:
            session.add(corpus)
            session.commit()
            session.refresh(corpus)
            return corpus

    def _corpus_info(self, corpus: Corpus) -> CorpusInfo:
        return CorpusInfo(
            name=corpus.name,
            language=corpus.language,
            database_path=corpus.database_path,
            source_path=corpus.source_path,
            build_command=corpus.build_command,
            managed=corpus.managed,
            created_at=corpus.created_at,
            build=get_build_info(self.db, corpus.name),
        )
