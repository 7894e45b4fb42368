"""Integration tests for GraphIndex builds and queries.

Extraction is served by FakeExtractor; everything from ingestion to the
query layer runs against a real SQLite store.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy import text

from factgraph.config.models import FactGraphConfig
from factgraph.core.errors import (
    BuildInProgressError,
    ErrorCode,
    ExtractionError,
    IndexNotBuiltError,
    IndexStateError,
)
from factgraph.index._internal.db import acquire_build_lease, get_build_info
from factgraph.index.models import BuildStatus, Corpus, FactType
from factgraph.index.ops import GraphIndex

RegisterCorpus = Callable[..., Corpus]

A_KEY = "A@src/app.py:1"
B_KEY = "B@src/app.py:10"
C_KEY = "C@src/app.py:20"


class TestBuildIndex:
    """Tests for GraphIndex.build_index."""

    def test_build_ingests_and_resolves(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")

        result = graph_index.build_index("app")

        assert result.facts["functions"].inserted == 5
        assert result.facts["calls"].inserted == 2
        assert result.facts["classes"].inserted == 2
        assert result.facts["methods"].inserted == 2
        assert result.unavailable == ["variables"]
        assert result.resolution.call_callees == 2
        assert result.resolution.class_parents == 1
        assert result.cleared_rows == 0

        info = get_build_info(graph_index.db, "app")
        assert info is not None
        assert info.status == BuildStatus.COMPLETE.value
        assert info.stats["facts"]["functions"]["inserted"] == 5

    def test_extracts_every_fact_type_in_order(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("app")
        graph_index.build_index("app")
        assert [ft for _, ft in fake_extractor.calls] == list(FactType)

    def test_duplicate_call_edge_stored_once(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        fake_extractor.set(
            "app",
            FactType.CALLS,
            [(A_KEY, B_KEY, "src/app.py", 2), (A_KEY, B_KEY, "src/app.py", 2)],
        )

        result = graph_index.build_index("app")

        assert result.facts["calls"].inserted == 1
        assert result.facts["calls"].skipped_duplicates == 1
        assert len(graph_index.find_callers("app", "B")) == 1

    def test_resolved_callee_carries_its_name(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        """A resolved edge points at a function named like its stored callee name."""
        # Given
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        fake_extractor.set(
            "app",
            FactType.CALLS,
            [
                (A_KEY, B_KEY, "src/app.py", 2),
                (B_KEY, C_KEY, "src/app.py", 11),
                (C_KEY, "unresolved:log@src/util.py:3", "src/app.py", 21),
            ],
        )

        # When
        graph_index.build_index("app")

        # Then
        with graph_index.db.engine.connect() as conn:
            pairs = conn.execute(
                text(
                    "SELECT fc.callee_name, f.name FROM function_calls fc "
                    "JOIN functions f ON f.id = fc.callee_id "
                    "WHERE fc.corpus = 'app' ORDER BY fc.line"
                )
            ).all()
        assert [tuple(p) for p in pairs] == [("B", "B"), ("C", "C")]
        callers = graph_index.find_callers("app", "log")
        assert [(c.caller_name, c.resolved) for c in callers] == [("C", False)]

    def test_unresolved_edge_followed_by_name(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        """An edge whose key does not resolve still links through its callee name."""
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        fake_extractor.set(
            "app",
            FactType.CALLS,
            [(A_KEY, "unresolved:C@src/app.py:20", "src/app.py", 3)],
        )

        result = graph_index.build_index("app")

        assert result.resolution.call_callees == 0
        assert graph_index.find_call_chain("app", "A", "C").path == ["A", "C"]
        callers = graph_index.find_callers("app", "C")
        assert [(c.caller_name, c.resolved) for c in callers] == [("A", False)]

    def test_unknown_corpus(self, graph_index: GraphIndex) -> None:
        with pytest.raises(IndexStateError) as exc_info:
            graph_index.build_index("missing")
        assert exc_info.value.code == ErrorCode.CORPUS_NOT_FOUND

    def test_unsupported_language(
        self, graph_index: GraphIndex, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("legacy", "cobol")
        with pytest.raises(ExtractionError) as exc_info:
            graph_index.build_index("legacy")
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_LANGUAGE
        assert get_build_info(graph_index.db, "legacy") is None

    def test_concurrent_build_rejected(
        self, graph_index: GraphIndex, register_corpus: RegisterCorpus
    ) -> None:
        """A second builder of the same corpus fails fast with BuildInProgressError."""
        register_corpus("app")
        acquire_build_lease(graph_index.db, "app", timeout_sec=3600)

        with pytest.raises(BuildInProgressError):
            graph_index.build_index("app")

    def test_other_corpus_can_build_meanwhile(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("v1")
        register_corpus("v2")
        fake_extractor.seed_simple_graph("v2")
        acquire_build_lease(graph_index.db, "v1", timeout_sec=3600)

        graph_index.build_index("v2")

        assert graph_index.find_call_chain("v2", "A", "C").found


class TestStoreContention:
    """Builds while another connection holds the store's write lock."""

    @pytest.fixture
    def contender(
        self, graph_index: GraphIndex, temp_dir: Path, fake_extractor
    ) -> Generator[GraphIndex, None, None]:
        """Second GraphIndex over the same store that gives up on locks quickly."""
        config = FactGraphConfig.model_validate(
            {
                "database": {
                    "path": str(temp_dir / "graph.db"),
                    "busy_timeout_ms": 50,
                    "max_retries": 0,
                },
                "codeql": graph_index.config.codeql.model_dump(),
            }
        )
        index = GraphIndex(config, extractor=fake_extractor)
        yield index
        index.close()

    def test_locked_store_reports_store_busy(
        self,
        graph_index: GraphIndex,
        contender: GraphIndex,
        fake_extractor,
        register_corpus: RegisterCorpus,
    ) -> None:
        """Builds of different corpora are serialized at the store, with a typed error."""
        # Given
        register_corpus("a")
        register_corpus("b")
        fake_extractor.seed_simple_graph("b")

        # When
        with graph_index.db.bulk_writer() as writer:
            writer.execute("UPDATE corpora SET language = language WHERE name = 'a'")
            with pytest.raises(IndexStateError) as exc_info:
                contender.build_index("b")

        # Then
        assert exc_info.value.code == ErrorCode.STORE_BUSY
        assert exc_info.value.retryable
        contender.build_index("b")
        assert contender.find_call_chain("b", "A", "C").found


class TestRebuild:
    """Rebuild atomicity and corpus isolation."""

    def test_rebuild_replaces_facts(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        graph_index.build_index("app")

        fake_extractor.set("app", FactType.FUNCTIONS, [("fn:Z", "Z", "z.py", 1, 0, None)])
        fake_extractor.set("app", FactType.CALLS, [])
        fake_extractor.set("app", FactType.CLASSES, [])
        fake_extractor.set("app", FactType.METHODS, [])
        result = graph_index.build_index("app")

        assert result.cleared_rows == 11
        assert graph_index.get_stats("app").counts["functions"] == 1
        assert graph_index.find_function("app", "A") == []

    def test_failed_rebuild_keeps_previous_state(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        """A build that fails part-way leaves the last good build queryable."""
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        graph_index.build_index("app")
        fake_extractor.fail_on = FactType.CLASSES

        with pytest.raises(IndexStateError) as exc_info:
            graph_index.build_index("app")

        assert exc_info.value.code == ErrorCode.BUILD_FAILED
        assert graph_index.find_call_chain("app", "A", "C").path == ["A", "B", "C"]
        info = get_build_info(graph_index.db, "app")
        assert info is not None
        assert info.status == BuildStatus.FAILED.value
        assert "exploded" in (info.error or "")
        assert info.is_built

    def test_failure_during_write_rolls_back(
        self,
        graph_index: GraphIndex,
        fake_extractor,
        register_corpus: RegisterCorpus,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An error after clearing rolls the clear back too."""
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        graph_index.build_index("app")

        def _explode(*_args: object, **_kwargs: object) -> None:
            raise RuntimeError("resolver exploded")

        monkeypatch.setattr(
            "factgraph.index.ops.ReferenceResolver.resolve", _explode, raising=True
        )
        with pytest.raises(IndexStateError):
            graph_index.build_index("app")

        assert graph_index.get_stats("app").counts["functions"] == 5

    def test_failed_first_build_is_not_queryable(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("app")
        fake_extractor.fail_on = FactType.FUNCTIONS

        with pytest.raises(IndexStateError):
            graph_index.build_index("app")

        with pytest.raises(IndexNotBuiltError):
            graph_index.find_function("app", "A")

    def test_corpora_are_isolated(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        """Rebuilding one corpus never touches another with identical keys."""
        register_corpus("v1")
        register_corpus("v2")
        fake_extractor.seed_simple_graph("v1", prefix="v1/")
        fake_extractor.seed_simple_graph("v2", prefix="v2/")
        graph_index.build_index("v1")
        graph_index.build_index("v2")

        fake_extractor.set("v2", FactType.CALLS, [])
        graph_index.build_index("v2")

        assert graph_index.find_call_chain("v1", "A", "C").found
        assert not graph_index.find_call_chain("v2", "A", "C").found
        assert graph_index.find_function("v1", "A")[0].file == "v1/src/app.py"
        assert graph_index.get_stats("v1").counts["calls"] == 2

    def test_edges_resolve_within_own_corpus(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> None:
        register_corpus("v1")
        register_corpus("v2")
        fake_extractor.seed_simple_graph("v1", prefix="v1/")
        fake_extractor.seed_simple_graph("v2", prefix="v2/")
        graph_index.build_index("v1")
        graph_index.build_index("v2")

        with graph_index.db.engine.connect() as conn:
            crossed = conn.execute(
                text(
                    "SELECT COUNT(*) FROM function_calls fc "
                    "JOIN functions f ON f.id = fc.callee_id "
                    "WHERE f.corpus != fc.corpus"
                )
            ).scalar_one()
        assert crossed == 0


class TestQueries:
    """Tests for the query surface of GraphIndex."""

    @pytest.fixture
    def built(
        self, graph_index: GraphIndex, fake_extractor, register_corpus: RegisterCorpus
    ) -> GraphIndex:
        register_corpus("app")
        fake_extractor.seed_simple_graph("app")
        graph_index.build_index("app")
        return graph_index

    def test_not_built(self, graph_index: GraphIndex, register_corpus: RegisterCorpus) -> None:
        register_corpus("app")
        with pytest.raises(IndexNotBuiltError) as exc_info:
            graph_index.find_callers("app", "B")
        assert exc_info.value.code == ErrorCode.INDEX_NOT_BUILT
        assert "factgraph build app" in exc_info.value.message

    def test_unregistered_corpus_not_built(self, graph_index: GraphIndex) -> None:
        with pytest.raises(IndexNotBuiltError):
            graph_index.get_stats("nowhere")

    def test_queryable_while_rebuilding(self, built: GraphIndex) -> None:
        """A held lease does not hide the last completed build."""
        acquire_build_lease(built.db, "app", timeout_sec=3600)
        assert built.find_call_chain("app", "A", "C").found

    def test_find_function(self, built: GraphIndex) -> None:
        matches = built.find_function("app", "A")
        assert matches[0].name == "A"
        assert matches[0].exact
        assert matches[0].signature == "def A()"

    def test_find_callers(self, built: GraphIndex) -> None:
        callers = built.find_callers("app", "C")
        assert [(c.caller_name, c.line) for c in callers] == [("B", 11)]

    def test_call_chain_default_depth(self, built: GraphIndex) -> None:
        chain = built.find_call_chain("app", "A", "C")
        assert chain.max_depth == built.config.limits.chain_depth_default
        assert chain.path == ["A", "B", "C"]

    def test_call_chain_depth_limit(self, built: GraphIndex) -> None:
        assert not built.find_call_chain("app", "A", "C", max_depth=1).found

    def test_class_hierarchy(self, built: GraphIndex) -> None:
        hierarchy = built.get_class_hierarchy("app", "Derived")
        assert [(e.name, e.level, e.methods) for e in hierarchy.entries] == [
            ("Base", 1, ["init"]),
            ("Derived", 0, ["run"]),
        ]

    def test_stats(self, built: GraphIndex) -> None:
        stats = built.get_stats("app")
        assert stats.counts == {
            "functions": 5,
            "calls": 2,
            "classes": 2,
            "methods": 2,
            "variables": 0,
        }
        assert stats.hot_spots == []
        assert stats.build is not None
        assert stats.build.stats["unavailable"] == ["variables"]
