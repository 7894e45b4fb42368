"""Tests for factgraph CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog
from click.testing import CliRunner, Result

from factgraph.cli.main import cli
from factgraph.config.models import FactGraphConfig
from factgraph.index.models import FactType
from factgraph.index.ops import GraphIndex

runner = CliRunner()

Invoke = Callable[..., Result]


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers bound to the runner's swapped streams."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def config(tmp_path: Path) -> FactGraphConfig:
    return FactGraphConfig.model_validate(
        {
            "database": {"path": str(tmp_path / "graph.db")},
            "codeql": {"databases_dir": str(tmp_path / "databases")},
        }
    )


@pytest.fixture
def invoke(config: FactGraphConfig, fake_extractor: Any) -> Invoke:
    """Run the CLI against a fresh GraphIndex per command over a shared store."""

    def factory() -> GraphIndex:
        return GraphIndex(config, extractor=fake_extractor)

    def _invoke(*args: str, input: str | None = None) -> Result:
        return runner.invoke(cli, list(args), obj={"index_factory": factory}, input=input)

    return _invoke


@pytest.fixture
def db_dir(tmp_path: Path) -> Path:
    path = tmp_path / "codeql-dbs" / "app"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def registered(invoke: Invoke, db_dir: Path) -> str:
    result = invoke("corpus", "register", "app", str(db_dir), "-l", "python")
    assert result.exit_code == 0, result.output
    return "app"


@pytest.fixture
def built(invoke: Invoke, registered: str, fake_extractor: Any) -> str:
    fake_extractor.seed_simple_graph(registered)
    result = invoke("build", registered)
    assert result.exit_code == 0, result.output
    return registered


class TestCorpusCommands:
    """Tests for the corpus command group."""

    def test_list_empty(self, invoke: Invoke) -> None:
        result = invoke("corpus", "list")
        assert result.exit_code == 0
        assert "No corpora registered" in result.stdout

    def test_register_then_list_json(self, invoke: Invoke, registered: str, db_dir: Path) -> None:
        result = invoke("corpus", "list", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [c["name"] for c in data] == ["app"]
        assert data[0]["language"] == "python"
        assert data[0]["database_path"] == str(db_dir)
        assert data[0]["build"] is None

    def test_register_duplicate_fails(self, invoke: Invoke, registered: str, db_dir: Path) -> None:
        result = invoke("corpus", "register", "app", str(db_dir), "-l", "python")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_info_unbuilt(self, invoke: Invoke, registered: str) -> None:
        result = invoke("corpus", "info", "app")

        assert result.exit_code == 0
        assert "Corpus: app" in result.stdout
        assert "Build: never built" in result.stdout
        assert "  functions: 0" in result.stdout

    def test_info_built_json(self, invoke: Invoke, built: str) -> None:
        result = invoke("corpus", "info", built, "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["counts"]["functions"] == 5
        assert data["build"]["completed_at"] is not None

    def test_info_unknown(self, invoke: Invoke) -> None:
        result = invoke("corpus", "info", "missing")
        assert result.exit_code == 1
        assert "missing" in result.output

    def test_delete_with_yes(self, invoke: Invoke, built: str, db_dir: Path) -> None:
        result = invoke("corpus", "delete", built, "-y")

        assert result.exit_code == 0
        assert "No corpora registered" in invoke("corpus", "list").stdout
        # Registered databases are never removed from disk
        assert db_dir.is_dir()

    def test_delete_declined(self, invoke: Invoke, registered: str) -> None:
        result = invoke("corpus", "delete", registered, input="n\n")

        assert result.exit_code == 1
        listed = json.loads(invoke("corpus", "list", "--json").stdout)
        assert [c["name"] for c in listed] == ["app"]


class TestBuildCommand:
    """Tests for factgraph build."""

    def test_reports_per_fact_counts(
        self, invoke: Invoke, registered: str, fake_extractor: Any
    ) -> None:
        fake_extractor.seed_simple_graph(registered)

        result = invoke("build", registered)

        assert result.exit_code == 0, result.output
        assert "  functions: 5 rows" in result.stdout
        assert "  calls: 2 rows" in result.stdout
        assert "  variables: unavailable" in result.stdout
        assert "  resolved references: 6" in result.stdout

    def test_json_output(self, invoke: Invoke, registered: str, fake_extractor: Any) -> None:
        fake_extractor.seed_simple_graph(registered)

        result = invoke("build", registered, "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["corpus"] == "app"
        assert data["facts"]["functions"]["inserted"] == 5
        assert data["unavailable"] == ["variables"]

    def test_progress_events_stay_off_the_terminal(
        self, invoke: Invoke, registered: str, fake_extractor: Any
    ) -> None:
        fake_extractor.seed_simple_graph(registered)

        result = invoke("build", registered)

        assert result.exit_code == 0, result.output
        assert "build_start" not in result.stderr
        assert "build_start" not in result.stdout

    def test_verbose_shows_progress_events(
        self, invoke: Invoke, registered: str, fake_extractor: Any
    ) -> None:
        fake_extractor.seed_simple_graph(registered)

        result = invoke("-v", "build", registered)

        assert result.exit_code == 0, result.output
        assert "build_start" in result.stderr

    def test_unknown_corpus(self, invoke: Invoke) -> None:
        result = invoke("build", "missing")
        assert result.exit_code == 1
        assert "Error" in result.output


class TestQueryCommands:
    """Tests for find, callers, chain, hierarchy and stats."""

    def test_query_before_build_fails(self, invoke: Invoke, registered: str) -> None:
        result = invoke("find", registered, "A")

        assert result.exit_code == 1
        assert "factgraph build app" in result.output

    def test_find_json(self, invoke: Invoke, built: str) -> None:
        result = invoke("find", built, "B", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["name"] == "B"
        assert data[0]["exact"] is True

    def test_find_no_match(self, invoke: Invoke, built: str) -> None:
        result = invoke("find", built, "zzzz")
        assert result.exit_code == 0
        assert "No functions matching 'zzzz'" in result.stdout

    def test_callers(self, invoke: Invoke, built: str) -> None:
        result = invoke("callers", built, "B")

        assert result.exit_code == 0
        assert "1 call site of B:" in result.stdout
        assert "A calls B at src/app.py:2" in result.stdout

    def test_callers_none(self, invoke: Invoke, built: str) -> None:
        result = invoke("callers", built, "A")
        assert "No callers of 'A'" in result.stdout

    def test_chain(self, invoke: Invoke, built: str) -> None:
        result = invoke("chain", built, "A", "C")

        assert result.exit_code == 0
        assert "A → B → C" in result.stdout
        assert "depth: 2" in result.stdout

    def test_chain_out_of_reach(self, invoke: Invoke, built: str) -> None:
        result = invoke("chain", built, "A", "C", "-d", "1")

        assert result.exit_code == 0
        assert "No call chain from A to C within depth 1" in result.stdout
        assert "cut short" not in result.stdout

    def test_chain_truncated_search_noted(
        self,
        invoke: Invoke,
        registered: str,
        fake_extractor: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A search cut at the frontier limit says so instead of implying no path."""
        fake_extractor.seed_simple_graph(registered)
        fake_extractor.set(
            registered,
            FactType.CALLS,
            [
                ("A@src/app.py:1", "init@src/app.py:50", "src/app.py", 2),
                ("A@src/app.py:1", "run@src/app.py:40", "src/app.py", 3),
                ("run@src/app.py:40", "C@src/app.py:20", "src/app.py", 41),
            ],
        )
        assert invoke("build", registered).exit_code == 0
        monkeypatch.setattr(
            "factgraph.index._internal.indexing.graph.CALL_CHAIN_MAX_STATES", 1
        )

        result = invoke("chain", registered, "A", "C")

        assert result.exit_code == 0
        assert "No call chain from A to C within depth 5" in result.stdout
        assert "cut short at the frontier limit" in result.stdout

    def test_chain_json(self, invoke: Invoke, built: str) -> None:
        data = json.loads(invoke("chain", built, "A", "B", "--json").stdout)
        assert data["path"] == ["A", "B"]
        assert data["found"] is True
        assert data["depth"] == 1

    def test_hierarchy(self, invoke: Invoke, built: str) -> None:
        result = invoke("hierarchy", built, "Derived")

        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0].startswith("Base (")
        assert lines[0].endswith("[init]")
        assert lines[1].startswith("  Derived (")
        assert lines[1].endswith("[run]")

    def test_hierarchy_unknown_class(self, invoke: Invoke, built: str) -> None:
        result = invoke("hierarchy", built, "Nope")
        assert "Class 'Nope' not found" in result.stdout

    def test_stats(self, invoke: Invoke, built: str) -> None:
        result = invoke("stats", built)

        assert result.exit_code == 0
        assert "Corpus: app" in result.stdout
        assert "  functions: 5" in result.stdout
        assert "  unavailable: variables" in result.stdout

    def test_stats_json(self, invoke: Invoke, built: str) -> None:
        data = json.loads(invoke("stats", built, "--json").stdout)
        assert data["counts"]["calls"] == 2
        assert data["hot_spots"] == []
