"""Shared fixtures for index tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from factgraph.index.models import Corpus

if TYPE_CHECKING:
    from factgraph.index._internal.db import BulkWriter, Database
    from factgraph.index.ops import GraphIndex


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[Database, None, None]:
    """Create a temporary database with schema."""
    from factgraph.index._internal.db import (
        Database,
        apply_migrations,
        create_additional_indexes,
    )

    db_path = temp_dir / "test.db"
    db = Database(db_path)
    db.create_all()
    create_additional_indexes(db.engine)
    apply_migrations(db)
    yield db
    db.dispose()


@pytest.fixture
def writer(temp_db: Database) -> Generator[BulkWriter, None, None]:
    """Bulk writer over temp_db, committed on exit."""
    with temp_db.bulk_writer() as w:
        yield w


@pytest.fixture
def graph_index(temp_dir: Path, fake_extractor: Any) -> Generator[GraphIndex, None, None]:
    """GraphIndex over a temp store, extracting through FakeExtractor."""
    from factgraph.config.models import FactGraphConfig
    from factgraph.index.ops import GraphIndex

    config = FactGraphConfig.model_validate(
        {
            "database": {"path": str(temp_dir / "graph.db")},
            "codeql": {
                "queries_dir": str(temp_dir / "queries"),
                "databases_dir": str(temp_dir / "databases"),
            },
        }
    )
    index = GraphIndex(config, extractor=fake_extractor)
    yield index
    index.close()


@pytest.fixture
def register_corpus(graph_index: GraphIndex, temp_dir: Path) -> Callable[..., Corpus]:
    """Register a corpus backed by an empty directory."""

    def _register(name: str, language: str = "python") -> Corpus:
        db_dir = temp_dir / "codeql-dbs" / name
        db_dir.mkdir(parents=True, exist_ok=True)
        return graph_index.register_corpus(name, language, db_dir)

    return _register
