"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages, and
provides the extraction double shared by index and CLI tests.
"""

import csv
import io
import os
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local factgraph package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of factgraph modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("factgraph"):
        del sys.modules[module_name]

from factgraph.index._internal.extraction import FACT_SPECS, ExtractionResult  # noqa: E402
from factgraph.index.models import Corpus, FactType  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_config(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Keep the user's global config and FACTGRAPH__ env vars out of tests."""
    import factgraph.config.loader as loader

    fake_home = tmp_path_factory.mktemp("config_home")
    monkeypatch.setattr(loader, "GLOBAL_CONFIG_PATH", fake_home / "config.yaml")
    for key in list(os.environ):
        if key.upper().startswith("FACTGRAPH__"):
            monkeypatch.delenv(key, raising=False)


# Header names as emitted by the extraction queries
HEADERS: dict[FactType, list[str]] = {
    FactType.FUNCTIONS: ["id", "name", "file", "line", "num_params", "signature"],
    FactType.CALLS: ["caller", "callee", "file", "line"],
    FactType.CLASSES: ["id", "name", "file", "line", "parent"],
    FactType.METHODS: ["class", "method", "method_name"],
    FactType.VARIABLES: ["name", "file", "line", "scope", "type"],
}


def make_csv(fact_type: FactType, rows: Iterable[Sequence[Any]]) -> str:
    """Render rows the way ``codeql bqrs decode --format=csv`` does (header first)."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(HEADERS[fact_type])
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buf.getvalue()


class FakeExtractor:
    """Stands in for CodeQL: serves prepared CSV per corpus and fact type.

    Fact types without prepared rows are reported unavailable, except
    functions, which are served empty.
    """

    def __init__(self, facts: dict[str, dict[FactType, str]] | None = None) -> None:
        self.facts: dict[str, dict[FactType, str]] = facts or {}
        self.calls: list[tuple[str, FactType]] = []
        self.fail_on: FactType | None = None

    def set(self, corpus: str, fact_type: FactType, rows: Iterable[Sequence[Any]]) -> None:
        self.facts.setdefault(corpus, {})[fact_type] = make_csv(fact_type, rows)

    def extract(self, corpus: Corpus, fact_type: FactType) -> ExtractionResult:
        self.calls.append((corpus.name, fact_type))
        if self.fail_on is fact_type:
            raise RuntimeError(f"extraction exploded on {fact_type.value}")
        rows = self.facts.get(corpus.name, {}).get(fact_type)
        if rows is None:
            if FACT_SPECS[fact_type].required:
                return ExtractionResult(fact_type=fact_type, rows=make_csv(fact_type, []))
            return ExtractionResult.unavailable(fact_type)
        return ExtractionResult(fact_type=fact_type, rows=rows)

    def seed_simple_graph(self, corpus: str, prefix: str = "") -> None:
        """A -> B -> C plus Derived(Base) with one method each.

        Keys use the ``<entity>@<file>:<line>`` shape the extraction queries
        emit, so derived callee names equal function names. ``prefix`` goes
        in front of every stored file path; keys stay identical across
        corpora.
        """
        f = f"{prefix}src/app.py"
        a, b, c = "A@src/app.py:1", "B@src/app.py:10", "C@src/app.py:20"
        run, init = "run@src/app.py:40", "init@src/app.py:50"
        base, derived = "Base@src/app.py:30", "Derived@src/app.py:35"
        self.set(
            corpus,
            FactType.FUNCTIONS,
            [
                (a, "A", f, 1, 0, "def A()"),
                (b, "B", f, 10, 1, "def B(x)"),
                (c, "C", f, 20, 2, "def C(x, y)"),
                (run, "run", f, 40, 1, "def run(self)"),
                (init, "init", f, 50, 1, "def init(self)"),
            ],
        )
        self.set(corpus, FactType.CALLS, [(a, b, f, 2), (b, c, f, 11)])
        self.set(
            corpus,
            FactType.CLASSES,
            [
                (base, "Base", f, 30, None),
                (derived, "Derived", f, 35, base),
            ],
        )
        self.set(
            corpus,
            FactType.METHODS,
            [(derived, run, "run"), (base, init, "init")],
        )


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def csv_text() -> Any:
    """Renderer for decoded extraction output."""
    return make_csv
