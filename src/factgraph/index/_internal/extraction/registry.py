"""Static registries for fact extraction.

LANGUAGE_CAPABILITIES maps a corpus language (aliases included) to the
directory of extraction queries for it. FACT_SPECS describes, per fact type,
which query produces it, the decoded column layout, the target table, and
how rows are validated and deduplicated.

Query files live at ``<queries_dir>/export/<query_dir>/<query_file>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlmodel import SQLModel

from factgraph.core.errors import ExtractionError
from factgraph.index.models import (
    CallEdge,
    ClassFact,
    ClassMethod,
    FactType,
    FunctionFact,
    VariableFact,
)

QUERY_ROOT = "export"


@dataclass(frozen=True)
class LanguageCapability:
    """Extraction support for one language."""

    language: str
    query_dir: str
    aliases: tuple[str, ...] = ()

    def query_path(self, queries_dir: Path, fact_type: FactType) -> Path:
        return queries_dir / QUERY_ROOT / self.query_dir / FACT_SPECS[fact_type].query_file


@dataclass(frozen=True)
class FactSpec:
    """Shape and policies of one fact type's rows."""

    fact_type: FactType
    query_file: str
    model: type[SQLModel]
    # Decoded columns in query output order; names are model attributes
    columns: tuple[str, ...]
    required: bool
    dedup_key: tuple[str, ...]
    int_columns: tuple[str, ...] = ()
    # Rows with a null in any of these are malformed
    not_null: tuple[str, ...] = ()

    @property
    def table(self) -> str:
        return self.model.__tablename__  # type: ignore[return-value]


_CAPABILITIES: tuple[LanguageCapability, ...] = (
    LanguageCapability("javascript", "javascript", aliases=("typescript",)),
    LanguageCapability("python", "python"),
    LanguageCapability("java", "java"),
    LanguageCapability("cpp", "cpp", aliases=("c",)),
    LanguageCapability("go", "go"),
    LanguageCapability("csharp", "csharp"),
    LanguageCapability("ruby", "ruby"),
)

LANGUAGE_CAPABILITIES: dict[str, LanguageCapability] = {
    name: cap for cap in _CAPABILITIES for name in (cap.language, *cap.aliases)
}


FACT_SPECS: dict[FactType, FactSpec] = {
    FactType.FUNCTIONS: FactSpec(
        fact_type=FactType.FUNCTIONS,
        query_file="extract-functions.ql",
        model=FunctionFact,
        columns=("natural_key", "name", "file", "line", "param_count", "signature"),
        required=True,
        dedup_key=("natural_key",),
        int_columns=("line", "param_count"),
        not_null=("natural_key", "name", "file", "line"),
    ),
    FactType.CALLS: FactSpec(
        fact_type=FactType.CALLS,
        query_file="extract-calls.ql",
        model=CallEdge,
        columns=("caller_key", "callee_key", "file", "line"),
        required=False,
        dedup_key=("caller_key", "callee_key", "file", "line"),
        int_columns=("line",),
        not_null=("caller_key", "callee_key", "file", "line"),
    ),
    FactType.CLASSES: FactSpec(
        fact_type=FactType.CLASSES,
        query_file="extract-classes.ql",
        model=ClassFact,
        columns=("natural_key", "name", "file", "line", "parent_key"),
        required=False,
        dedup_key=("natural_key",),
        int_columns=("line",),
        not_null=("natural_key", "name", "file", "line"),
    ),
    FactType.METHODS: FactSpec(
        fact_type=FactType.METHODS,
        query_file="extract-methods.ql",
        model=ClassMethod,
        columns=("class_key", "method_key", "method_name"),
        required=False,
        dedup_key=("class_key", "method_key"),
        not_null=("class_key", "method_key"),
    ),
    FactType.VARIABLES: FactSpec(
        fact_type=FactType.VARIABLES,
        query_file="extract-variables.ql",
        model=VariableFact,
        columns=("name", "file", "line", "scope", "var_type"),
        required=False,
        dedup_key=("name", "file", "line"),
        int_columns=("line",),
        not_null=("name", "file", "line"),
    ),
}

# Build order: functions first so every later fact type can reference them
BUILD_ORDER: tuple[FactType, ...] = tuple(FactType)


def get_capability(language: str) -> LanguageCapability:
    """Look up extraction support for ``language`` (case-insensitive).

    Raises:
        ExtractionError: UNSUPPORTED_LANGUAGE
    """
    capability = LANGUAGE_CAPABILITIES.get(language.strip().lower())
    if capability is None:
        raise ExtractionError.unsupported_language(language)
    return capability


def supported_languages() -> list[str]:
    return sorted(LANGUAGE_CAPABILITIES)
