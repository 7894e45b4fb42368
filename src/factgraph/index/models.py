"""SQLModel definitions for the fact graph.

Single source of truth for all table schemas.

Fact tables (one row per extracted fact, every row tagged with its corpus):
- functions, classes, function_calls, class_methods, variables

Bookkeeping tables:
- corpora: registered analysis databases
- index_builds: one row per corpus; build lease and last build statistics
- schema_migrations: additive migrations applied to this store

Natural keys are the identifiers emitted by the analysis tool. They are unique
per corpus, never globally, so every lookup is scoped by ``corpus``.
"""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class FactType(str, Enum):
    """Category of extracted data, in build order."""

    FUNCTIONS = "functions"
    CALLS = "calls"
    CLASSES = "classes"
    METHODS = "methods"
    VARIABLES = "variables"


class BuildStatus(str, Enum):
    """Lifecycle of a corpus index build."""

    BUILDING = "building"
    COMPLETE = "complete"
    FAILED = "failed"


class CallResolution(str, Enum):
    """Whether a call edge's callee is bound to a concrete function row."""

    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


# ============================================================================
# FACT TABLES
# ============================================================================


class FunctionFact(SQLModel, table=True):
    """A function or method definition."""

    __tablename__ = "functions"
    __table_args__ = (UniqueConstraint("corpus", "natural_key", name="uq_functions_corpus_key"),)

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    natural_key: str
    name: str = Field(index=True)
    file: str
    line: int
    param_count: int | None = None
    signature: str | None = None


class ClassFact(SQLModel, table=True):
    """A class definition with its (possibly unresolved) parent reference."""

    __tablename__ = "classes"
    __table_args__ = (UniqueConstraint("corpus", "natural_key", name="uq_classes_corpus_key"),)

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    natural_key: str
    name: str = Field(index=True)
    file: str
    line: int
    parent_key: str | None = None
    parent_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("classes.id", ondelete="SET NULL"), index=True, nullable=True
        ),
    )


class CallEdge(SQLModel, table=True):
    """Call graph edge. ``callee_name`` is populated even when unresolved."""

    __tablename__ = "function_calls"

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    caller_key: str
    callee_key: str
    caller_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True, nullable=True
        ),
    )
    callee_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True, nullable=True
        ),
    )
    callee_name: str | None = Field(default=None, index=True)
    file: str
    line: int


class ClassMethod(SQLModel, table=True):
    """Membership of a method in a class."""

    __tablename__ = "class_methods"
    __table_args__ = (
        UniqueConstraint("corpus", "class_key", "method_key", name="uq_class_methods_corpus_keys"),
    )

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    class_key: str
    method_key: str
    method_name: str | None = None
    class_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("classes.id", ondelete="CASCADE"), index=True, nullable=True
        ),
    )
    method_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("functions.id", ondelete="CASCADE"), index=True, nullable=True
        ),
    )


class VariableFact(SQLModel, table=True):
    """Global or module-level variable."""

    __tablename__ = "variables"

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(index=True)
    name: str = Field(index=True)
    file: str
    line: int
    scope: str | None = None  # global, module, function
    var_type: str | None = None


# ============================================================================
# BOOKKEEPING TABLES
# ============================================================================


class Corpus(SQLModel, table=True):
    """A registered analysis database (one analyzed codebase snapshot)."""

    __tablename__ = "corpora"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    language: str
    database_path: str
    source_path: str | None = None
    build_command: str | None = None
    managed: bool = Field(default=False)  # database directory created (and owned) by us
    created_at: float


class IndexBuild(SQLModel, table=True):
    """Build lease and statistics of the last build of a corpus."""

    __tablename__ = "index_builds"

    id: int | None = Field(default=None, primary_key=True)
    corpus: str = Field(unique=True, index=True)
    status: str = Field(default=BuildStatus.BUILDING.value)
    lease_token: str | None = None
    started_at: float
    finished_at: float | None = None
    completed_at: float | None = None  # last successful build; survives rebuilds
    stats_json: str | None = None
    error: str | None = None


class SchemaMigration(SQLModel, table=True):
    """Applied additive schema migration."""

    __tablename__ = "schema_migrations"

    version: int = Field(primary_key=True)
    name: str
    applied_at: float


FACT_MODELS: dict[FactType, type[SQLModel]] = {
    FactType.FUNCTIONS: FunctionFact,
    FactType.CALLS: CallEdge,
    FactType.CLASSES: ClassFact,
    FactType.METHODS: ClassMethod,
    FactType.VARIABLES: VariableFact,
}

# Children before parents, so clearing a corpus never trips a foreign key.
CLEAR_ORDER: tuple[type[SQLModel], ...] = (
    ClassMethod,
    CallEdge,
    VariableFact,
    ClassFact,
    FunctionFact,
)
