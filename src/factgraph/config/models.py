"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (FACTGRAPH__SECTION__KEY)
3. Explicit YAML file (--config / load_config(config_path=...))
4. Global YAML (~/.config/factgraph/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    FACTGRAPH__<SECTION>__<KEY>=<VALUE>

Examples:
    FACTGRAPH__LOGGING__LEVEL=DEBUG
    FACTGRAPH__DATABASE__PATH=/var/lib/factgraph/graph.db
    FACTGRAPH__CODEQL__PATH=/opt/codeql/codeql
    FACTGRAPH__LIMITS__SEARCH_DEFAULT=25
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from factgraph.config.constants import (
    CALL_CHAIN_MAX_DEPTH,
    CALLERS_MAX_LIMIT,
    DEFAULT_MAX_PARAMETERS,
    HIERARCHY_MAX_DEPTH,
    SEARCH_MAX_LIMIT,
    SQLITE_MAX_VARIABLES,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_HOME = Path("~/.factgraph").expanduser()


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        FACTGRAPH__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every insert batch.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class DatabaseConfig(BaseModel):
    """Fact store configuration.

    Env vars:
        FACTGRAPH__DATABASE__PATH: SQLite file holding every corpus
        FACTGRAPH__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        FACTGRAPH__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    path: str = Field(
        default=str(DEFAULT_HOME / "graph.db"),
        description="SQLite database file. All corpora share it, scoped by corpus name.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class CodeQLConfig(BaseModel):
    """External analysis tool configuration.

    Env vars:
        FACTGRAPH__CODEQL__PATH: CodeQL binary (default: auto-detected)
        FACTGRAPH__CODEQL__HOME: CODEQL_HOME passed to the tool
        FACTGRAPH__CODEQL__QUERIES_DIR: Root of export/<language>/extract-*.ql
        FACTGRAPH__CODEQL__DATABASES_DIR: Where created tool databases live
        FACTGRAPH__CODEQL__QUERY_TIMEOUT_SEC: Per extraction query timeout
    """

    path: str | None = Field(
        default=None,
        description="CodeQL binary. When unset, common install locations and PATH are searched.",
    )
    home: str = Field(
        default=str(Path("~/codeql-home").expanduser()),
        description="CODEQL_HOME for the tool process.",
    )
    queries_dir: str = Field(
        default=str(DEFAULT_HOME / "queries"),
        description="Root directory of extraction queries (export/<language>/extract-*.ql).",
    )
    databases_dir: str = Field(
        default=str(DEFAULT_HOME / "databases"),
        description="Directory for tool databases created by 'corpus create'.",
    )
    query_timeout_sec: float = Field(
        default=1800.0,
        description="Timeout for one extraction query run or decode.",
    )
    create_timeout_sec: float = Field(
        default=7200.0,
        description="Timeout for creating a tool database from sources.",
    )
    threads: int = Field(
        default=0,
        description="--threads passed to query runs. 0 uses one thread per core.",
    )


class IndexConfig(BaseModel):
    """Graph index build configuration.

    Env vars:
        FACTGRAPH__INDEX__MAX_PARAMETERS: Bound parameters per insert statement
        FACTGRAPH__INDEX__BUILD_LEASE_TIMEOUT_SEC: Age after which a build lease is stale
    """

    max_parameters: int = Field(
        default=DEFAULT_MAX_PARAMETERS,
        description="Bound parameters per multi-row INSERT. Rows per batch are "
        "floor(max_parameters / columns_per_row).",
    )
    build_lease_timeout_sec: float = Field(
        default=4 * 3600.0,
        description="A 'building' lease older than this is treated as abandoned.",
    )

    @field_validator("max_parameters")
    @classmethod
    def validate_max_parameters(cls, v: int) -> int:
        if not (1 <= v <= SQLITE_MAX_VARIABLES):
            raise ValueError(f"max_parameters must be 1-{SQLITE_MAX_VARIABLES}, got {v}")
        return v


class LimitsConfig(BaseModel):
    """Query limit defaults.

    These are DEFAULT values. See constants.py for hard maximums.
    """

    search_default: int = Field(
        default=50,
        le=SEARCH_MAX_LIMIT,
        description="Default fuzzy search results.",
    )
    callers_max: int = Field(
        default=CALLERS_MAX_LIMIT,
        le=CALLERS_MAX_LIMIT,
        description="Call sites returned by a caller lookup.",
    )
    chain_depth_default: int = Field(
        default=5,
        le=CALL_CHAIN_MAX_DEPTH,
        description="Default call-chain search depth.",
    )
    hierarchy_max_depth: int = Field(
        default=HIERARCHY_MAX_DEPTH,
        le=HIERARCHY_MAX_DEPTH,
        description="Ancestor levels walked by a class hierarchy query.",
    )
    hot_spots_top_k: int = Field(
        default=10,
        description="Most-called functions reported by stats.",
    )
    method_preview: int = Field(
        default=5,
        description="Methods shown per class in a rendered hierarchy.",
    )


class FactGraphConfig(BaseModel):
    """Root configuration for factgraph."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    codeql: CodeQLConfig = Field(default_factory=CodeQLConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
