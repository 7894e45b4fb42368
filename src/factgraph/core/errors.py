"""factgraph error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Index (corpus registry, builds, query preconditions)
- 4xxx: Extraction (external analysis tool)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Index (3xxx)
    INDEX_NOT_BUILT = 3001
    CORPUS_NOT_FOUND = 3002
    CORPUS_EXISTS = 3003
    BUILD_IN_PROGRESS = 3004
    BUILD_FAILED = 3005
    STORE_BUSY = 3006

    # Extraction (4xxx)
    UNSUPPORTED_LANGUAGE = 4001
    CAPABILITY_MISSING = 4002
    TOOL_NOT_FOUND = 4003
    TOOL_FAILED = 4004
    TOOL_TIMEOUT = 4005

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(frozen=True, slots=True)
class FactGraphError(Exception):
    """Base error with structured context for callers and the CLI."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'INDEX_NOT_BUILT')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(FactGraphError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class IndexStateError(FactGraphError):
    """Corpus registry and index build errors."""

    @classmethod
    def not_built(cls, corpus: str) -> "IndexNotBuiltError":
        return IndexNotBuiltError(
            code=ErrorCode.INDEX_NOT_BUILT,
            message=f"Graph index not built for '{corpus}'. Run: factgraph build {corpus}",
            details={"corpus": corpus},
        )

    @classmethod
    def corpus_not_found(cls, corpus: str) -> "IndexStateError":
        return cls(
            code=ErrorCode.CORPUS_NOT_FOUND,
            message=f"Corpus '{corpus}' not found",
            details={"corpus": corpus},
        )

    @classmethod
    def corpus_exists(cls, corpus: str, database_path: str) -> "IndexStateError":
        return cls(
            code=ErrorCode.CORPUS_EXISTS,
            message=(
                f"Corpus '{corpus}' already exists at {database_path}. "
                "Delete it first to recreate."
            ),
            details={"corpus": corpus, "database_path": database_path},
        )

    @classmethod
    def build_in_progress(cls, corpus: str, started_at: float | None) -> "BuildInProgressError":
        return BuildInProgressError(
            code=ErrorCode.BUILD_IN_PROGRESS,
            message=f"Another build of '{corpus}' is in progress",
            retryable=True,
            details={"corpus": corpus, "started_at": started_at},
        )

    @classmethod
    def build_failed(cls, corpus: str, reason: str) -> "IndexStateError":
        return cls(
            code=ErrorCode.BUILD_FAILED,
            message=f"Failed to build graph index for '{corpus}': {reason}",
            details={"corpus": corpus, "reason": reason},
        )

    @classmethod
    def store_busy(cls, operation: str) -> "IndexStateError":
        return cls(
            code=ErrorCode.STORE_BUSY,
            message=(
                f"Fact store is locked by another writer during {operation}. "
                "Builds of different corpora share the store; retry when it finishes."
            ),
            retryable=True,
            details={"operation": operation},
        )


class IndexNotBuiltError(IndexStateError):
    """Query issued against a corpus whose graph index has not been built."""


class BuildInProgressError(IndexStateError):
    """Another process holds the build lease for the corpus."""


class ExtractionError(FactGraphError):
    """Errors raised while driving the external analysis tool."""

    @classmethod
    def unsupported_language(cls, language: str) -> "ExtractionError":
        return cls(
            code=ErrorCode.UNSUPPORTED_LANGUAGE,
            message=f"Unsupported language for graph indexing: {language}",
            details={"language": language},
        )

    @classmethod
    def capability_missing(
        cls, fact_type: str, language: str, query_path: str
    ) -> "ExtractionError":
        return cls(
            code=ErrorCode.CAPABILITY_MISSING,
            message=(
                f"Required extraction query for '{fact_type}' not found: {query_path}. "
                f"Graph indexing for {language} requires it."
            ),
            details={"fact_type": fact_type, "language": language, "query_path": query_path},
        )

    @classmethod
    def tool_not_found(cls, tool_path: str) -> "ExtractionError":
        return cls(
            code=ErrorCode.TOOL_NOT_FOUND,
            message=f"CodeQL binary not found: {tool_path}",
            details={"tool_path": tool_path},
        )

    @classmethod
    def tool_failed(cls, command: str, returncode: int, stderr: str) -> "ExtractionError":
        return cls(
            code=ErrorCode.TOOL_FAILED,
            message=f"Command failed with exit code {returncode}: {command}",
            details={"command": command, "returncode": returncode, "stderr": stderr},
        )

    @classmethod
    def tool_timeout(cls, command: str, timeout_sec: float) -> "ExtractionError":
        return cls(
            code=ErrorCode.TOOL_TIMEOUT,
            message=f"Command timed out after {timeout_sec}s: {command}",
            retryable=True,
            details={"command": command, "timeout_sec": timeout_sec},
        )


class InternalError(FactGraphError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
