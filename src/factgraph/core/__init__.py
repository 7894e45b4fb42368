"""Core module exports."""

from factgraph.core.errors import (
    BuildInProgressError,
    ConfigError,
    ErrorCode,
    ExtractionError,
    FactGraphError,
    IndexNotBuiltError,
    IndexStateError,
    InternalError,
)
from factgraph.core.logging import (
    clear_operation_id,
    configure_logging,
    get_logger,
    get_operation_id,
    set_operation_id,
)

__all__ = [
    # Errors
    "BuildInProgressError",
    "ConfigError",
    "ErrorCode",
    "ExtractionError",
    "FactGraphError",
    "IndexNotBuiltError",
    "IndexStateError",
    "InternalError",
    # Logging
    "clear_operation_id",
    "configure_logging",
    "get_logger",
    "get_operation_id",
    "set_operation_id",
]
