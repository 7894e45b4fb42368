"""Config module exports."""

from factgraph.config.loader import FactGraphSettings, load_config
from factgraph.config.models import (
    CodeQLConfig,
    DatabaseConfig,
    FactGraphConfig,
    IndexConfig,
    LimitsConfig,
    LoggingConfig,
)

__all__ = [
    "load_config",
    "FactGraphConfig",
    "FactGraphSettings",
    "CodeQLConfig",
    "DatabaseConfig",
    "IndexConfig",
    "LimitsConfig",
    "LoggingConfig",
]
