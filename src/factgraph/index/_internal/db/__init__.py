"""Database layer for the fact store."""

from factgraph.index._internal.db.database import (
    BulkWriter,
    Database,
    is_database_locked_error,
    rows_per_batch,
)
from factgraph.index._internal.db.indexes import create_additional_indexes
from factgraph.index._internal.db.leases import (
    BuildInfo,
    BuildLease,
    acquire_build_lease,
    complete_build_lease,
    fail_build_lease,
    get_build_info,
)
from factgraph.index._internal.db.migrations import MIGRATIONS, Migration, apply_migrations
from factgraph.index._internal.db.trigram import similarity, trigrams

__all__ = [
    "Database",
    "BulkWriter",
    "rows_per_batch",
    "is_database_locked_error",
    "create_additional_indexes",
    "BuildInfo",
    "BuildLease",
    "acquire_build_lease",
    "complete_build_lease",
    "fail_build_lease",
    "get_build_info",
    "MIGRATIONS",
    "Migration",
    "apply_migrations",
    "similarity",
    "trigrams",
]
