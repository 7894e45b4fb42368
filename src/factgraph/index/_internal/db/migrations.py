"""Additive schema migrations for existing stores.

Fresh stores get the full schema from Database.create_all(). Stores created
by an older release are brought forward here. Each migration is applied once,
recorded in ``schema_migrations``, and never drops or rewrites existing data:
it adds columns, backfills them and creates indexes.

Migration bodies must be safe on a fresh store too (e.g. skip ADD COLUMN when
create_all already produced the column).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import inspect, text
from sqlmodel import select

from factgraph.index._internal.db.indexes import CALLEE_NAME_INDEX
from factgraph.index.models import SchemaMigration

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from factgraph.index._internal.db.database import Database

log = structlog.get_logger()


@dataclass(frozen=True)
class Migration:
    """One additive schema change."""

    version: int
    name: str
    apply: Callable[[Connection], None]


def _column_names(conn: Connection, table: str) -> set[str]:
    return {col["name"] for col in inspect(conn).get_columns(table)}


def _add_callee_name(conn: Connection) -> None:
    if "callee_name" not in _column_names(conn, "function_calls"):
        conn.execute(text("ALTER TABLE function_calls ADD COLUMN callee_name VARCHAR"))
    backfilled = conn.execute(
        text(
            "UPDATE function_calls SET callee_name = derive_callee_name(callee_key) "
            "WHERE callee_name IS NULL"
        )
    ).rowcount
    conn.execute(text(CALLEE_NAME_INDEX))
    log.info("callee_name_backfilled", rows=backfilled)


MIGRATIONS: list[Migration] = [
    Migration(version=1, name="add_call_edge_callee_name", apply=_add_callee_name),
]


def applied_versions(db: Database) -> set[int]:
    with db.session() as session:
        return set(session.exec(select(SchemaMigration.version)).all())


def apply_migrations(db: Database, migrations: list[Migration] | None = None) -> list[int]:
    """Apply every migration not yet recorded, in version order.

    Each migration and its bookkeeping row commit together.

    Returns:
        Versions applied by this call (empty when the store is current).
    """
    pending = sorted(migrations if migrations is not None else MIGRATIONS, key=lambda m: m.version)
    done = applied_versions(db)
    applied: list[int] = []

    for migration in pending:
        if migration.version in done:
            continue
        with db.engine.begin() as conn:
            migration.apply(conn)
            conn.execute(
                SchemaMigration.__table__.insert().values(  # type: ignore[attr-defined]
                    version=migration.version,
                    name=migration.name,
                    applied_at=time.time(),
                )
            )
        applied.append(migration.version)
        log.info("migration_applied", version=migration.version, name=migration.name)

    return applied
