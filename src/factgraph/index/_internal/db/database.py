"""Database engine and bulk writer for the fact store.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- BulkWriter: Batched multi-row inserts and set-based updates over Core SQL
- Session utilities for ORM and serializable transactions
- Retry logic for SQLite busy timeout handling

The hybrid pattern:
- Use ORM sessions for low-volume operations (corpora, migrations, queries)
- Use BulkWriter for high-volume operations (fact ingestion, resolution)
- Use immediate_transaction for build leases (prevents races)

Every connection gets two SQL functions: ``similarity(a, b)`` for trigram
fuzzy search and ``derive_callee_name(ref)`` for deriving a call edge's fallback
name from its callee reference.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from factgraph.config.constants import SQLITE_MAX_VARIABLES
from factgraph.core.errors import IndexStateError
from factgraph.index._internal.db.trigram import similarity
from factgraph.index._internal.indexing.parsing import derive_callee_name

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_BUSY_TIMEOUT_MS = 30000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max


def is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


def rows_per_batch(columns_per_row: int, max_parameters: int) -> int:
    """Rows per multi-row INSERT so one statement stays under the parameter ceiling.

    ``max_parameters`` is clamped to SQLite's hard limit. At least one row is
    always returned.
    """
    ceiling = min(max_parameters, SQLITE_MAX_VARIABLES)
    return max(1, ceiling // max(1, columns_per_row))


class Database:
    """SQLite connection manager with WAL mode for concurrent access.

    Includes retry logic with exponential backoff for handling
    SQLite busy timeouts during concurrent writes.
    """

    def __init__(
        self,
        db_path: Path,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        self.db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _make_connect_listener(self._busy_timeout_ms))
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        SQLModel.metadata.create_all(self.engine)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for low-volume operations."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def read_snapshot(self) -> Generator[Connection, None, None]:
        """Connection inside one read transaction.

        Every statement sees the same committed state, so a query spanning
        several statements never observes a rebuild half-way. The
        transaction is rolled back when the connection returns to the pool.
        """
        with self.engine.connect() as conn:
            conn.exec_driver_sql("BEGIN")
            yield conn

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        Includes retry logic with exponential backoff for handling
        SQLite busy timeouts.

        Use for build lease updates to prevent two builders of one corpus.
        BEGIN IMMEDIATE acquires a RESERVED lock immediately,
        blocking other writers but allowing readers.

        The session auto-commits on successful exit and rolls back
        on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = max_retries if max_retries is not None else self._max_retries

        for attempt in range(retries + 1):  # +1 for initial attempt
            session = Session(self.engine)
            try:
                session.execute(text("BEGIN IMMEDIATE"))
            except OperationalError as e:
                session.close()
                if not is_database_locked_error(e):
                    raise
                if attempt >= retries:
                    raise IndexStateError.store_busy("BEGIN IMMEDIATE") from e
                delay = min(
                    self._retry_base_delay * (2**attempt),
                    self._retry_max_delay,
                )
                logger.warning(
                    "sqlite_busy_retry",
                    attempt=attempt + 1,
                    max_retries=retries,
                    delay_sec=delay,
                )
                time.sleep(delay)
                continue

            # Only acquiring the lock is retried; the body runs exactly once
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            return

    @contextmanager
    def bulk_writer(self) -> Generator[BulkWriter, None, None]:
        """
        Bulk writer for high-volume inserts.

        Auto-commits on successful exit, rolls back on exception.
        """
        writer = BulkWriter(self.engine)
        try:
            yield writer
            writer.commit()
        except Exception:
            writer.rollback()
            raise
        finally:
            writer.close()

    def checkpoint(self, mode: str = "PASSIVE") -> None:
        """Run WAL checkpoint.

        Args:
            mode: PASSIVE (default), FULL, RESTART, or TRUNCATE
        """
        valid_modes = {"PASSIVE", "FULL", "RESTART", "TRUNCATE"}
        if mode.upper() not in valid_modes:
            raise ValueError(f"Invalid checkpoint mode: {mode}. Must be one of {valid_modes}")

        with self.engine.connect() as conn:
            conn.execute(text(f"PRAGMA wal_checkpoint({mode.upper()})"))
            logger.debug("wal_checkpoint_completed", mode=mode)


def _make_connect_listener(busy_timeout_ms: int) -> Callable[[Any, Any], None]:
    def _configure_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
        """Configure SQLite for concurrent access and register SQL functions."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA cache_size=-64000")  # 64MB cache
        cursor.close()
        dbapi_conn.create_function("similarity", 2, similarity, deterministic=True)
        dbapi_conn.create_function("derive_callee_name", 1, derive_callee_name, deterministic=True)

    return _configure_pragmas


class BulkWriter:
    """High-performance bulk writes using Core SQL, bypassing ORM overhead."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.conn = engine.connect()
        self.transaction = self.conn.begin()

    def insert_many(self, model_class: type[SQLModel], records: list[dict[str, Any]]) -> int:
        """Bulk insert records into table, returning count inserted."""
        if not records:
            return 0

        table = model_class.__table__  # type: ignore[attr-defined]
        self.conn.execute(table.insert(), records)
        return len(records)

    def insert_batched(
        self,
        model_class: type[SQLModel],
        records: list[dict[str, Any]],
        max_parameters: int,
    ) -> int:
        """Insert records as multi-row INSERT statements under a parameter ceiling.

        Every record must carry the same keys. Each statement binds at most
        ``rows_per_batch(len(keys), max_parameters)`` rows.

        Returns:
            Number of rows inserted
        """
        if not records:
            return 0

        table = model_class.__table__  # type: ignore[attr-defined]
        batch_size = rows_per_batch(len(records[0]), max_parameters)
        inserted = 0
        for start in range(0, len(records), batch_size):
            batch = records[start : start + batch_size]
            self.conn.execute(table.insert().values(batch))
            inserted += len(batch)
            logger.debug("insert_batch", table=table.name, rows=len(batch), total=inserted)
        return inserted

    def delete_where(
        self,
        model_class: type[SQLModel],
        condition: str,
        params: dict[str, Any],
    ) -> int:
        """Bulk delete rows matching condition, returning count affected."""
        table = model_class.__table__  # type: ignore[attr-defined]
        sql = f"DELETE FROM {table.name} WHERE {condition}"
        result = self.conn.execute(text(sql), params)
        return int(result.rowcount)

    def update_where(
        self,
        model_class: type[SQLModel],
        updates: dict[str, Any],
        condition: str,
        params: dict[str, Any],
    ) -> int:
        """
        Bulk update with condition.

        Returns:
            Number of rows affected
        """
        table = model_class.__table__  # type: ignore[attr-defined]
        set_clause = ", ".join(f"{k} = :upd_{k}" for k in updates)
        sql = f"UPDATE {table.name} SET {set_clause} WHERE {condition}"
        update_params = {f"upd_{k}": v for k, v in updates.items()}
        result = self.conn.execute(text(sql), {**update_params, **params})
        return int(result.rowcount)

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a set-based statement inside the writer's transaction.

        Returns:
            Number of rows affected
        """
        result = self.conn.execute(text(sql), params or {})
        return int(result.rowcount)

    def commit(self) -> None:
        """Commit the current transaction."""
        self.transaction.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.transaction.rollback()

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()
