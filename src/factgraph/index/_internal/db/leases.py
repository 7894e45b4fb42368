"""Per-corpus build leases stored in ``index_builds``.

One row per corpus. A builder takes the lease under BEGIN IMMEDIATE, so two
processes cannot both see the lease as free. The row doubles as the record
of the last build: ``completed_at`` is only set by a successful build and
survives later rebuilds, so readers keep answering from the previous state
while a rebuild is running.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel import select

from factgraph.core.errors import IndexStateError
from factgraph.index.models import BuildStatus, IndexBuild

if TYPE_CHECKING:
    from factgraph.index._internal.db.database import BulkWriter, Database

log = structlog.get_logger()


@dataclass
class BuildLease:
    """Handle for a held build lease."""

    corpus: str
    token: str
    started_at: float


@dataclass
class BuildInfo:
    """Snapshot of a corpus's build row."""

    corpus: str
    status: str
    started_at: float
    finished_at: float | None
    completed_at: float | None
    error: str | None
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def is_built(self) -> bool:
        return self.completed_at is not None


def acquire_build_lease(db: Database, corpus: str, timeout_sec: float) -> BuildLease:
    """Take the build lease for ``corpus``.

    Raises:
        BuildInProgressError: Another builder holds a lease younger than
            ``timeout_sec``.
        IndexStateError: STORE_BUSY when another writer keeps the store locked.
    """
    now = time.time()
    token = uuid.uuid4().hex

    with db.immediate_transaction() as session:
        row = session.exec(select(IndexBuild).where(IndexBuild.corpus == corpus)).first()
        if row is None:
            row = IndexBuild(corpus=corpus, started_at=now)
        elif row.status == BuildStatus.BUILDING.value:
            age = now - row.started_at
            if age < timeout_sec:
                raise IndexStateError.build_in_progress(corpus, row.started_at)
            log.warning("stale_build_lease_taken_over", corpus=corpus, age_sec=round(age, 1))

        row.status = BuildStatus.BUILDING.value
        row.lease_token = token
        row.started_at = now
        row.finished_at = None
        row.error = None
        session.add(row)

    log.debug("build_lease_acquired", corpus=corpus)
    return BuildLease(corpus=corpus, token=token, started_at=now)


def complete_build_lease(writer: BulkWriter, lease: BuildLease, stats: dict[str, Any]) -> None:
    """Mark the build complete inside the writer's transaction.

    Runs in the same transaction as the corpus data, so the completed marker
    and the new rows become visible together.

    Raises:
        IndexStateError: The lease was taken over by another builder.
    """
    now = time.time()
    updated = writer.update_where(
        IndexBuild,
        {
            "status": BuildStatus.COMPLETE.value,
            "finished_at": now,
            "completed_at": now,
            "lease_token": None,
            "stats_json": json.dumps(stats, sort_keys=True),
            "error": None,
        },
        "corpus = :corpus AND lease_token = :token",
        {"corpus": lease.corpus, "token": lease.token},
    )
    if updated == 0:
        raise IndexStateError.build_failed(lease.corpus, "build lease was taken over")


def fail_build_lease(db: Database, lease: BuildLease, error: str) -> None:
    """Release the lease and record the failure. Data of the last good build is kept."""
    with db.immediate_transaction() as session:
        row = session.exec(
            select(IndexBuild).where(
                IndexBuild.corpus == lease.corpus,
                IndexBuild.lease_token == lease.token,
            )
        ).first()
        if row is None:
            return
        row.status = BuildStatus.FAILED.value
        row.lease_token = None
        row.finished_at = time.time()
        row.error = error
        session.add(row)


def get_build_info(db: Database, corpus: str) -> BuildInfo | None:
    with db.session() as session:
        row = session.exec(select(IndexBuild).where(IndexBuild.corpus == corpus)).first()
        if row is None:
            return None
        return BuildInfo(
            corpus=row.corpus,
            status=row.status,
            started_at=row.started_at,
            finished_at=row.finished_at,
            completed_at=row.completed_at,
            error=row.error,
            stats=json.loads(row.stats_json) if row.stats_json else {},
        )
