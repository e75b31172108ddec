"""SQLite-backed job queue.

Persists ``ingestion_jobs`` plus two side tables: ``ingestion_logs`` (the
audit trail operators read when a job fails) and ``system_health`` (one
heartbeat row per processor service).

Leasing
-------
SQLite has no ``SELECT ... FOR UPDATE SKIP LOCKED``.  ``lease_next`` picks
the oldest runnable pending row and claims it with a compare-and-swap::

    UPDATE ingestion_jobs SET status = 'running', ...
    WHERE id = ? AND status = 'pending' AND updated_at = ?

inside a ``BEGIN IMMEDIATE`` transaction.  If the update touches no row
another processor won the race; the lease is retried against the next
candidate.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from mixcatalog.interfaces.job_store import IJobStore
from mixcatalog.models.jobs import Job, JobStatus
from mixcatalog.providers.store.sqlite_base import SQLiteStore, from_json, new_id, to_iso, to_json

logger = structlog.get_logger(logger_name=__name__)

_LEASE_MAX_CONFLICTS = 5

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS ingestion_jobs (
    id             TEXT    PRIMARY KEY,
    worker_type    TEXT    NOT NULL,
    job_payload    TEXT    NOT NULL DEFAULT '{}',
    status         TEXT    NOT NULL DEFAULT 'pending'
                           CHECK (status IN ('pending', 'running', 'completed', 'failed')),
    attempts       INTEGER NOT NULL DEFAULT 0,
    max_attempts   INTEGER NOT NULL DEFAULT 3,
    last_run       TEXT,
    next_run       TEXT,
    error_message  TEXT,
    requested_by   TEXT,
    created_at     TEXT    NOT NULL,
    updated_at     TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS ingestion_logs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id      TEXT,
    level       TEXT    NOT NULL,
    message     TEXT    NOT NULL,
    metadata    TEXT    NOT NULL DEFAULT '{}',
    created_at  TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS system_health (
    service_name    TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    last_heartbeat  TEXT NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{}'
);
""",
    "CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON ingestion_jobs(status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_next_run ON ingestion_jobs(next_run);",
    "CREATE INDEX IF NOT EXISTS idx_logs_job ON ingestion_logs(job_id);",
]

_INSERT_JOB_SQL = """\
INSERT INTO ingestion_jobs
    (id, worker_type, job_payload, status, attempts, max_attempts,
     next_run, requested_by, created_at, updated_at)
VALUES (?, ?, ?, 'pending', 0, ?, ?, ?, ?, ?);
"""

_SELECT_CANDIDATE_SQL = """\
SELECT * FROM ingestion_jobs
WHERE status = 'pending' AND (next_run IS NULL OR next_run <= ?)
ORDER BY created_at, rowid
LIMIT 1;
"""

_CLAIM_SQL = """\
UPDATE ingestion_jobs
SET status = 'running', last_run = ?, updated_at = ?
WHERE id = ? AND status = 'pending' AND updated_at = ?;
"""

_COMPLETE_SQL = """\
UPDATE ingestion_jobs
SET status = 'completed', error_message = NULL, updated_at = ?
WHERE id = ? AND status = 'running';
"""

_RETRY_SQL = """\
UPDATE ingestion_jobs
SET status = 'pending', attempts = ?, next_run = ?, error_message = ?, updated_at = ?
WHERE id = ? AND status = 'running';
"""

_FAIL_SQL = """\
UPDATE ingestion_jobs
SET status = 'failed', attempts = ?, next_run = NULL, error_message = ?, updated_at = ?
WHERE id = ? AND status = 'running';
"""

_RELEASE_SQL = """\
UPDATE ingestion_jobs
SET status = 'pending', next_run = ?, error_message = ?, updated_at = ?
WHERE id = ? AND status = 'running';
"""

_RESET_SQL = """\
UPDATE ingestion_jobs
SET status = 'pending', attempts = 0, next_run = NULL, error_message = NULL, updated_at = ?
WHERE id = ? AND status = 'failed';
"""

_UPSERT_HEARTBEAT_SQL = """\
INSERT INTO system_health (service_name, status, last_heartbeat, metadata)
VALUES (?, ?, ?, ?)
ON CONFLICT(service_name)
DO UPDATE SET status         = excluded.status,
              last_heartbeat = excluded.last_heartbeat,
              metadata       = excluded.metadata;
"""


def _row_to_job(row: dict[str, Any]) -> Job:
    return Job(
        id=row["id"],
        worker_type=row["worker_type"],
        payload=from_json(row["job_payload"]),
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        last_run=row["last_run"],
        next_run=row["next_run"],
        error_message=row["error_message"],
        requested_by=row["requested_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SQLiteJobStore(SQLiteStore, IJobStore):
    """SQLite persistence for the shared job queue."""

    async def initialize(self) -> None:
        await self._create_schema(_CREATE_TABLES_SQL)
        logger.info("job_store_initialized", path=str(self._db_path))

    async def create_job(
        self,
        worker_type: str,
        payload: dict[str, Any],
        max_attempts: int = 3,
        requested_by: str | None = None,
        next_run: datetime | None = None,
    ) -> Job:
        job_id = new_id()
        now = self._now()
        async with self._connect() as db:
            await db.execute(
                _INSERT_JOB_SQL,
                (
                    job_id,
                    worker_type,
                    to_json(payload),
                    max_attempts,
                    to_iso(next_run),
                    requested_by,
                    now,
                    now,
                ),
            )
        logger.info("job_created", job_id=job_id, worker_type=worker_type, requested_by=requested_by)
        return Job(
            id=job_id,
            worker_type=worker_type,
            payload=payload,
            max_attempts=max_attempts,
            next_run=next_run,
            requested_by=requested_by,
            created_at=now,
            updated_at=now,
        )

    async def get_job(self, job_id: str) -> Job | None:
        async with self._connect() as db:
            cursor = await db.execute("SELECT * FROM ingestion_jobs WHERE id = ?", (job_id,))
            row = await cursor.fetchone()
        return _row_to_job(dict(row)) if row else None

    async def lease_next(self) -> Job | None:
        for _ in range(_LEASE_MAX_CONFLICTS):
            claimed: Job | None = None
            async with self._transaction() as db:
                now = self._now()
                cursor = await db.execute(_SELECT_CANDIDATE_SQL, (now,))
                row = await cursor.fetchone()
                if row is None:
                    return None
                candidate = dict(row)
                cursor = await db.execute(
                    _CLAIM_SQL,
                    (now, now, candidate["id"], candidate["updated_at"]),
                )
                if cursor.rowcount == 1:
                    candidate.update(status=JobStatus.RUNNING.value, last_run=now, updated_at=now)
                    claimed = _row_to_job(candidate)

            if claimed is not None:
                logger.info(
                    "job_leased",
                    job_id=claimed.id,
                    worker_type=claimed.worker_type,
                    attempts=claimed.attempts,
                )
                return claimed
            logger.debug("job_lease_conflict", job_id=candidate["id"])
        return None

    async def complete_job(self, job: Job) -> None:
        await self._transition(job, _COMPLETE_SQL, (self._now(), job.id), "completed")

    async def retry_job(self, job: Job, attempts: int, next_run: datetime, error_message: str) -> None:
        await self._transition(
            job,
            _RETRY_SQL,
            (attempts, to_iso(next_run), error_message, self._now(), job.id),
            "retry",
        )

    async def fail_job(self, job: Job, attempts: int, error_message: str) -> None:
        await self._transition(job, _FAIL_SQL, (attempts, error_message, self._now(), job.id), "failed")

    async def release_job(self, job: Job, error_message: str) -> None:
        now = self._now()
        await self._transition(job, _RELEASE_SQL, (now, error_message, now, job.id), "release")

    async def _transition(self, job: Job, sql: str, params: tuple[Any, ...], action: str) -> None:
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            updated = cursor.rowcount
        if updated != 1:
            # The row left ``running`` underneath us (operator reset, purge).
            logger.warning("job_transition_skipped", job_id=job.id, action=action)

    async def reset_job(self, job_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_RESET_SQL, (self._now(), job_id))
            reset = cursor.rowcount == 1
        if reset:
            logger.info("job_reset", job_id=job_id)
        return reset

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 100) -> list[Job]:
        async with self._connect() as db:
            if status is not None:
                cursor = await db.execute(
                    "SELECT * FROM ingestion_jobs WHERE status = ? ORDER BY created_at, rowid LIMIT ?",
                    (status.value, limit),
                )
            else:
                cursor = await db.execute(
                    "SELECT * FROM ingestion_jobs ORDER BY created_at, rowid LIMIT ?",
                    (limit,),
                )
            rows = await cursor.fetchall()
        return [_row_to_job(dict(r)) for r in rows]

    async def status_counts(self) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT status, COUNT(*) AS total FROM ingestion_jobs GROUP BY status"
            )
            rows = await cursor.fetchall()
        return {r["status"]: r["total"] for r in rows}

    async def purge_finished(self, older_than: datetime) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM ingestion_jobs "
                "WHERE status IN ('completed', 'failed') AND updated_at < ?",
                (to_iso(older_than),),
            )
            deleted = cursor.rowcount
        logger.info("jobs_purged", deleted=deleted, older_than=to_iso(older_than))
        return deleted

    # ------------------------------------------------------------------
    # Audit log and heartbeat
    # ------------------------------------------------------------------

    async def append_log(
        self,
        job_id: str | None,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO ingestion_logs (job_id, level, message, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (job_id, level, message, to_json(metadata), self._now()),
            )

    async def get_logs(self, job_id: str) -> list[dict[str, Any]]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, job_id, level, message, metadata, created_at "
                "FROM ingestion_logs WHERE job_id = ? ORDER BY id",
                (job_id,),
            )
            rows = await cursor.fetchall()
        return [{**dict(r), "metadata": from_json(r["metadata"])} for r in rows]

    async def record_heartbeat(
        self,
        service_name: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_HEARTBEAT_SQL,
                (service_name, status, self._now(), to_json(metadata)),
            )

    async def get_heartbeat(self, service_name: str) -> dict[str, Any] | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT service_name, status, last_heartbeat, metadata "
                "FROM system_health WHERE service_name = ?",
                (service_name,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return {**dict(row), "metadata": from_json(row["metadata"])}
