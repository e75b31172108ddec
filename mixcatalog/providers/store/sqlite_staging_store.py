"""SQLite-backed staging area for raw mixes and their tracklists.

``raw_mixes.source_url`` carries a UNIQUE constraint and inserts use
``ON CONFLICT(source_url) DO NOTHING``, so re-submitting the same URL is an
atomic no-op rather than an error.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from mixcatalog.interfaces.staging_store import IStagingStore
from mixcatalog.models.staging import (
    Provider,
    StagedRecord,
    StagedRecordInput,
    StagedStatus,
    StagedTrack,
)
from mixcatalog.providers.store.sqlite_base import SQLiteStore, from_json, new_id, to_iso, to_json

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS raw_mixes (
    id                TEXT    PRIMARY KEY,
    provider          TEXT    NOT NULL,
    source_url        TEXT    NOT NULL UNIQUE,
    external_id       TEXT,
    raw_title         TEXT,
    raw_description   TEXT,
    raw_artist        TEXT,
    uploaded_at       TEXT,
    duration_seconds  INTEGER,
    artwork_url       TEXT,
    raw_metadata      TEXT    NOT NULL DEFAULT '{}',
    status            TEXT    NOT NULL DEFAULT 'pending'
                              CHECK (status IN ('pending', 'processing', 'canonicalized', 'failed')),
    canonical_mix_id  TEXT,
    error_message     TEXT,
    created_at        TEXT    NOT NULL,
    processed_at      TEXT
);
""",
    """\
CREATE TABLE IF NOT EXISTS raw_tracks (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    raw_mix_id         TEXT    NOT NULL REFERENCES raw_mixes(id) ON DELETE CASCADE,
    line_text          TEXT    NOT NULL,
    position           INTEGER NOT NULL,
    timestamp_seconds  INTEGER,
    raw_artist         TEXT,
    raw_title          TEXT,
    UNIQUE(raw_mix_id, position)
);
""",
    "CREATE INDEX IF NOT EXISTS idx_raw_mixes_external_id ON raw_mixes(external_id);",
    "CREATE INDEX IF NOT EXISTS idx_raw_mixes_status ON raw_mixes(status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_raw_tracks_mix ON raw_tracks(raw_mix_id, position);",
]

_INSERT_MIX_SQL = """\
INSERT INTO raw_mixes
    (id, provider, source_url, external_id, raw_title, raw_description, raw_artist,
     uploaded_at, duration_seconds, artwork_url, raw_metadata, status, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)
ON CONFLICT(source_url) DO NOTHING;
"""

_INSERT_TRACK_SQL = """\
INSERT OR IGNORE INTO raw_tracks
    (raw_mix_id, line_text, position, timestamp_seconds, raw_artist, raw_title)
VALUES (?, ?, ?, ?, ?, ?);
"""


def _row_to_record(row: dict[str, Any]) -> StagedRecord:
    return StagedRecord.model_validate({**row, "raw_metadata": from_json(row["raw_metadata"])})


class SQLiteStagingStore(SQLiteStore, IStagingStore):
    """SQLite persistence for staged raw records."""

    async def initialize(self) -> None:
        await self._create_schema(_CREATE_TABLES_SQL)
        logger.info("staging_store_initialized", path=str(self._db_path))

    async def insert_if_absent(self, record: StagedRecordInput) -> StagedRecord | None:
        record_id = new_id()
        now = self._now()
        async with self._transaction() as db:
            cursor = await db.execute(
                _INSERT_MIX_SQL,
                (
                    record_id,
                    record.provider.value,
                    record.source_url,
                    record.external_id,
                    record.raw_title,
                    record.raw_description,
                    record.raw_artist,
                    to_iso(record.uploaded_at),
                    record.duration_seconds,
                    record.artwork_url,
                    to_json(record.raw_metadata),
                    now,
                ),
            )
            if cursor.rowcount == 0:
                logger.debug("staged_record_exists", source_url=record.source_url)
                return None
            await db.executemany(
                _INSERT_TRACK_SQL,
                [
                    (
                        record_id,
                        track.line_text,
                        track.position,
                        track.timestamp_seconds,
                        track.raw_artist,
                        track.raw_title,
                    )
                    for track in record.tracks
                ],
            )

        logger.info(
            "staged_record_inserted",
            record_id=record_id,
            provider=record.provider.value,
            source_url=record.source_url,
            tracks=len(record.tracks),
        )
        return StagedRecord(
            id=record_id,
            created_at=now,
            **record.model_dump(exclude={"tracks"}),
        )

    async def get(self, record_id: str) -> StagedRecord | None:
        return await self._fetch_one("SELECT * FROM raw_mixes WHERE id = ?", (record_id,))

    async def find_by_source_url(self, source_url: str) -> StagedRecord | None:
        return await self._fetch_one("SELECT * FROM raw_mixes WHERE source_url = ?", (source_url,))

    async def find_by_external_id(
        self,
        external_id: str,
        provider: Provider | None = None,
    ) -> StagedRecord | None:
        if provider is not None:
            return await self._fetch_one(
                "SELECT * FROM raw_mixes WHERE external_id = ? AND provider = ? LIMIT 1",
                (external_id, provider.value),
            )
        return await self._fetch_one(
            "SELECT * FROM raw_mixes WHERE external_id = ? LIMIT 1",
            (external_id,),
        )

    async def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> StagedRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
        return _row_to_record(dict(row)) if row else None

    async def list_by_status(self, status: StagedStatus, limit: int = 100) -> list[StagedRecord]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM raw_mixes WHERE status = ? ORDER BY created_at, rowid LIMIT ?",
                (status.value, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def claim_for_processing(
        self,
        record_id: str,
        from_statuses: tuple[StagedStatus, ...] = (StagedStatus.PENDING,),
    ) -> bool:
        placeholders = ", ".join("?" for _ in from_statuses)
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE raw_mixes SET status = 'processing', error_message = NULL "
                f"WHERE id = ? AND status IN ({placeholders})",
                (record_id, *(s.value for s in from_statuses)),
            )
            claimed = cursor.rowcount == 1
        logger.debug("staged_record_claim", record_id=record_id, claimed=claimed)
        return claimed

    async def mark_canonicalized(self, record_id: str, mix_id: str) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE raw_mixes SET status = 'canonicalized', canonical_mix_id = ?, "
                "error_message = NULL, processed_at = ? WHERE id = ?",
                (mix_id, self._now(), record_id),
            )
        logger.info("staged_record_canonicalized", record_id=record_id, mix_id=mix_id)

    async def mark_failed(self, record_id: str, error_message: str) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE raw_mixes SET status = 'failed', error_message = ?, processed_at = ? "
                "WHERE id = ?",
                (error_message, self._now(), record_id),
            )
        logger.warning("staged_record_failed", record_id=record_id, error=error_message)

    async def requeue_failed(
        self, limit: int | None = None, *, record_ids: Sequence[str] | None = None
    ) -> int:
        if record_ids is not None:
            if not record_ids:
                return 0
            placeholders = ", ".join("?" for _ in record_ids)
            query = (
                "UPDATE raw_mixes SET status = 'pending', error_message = NULL, processed_at = NULL "
                f"WHERE status = 'failed' AND id IN ({placeholders})"  # noqa: S608
            )
            params: tuple[Any, ...] = tuple(record_ids)
        else:
            query = (
                "UPDATE raw_mixes SET status = 'pending', error_message = NULL, processed_at = NULL "
                "WHERE id IN (SELECT id FROM raw_mixes WHERE status = 'failed' "
                "ORDER BY created_at, rowid LIMIT ?)"
            )
            params = (limit if limit is not None else -1,)
        async with self._connect() as db:
            cursor = await db.execute(query, params)
            requeued = cursor.rowcount
        logger.info("staged_records_requeued", count=requeued)
        return requeued

    # ------------------------------------------------------------------
    # Tracks and stats
    # ------------------------------------------------------------------

    async def get_tracks(self, record_id: str) -> list[StagedTrack]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, raw_mix_id, line_text, position, timestamp_seconds, raw_artist, raw_title "
                "FROM raw_tracks WHERE raw_mix_id = ? ORDER BY position",
                (record_id,),
            )
            rows = await cursor.fetchall()
        return [StagedTrack.model_validate(dict(r)) for r in rows]

    async def status_counts(self) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT status, COUNT(*) AS total FROM raw_mixes GROUP BY status"
            )
            rows = await cursor.fetchall()
        return {r["status"]: r["total"] for r in rows}
