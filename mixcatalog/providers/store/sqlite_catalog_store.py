"""SQLite-backed canonical catalog.

Tables
------
artists, tracks, mixes, contexts, venues
    Canonical entities.  Each has ``is_verified``/``verified_by``/
    ``verified_at``; rows are created unverified unless a verifying
    identity is passed in.  Artists and tracks carry a normalized name used
    for candidate retrieval; contexts and venues a punctuation-free key.
track_aliases, track_artists, mix_artists, mix_tracks, mix_contexts
    Link tables.  Inserts are ``OR IGNORE`` so re-running a job is harmless.
rule_applications
    One row per (mix, rule) suggestion acted on; a re-run keeps the first
    row.  ``moderator_feedback`` is left NULL for the external review
    workflow to fill in.
"""

from __future__ import annotations

from typing import Any

import structlog

from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.models.catalog import (
    Artist,
    Context,
    ContextType,
    MatchCandidate,
    Mix,
    MixContextRole,
    MixDraft,
    Track,
    Venue,
)
from mixcatalog.models.rules import ContextSuggestion, RuleAction
from mixcatalog.providers.store.sqlite_base import (
    SQLiteStore,
    escape_like,
    from_json,
    new_id,
    to_iso,
    to_json,
)
from mixcatalog.utils.errors import RecordNotFoundError
from mixcatalog.utils.text_normalizer import entity_key, normalize

logger = structlog.get_logger(logger_name=__name__)

_VERIFICATION_COLUMNS = """\
    is_verified  INTEGER NOT NULL DEFAULT 0,
    verified_by  TEXT,
    verified_at  TEXT,
    created_at   TEXT    NOT NULL"""

_CREATE_TABLES_SQL = [
    f"""\
CREATE TABLE IF NOT EXISTS artists (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL,
{_VERIFICATION_COLUMNS}
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS tracks (
    id                TEXT PRIMARY KEY,
    title             TEXT NOT NULL,
    normalized_title  TEXT NOT NULL,
{_VERIFICATION_COLUMNS}
);
""",
    """\
CREATE TABLE IF NOT EXISTS track_aliases (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id  TEXT NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
    alias     TEXT NOT NULL,
    source    TEXT,
    UNIQUE(track_id, alias)
);
""",
    """\
CREATE TABLE IF NOT EXISTS track_artists (
    track_id   TEXT NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
    artist_id  TEXT NOT NULL REFERENCES artists(id) ON DELETE CASCADE,
    PRIMARY KEY (track_id, artist_id)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS mixes (
    id                TEXT PRIMARY KEY,
    title             TEXT NOT NULL,
    description       TEXT,
    artist_name       TEXT,
    published_at      TEXT,
    duration_seconds  INTEGER,
    artwork_url       TEXT,
    audio_url         TEXT,
    ingestion_source  TEXT NOT NULL,
    external_ids      TEXT NOT NULL DEFAULT '{{}}',
    metadata          TEXT NOT NULL DEFAULT '{{}}',
    venue_id          TEXT REFERENCES venues(id),
    updated_at        TEXT,
{_VERIFICATION_COLUMNS}
);
""",
    """\
CREATE TABLE IF NOT EXISTS mix_artists (
    mix_id     TEXT NOT NULL REFERENCES mixes(id) ON DELETE CASCADE,
    artist_id  TEXT NOT NULL REFERENCES artists(id) ON DELETE CASCADE,
    role       TEXT NOT NULL DEFAULT 'primary',
    PRIMARY KEY (mix_id, artist_id, role)
);
""",
    """\
CREATE TABLE IF NOT EXISTS mix_tracks (
    mix_id             TEXT    NOT NULL REFERENCES mixes(id) ON DELETE CASCADE,
    track_id           TEXT    NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
    position           INTEGER NOT NULL,
    timestamp_seconds  INTEGER,
    match_confidence   REAL    NOT NULL DEFAULT 0,
    is_verified        INTEGER NOT NULL DEFAULT 0,
    verified_by        TEXT,
    verified_at        TEXT,
    PRIMARY KEY (mix_id, position)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS contexts (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL,
    context_type     TEXT NOT NULL,
{_VERIFICATION_COLUMNS},
    UNIQUE(normalized_name, context_type)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS venues (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL UNIQUE,
    city             TEXT,
    country          TEXT,
{_VERIFICATION_COLUMNS}
);
""",
    """\
CREATE TABLE IF NOT EXISTS mix_contexts (
    mix_id       TEXT NOT NULL REFERENCES mixes(id) ON DELETE CASCADE,
    context_id   TEXT NOT NULL REFERENCES contexts(id) ON DELETE CASCADE,
    role         TEXT NOT NULL,
    confidence   REAL NOT NULL,
    is_verified  INTEGER NOT NULL DEFAULT 0,
    verified_by  TEXT,
    verified_at  TEXT,
    created_at   TEXT NOT NULL,
    PRIMARY KEY (mix_id, context_id, role)
);
""",
    """\
CREATE TABLE IF NOT EXISTS rule_applications (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    rule_id             TEXT    NOT NULL,
    rule_name           TEXT    NOT NULL,
    mix_id              TEXT    NOT NULL REFERENCES mixes(id) ON DELETE CASCADE,
    context_type        TEXT    NOT NULL,
    context_name        TEXT    NOT NULL,
    is_venue            INTEGER NOT NULL DEFAULT 0,
    confidence          REAL    NOT NULL,
    requires_approval   INTEGER NOT NULL,
    action              TEXT    NOT NULL,
    reason              TEXT,
    moderator_feedback  TEXT CHECK (moderator_feedback IN ('correct', 'incorrect', 'partially_correct')),
    created_at          TEXT    NOT NULL
);
""",
    "CREATE INDEX IF NOT EXISTS idx_artists_normalized ON artists(normalized_name);",
    "CREATE INDEX IF NOT EXISTS idx_tracks_normalized ON tracks(normalized_title);",
    "CREATE INDEX IF NOT EXISTS idx_track_aliases_alias ON track_aliases(alias);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_rule_applications_mix_rule ON rule_applications(mix_id, rule_id);",
]

# Loose candidate filter: the query contains the name, the name contains the
# query, or both share a three-character prefix.  "{col}" is substituted.
_CANDIDATE_FILTER = (
    "({col} LIKE ? ESCAPE '\\' "
    "OR ({col} != '' AND instr(?, {col}) > 0) "
    "OR {col} LIKE ? ESCAPE '\\')"
)

_SEARCH_ARTISTS_SQL = f"""\
SELECT id, name, is_verified FROM artists
WHERE {_CANDIDATE_FILTER.format(col="normalized_name")}
ORDER BY is_verified DESC, created_at
LIMIT ?;
"""

_SEARCH_TRACKS_SQL = f"""\
SELECT t.id, t.title, t.is_verified,
       (SELECT group_concat(a.name, '|')
        FROM track_artists ta JOIN artists a ON a.id = ta.artist_id
        WHERE ta.track_id = t.id) AS artist_names
FROM tracks t
WHERE t.id IN (
    SELECT id FROM tracks WHERE {_CANDIDATE_FILTER.format(col="normalized_title")}
    UNION
    SELECT track_id FROM track_aliases WHERE {_CANDIDATE_FILTER.format(col="alias")}
)
ORDER BY t.is_verified DESC, t.created_at
LIMIT ?;
"""

_INSERT_MIX_SQL = """\
INSERT INTO mixes
    (id, title, description, artist_name, published_at, duration_seconds, artwork_url,
     audio_url, ingestion_source, external_ids, metadata, is_verified, verified_by,
     verified_at, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_MIX_SQL = (
    "SELECT id, title, description, artist_name, published_at, duration_seconds, "
    "artwork_url, audio_url, ingestion_source, external_ids, metadata, venue_id, "
    "is_verified, verified_by, verified_at, created_at FROM mixes"
)

_UPDATE_MIX_SQL = """\
UPDATE mixes
SET title = ?, description = ?, artist_name = ?, published_at = ?, duration_seconds = ?,
    artwork_url = ?, audio_url = ?, ingestion_source = ?, external_ids = ?, metadata = ?,
    updated_at = ?
WHERE id = ?;
"""


def _candidate_params(query: str) -> tuple[str, str, str]:
    return f"%{escape_like(query)}%", query, f"{escape_like(query[:3])}%"


def _row_to_mix(row: dict[str, Any]) -> Mix:
    return Mix.model_validate(
        {
            **row,
            "is_verified": bool(row["is_verified"]),
            "external_ids": from_json(row["external_ids"]),
            "metadata": from_json(row["metadata"]),
        }
    )


class SQLiteCatalogStore(SQLiteStore, ICatalogStore):
    """SQLite persistence for canonical entities."""

    async def initialize(self) -> None:
        await self._create_schema(_CREATE_TABLES_SQL)
        logger.info("catalog_store_initialized", path=str(self._db_path))

    def _verification(self, verified_by: str | None) -> tuple[int, str | None, str | None]:
        if verified_by:
            return 1, verified_by, self._now()
        return 0, None, None

    # ------------------------------------------------------------------
    # Mixes
    # ------------------------------------------------------------------

    async def create_mix(self, draft: MixDraft, verified_by: str | None = None) -> Mix:
        mix_id = new_id()
        now = self._now()
        is_verified, verifier, verified_at = self._verification(verified_by)
        async with self._connect() as db:
            await db.execute(
                _INSERT_MIX_SQL,
                (
                    mix_id,
                    draft.title,
                    draft.description,
                    draft.artist_name,
                    to_iso(draft.published_at),
                    draft.duration_seconds,
                    draft.artwork_url,
                    draft.audio_url,
                    draft.ingestion_source.value,
                    to_json(draft.external_ids),
                    to_json(draft.metadata),
                    is_verified,
                    verifier,
                    verified_at,
                    now,
                    now,
                ),
            )
        logger.info("mix_created", mix_id=mix_id, verified=bool(is_verified))
        return Mix(
            id=mix_id,
            is_verified=bool(is_verified),
            verified_by=verifier,
            verified_at=verified_at,
            created_at=now,
            **draft.model_dump(),
        )

    async def update_mix(self, mix_id: str, draft: MixDraft) -> Mix:
        async with self._connect() as db:
            await db.execute(
                _UPDATE_MIX_SQL,
                (
                    draft.title,
                    draft.description,
                    draft.artist_name,
                    to_iso(draft.published_at),
                    draft.duration_seconds,
                    draft.artwork_url,
                    draft.audio_url,
                    draft.ingestion_source.value,
                    to_json(draft.external_ids),
                    to_json(draft.metadata),
                    self._now(),
                    mix_id,
                ),
            )
        mix = await self.get_mix(mix_id)
        if mix is None:
            raise RecordNotFoundError(f"Mix {mix_id} not found", provider_name="sqlite")
        logger.info("mix_updated", mix_id=mix_id)
        return mix

    async def get_mix(self, mix_id: str) -> Mix | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"{_SELECT_MIX_SQL} WHERE id = ?",
                (mix_id,),
            )
            row = await cursor.fetchone()
        return _row_to_mix(dict(row)) if row else None

    async def find_mix_by_audio_url(self, audio_url: str) -> Mix | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"{_SELECT_MIX_SQL} WHERE audio_url = ? ORDER BY created_at, rowid LIMIT 1",
                (audio_url,),
            )
            row = await cursor.fetchone()
        return _row_to_mix(dict(row)) if row else None

    async def list_mix_external_ids(self) -> list[tuple[str, dict[str, str]]]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, external_ids FROM mixes WHERE external_ids != '{}' ORDER BY created_at, rowid"
            )
            rows = await cursor.fetchall()
        return [(r["id"], from_json(r["external_ids"])) for r in rows]

    async def count_mix_tracks(self, mix_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute("SELECT COUNT(*) AS total FROM mix_tracks WHERE mix_id = ?", (mix_id,))
            row = await cursor.fetchone()
        return int(row["total"]) if row else 0

    async def linked_track_positions(self, mix_id: str) -> set[int]:
        async with self._connect() as db:
            cursor = await db.execute("SELECT position FROM mix_tracks WHERE mix_id = ?", (mix_id,))
            rows = await cursor.fetchall()
        return {int(r["position"]) for r in rows}

    async def set_mix_venue(self, mix_id: str, venue_id: str) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE mixes SET venue_id = ?, updated_at = ? WHERE id = ?",
                (venue_id, self._now(), mix_id),
            )

    # ------------------------------------------------------------------
    # Artists
    # ------------------------------------------------------------------

    async def search_artists(self, query: str, limit: int = 50) -> list[MatchCandidate]:
        if not query:
            return []
        async with self._connect() as db:
            cursor = await db.execute(_SEARCH_ARTISTS_SQL, (*_candidate_params(query), limit))
            rows = await cursor.fetchall()
        return [
            MatchCandidate(id=r["id"], text=r["name"], metadata={"is_verified": bool(r["is_verified"])})
            for r in rows
        ]

    async def create_artist(self, name: str, verified_by: str | None = None) -> Artist:
        artist = Artist(
            id=new_id(),
            name=name,
            normalized_name=normalize(name),
            created_at=self._now(),
            **self._verification_fields(verified_by),
        )
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO artists (id, name, normalized_name, is_verified, verified_by, "
                "verified_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    artist.id,
                    artist.name,
                    artist.normalized_name,
                    int(artist.is_verified),
                    artist.verified_by,
                    to_iso(artist.verified_at),
                    to_iso(artist.created_at),
                ),
            )
        logger.info("artist_created", artist_id=artist.id, name=name)
        return artist

    def _verification_fields(self, verified_by: str | None) -> dict[str, Any]:
        is_verified, verifier, verified_at = self._verification(verified_by)
        return {"is_verified": bool(is_verified), "verified_by": verifier, "verified_at": verified_at}

    async def link_mix_artist(self, mix_id: str, artist_id: str, role: str = "primary") -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO mix_artists (mix_id, artist_id, role) VALUES (?, ?, ?)",
                (mix_id, artist_id, role),
            )

    async def list_mix_artists(self, mix_id: str) -> list[dict[str, Any]]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT a.id AS artist_id, a.name, ma.role "
                "FROM mix_artists ma JOIN artists a ON a.id = ma.artist_id "
                "WHERE ma.mix_id = ? ORDER BY a.name",
                (mix_id,),
            )
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Tracks
    # ------------------------------------------------------------------

    async def search_tracks(self, query: str, limit: int = 50) -> list[MatchCandidate]:
        if not query:
            return []
        params = _candidate_params(query)
        async with self._connect() as db:
            cursor = await db.execute(_SEARCH_TRACKS_SQL, (*params, *params, limit))
            rows = await cursor.fetchall()
        return [
            MatchCandidate(
                id=r["id"],
                text=r["title"],
                metadata={
                    "is_verified": bool(r["is_verified"]),
                    "artist_names": r["artist_names"].split("|") if r["artist_names"] else [],
                },
            )
            for r in rows
        ]

    async def create_track(self, title: str, verified_by: str | None = None) -> Track:
        track = Track(
            id=new_id(),
            title=title,
            normalized_title=normalize(title),
            created_at=self._now(),
            **self._verification_fields(verified_by),
        )
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO tracks (id, title, normalized_title, is_verified, verified_by, "
                "verified_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    track.id,
                    track.title,
                    track.normalized_title,
                    int(track.is_verified),
                    track.verified_by,
                    to_iso(track.verified_at),
                    to_iso(track.created_at),
                ),
            )
        logger.info("track_created", track_id=track.id, title=title)
        return track

    async def add_track_aliases(self, track_id: str, aliases: list[str], source: str) -> None:
        rows = [(track_id, normalize(alias), source) for alias in aliases if normalize(alias)]
        if not rows:
            return
        async with self._connect() as db:
            await db.executemany(
                "INSERT OR IGNORE INTO track_aliases (track_id, alias, source) VALUES (?, ?, ?)",
                rows,
            )

    async def link_track_artist(self, track_id: str, artist_id: str) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO track_artists (track_id, artist_id) VALUES (?, ?)",
                (track_id, artist_id),
            )

    async def link_mix_track(
        self,
        mix_id: str,
        track_id: str,
        position: int,
        timestamp_seconds: int | None,
        match_confidence: float,
        verified_by: str | None = None,
    ) -> None:
        is_verified, verifier, verified_at = self._verification(verified_by)
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO mix_tracks (mix_id, track_id, position, timestamp_seconds, "
                "match_confidence, is_verified, verified_by, verified_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    mix_id,
                    track_id,
                    position,
                    timestamp_seconds,
                    match_confidence,
                    is_verified,
                    verifier,
                    verified_at,
                ),
            )

    # ------------------------------------------------------------------
    # Contexts & venues
    # ------------------------------------------------------------------

    async def find_context(self, name: str, context_type: ContextType) -> Context | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM contexts WHERE context_type = ? AND (name = ? OR normalized_name = ?) "
                "ORDER BY (name = ?) DESC LIMIT 1",
                (context_type.value, name, entity_key(name), name),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Context.model_validate({**dict(row), "is_verified": bool(row["is_verified"])})

    async def create_context(self, name: str, context_type: ContextType) -> Context:
        context = Context(
            id=new_id(),
            name=name,
            normalized_name=entity_key(name),
            context_type=context_type,
            created_at=self._now(),
        )
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO contexts (id, name, normalized_name, context_type, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    context.id,
                    context.name,
                    context.normalized_name,
                    context_type.value,
                    to_iso(context.created_at),
                ),
            )
            inserted = cursor.rowcount > 0
        if not inserted:
            existing = await self.find_context(name, context_type)
            if existing is not None:
                return existing
        logger.info("context_created", context_id=context.id, name=name, context_type=context_type.value)
        return context

    async def link_mix_context(
        self,
        mix_id: str,
        context_id: str,
        role: MixContextRole,
        confidence: float,
        verified_by: str | None = None,
    ) -> None:
        is_verified, verifier, verified_at = self._verification(verified_by)
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO mix_contexts (mix_id, context_id, role, confidence, is_verified, "
                "verified_by, verified_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(mix_id, context_id, role) "
                "DO UPDATE SET confidence = MAX(confidence, excluded.confidence)",
                (mix_id, context_id, role.value, confidence, is_verified, verifier, verified_at, self._now()),
            )

    async def list_mix_contexts(self, mix_id: str) -> list[dict[str, Any]]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT c.id AS context_id, c.name, c.context_type, mc.role, mc.confidence, mc.is_verified "
                "FROM mix_contexts mc JOIN contexts c ON c.id = mc.context_id "
                "WHERE mc.mix_id = ? ORDER BY mc.confidence DESC",
                (mix_id,),
            )
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def find_venue(self, name: str) -> Venue | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM venues WHERE name = ? OR normalized_name = ? "
                "ORDER BY (name = ?) DESC LIMIT 1",
                (name, entity_key(name), name),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Venue.model_validate({**dict(row), "is_verified": bool(row["is_verified"])})

    async def create_venue(self, name: str) -> Venue:
        venue = Venue(id=new_id(), name=name, normalized_name=entity_key(name), created_at=self._now())
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO venues (id, name, normalized_name, created_at) VALUES (?, ?, ?, ?)",
                (venue.id, venue.name, venue.normalized_name, to_iso(venue.created_at)),
            )
            inserted = cursor.rowcount > 0
        if not inserted:
            existing = await self.find_venue(name)
            if existing is not None:
                return existing
        logger.info("venue_created", venue_id=venue.id, name=name)
        return venue

    # ------------------------------------------------------------------
    # Rule applications
    # ------------------------------------------------------------------

    async def record_rule_application(
        self,
        mix_id: str,
        suggestion: ContextSuggestion,
        action: RuleAction,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO rule_applications (rule_id, rule_name, mix_id, context_type, "
                "context_name, is_venue, confidence, requires_approval, action, reason, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    suggestion.rule_id,
                    suggestion.rule_name,
                    mix_id,
                    suggestion.context_type.value,
                    suggestion.context_name,
                    int(suggestion.is_venue),
                    suggestion.confidence,
                    int(suggestion.requires_approval),
                    action.value,
                    suggestion.reason,
                    self._now(),
                ),
            )

    async def list_rule_applications(self, mix_id: str) -> list[dict[str, Any]]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM rule_applications WHERE mix_id = ? ORDER BY id",
                (mix_id,),
            )
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def entity_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        async with self._connect() as db:
            for table in ("mixes", "artists", "tracks", "contexts", "venues", "rule_applications"):
                cursor = await db.execute(f"SELECT COUNT(*) AS total FROM {table}")  # noqa: S608
                row = await cursor.fetchone()
                counts[table] = int(row["total"]) if row else 0
        return counts
