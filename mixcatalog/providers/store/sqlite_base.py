"""Shared plumbing for the aiosqlite-backed stores.

All stores point at the same database file (``data/mixcatalog.db`` by
default) and open a short-lived connection per operation.  Connections run
in autocommit mode; multi-statement operations use :meth:`_transaction`,
which takes the write lock up front (``BEGIN IMMEDIATE``) so concurrent
writers queue on SQLite's busy timeout instead of deadlocking.

Driver ``OperationalError`` (locked database, disk I/O) is translated to
:class:`TransientIOError` so the job processor retries with backoff.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from mixcatalog.utils.errors import TransientIOError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_DB_PATH = Path("data/mixcatalog.db")

_BUSY_TIMEOUT_SECONDS = 30.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO-8601 string, so lexical order equals time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_json(value: Any) -> str:
    return json.dumps(value or {}, sort_keys=True, default=str)


def from_json(raw: str | None) -> Any:
    return json.loads(raw) if raw else {}


def new_id() -> str:
    return uuid.uuid4().hex


def escape_like(text: str) -> str:
    """Escape ``%``/``_`` for a ``LIKE ... ESCAPE '\\'`` pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteStore:
    """Base class holding the database path and the injectable clock."""

    def __init__(
        self,
        db_path: str | Path = DEFAULT_DB_PATH,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _now(self) -> str:
        return to_iso(self._clock())  # type: ignore[return-value]

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(
                str(self._db_path),
                timeout=_BUSY_TIMEOUT_SECONDS,
                isolation_level=None,
            ) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                yield db
        except sqlite3.OperationalError as exc:
            raise TransientIOError(str(exc), provider_name="sqlite") from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            await db.commit()

    async def _create_schema(self, statements: list[str]) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL")
            for sql in statements:
                await db.execute(sql)
