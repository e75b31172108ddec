"""Job queue models.

A :class:`Job` is a row in the shared work queue.  Its ``payload`` is kept
as a plain dict on the row and validated into a :class:`JobPayload` only
when a worker is about to execute it, so a malformed payload surfaces as a
terminal ``ValidationError`` on that job rather than a load failure.

State machine::

    pending --lease--> running --ack_success--> completed
                               --ack_failure--> pending   (attempts < max_attempts)
                               --ack_failure--> failed    (attempts exhausted / terminal error)
                               --release------> pending   (shutdown, no attempt charged)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkerType(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Registered worker kinds.

    The three platform types are fetch-and-stage workers; ``canonicalization``
    promotes staged records into the catalog.
    """

    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"
    TRACKLISTS_1001 = "1001tracklists"
    CANONICALIZATION = "canonicalization"


class IngestionMode(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """``backfill`` walks an archive; ``rolling`` picks up new uploads."""

    BACKFILL = "backfill"
    ROLLING = "rolling"


class Job(BaseModel):
    """A queued unit of background work."""

    model_config = ConfigDict(frozen=True)

    id: str
    worker_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    last_run: datetime | None = None
    next_run: datetime | None = None
    error_message: str | None = None
    requested_by: str | None = None
    created_at: datetime | None = None
    updated_at: str | None = None  # raw store token, used for compare-and-swap


class JobPayload(BaseModel):
    """Validated job payload shared by every worker type."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    worker_type: WorkerType
    source_id: str = Field(min_length=1)
    mode: IngestionMode
    batch_size: int = Field(gt=0)
    staged_record_id: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Counters reported by a worker after one job execution."""

    model_config = ConfigDict(frozen=True)

    success: bool
    items_found: int = 0
    items_added: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    def summary(self) -> str:
        """One-line human readable description, used as a job error message."""
        text = (
            f"found={self.items_found} added={self.items_added} "
            f"skipped={self.items_skipped} failed={self.items_failed}"
        )
        if self.errors:
            text += f"; first error: {self.errors[0]}"
        return text
