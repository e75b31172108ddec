"""Abstract base class for the staging-area store.

Fetch workers insert raw records here; the canonicalization orchestrator
is the only writer of status transitions afterwards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from mixcatalog.models.staging import Provider, StagedRecord, StagedRecordInput, StagedStatus, StagedTrack


class IStagingStore(ABC):
    """Contract for staged raw records and their tracklist rows."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist."""

    @abstractmethod
    async def insert_if_absent(self, record: StagedRecordInput) -> StagedRecord | None:
        """Insert *record* and its tracks unless its ``source_url`` exists.

        Returns
        -------
        StagedRecord or None
            The stored record, or ``None`` when the URL was already staged.
        """

    @abstractmethod
    async def get(self, record_id: str) -> StagedRecord | None:
        """Return the staged record with *record_id*, or ``None``."""

    @abstractmethod
    async def find_by_source_url(self, source_url: str) -> StagedRecord | None:
        """Exact lookup by the unique source URL."""

    @abstractmethod
    async def find_by_external_id(
        self,
        external_id: str,
        provider: Provider | None = None,
    ) -> StagedRecord | None:
        """Exact lookup by platform identifier, optionally scoped to *provider*."""

    @abstractmethod
    async def list_by_status(self, status: StagedStatus, limit: int = 100) -> list[StagedRecord]:
        """Return records in *status*, oldest first."""

    @abstractmethod
    async def claim_for_processing(
        self,
        record_id: str,
        from_statuses: tuple[StagedStatus, ...] = (StagedStatus.PENDING,),
    ) -> bool:
        """Move a record to ``processing`` if it is currently in *from_statuses*."""

    @abstractmethod
    async def mark_canonicalized(self, record_id: str, mix_id: str) -> None:
        """Terminal success: record the canonical mix the record resolved to."""

    @abstractmethod
    async def mark_failed(self, record_id: str, error_message: str) -> None:
        """Record a processing failure."""

    @abstractmethod
    async def requeue_failed(
        self, limit: int | None = None, *, record_ids: Sequence[str] | None = None
    ) -> int:
        """Move ``failed`` records back to ``pending``; return how many moved.

        With *record_ids* only those records are considered.
        """

    @abstractmethod
    async def get_tracks(self, record_id: str) -> list[StagedTrack]:
        """Tracklist rows of a record ordered by position."""

    @abstractmethod
    async def status_counts(self) -> dict[str, int]:
        """Return ``{status: count}`` over all staged records."""
