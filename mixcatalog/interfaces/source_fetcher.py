"""Abstract base class for platform source fetchers.

A fetcher turns a source (channel, user, playlist, tracklist index) into
raw :class:`StagedRecordInput` objects.  Concrete fetchers perform the
HTTP/scraping work and live outside the canonicalization core; the
fetch-and-stage worker only depends on this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mixcatalog.models.jobs import IngestionMode
from mixcatalog.models.staging import Provider, StagedRecordInput


class ISourceFetcher(ABC):
    """Contract for producers of raw records."""

    @property
    @abstractmethod
    def provider(self) -> Provider:
        """Platform this fetcher reads from."""

    @abstractmethod
    async def fetch(
        self,
        source_id: str,
        mode: IngestionMode,
        batch_size: int,
        config: dict[str, Any],
    ) -> list[StagedRecordInput]:
        """Return up to *batch_size* raw records for *source_id*.

        Parameters
        ----------
        source_id:
            Platform-specific source identifier (channel id, username...).
        mode:
            ``backfill`` walks the archive, ``rolling`` returns recent uploads.
        batch_size:
            Upper bound on the number of records returned.
        config:
            Free-form fetcher options from the job payload.

        Raises
        ------
        TransientIOError
            On network failures; the owning job is retried with backoff.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this fetcher."""
