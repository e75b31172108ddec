"""Staging-area models: raw records as delivered by source fetchers.

A :class:`StagedRecord` is one mix exactly as a fetcher saw it, before any
normalization or matching.  Its tracklist rows are :class:`StagedTrack`
objects.  Fetchers construct :class:`StagedRecordInput` (no id, no status);
the staging store assigns the id and lifecycle fields on insert.

Lifecycle::

    pending -> processing -> canonicalized
                          -> failed -> (requeue) -> pending
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Provider(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Platforms records can be ingested from."""

    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"
    TRACKLISTS_1001 = "1001tracklists"


class StagedStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Lifecycle of a staged record."""

    PENDING = "pending"
    PROCESSING = "processing"
    CANONICALIZED = "canonicalized"
    FAILED = "failed"


class StagedTrackInput(BaseModel):
    """One tracklist row supplied by a fetcher."""

    model_config = ConfigDict(frozen=True)

    line_text: str
    position: int
    timestamp_seconds: int | None = None
    raw_artist: str | None = None
    raw_title: str | None = None


class StagedTrack(StagedTrackInput):
    """A persisted tracklist row belonging to a staged record."""

    id: int
    raw_mix_id: str


class StagedRecordInput(BaseModel):
    """The record shape every source fetcher must produce.

    ``source_url`` is required and globally unique; it is the primary
    duplicate key in the staging area.
    """

    model_config = ConfigDict(frozen=True)

    provider: Provider
    source_url: str = Field(min_length=1)
    external_id: str | None = None
    raw_title: str | None = None
    raw_description: str | None = None
    raw_artist: str | None = None
    uploaded_at: datetime | None = None
    duration_seconds: int | None = None
    artwork_url: str | None = None
    raw_metadata: dict[str, Any] = Field(default_factory=dict)
    tracks: list[StagedTrackInput] = Field(default_factory=list)


class StagedRecord(BaseModel):
    """A raw mix as stored in the staging area."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: Provider
    source_url: str
    external_id: str | None = None
    raw_title: str | None = None
    raw_description: str | None = None
    raw_artist: str | None = None
    uploaded_at: datetime | None = None
    duration_seconds: int | None = None
    artwork_url: str | None = None
    raw_metadata: dict[str, Any] = Field(default_factory=dict)
    status: StagedStatus = StagedStatus.PENDING
    canonical_mix_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None

    @property
    def channel_id(self) -> str | None:
        """Uploader channel id reported by the fetcher, if any."""
        value = self.raw_metadata.get("channel_id")
        return str(value) if value else None

    @property
    def channel_name(self) -> str | None:
        """Uploader channel/username reported by the fetcher, if any."""
        value = self.raw_metadata.get("channel_name") or self.raw_metadata.get("username")
        return str(value) if value else None

    @property
    def linked_ids(self) -> dict[str, str]:
        """Raw ids of the same upload on other platforms, e.g. ``{"youtube": "dQw4w9WgXcQ"}``.

        1001Tracklists pages link the YouTube/SoundCloud uploads they were
        built from; fetchers pass those links through ``raw_metadata``.
        """
        value = self.raw_metadata.get("linked_ids")
        if not isinstance(value, dict):
            return {}
        return {str(key): str(raw_id) for key, raw_id in value.items() if raw_id}
