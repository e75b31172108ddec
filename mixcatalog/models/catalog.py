"""Canonical catalog entities and the transient match types used to build them.

Every canonical entity carries a verification triple (``is_verified``,
``verified_by``, ``verified_at``).  The pipeline always creates entities
unverified; only an explicit auto-verify configuration with an externally
supplied identity, or the external review workflow, sets ``is_verified``.

:class:`MatchCandidate` and :class:`MatchResult` are read-only projections
used while scoring and are never persisted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.models.staging import Provider


class MatchConfidence(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Qualitative band of a fuzzy match score relative to its threshold.

    HIGH:   score >= threshold
    MEDIUM: score >= threshold - 0.1
    LOW:    anything lower
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContextType(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Non-physical categorizations a mix can belong to."""

    FESTIVAL = "festival"
    RADIO_SHOW = "radio_show"
    PUBLISHER = "publisher"
    SERIES = "series"
    LABEL = "label"
    PROMOTER = "promoter"
    STAGE = "stage"


class MixContextRole(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """How a mix relates to a linked context."""

    PERFORMED_AT = "performed_at"
    BROADCASTED_ON = "broadcasted_on"
    PUBLISHED_BY = "published_by"


ROLE_BY_CONTEXT_TYPE: dict[ContextType, MixContextRole] = {
    ContextType.FESTIVAL: MixContextRole.PERFORMED_AT,
    ContextType.STAGE: MixContextRole.PERFORMED_AT,
    ContextType.SERIES: MixContextRole.PERFORMED_AT,
    ContextType.PROMOTER: MixContextRole.PERFORMED_AT,
    ContextType.RADIO_SHOW: MixContextRole.BROADCASTED_ON,
    ContextType.PUBLISHER: MixContextRole.PUBLISHED_BY,
    ContextType.LABEL: MixContextRole.PUBLISHED_BY,
}


# ---------------------------------------------------------------------------
# Canonical entities
# ---------------------------------------------------------------------------

class CanonicalEntity(BaseModel):
    """Fields shared by every catalog entity."""

    model_config = ConfigDict(frozen=True)

    id: str
    is_verified: bool = False
    verified_by: str | None = None
    verified_at: datetime | None = None
    created_at: datetime | None = None


class Artist(CanonicalEntity):
    name: str
    normalized_name: str


class Track(CanonicalEntity):
    title: str
    normalized_title: str


class Context(CanonicalEntity):
    name: str
    normalized_name: str
    context_type: ContextType


class Venue(CanonicalEntity):
    name: str
    normalized_name: str
    city: str | None = None
    country: str | None = None


class Mix(CanonicalEntity):
    """A canonical DJ mix, possibly seen on several platforms."""

    title: str
    description: str | None = None
    artist_name: str | None = None
    published_at: datetime | None = None
    duration_seconds: int | None = None
    artwork_url: str | None = None
    audio_url: str | None = None
    ingestion_source: Provider
    external_ids: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    venue_id: str | None = None


class MixDraft(BaseModel):
    """Writable fields of a mix, produced by merging staged data."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str | None = None
    artist_name: str | None = None
    published_at: datetime | None = None
    duration_seconds: int | None = None
    artwork_url: str | None = None
    audio_url: str | None = None
    ingestion_source: Provider
    external_ids: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class MatchCandidate(BaseModel):
    """Scoring-time projection of a catalog entity."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScoredCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: MatchCandidate
    score: float = Field(ge=0.0, le=1.0)


class MatchResult(BaseModel):
    """Outcome of scoring a query against a candidate set.

    ``match`` is only set when the best score clears the threshold and
    survives the validation guard.  ``best_candidate`` is always the
    top-scored candidate (for audit), even when no match is returned.
    """

    model_config = ConfigDict(frozen=True)

    match: MatchCandidate | None = None
    score: float = 0.0
    is_high_confidence: bool = False
    alternatives: list[ScoredCandidate] = Field(default_factory=list, max_length=3)
    best_candidate: MatchCandidate | None = None

    @property
    def should_create_new(self) -> bool:
        """Uncertain results always lead to a new, unverified entity."""
        return not self.is_high_confidence


class EntityMatch(BaseModel):
    """Resolution of a name or tracklist line against the catalog."""

    model_config = ConfigDict(frozen=True)

    match_id: str | None = None
    score: float = 0.0
    confidence: MatchConfidence = MatchConfidence.LOW
    should_create_new: bool = True


class ArtistCredit(BaseModel):
    """One credited artist name and how it resolved."""

    model_config = ConfigDict(frozen=True)

    name: str
    match: EntityMatch


class TrackLineMatch(BaseModel):
    """A parsed tracklist line resolved against the catalog.

    ``confidence`` combines the track and artist results: HIGH when the
    track and at least one artist are high-confidence, MEDIUM when either
    is, LOW otherwise.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    artist_text: str | None = None
    track: EntityMatch
    artists: list[ArtistCredit] = Field(default_factory=list)
    confidence: MatchConfidence = MatchConfidence.LOW

    @property
    def should_create_new(self) -> bool:
        return self.track.should_create_new


class DuplicateMatch(BaseModel):
    """A canonical entity that shares an external identifier with an incoming record."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    matched_key: str
    matched_value: str
