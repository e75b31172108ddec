"""Abstract base class for the canonical catalog store.

Covers mixes, artists, tracks, contexts and venues plus the link tables
between them.  Candidate retrieval (``search_*``) is deliberately loose
(substring and prefix matching on normalized names); precision comes from
the fuzzy matcher that scores the returned candidates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

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


class ICatalogStore(ABC):
    """Contract for canonical entity persistence and candidate lookup."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist."""

    # -- Mixes -------------------------------------------------------------

    @abstractmethod
    async def create_mix(self, draft: MixDraft, verified_by: str | None = None) -> Mix:
        """Insert a new mix.  It is verified only when *verified_by* is given."""

    @abstractmethod
    async def update_mix(self, mix_id: str, draft: MixDraft) -> Mix:
        """Overwrite the mutable fields of an existing mix.

        Raises
        ------
        RecordNotFoundError
            If no mix has *mix_id*.
        """

    @abstractmethod
    async def get_mix(self, mix_id: str) -> Mix | None:
        """Return the mix with *mix_id*, or ``None``."""

    @abstractmethod
    async def find_mix_by_audio_url(self, audio_url: str) -> Mix | None:
        """Return the mix whose ``audio_url`` equals *audio_url*, or ``None``."""

    @abstractmethod
    async def list_mix_external_ids(self) -> list[tuple[str, dict[str, str]]]:
        """Return ``(mix_id, external_ids)`` for every mix with at least one identifier."""

    @abstractmethod
    async def count_mix_tracks(self, mix_id: str) -> int:
        """Number of tracklist entries linked to the mix."""

    @abstractmethod
    async def linked_track_positions(self, mix_id: str) -> set[int]:
        """Tracklist positions of the mix that already have a track."""

    @abstractmethod
    async def set_mix_venue(self, mix_id: str, venue_id: str) -> None:
        """Attach a venue to a mix."""

    # -- Artists -----------------------------------------------------------

    @abstractmethod
    async def search_artists(self, query: str, limit: int = 50) -> list[MatchCandidate]:
        """Candidate artists whose normalized name loosely matches *query*."""

    @abstractmethod
    async def create_artist(self, name: str, verified_by: str | None = None) -> Artist:
        """Insert a new artist."""

    @abstractmethod
    async def link_mix_artist(self, mix_id: str, artist_id: str, role: str = "primary") -> None:
        """Link an artist to a mix (idempotent)."""

    @abstractmethod
    async def list_mix_artists(self, mix_id: str) -> list[dict[str, Any]]:
        """Artists credited on a mix with their role."""

    # -- Tracks ------------------------------------------------------------

    @abstractmethod
    async def search_tracks(self, query: str, limit: int = 50) -> list[MatchCandidate]:
        """Candidate tracks whose title or an alias loosely matches *query*."""

    @abstractmethod
    async def create_track(self, title: str, verified_by: str | None = None) -> Track:
        """Insert a new track."""

    @abstractmethod
    async def add_track_aliases(self, track_id: str, aliases: list[str], source: str) -> None:
        """Store alternative lookup spellings for a track (duplicates ignored)."""

    @abstractmethod
    async def link_track_artist(self, track_id: str, artist_id: str) -> None:
        """Link an artist to a track (idempotent)."""

    @abstractmethod
    async def link_mix_track(
        self,
        mix_id: str,
        track_id: str,
        position: int,
        timestamp_seconds: int | None,
        match_confidence: float,
        verified_by: str | None = None,
    ) -> None:
        """Place a track in a mix's tracklist at *position*."""

    # -- Contexts & venues -------------------------------------------------

    @abstractmethod
    async def find_context(self, name: str, context_type: ContextType) -> Context | None:
        """Find a context by exact name, then by normalized name."""

    @abstractmethod
    async def create_context(self, name: str, context_type: ContextType) -> Context:
        """Insert a new, unverified context.

        If a context with the same key and type already exists (e.g. created
        by a concurrent job) that row is returned instead.
        """

    @abstractmethod
    async def link_mix_context(
        self,
        mix_id: str,
        context_id: str,
        role: MixContextRole,
        confidence: float,
        verified_by: str | None = None,
    ) -> None:
        """Link a context to a mix (idempotent per mix/context/role)."""

    @abstractmethod
    async def list_mix_contexts(self, mix_id: str) -> list[dict[str, Any]]:
        """Linked contexts of a mix with role and confidence."""

    @abstractmethod
    async def find_venue(self, name: str) -> Venue | None:
        """Find a venue by exact name, then by normalized name."""

    @abstractmethod
    async def create_venue(self, name: str) -> Venue:
        """Insert a new, unverified venue, or return the existing one with the same key."""

    # -- Rule applications -------------------------------------------------

    @abstractmethod
    async def record_rule_application(
        self,
        mix_id: str,
        suggestion: ContextSuggestion,
        action: RuleAction,
    ) -> None:
        """Persist what was done with a context suggestion, for review and accuracy tracking.

        At most one row per ``(mix_id, rule_id)``; repeats are ignored.
        """

    @abstractmethod
    async def list_rule_applications(self, mix_id: str) -> list[dict[str, Any]]:
        """Rule application rows for a mix."""

    # -- Stats -------------------------------------------------------------

    @abstractmethod
    async def entity_counts(self) -> dict[str, int]:
        """Row counts per catalog table."""
