"""Resolve artist names and tracklist lines against the canonical catalog.

Candidate retrieval is delegated to the catalog store (loose substring /
prefix lookups on normalized names); the :class:`FuzzyMatcher` then decides
whether any candidate is a confident match.  Anything short of a
high-confidence match resolves to ``should_create_new``: a duplicate
unverified entity is preferable to silently merging two different ones.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.models.catalog import (
    ArtistCredit,
    EntityMatch,
    MatchCandidate,
    MatchConfidence,
    MatchResult,
    TrackLineMatch,
)
from mixcatalog.services.fuzzy_matcher import (
    ARTIST_NAME_THRESHOLD,
    TRACK_TITLE_THRESHOLD,
    FuzzyMatcher,
    confidence_level,
)
from mixcatalog.utils.errors import TransientIOError
from mixcatalog.utils.logging import get_logger
from mixcatalog.utils.text_normalizer import (
    normalize,
    parse_tracklist_line,
    split_artist_variations,
    strip_line_prefix,
)

_CANDIDATE_LIMIT = 50


class EntityMatcher:
    """Matches artists and tracks for the canonicalization orchestrator."""

    def __init__(
        self,
        catalog: ICatalogStore,
        fuzzy: FuzzyMatcher,
        track_threshold: float = TRACK_TITLE_THRESHOLD,
        artist_threshold: float = ARTIST_NAME_THRESHOLD,
        candidate_limit: int = _CANDIDATE_LIMIT,
    ) -> None:
        self._catalog = catalog
        self._fuzzy = fuzzy
        self._track_threshold = track_threshold
        self._artist_threshold = artist_threshold
        self._candidate_limit = candidate_limit
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # -- Public API -----------------------------------------------------------

    async def match_artist(self, name: str) -> EntityMatch:
        """Resolve a single artist name."""
        query = normalize(name)
        if not query:
            return EntityMatch()
        candidates = await self._candidates(self._catalog.search_artists, query, kind="artist")
        result = self._fuzzy.find_best_match(name, candidates, self._artist_threshold)
        return self._to_entity_match(result, self._artist_threshold)

    async def match_artist_credit(self, raw_artist: str | None) -> list[ArtistCredit]:
        """Resolve an artist credit that may name several collaborators.

        The full credit is tried first ("Simon & Garfunkel" is one act).
        If it does not match confidently, each collaborator split out of it
        is resolved on its own ("Bicep & Hammer" -> "Bicep", "Hammer").
        """
        variations = split_artist_variations(raw_artist or "")
        if not variations:
            return []

        full_credit = variations[0]
        full_match = await self.match_artist(full_credit)
        if full_match.confidence is MatchConfidence.HIGH or len(variations) == 1:
            return [ArtistCredit(name=full_credit, match=full_match)]

        return [
            ArtistCredit(name=name, match=await self.match_artist(name))
            for name in variations[1:]
        ]

    async def match_track_line(
        self,
        line_text: str,
        raw_artist: str | None = None,
        raw_title: str | None = None,
    ) -> TrackLineMatch | None:
        """Resolve one tracklist entry.

        Parameters
        ----------
        line_text:
            The raw line as it appeared in the tracklist.
        raw_artist, raw_title:
            Pre-split values from the source, when the platform provides
            them.  Otherwise they are parsed out of *line_text*.

        Returns
        -------
        TrackLineMatch or None
            ``None`` when the line carries no usable title (e.g. "ID - ID"
            placeholders are kept, but an empty line is not).
        """
        if raw_title:
            artist_text, title = raw_artist, raw_title.strip()
        else:
            artist_text, title = parse_tracklist_line(line_text)
            if not title:
                title = strip_line_prefix(line_text)
        if not normalize(title):
            return None

        candidates = await self._candidates(self._catalog.search_tracks, normalize(title), kind="track")
        result = self._fuzzy.find_best_match(title, candidates, self._track_threshold)
        track = self._to_entity_match(result, self._track_threshold)
        artists = await self.match_artist_credit(artist_text)

        return TrackLineMatch(
            title=title,
            artist_text=artist_text,
            track=track,
            artists=artists,
            confidence=_combined_confidence(track, artists),
        )

    # -- Private helpers -------------------------------------------------------

    async def _candidates(
        self,
        search: Callable[[str, int], Awaitable[list[MatchCandidate]]],
        query: str,
        kind: str,
    ) -> list[MatchCandidate]:
        """Run a candidate lookup; a failed lookup yields no candidates."""
        try:
            return await search(query, self._candidate_limit)
        except TransientIOError as exc:
            self._logger.warning("candidate_lookup_failed", kind=kind, query=query, error=str(exc))
            return []

    @staticmethod
    def _to_entity_match(result: MatchResult, threshold: float) -> EntityMatch:
        if result.is_high_confidence and result.match is not None:
            return EntityMatch(
                match_id=result.match.id,
                score=result.score,
                confidence=MatchConfidence.HIGH,
                should_create_new=False,
            )
        level = confidence_level(result.score, threshold)
        # A threshold-clearing score that failed validation is at best MEDIUM.
        if level is MatchConfidence.HIGH:
            level = MatchConfidence.MEDIUM
        return EntityMatch(score=result.score, confidence=level, should_create_new=True)


def _combined_confidence(track: EntityMatch, artists: list[ArtistCredit]) -> MatchConfidence:
    track_high = track.confidence is MatchConfidence.HIGH
    artist_high = any(credit.match.confidence is MatchConfidence.HIGH for credit in artists)
    if track_high and artist_high:
        return MatchConfidence.HIGH
    if track_high or artist_high:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW
