"""Fuzzy matching of titles and names against catalog candidates.

Scores are rapidfuzz ``token_sort_ratio`` values rescaled to 0..1 and
computed on :func:`~mixcatalog.utils.text_normalizer.normalize`-d text, so
"Title - Artist" and "Artist - Title" score identically and an exact
normalized duplicate always scores 1.0.  The plain ratio of the
space-free forms is taken when higher, so "Lane 8" and "Lane8" agree.

A candidate that clears the threshold must also pass a validation guard
before it is returned as a match.  The guard rejects two failure modes of
token-sort scoring:

* very different token counts (``"adam"`` vs ``"adam beyer and ida engberg
  live"``) unless the score is near-perfect, and
* a first token that shares little with the candidate's (``"maceo plex"``
  vs ``"mace plex"`` passes, ``"joris plex"`` does not) unless the score is
  high enough that the rest of the string clearly agrees.

Scores between the ambiguous floor and the threshold are logged as
``ambiguous_match`` warnings and otherwise treated like no match.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog
from rapidfuzz import fuzz

from mixcatalog.models.catalog import (
    MatchCandidate,
    MatchConfidence,
    MatchResult,
    ScoredCandidate,
)
from mixcatalog.utils.logging import get_logger
from mixcatalog.utils.text_normalizer import normalize

TRACK_TITLE_THRESHOLD = 0.90
ARTIST_NAME_THRESHOLD = 0.85
AMBIGUOUS_FLOOR = 0.6

_MEDIUM_BAND = 0.1
_MAX_ALTERNATIVES = 3

# Validation guard
_MAX_TOKEN_RATIO = 3.0
_TOKEN_RATIO_MIN_SCORE = 0.95
_FIRST_TOKEN_MIN_SIMILARITY = 0.6
_FIRST_TOKEN_MIN_SCORE = 0.9


def similarity(left: str, right: str) -> float:
    """Token-order-insensitive similarity of two already-normalized strings (0..1)."""
    if not left or not right:
        return 0.0
    token_sorted = fuzz.token_sort_ratio(left, right)
    compact = fuzz.ratio(left.replace(" ", ""), right.replace(" ", ""))
    return max(token_sorted, compact) / 100.0


def confidence_level(score: float, threshold: float) -> MatchConfidence:
    """Map *score* to HIGH / MEDIUM / LOW relative to *threshold*."""
    if score >= threshold:
        return MatchConfidence.HIGH
    if score >= threshold - _MEDIUM_BAND:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


def passes_validation(query: str, candidate: str, score: float) -> bool:
    """Return False when a threshold-clearing *score* looks like a false positive.

    Both strings must already be normalized.
    """
    query_tokens = query.split()
    candidate_tokens = candidate.split()
    if not query_tokens or not candidate_tokens:
        return False

    longer = max(len(query_tokens), len(candidate_tokens))
    shorter = min(len(query_tokens), len(candidate_tokens))
    if longer / shorter > _MAX_TOKEN_RATIO and score < _TOKEN_RATIO_MIN_SCORE:
        return False

    first_token_similarity = fuzz.ratio(query_tokens[0], candidate_tokens[0]) / 100.0
    if first_token_similarity < _FIRST_TOKEN_MIN_SIMILARITY and score < _FIRST_TOKEN_MIN_SCORE:
        return False

    return True


class FuzzyMatcher:
    """Scores a query against candidates and decides whether any is a match.

    Stateless apart from its logger; safe to share across workers.
    """

    def __init__(self, ambiguous_floor: float = AMBIGUOUS_FLOOR) -> None:
        self._ambiguous_floor = ambiguous_floor
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def find_best_match(
        self,
        query: str,
        candidates: Sequence[MatchCandidate],
        threshold: float,
    ) -> MatchResult:
        """Return the best candidate for *query*, if it is confident enough.

        Parameters
        ----------
        query:
            Raw title or name; normalized internally.
        candidates:
            Catalog projections to score.  Their ``text`` is normalized
            the same way as the query.
        threshold:
            Minimum score (0..1) for a match, e.g. :data:`TRACK_TITLE_THRESHOLD`.

        Returns
        -------
        MatchResult
            ``match`` is set only when the top score reaches *threshold*
            and passes the validation guard.  ``alternatives`` holds up to
            three runners-up in descending score order.
        """
        normalized_query = normalize(query)
        if not normalized_query or not candidates:
            return MatchResult()

        scored: list[tuple[MatchCandidate, str, float]] = []
        for candidate in candidates:
            normalized_candidate = normalize(candidate.text)
            if not normalized_candidate:
                continue
            scored.append(
                (candidate, normalized_candidate, similarity(normalized_query, normalized_candidate))
            )
        if not scored:
            return MatchResult()

        # Stable sort: among equal scores the first candidate supplied wins.
        scored.sort(key=lambda item: item[2], reverse=True)
        best, best_normalized, best_score = scored[0]
        alternatives = [
            ScoredCandidate(candidate=candidate, score=score)
            for candidate, _, score in scored[1 : 1 + _MAX_ALTERNATIVES]
        ]

        is_high_confidence = best_score >= threshold
        if is_high_confidence and not passes_validation(normalized_query, best_normalized, best_score):
            self._logger.info(
                "match_rejected_by_validation",
                query=normalized_query,
                candidate=best_normalized,
                score=round(best_score, 3),
            )
            is_high_confidence = False
        elif not is_high_confidence and best_score >= self._ambiguous_floor:
            self._logger.warning(
                "ambiguous_match",
                query=normalized_query,
                candidate=best_normalized,
                candidate_id=best.id,
                score=round(best_score, 3),
                threshold=threshold,
            )

        return MatchResult(
            match=best if is_high_confidence else None,
            score=best_score,
            is_high_confidence=is_high_confidence,
            alternatives=alternatives,
            best_candidate=best,
        )

    def batch_match(
        self,
        queries: Iterable[str],
        candidates: Sequence[MatchCandidate],
        threshold: float,
    ) -> list[MatchResult]:
        """Run :meth:`find_best_match` for each query against one candidate set."""
        return [self.find_best_match(query, candidates, threshold) for query in queries]

    def are_likely_same(self, left: str, right: str, threshold: float = TRACK_TITLE_THRESHOLD) -> bool:
        """True when two raw strings score at or above *threshold* after normalization."""
        return similarity(normalize(left), normalize(right)) >= threshold
