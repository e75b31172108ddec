"""Unit tests for fuzzy scoring, the validation guard and best-match selection."""

from __future__ import annotations

import pytest

from mixcatalog.models.catalog import MatchCandidate, MatchConfidence
from mixcatalog.services.fuzzy_matcher import (
    ARTIST_NAME_THRESHOLD,
    TRACK_TITLE_THRESHOLD,
    FuzzyMatcher,
    confidence_level,
    passes_validation,
    similarity,
)


def _candidates(*texts: str) -> list[MatchCandidate]:
    return [MatchCandidate(id=f"c{index}", text=text) for index, text in enumerate(texts)]


# ======================================================================
# Scoring helpers
# ======================================================================


class TestSimilarity:
    def test_token_order_insensitive(self) -> None:
        assert similarity("lane 8 fingerprint", "fingerprint lane 8") == 1.0

    def test_empty_scores_zero(self) -> None:
        assert similarity("", "fingerprint") == 0.0
        assert similarity("fingerprint", "") == 0.0

    def test_range(self) -> None:
        score = similarity("fingerprint", "fingerprints")
        assert 0.0 < score < 1.0

    def test_spacing_variants_agree(self) -> None:
        assert similarity("lane 8", "lane8") == 1.0


class TestConfidenceLevel:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0.95, MatchConfidence.HIGH),
            (0.90, MatchConfidence.HIGH),
            (0.85, MatchConfidence.MEDIUM),
            (0.70, MatchConfidence.LOW),
        ],
    )
    def test_bands_relative_to_threshold(self, score: float, expected: MatchConfidence) -> None:
        assert confidence_level(score, TRACK_TITLE_THRESHOLD) is expected


class TestPassesValidation:
    def test_token_count_mismatch_rejected(self) -> None:
        assert not passes_validation("adam", "adam beyer and ida engberg live", 0.9)

    def test_token_count_mismatch_allowed_when_near_perfect(self) -> None:
        assert passes_validation("adam", "adam beyer and ida engberg live", 0.96)

    def test_different_first_token_rejected(self) -> None:
        assert not passes_validation("joris plex", "maceo plex", 0.88)

    def test_different_first_token_allowed_at_high_score(self) -> None:
        assert passes_validation("joris plex", "maceo plex", 0.92)

    def test_similar_first_token_passes(self) -> None:
        assert passes_validation("mace plex", "maceo plex", 0.88)

    def test_empty_rejected(self) -> None:
        assert not passes_validation("", "fingerprint", 1.0)


# ======================================================================
# FuzzyMatcher
# ======================================================================


class TestFindBestMatch:
    def test_exact_normalized_duplicate_scores_one(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match(
            "Fingerprint (Original Mix)", _candidates("Fingerprint"), TRACK_TITLE_THRESHOLD
        )
        assert result.score == 1.0
        assert result.is_high_confidence
        assert result.match is not None
        assert result.match.id == "c0"
        assert not result.should_create_new

    def test_below_threshold_returns_no_match(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match("Opus", _candidates("Opus III"), TRACK_TITLE_THRESHOLD)
        assert result.match is None
        assert not result.is_high_confidence
        assert result.should_create_new
        assert result.best_candidate is not None
        assert result.best_candidate.id == "c0"

    def test_validation_failure_downgrades(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match(
            "Adam", _candidates("Adam Beyer and Ida Engberg Live"), ARTIST_NAME_THRESHOLD
        )
        assert result.match is None
        assert result.should_create_new

    def test_alternatives_capped_and_sorted(self, fuzzy: FuzzyMatcher) -> None:
        candidates = _candidates(
            "Fingerprint",
            "Fingerprints",
            "Finger Print",
            "Fingerprinted",
            "Fingertips",
        )
        result = fuzzy.find_best_match("Fingerprint", candidates, TRACK_TITLE_THRESHOLD)
        assert result.match is not None
        assert result.match.id == "c0"
        assert len(result.alternatives) == 3
        scores = [alt.score for alt in result.alternatives]
        assert scores == sorted(scores, reverse=True)
        assert all(alt.score <= result.score for alt in result.alternatives)

    def test_tie_keeps_first_candidate(self, fuzzy: FuzzyMatcher) -> None:
        candidates = [
            MatchCandidate(id="first", text="Lane 8"),
            MatchCandidate(id="second", text="lane 8"),
        ]
        result = fuzzy.find_best_match("Lane 8", candidates, ARTIST_NAME_THRESHOLD)
        assert result.match is not None
        assert result.match.id == "first"

    def test_lane_8_prefers_exact_artist(self, fuzzy: FuzzyMatcher) -> None:
        candidates = _candidates("Lane 8", "Lane 8 & Arctic Lake", "Kane 8")
        result = fuzzy.find_best_match("lane 8", candidates, ARTIST_NAME_THRESHOLD)
        assert result.best_candidate is not None
        assert result.best_candidate.text.startswith("Lane 8")
        assert result.match is not None
        assert result.match.id == "c0"

    def test_lane_8_spelling_variants_never_odesza(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match(
            "Lane 8", _candidates("Lane8", "Lane 8 Music", "Odesza"), ARTIST_NAME_THRESHOLD
        )
        assert result.match is not None
        assert result.match.text in {"Lane8", "Lane 8 Music"}
        assert result.match.text != "Odesza"
        assert result.is_high_confidence

    def test_empty_query(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match("   ", _candidates("Fingerprint"), TRACK_TITLE_THRESHOLD)
        assert result.match is None
        assert result.best_candidate is None
        assert result.score == 0.0

    def test_no_candidates(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match("Fingerprint", [], TRACK_TITLE_THRESHOLD)
        assert result.match is None
        assert result.alternatives == []

    def test_blank_candidates_ignored(self, fuzzy: FuzzyMatcher) -> None:
        result = fuzzy.find_best_match("Fingerprint", _candidates("(Original Mix)"), TRACK_TITLE_THRESHOLD)
        assert result.best_candidate is None


class TestBatchAndSameness:
    def test_batch_match_preserves_order(self, fuzzy: FuzzyMatcher) -> None:
        results = fuzzy.batch_match(
            ["Fingerprint", "Hyperfall", "Unknown Track"],
            _candidates("Hyperfall", "Fingerprint"),
            TRACK_TITLE_THRESHOLD,
        )
        assert [r.match.id if r.match else None for r in results] == ["c1", "c0", None]

    def test_are_likely_same(self, fuzzy: FuzzyMatcher) -> None:
        assert fuzzy.are_likely_same("Lane 8 - Fingerprint", "Fingerprint - Lane 8")
        assert not fuzzy.are_likely_same("Fingerprint", "Hyperfall")
