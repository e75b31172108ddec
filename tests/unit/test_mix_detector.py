"""Unit tests for the mix detection scorer."""

from __future__ import annotations

from mixcatalog.models.catalog import MatchConfidence
from mixcatalog.services.mix_detector import detect_mix

# ======================================================================
# Verdicts
# ======================================================================


class TestDetectMix:
    def test_long_set_with_keywords(self) -> None:
        result = detect_mix("Lane 8 - Summer Mix 2024 (Full Set)", None, 3600)

        assert result.is_mix
        assert result.confidence is MatchConfidence.HIGH
        assert result.score == 60
        assert result.reasons == ["Very long duration (60 min)", "Mix keywords: mix, set"]

    def test_short_upload_is_not_a_mix(self) -> None:
        result = detect_mix("Lane 8 - Fingerprint (Official Video)", "", 240)

        assert not result.is_mix
        assert result.confidence is MatchConfidence.LOW
        assert result.reasons == ["Too short for mix (4 min)"]

    def test_tutorial_is_excluded(self) -> None:
        result = detect_mix("Ableton tutorial: how to mix basslines", None, 900)

        assert not result.is_mix
        assert result.score == 0
        assert result.confidence is MatchConfidence.LOW
        assert result.reasons[-1] == "Likely non-mix: tutorial"

    def test_description_keywords_count(self) -> None:
        result = detect_mix("Sunrise", "Live DJ set from the beach", 15 * 60)

        assert result.is_mix
        assert result.score == 45
        assert "Mix keywords: set, live, dj" in result.reasons

    def test_unknown_duration_judged_on_keywords(self) -> None:
        result = detect_mix("Essential Mix - Radio 1", None, None)

        assert result.is_mix
        assert result.confidence is MatchConfidence.MEDIUM
        assert result.reasons[0] == "Duration unknown"

    def test_keyword_only_title_below_floor(self) -> None:
        assert not detect_mix("Summer mix", None, None).is_mix

    def test_score_is_clamped(self) -> None:
        result = detect_mix("DJ Mix Set Session - Radio Show Podcast Live Episode Vol. 1", None, 7200)
        assert result.score == 100

    def test_metadata_form(self) -> None:
        metadata = detect_mix("Boiler Room: Bicep DJ Set", None, 3600).as_metadata()

        assert metadata["is_mix"] is True
        assert metadata["confidence"] == "high"
        assert isinstance(metadata["reasons"], list)
