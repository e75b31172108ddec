"""Unit tests for the canonicalization orchestrator."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from mixcatalog.models.staging import Provider, StagedRecord, StagedRecordInput, StagedStatus
from mixcatalog.pipeline.canonicalizer import (
    UNTITLED_MIX,
    CanonicalizationOptions,
    Canonicalizer,
)
from mixcatalog.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from mixcatalog.providers.store.sqlite_rule_store import SQLiteRuleStore
from mixcatalog.providers.store.sqlite_staging_store import SQLiteStagingStore
from mixcatalog.utils.errors import RecordNotFoundError, TransientIOError
from tests.conftest import make_record


async def _stage(staging_store: SQLiteStagingStore, record: StagedRecordInput) -> StagedRecord:
    staged = await staging_store.insert_if_absent(record)
    assert staged is not None
    return staged


def _youtube_upload() -> StagedRecordInput:
    return make_record(
        provider=Provider.YOUTUBE,
        source_url="https://youtube.com/watch?v=abc",
        external_id="abc",
        title="Lane 8 - Summer Mix (Full Set HD)",
        duration_seconds=3600,
    )


def _tracklist_page(**overrides: object) -> StagedRecordInput:
    fields: dict[str, object] = {
        "provider": Provider.TRACKLISTS_1001,
        "source_url": "https://1001tracklists.com/tracklist/2k9x7",
        "external_id": "2k9x7",
        "title": "Lane 8 @ Summer Mix 2024",
        "tracks": ["Lane 8 - Fingerprint", "Yotto - Hyperfall"],
        "raw_metadata": {"linked_ids": {"youtube": "abc"}},
    }
    fields.update(overrides)
    return make_record(**fields)  # type: ignore[arg-type]


# ======================================================================
# New mixes
# ======================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_mix_with_artists_and_tracks(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record(tracks=["Lane 8 - Fingerprint", "Yotto - Hyperfall"]))

        outcome = await canonicalizer.canonicalize(staged.id)

        assert outcome.created
        assert outcome.tracks_linked == 2
        assert outcome.tracks_created == 2
        assert outcome.artists_created == 1

        mix = await catalog_store.get_mix(outcome.mix_id or "")
        assert mix is not None
        assert mix.title == "Lane 8 Summer Mix 2024"
        assert mix.audio_url == "https://soundcloud.com/lane8/summer-mix"
        assert mix.external_ids == {"soundcloud": "sc:sc-1001"}
        assert not mix.is_verified
        assert await catalog_store.count_mix_tracks(mix.id) == 2

        counts = await catalog_store.entity_counts()
        assert counts["artists"] == 2  # Lane 8 reused for its own track
        assert counts["tracks"] == 2

        record = await staging_store.get(staged.id)
        assert record is not None
        assert record.status is StagedStatus.CANONICALIZED
        assert record.canonical_mix_id == mix.id

    @pytest.mark.asyncio
    async def test_new_tracks_are_searchable_by_alias(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record(tracks=["Bicep - Glue (Original Mix)"]))

        await canonicalizer.canonicalize(staged.id)

        candidates = await catalog_store.search_tracks("glue by bicep")
        assert [c.text for c in candidates] == ["Glue (Original Mix)"]

    @pytest.mark.asyncio
    async def test_missing_title_falls_back(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record(title=None, artist=None))

        outcome = await canonicalizer.canonicalize(staged.id)

        mix = await catalog_store.get_mix(outcome.mix_id or "")
        assert mix is not None
        assert mix.title == UNTITLED_MIX
        assert outcome.artists_created == 0

    @pytest.mark.asyncio
    async def test_missing_artist_read_from_title(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record(title="Bicep @ Printworks London", artist=None))

        outcome = await canonicalizer.canonicalize(staged.id)

        assert outcome.artists_created == 1
        artists = await catalog_store.list_mix_artists(outcome.mix_id or "")
        assert [a["name"] for a in artists] == ["Bicep"]

    @pytest.mark.asyncio
    async def test_missing_artist_from_known_channel(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        record = make_record(
            title="Monolink live at Cercle", artist="  ", raw_metadata={"channel_name": "Cercle"}
        )
        staged = await _stage(staging_store, record)

        outcome = await canonicalizer.canonicalize(staged.id)

        artists = await catalog_store.list_mix_artists(outcome.mix_id or "")
        assert [a["name"] for a in artists] == ["Monolink"]

    @pytest.mark.asyncio
    async def test_second_run_is_skipped(
        self, canonicalizer: Canonicalizer, staging_store: SQLiteStagingStore
    ) -> None:
        staged = await _stage(staging_store, make_record())
        first = await canonicalizer.canonicalize(staged.id)

        second = await canonicalizer.canonicalize(staged.id)

        assert second.skipped
        assert second.mix_id == first.mix_id

    @pytest.mark.asyncio
    async def test_missing_record(self, canonicalizer: Canonicalizer) -> None:
        with pytest.raises(RecordNotFoundError):
            await canonicalizer.canonicalize("does-not-exist")


# ======================================================================
# Verification and context rules
# ======================================================================


class TestOptions:
    @pytest.mark.asyncio
    async def test_auto_verify_stamps_identity(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record())
        options = CanonicalizationOptions(auto_verify=True, verified_by="ops@example.com")

        outcome = await canonicalizer.canonicalize(staged.id, options)

        mix = await catalog_store.get_mix(outcome.mix_id or "")
        assert mix is not None
        assert mix.is_verified
        assert mix.verified_by == "ops@example.com"

    @pytest.mark.asyncio
    async def test_auto_verify_without_identity_stays_unverified(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record())

        outcome = await canonicalizer.canonicalize(staged.id, CanonicalizationOptions(auto_verify=True))

        mix = await catalog_store.get_mix(outcome.mix_id or "")
        assert mix is not None
        assert not mix.is_verified

    @pytest.mark.asyncio
    async def test_context_rules_applied(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
        rule_store: SQLiteRuleStore,
    ) -> None:
        await rule_store.save_definition(
            {
                "name": "Summer Series",
                "rule_type": "keyword",
                "target_context_type": "series",
                "target_context_name": "Lane 8 Summer Series",
                "confidence_weight": 0.95,
                "pattern_config": {"keywords": ["summer mix"]},
            }
        )
        staged = await _stage(staging_store, make_record())
        options = CanonicalizationOptions(auto_link_contexts=True, context_floor=0.9)

        outcome = await canonicalizer.canonicalize(staged.id, options)

        assert outcome.suggestions == {"linked": 1}
        contexts = await catalog_store.list_mix_contexts(outcome.mix_id or "")
        assert [c["name"] for c in contexts] == ["Lane 8 Summer Series"]


# ======================================================================
# Cross-platform duplicates
# ======================================================================


class TestMerge:
    @pytest.mark.asyncio
    async def test_linked_upload_merges_into_existing_mix(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        youtube = await _stage(staging_store, _youtube_upload())
        first = await canonicalizer.canonicalize(youtube.id)
        page = await _stage(staging_store, _tracklist_page())

        outcome = await canonicalizer.canonicalize(page.id)

        assert outcome.merged
        assert outcome.mix_id == first.mix_id
        assert outcome.duplicate is not None
        assert outcome.duplicate.matched_key == "youtube"
        assert outcome.tracks_linked == 2

        mix = await catalog_store.get_mix(first.mix_id or "")
        assert mix is not None
        assert mix.title == "Lane 8 @ Summer Mix 2024"
        assert mix.ingestion_source is Provider.TRACKLISTS_1001
        assert mix.duration_seconds == 3600
        assert mix.external_ids == {"youtube": "yt:abc", "1001": "1001:2k9x7"}
        assert (await catalog_store.entity_counts())["mixes"] == 1

    @pytest.mark.asyncio
    async def test_lower_priority_upload_keeps_existing_title(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        page = await _stage(staging_store, _tracklist_page(raw_metadata={}, external_id="2k9x7"))
        first = await canonicalizer.canonicalize(page.id)
        upload = await _stage(
            staging_store,
            make_record(
                provider=Provider.YOUTUBE,
                source_url="https://youtube.com/watch?v=abc",
                external_id="abc",
                title="Lane 8 - Summer Mix (Full Set HD)",
                raw_metadata={"linked_ids": {"1001tracklists": "2k9x7"}},
            ),
        )

        outcome = await canonicalizer.canonicalize(upload.id)

        assert outcome.merged
        mix = await catalog_store.get_mix(first.mix_id or "")
        assert mix is not None
        assert mix.title == "Lane 8 @ Summer Mix 2024"
        assert mix.ingestion_source is Provider.TRACKLISTS_1001

    @pytest.mark.asyncio
    async def test_merge_does_not_duplicate_tracklist(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        upload = make_record(
            provider=Provider.YOUTUBE,
            source_url="https://youtube.com/watch?v=abc",
            external_id="abc",
            tracks=["Lane 8 - Fingerprint"],
        )
        youtube = await _stage(staging_store, upload)
        first = await canonicalizer.canonicalize(youtube.id)
        page = await _stage(staging_store, _tracklist_page())

        outcome = await canonicalizer.canonicalize(page.id)

        assert outcome.merged
        assert outcome.tracks_linked == 0
        assert await catalog_store.count_mix_tracks(first.mix_id or "") == 1


# ======================================================================
# Failure and resume
# ======================================================================


class TestFailure:
    @pytest.mark.asyncio
    async def test_failure_marks_record_and_reraises(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        staged = await _stage(staging_store, make_record())
        monkeypatch.setattr(
            catalog_store,
            "create_mix",
            AsyncMock(side_effect=TransientIOError("database is locked", provider_name="sqlite")),
        )

        with pytest.raises(TransientIOError):
            await canonicalizer.canonicalize(staged.id)

        record = await staging_store.get(staged.id)
        assert record is not None
        assert record.status is StagedStatus.FAILED
        assert record.error_message == "[sqlite] database is locked"

    @pytest.mark.asyncio
    async def test_failed_record_needs_resume(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
    ) -> None:
        staged = await _stage(staging_store, make_record())
        await staging_store.mark_failed(staged.id, "earlier attempt")

        skipped = await canonicalizer.canonicalize(staged.id)
        resumed = await canonicalizer.canonicalize(staged.id, resume=True)

        assert skipped.skipped
        assert resumed.created

    @pytest.mark.asyncio
    async def test_retry_after_partial_run_resumes_mix(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
    ) -> None:
        staged = await _stage(staging_store, make_record(external_id=None))
        first = await canonicalizer.canonicalize(staged.id)
        # Simulate a crash between mix creation and the status update.
        await staging_store.mark_failed(staged.id, "crashed")

        again = await canonicalizer.canonicalize(staged.id, resume=True)

        assert again.resumed
        assert not again.merged
        assert again.mix_id == first.mix_id
        assert again.duplicate is not None
        assert again.duplicate.matched_key == "source_url"
        assert again.artists_created == 0
        assert (await catalog_store.entity_counts())["mixes"] == 1

    @pytest.mark.asyncio
    async def test_resume_finishes_steps_after_failed_artist_link(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
        rule_store: SQLiteRuleStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await rule_store.save_definition(
            {
                "name": "Summer Series",
                "rule_type": "keyword",
                "target_context_type": "series",
                "target_context_name": "Lane 8 Summer Series",
                "confidence_weight": 0.95,
                "pattern_config": {"keywords": ["summer mix"]},
            }
        )
        staged = await _stage(staging_store, make_record(external_id=None, tracks=["Bicep - Glue"]))
        link_mix_artist = catalog_store.link_mix_artist
        calls = 0

        async def fail_once(mix_id: str, artist_id: str, role: str = "primary") -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise TransientIOError("database is locked", provider_name="sqlite")
            await link_mix_artist(mix_id, artist_id, role)

        monkeypatch.setattr(catalog_store, "link_mix_artist", fail_once)

        with pytest.raises(TransientIOError):
            await canonicalizer.canonicalize(staged.id)
        outcome = await canonicalizer.canonicalize(staged.id, resume=True)

        assert outcome.created
        assert outcome.resumed
        record = await staging_store.get(staged.id)
        assert record is not None
        assert record.status is StagedStatus.CANONICALIZED
        mix_id = outcome.mix_id or ""
        assert [a["name"] for a in await catalog_store.list_mix_artists(mix_id)] == ["Lane 8"]
        assert await catalog_store.count_mix_tracks(mix_id) == 1
        applications = await catalog_store.list_rule_applications(mix_id)
        assert [a["rule_name"] for a in applications] == ["Summer Series"]
        counts = await catalog_store.entity_counts()
        assert (counts["mixes"], counts["artists"], counts["tracks"]) == (1, 2, 1)

    @pytest.mark.asyncio
    async def test_resume_keeps_one_rule_application_per_rule(
        self,
        canonicalizer: Canonicalizer,
        staging_store: SQLiteStagingStore,
        catalog_store: SQLiteCatalogStore,
        rule_store: SQLiteRuleStore,
    ) -> None:
        await rule_store.save_definition(
            {
                "name": "Summer Series",
                "rule_type": "keyword",
                "target_context_type": "series",
                "target_context_name": "Lane 8 Summer Series",
                "confidence_weight": 0.95,
                "pattern_config": {"keywords": ["summer mix"]},
            }
        )
        staged = await _stage(staging_store, make_record(external_id=None, tracks=["Bicep - Glue"]))
        first = await canonicalizer.canonicalize(staged.id)
        await staging_store.mark_failed(staged.id, "crashed")

        again = await canonicalizer.canonicalize(staged.id, resume=True)

        assert again.tracks_linked == 0
        assert again.tracks_created == 0
        assert len(await catalog_store.list_rule_applications(first.mix_id or "")) == 1
        assert (await catalog_store.entity_counts())["tracks"] == 1
