"""Unit tests for SQLiteStagingStore."""

from __future__ import annotations

import pytest

from mixcatalog.models.staging import Provider, StagedStatus, StagedTrackInput
from mixcatalog.providers.store.sqlite_staging_store import SQLiteStagingStore
from tests.conftest import make_record


class TestInsertIfAbsent:
    @pytest.mark.asyncio
    async def test_inserts_record_with_tracks(self, staging_store: SQLiteStagingStore) -> None:
        record = make_record(tracks=["Lane 8 - Fingerprint", "Yotto - Hyperfall"])

        staged = await staging_store.insert_if_absent(record)

        assert staged is not None
        assert staged.status is StagedStatus.PENDING
        assert staged.raw_title == "Lane 8 Summer Mix 2024"
        tracks = await staging_store.get_tracks(staged.id)
        assert [t.line_text for t in tracks] == ["Lane 8 - Fingerprint", "Yotto - Hyperfall"]
        assert [t.position for t in tracks] == [1, 2]
        assert all(t.raw_mix_id == staged.id for t in tracks)

    @pytest.mark.asyncio
    async def test_duplicate_source_url_returns_none(self, staging_store: SQLiteStagingStore) -> None:
        first = await staging_store.insert_if_absent(make_record(tracks=["A - B"]))
        second = await staging_store.insert_if_absent(make_record(title="Different title", tracks=["C - D"]))

        assert first is not None
        assert second is None
        assert len(await staging_store.get_tracks(first.id)) == 1

    @pytest.mark.asyncio
    async def test_presplit_track_fields_persist(self, staging_store: SQLiteStagingStore) -> None:
        record = make_record().model_copy(
            update={
                "tracks": [
                    StagedTrackInput(
                        line_text="[03:15] Bicep - Glue",
                        position=1,
                        timestamp_seconds=195,
                        raw_artist="Bicep",
                        raw_title="Glue",
                    )
                ]
            }
        )

        staged = await staging_store.insert_if_absent(record)

        assert staged is not None
        (track,) = await staging_store.get_tracks(staged.id)
        assert track.timestamp_seconds == 195
        assert (track.raw_artist, track.raw_title) == ("Bicep", "Glue")

    @pytest.mark.asyncio
    async def test_raw_metadata_round_trips(self, staging_store: SQLiteStagingStore) -> None:
        staged = await staging_store.insert_if_absent(
            make_record(raw_metadata={"channel_id": "UC1", "linked_ids": {"youtube": "abc"}})
        )
        assert staged is not None

        fetched = await staging_store.get(staged.id)

        assert fetched is not None
        assert fetched.channel_id == "UC1"
        assert fetched.linked_ids == {"youtube": "abc"}


class TestLookups:
    @pytest.mark.asyncio
    async def test_find_by_source_url(self, staging_store: SQLiteStagingStore) -> None:
        staged = await staging_store.insert_if_absent(make_record())
        assert staged is not None
        found = await staging_store.find_by_source_url("https://soundcloud.com/lane8/summer-mix")
        assert found is not None
        assert found.id == staged.id
        assert await staging_store.find_by_source_url("https://soundcloud.com/other") is None

    @pytest.mark.asyncio
    async def test_find_by_external_id_scoped_to_provider(self, staging_store: SQLiteStagingStore) -> None:
        await staging_store.insert_if_absent(make_record(external_id="42"))

        assert await staging_store.find_by_external_id("42") is not None
        assert await staging_store.find_by_external_id("42", Provider.SOUNDCLOUD) is not None
        assert await staging_store.find_by_external_id("42", Provider.YOUTUBE) is None

    @pytest.mark.asyncio
    async def test_list_by_status_in_arrival_order(self, staging_store: SQLiteStagingStore) -> None:
        for index in range(3):
            await staging_store.insert_if_absent(make_record(source_url=f"https://soundcloud.com/mix-{index}"))

        pending = await staging_store.list_by_status(StagedStatus.PENDING, limit=2)

        assert [r.source_url for r in pending] == [
            "https://soundcloud.com/mix-0",
            "https://soundcloud.com/mix-1",
        ]


class TestStatusTransitions:
    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, staging_store: SQLiteStagingStore) -> None:
        staged = await staging_store.insert_if_absent(make_record())
        assert staged is not None

        assert await staging_store.claim_for_processing(staged.id)
        assert not await staging_store.claim_for_processing(staged.id)

        fetched = await staging_store.get(staged.id)
        assert fetched is not None
        assert fetched.status is StagedStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_claim_from_failed_when_allowed(self, staging_store: SQLiteStagingStore) -> None:
        staged = await staging_store.insert_if_absent(make_record())
        assert staged is not None
        await staging_store.mark_failed(staged.id, "boom")

        assert not await staging_store.claim_for_processing(staged.id)
        assert await staging_store.claim_for_processing(
            staged.id, (StagedStatus.PENDING, StagedStatus.FAILED)
        )
        fetched = await staging_store.get(staged.id)
        assert fetched is not None
        assert fetched.error_message is None

    @pytest.mark.asyncio
    async def test_mark_canonicalized(self, staging_store: SQLiteStagingStore) -> None:
        staged = await staging_store.insert_if_absent(make_record())
        assert staged is not None

        await staging_store.mark_canonicalized(staged.id, "mix-1")

        fetched = await staging_store.get(staged.id)
        assert fetched is not None
        assert fetched.status is StagedStatus.CANONICALIZED
        assert fetched.canonical_mix_id == "mix-1"
        assert fetched.processed_at is not None

    @pytest.mark.asyncio
    async def test_requeue_failed_respects_limit(self, staging_store: SQLiteStagingStore) -> None:
        for index in range(3):
            staged = await staging_store.insert_if_absent(
                make_record(source_url=f"https://soundcloud.com/mix-{index}")
            )
            assert staged is not None
            await staging_store.mark_failed(staged.id, "boom")

        assert await staging_store.requeue_failed(limit=2) == 2
        assert await staging_store.status_counts() == {"pending": 2, "failed": 1}
        assert await staging_store.requeue_failed() == 1
        assert await staging_store.status_counts() == {"pending": 3}

    @pytest.mark.asyncio
    async def test_requeue_failed_by_id(self, staging_store: SQLiteStagingStore) -> None:
        ids = []
        for index in range(2):
            staged = await staging_store.insert_if_absent(
                make_record(source_url=f"https://soundcloud.com/mix-{index}")
            )
            assert staged is not None
            await staging_store.mark_failed(staged.id, "boom")
            ids.append(staged.id)

        assert await staging_store.requeue_failed(record_ids=[ids[0], "unknown"]) == 1
        assert await staging_store.requeue_failed(record_ids=[]) == 0

        requeued = await staging_store.get(ids[0])
        assert requeued is not None
        assert requeued.status is StagedStatus.PENDING
        assert requeued.error_message is None
        assert await staging_store.status_counts() == {"pending": 1, "failed": 1}
