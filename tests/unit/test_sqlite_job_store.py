"""Unit tests for SQLiteJobStore: leasing, transitions, audit log and heartbeat."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from mixcatalog.models.jobs import JobStatus
from mixcatalog.providers.store.sqlite_job_store import SQLiteJobStore
from tests.conftest import FakeClock

_PAYLOAD = {"worker_type": "youtube", "source_id": "UC123", "mode": "rolling", "batch_size": 10}


# ======================================================================
# Leasing
# ======================================================================


class TestLeaseNext:
    @pytest.mark.asyncio
    async def test_leases_oldest_pending_job(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        first = await job_store.create_job("youtube", _PAYLOAD)
        clock.advance(seconds=1)
        await job_store.create_job("youtube", _PAYLOAD)

        leased = await job_store.lease_next()

        assert leased is not None
        assert leased.id == first.id
        assert leased.status is JobStatus.RUNNING
        assert leased.last_run == clock.now
        stored = await job_store.get_job(first.id)
        assert stored is not None
        assert stored.status is JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_empty_queue(self, job_store: SQLiteJobStore) -> None:
        assert await job_store.lease_next() is None

    @pytest.mark.asyncio
    async def test_future_next_run_is_not_leased(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        await job_store.create_job("youtube", _PAYLOAD, next_run=clock.now + timedelta(minutes=5))
        assert await job_store.lease_next() is None

        clock.advance(minutes=5)
        assert await job_store.lease_next() is not None

    @pytest.mark.asyncio
    async def test_concurrent_leases_are_exclusive(self, job_store: SQLiteJobStore) -> None:
        for _ in range(5):
            await job_store.create_job("youtube", _PAYLOAD)

        results = await asyncio.gather(*(job_store.lease_next() for _ in range(10)))

        leased = [job.id for job in results if job is not None]
        assert len(leased) == 5
        assert len(set(leased)) == 5

    @pytest.mark.asyncio
    async def test_payload_round_trips(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD, max_attempts=5, requested_by="ops")
        leased = await job_store.lease_next()
        assert leased is not None
        assert leased.payload == _PAYLOAD
        assert leased.max_attempts == 5
        assert leased.requested_by == "ops"


# ======================================================================
# Transitions
# ======================================================================


class TestTransitions:
    @pytest.mark.asyncio
    async def test_complete(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None

        await job_store.complete_job(job)

        stored = await job_store.get_job(job.id)
        assert stored is not None
        assert stored.status is JobStatus.COMPLETED
        assert await job_store.lease_next() is None

    @pytest.mark.asyncio
    async def test_retry_schedules_next_run(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None

        await job_store.retry_job(job, 1, clock.now + timedelta(minutes=10), "timeout")

        stored = await job_store.get_job(job.id)
        assert stored is not None
        assert stored.status is JobStatus.PENDING
        assert stored.attempts == 1
        assert stored.error_message == "timeout"
        assert await job_store.lease_next() is None

        clock.advance(minutes=10)
        retried = await job_store.lease_next()
        assert retried is not None
        assert retried.attempts == 1

    @pytest.mark.asyncio
    async def test_fail(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None

        await job_store.fail_job(job, 3, "gave up")

        stored = await job_store.get_job(job.id)
        assert stored is not None
        assert stored.status is JobStatus.FAILED
        assert stored.attempts == 3
        assert stored.next_run is None

    @pytest.mark.asyncio
    async def test_release_keeps_attempts(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None

        await job_store.release_job(job, "shutdown")

        again = await job_store.lease_next()
        assert again is not None
        assert again.id == job.id
        assert again.attempts == 0

    @pytest.mark.asyncio
    async def test_transition_on_non_running_job_is_skipped(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None
        await job_store.complete_job(job)

        await job_store.fail_job(job, 1, "late failure")

        stored = await job_store.get_job(job.id)
        assert stored is not None
        assert stored.status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reset_only_failed_jobs(self, job_store: SQLiteJobStore) -> None:
        running = await job_store.create_job("youtube", _PAYLOAD)
        failed = await job_store.create_job("youtube", _PAYLOAD)
        await job_store.lease_next()
        leased = await job_store.lease_next()
        assert leased is not None and leased.id == failed.id
        await job_store.fail_job(leased, 3, "gave up")

        assert await job_store.reset_job(failed.id)
        assert not await job_store.reset_job(running.id)
        assert not await job_store.reset_job("missing")

        stored = await job_store.get_job(failed.id)
        assert stored is not None
        assert stored.status is JobStatus.PENDING
        assert stored.attempts == 0
        assert stored.error_message is None


# ======================================================================
# Listing, purge, audit log and heartbeat
# ======================================================================


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_list_and_status_counts(self, job_store: SQLiteJobStore) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        await job_store.create_job("soundcloud", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None
        await job_store.complete_job(job)

        assert await job_store.status_counts() == {"pending": 1, "completed": 1}
        pending = await job_store.list_jobs(JobStatus.PENDING)
        assert [j.worker_type for j in pending] == ["soundcloud"]
        assert len(await job_store.list_jobs()) == 2

    @pytest.mark.asyncio
    async def test_purge_finished(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None
        await job_store.complete_job(job)

        clock.advance(days=40)
        deleted = await job_store.purge_finished(clock.now - timedelta(days=30))

        assert deleted == 1
        assert await job_store.get_job(job.id) is None
        assert await job_store.status_counts() == {"pending": 1}

    @pytest.mark.asyncio
    async def test_purge_keeps_recent_jobs(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        await job_store.create_job("youtube", _PAYLOAD)
        job = await job_store.lease_next()
        assert job is not None
        await job_store.complete_job(job)

        assert await job_store.purge_finished(clock.now - timedelta(days=30)) == 0

    @pytest.mark.asyncio
    async def test_logs(self, job_store: SQLiteJobStore) -> None:
        job = await job_store.create_job("youtube", _PAYLOAD)
        await job_store.append_log(job.id, "info", "Job started")
        await job_store.append_log(job.id, "error", "Job failed", {"attempts": 1})

        logs = await job_store.get_logs(job.id)

        assert [entry["message"] for entry in logs] == ["Job started", "Job failed"]
        assert logs[1]["metadata"] == {"attempts": 1}
        assert logs[0]["metadata"] == {}

    @pytest.mark.asyncio
    async def test_heartbeat_upsert(self, job_store: SQLiteJobStore, clock: FakeClock) -> None:
        assert await job_store.get_heartbeat("job-processor") is None

        await job_store.record_heartbeat("job-processor", "running", {"processed": 0})
        clock.advance(seconds=30)
        await job_store.record_heartbeat("job-processor", "stopped", {"processed": 4})

        heartbeat = await job_store.get_heartbeat("job-processor")
        assert heartbeat is not None
        assert heartbeat["status"] == "stopped"
        assert heartbeat["metadata"] == {"processed": 4}
        assert heartbeat["last_heartbeat"].startswith("2025-06-01T12:00:30")
