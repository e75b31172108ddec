"""Abstract base class for the shared job queue store.

The job table is the only mutable resource shared between processor
instances, so every state transition goes through this interface and
every implementation must make :meth:`IJobStore.lease_next` atomic: a
pending job is handed to exactly one caller no matter how many lease
concurrently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from mixcatalog.models.jobs import Job, JobStatus


class IJobStore(ABC):
    """Contract for persisting and leasing background jobs."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist."""

    @abstractmethod
    async def create_job(
        self,
        worker_type: str,
        payload: dict[str, Any],
        max_attempts: int = 3,
        requested_by: str | None = None,
        next_run: datetime | None = None,
    ) -> Job:
        """Enqueue a new ``pending`` job and return it."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """Return the job with *job_id*, or ``None``."""

    @abstractmethod
    async def lease_next(self) -> Job | None:
        """Atomically claim the oldest runnable pending job.

        A job is runnable when ``status = 'pending'`` and ``next_run`` is
        unset or not in the future.  The returned job is already
        ``running`` with ``last_run`` stamped.

        Returns
        -------
        Job or None
            The leased job, or ``None`` when nothing is runnable.
        """

    @abstractmethod
    async def complete_job(self, job: Job) -> None:
        """Transition a running job to ``completed``."""

    @abstractmethod
    async def retry_job(self, job: Job, attempts: int, next_run: datetime, error_message: str) -> None:
        """Return a running job to ``pending`` with a new attempt count and run time."""

    @abstractmethod
    async def fail_job(self, job: Job, attempts: int, error_message: str) -> None:
        """Transition a running job to terminal ``failed``."""

    @abstractmethod
    async def release_job(self, job: Job, error_message: str) -> None:
        """Return a running job to ``pending`` without charging an attempt."""

    @abstractmethod
    async def reset_job(self, job_id: str) -> bool:
        """Operator retry: put a ``failed`` job back to ``pending`` with zero attempts.

        Returns ``True`` when a failed job was reset.
        """

    @abstractmethod
    async def list_jobs(self, status: JobStatus | None = None, limit: int = 100) -> list[Job]:
        """Return jobs, oldest first, optionally filtered by status."""

    @abstractmethod
    async def status_counts(self) -> dict[str, int]:
        """Return ``{status: count}`` over all jobs."""

    @abstractmethod
    async def purge_finished(self, older_than: datetime) -> int:
        """Delete completed/failed jobs last updated before *older_than*; return the count."""

    @abstractmethod
    async def append_log(
        self,
        job_id: str | None,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Write an audit row to the ingestion log."""

    @abstractmethod
    async def get_logs(self, job_id: str) -> list[dict[str, Any]]:
        """Return the audit rows for *job_id*, oldest first."""

    @abstractmethod
    async def record_heartbeat(
        self,
        service_name: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Upsert the liveness row for *service_name*."""

    @abstractmethod
    async def get_heartbeat(self, service_name: str) -> dict[str, Any] | None:
        """Return the liveness row for *service_name*, or ``None``."""
