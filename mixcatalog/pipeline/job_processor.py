"""Job processor: the long-running loop that leases, executes and acks jobs.

ARCHITECTURE NOTE:
    One iteration of :meth:`JobProcessor.run` is::

        heartbeat -> lease_next -> execute (worker by type) -> ack -> sleep

    Several processors may share one store; the store's atomic lease
    guarantees a pending job is handed to at most one of them.

    Failure handling keys off the exception class:

        ValidationError, UnsupportedProviderError -> failed immediately
        anything else                             -> retried after
                                                     base * 2**attempts
                                                     until max_attempts

    A worker returning ``ExecutionResult(success=False)`` counts as a
    retryable failure.  Shutdown (``stop()`` or task cancellation) while a
    job executes puts the job back to ``pending`` without charging an
    attempt.

    Every job and every transition binds ``job_id``/``worker_type`` into the
    structlog context, and retries and terminal failures are written to the
    ``ingestion_logs`` audit table.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

import structlog
from pydantic import ValidationError as PydanticValidationError

from mixcatalog.interfaces.job_store import IJobStore
from mixcatalog.models.jobs import ExecutionResult, Job, JobPayload
from mixcatalog.pipeline.workers import Worker
from mixcatalog.utils.errors import (
    TERMINAL_ERRORS,
    MixCatalogError,
    UnsupportedProviderError,
    ValidationError,
)
from mixcatalog.utils.logging import get_logger, job_log_context

DEFAULT_POLL_INTERVAL_SECONDS = 120.0
DEFAULT_BACKOFF_BASE = timedelta(minutes=5)
SHUTDOWN_MESSAGE = "Released during processor shutdown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_backoff(attempts: int, base: timedelta = DEFAULT_BACKOFF_BASE) -> timedelta:
    """Delay before the next attempt: ``base * 2**attempts``.

    *attempts* is the count after the failure being handled, so with the
    default 5 minute base the first retry waits 10 minutes, the second 20.
    """
    return base * (2**attempts)


def _describe(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class JobProcessor:
    """Leases jobs from the store and dispatches them to workers by type."""

    def __init__(
        self,
        job_store: IJobStore,
        workers: Iterable[Worker],
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        backoff_base: timedelta = DEFAULT_BACKOFF_BASE,
        service_name: str = "job-processor",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._job_store = job_store
        self._workers: dict[str, Worker] = {worker.worker_type.value: worker for worker in workers}
        self._poll_interval = poll_interval
        self._backoff_base = backoff_base
        self._service_name = service_name
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._execution: asyncio.Task[ExecutionResult] | None = None
        self._cancelled_by_stop = False
        self._jobs_processed = 0
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def worker_types(self) -> list[str]:
        return sorted(self._workers)

    # ------------------------------------------------------------------
    # Single-job operations
    # ------------------------------------------------------------------

    async def lease_next(self) -> Job | None:
        """Atomically claim the oldest runnable pending job, if any."""
        job = await self._job_store.lease_next()
        if job is not None:
            self._logger.info(
                "job_leased",
                job_id=job.id,
                worker_type=job.worker_type,
                attempt=job.attempts + 1,
                max_attempts=job.max_attempts,
            )
        return job

    async def execute(self, job: Job) -> ExecutionResult:
        """Validate the payload and run the worker registered for the job's type.

        Raises
        ------
        UnsupportedProviderError
            No worker is registered for ``job.worker_type``.
        ValidationError
            The payload is malformed or names a different worker type.
        """
        worker = self._workers.get(job.worker_type)
        if worker is None:
            raise UnsupportedProviderError(
                f"No worker registered for worker type {job.worker_type!r}",
                provider_name=job.worker_type,
            )

        try:
            payload = JobPayload.model_validate(job.payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "payload"
            raise ValidationError(f"Invalid job payload ({location}): {first['msg']}") from exc

        if payload.worker_type.value != job.worker_type:
            raise ValidationError(
                f"Payload worker type {payload.worker_type.value!r} does not match job "
                f"worker type {job.worker_type!r}"
            )

        return await worker.run(job, payload)

    async def ack_success(self, job: Job, result: ExecutionResult) -> None:
        await self._job_store.complete_job(job)
        self._logger.info(
            "job_completed",
            job_id=job.id,
            items_found=result.items_found,
            items_added=result.items_added,
            items_skipped=result.items_skipped,
            duration_seconds=round(result.duration_seconds, 3),
        )
        await self._job_store.append_log(
            job.id, "info", "Job completed", result.model_dump(exclude={"errors"})
        )

    async def ack_failure(self, job: Job, error: BaseException | str) -> None:
        """Schedule a retry with backoff, or fail the job permanently.

        Parameters
        ----------
        job:
            The leased job.
        error:
            The exception raised by the worker, or a summary string for an
            unsuccessful :class:`ExecutionResult`.
        """
        message = error if isinstance(error, str) else _describe(error)
        attempts = job.attempts + 1
        terminal = isinstance(error, TERMINAL_ERRORS)

        if not terminal and attempts < job.max_attempts:
            delay = compute_backoff(attempts, self._backoff_base)
            next_run = self._clock() + delay
            await self._job_store.retry_job(job, attempts, next_run, message)
            self._logger.warning(
                "job_retry_scheduled",
                job_id=job.id,
                attempts=attempts,
                max_attempts=job.max_attempts,
                next_run=next_run.isoformat(),
                error=message,
            )
            await self._job_store.append_log(
                job.id,
                "warning",
                f"Attempt {attempts}/{job.max_attempts} failed; retrying in {delay}",
                {"error": message, "next_run": next_run.isoformat()},
            )
            return

        await self._job_store.fail_job(job, attempts, message)
        self._logger.error(
            "job_failed",
            job_id=job.id,
            attempts=attempts,
            terminal=terminal,
            error=message,
        )
        await self._job_store.append_log(
            job.id,
            "error",
            "Job failed permanently" if terminal else f"Job failed after {attempts} attempts",
            {"error": message, "terminal": terminal},
        )

    async def process_one(self) -> bool:
        """Run one lease/execute/ack cycle.

        Returns
        -------
        bool
            ``True`` if a job was processed (whatever its outcome),
            ``False`` if nothing was runnable.
        """
        job = await self.lease_next()
        if job is None:
            return False

        with job_log_context(job.id, job.worker_type):
            self._execution = asyncio.ensure_future(self.execute(job))
            try:
                result = await self._execution
            except asyncio.CancelledError:
                await self._release(job)
                if self._cancelled_by_stop:
                    return True
                raise
            except Exception as exc:  # noqa: BLE001 — classified by ack_failure
                await self.ack_failure(job, exc)
            else:
                if result.success:
                    await self.ack_success(job, result)
                else:
                    await self.ack_failure(job, result.summary())
            finally:
                self._execution = None
                self._jobs_processed += 1
        return True

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    async def run(self, max_iterations: int | None = None) -> None:
        """Poll until :meth:`stop` is called (or *max_iterations* polls have run).

        When a poll finds work the next poll starts immediately; otherwise the
        loop sleeps ``poll_interval`` seconds or until stopped.
        """
        self._logger.info(
            "job_processor_started",
            worker_types=self.worker_types,
            poll_interval=self._poll_interval,
        )
        iterations = 0
        try:
            while not self._stop_event.is_set():
                await self._heartbeat("running")
                try:
                    found = await self.process_one()
                except MixCatalogError as exc:
                    # Lease or ack could not reach the store; try again next poll.
                    self._logger.error("job_poll_failed", error=str(exc))
                    found = False

                iterations += 1
                if max_iterations is not None and iterations >= max_iterations:
                    break
                if not found:
                    await self._wait(self._poll_interval)
        finally:
            await self._heartbeat("stopped")
            self._logger.info("job_processor_stopped", jobs_processed=self._jobs_processed)

    def stop(self) -> None:
        """Ask the loop to exit; an in-flight job is released back to ``pending``."""
        self._stop_event.set()
        if self._execution is not None and not self._execution.done():
            self._cancelled_by_stop = True
            self._execution.cancel()
        self._logger.info("job_processor_stop_requested")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _release(self, job: Job) -> None:
        await self._job_store.release_job(job, SHUTDOWN_MESSAGE)
        self._logger.warning("job_released", job_id=job.id)
        await self._job_store.append_log(job.id, "warning", SHUTDOWN_MESSAGE)

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _heartbeat(self, status: str) -> None:
        try:
            await self._job_store.record_heartbeat(
                self._service_name,
                status,
                {"jobs_processed": self._jobs_processed, "worker_types": self.worker_types},
            )
        except MixCatalogError as exc:
            self._logger.warning("heartbeat_failed", status=status, error=str(exc))
