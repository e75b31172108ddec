"""Workers executed by the job processor.

Each worker handles one ``worker_type`` and turns a validated
:class:`JobPayload` into an :class:`ExecutionResult`.  Per-record problems
are counted in the result (``items_failed`` / ``errors``) so one bad record
never aborts the rest of the batch; the processor treats a result with
``success=False`` as a failed attempt.  Errors that make the whole job
pointless (fetcher down, payload references a missing record) propagate.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

import structlog

from mixcatalog.interfaces.job_store import IJobStore
from mixcatalog.interfaces.source_fetcher import ISourceFetcher
from mixcatalog.interfaces.staging_store import IStagingStore
from mixcatalog.models.jobs import ExecutionResult, IngestionMode, Job, JobPayload, WorkerType
from mixcatalog.models.staging import StagedStatus
from mixcatalog.pipeline.canonicalizer import (
    CanonicalizationOptions,
    CanonicalizationOutcome,
    Canonicalizer,
)
from mixcatalog.services.duplicate_resolver import DuplicateResolver
from mixcatalog.services.mix_detector import detect_mix
from mixcatalog.utils.errors import MixCatalogError
from mixcatalog.utils.logging import get_logger


class Worker(ABC):
    """A handler for one worker type."""

    @property
    @abstractmethod
    def worker_type(self) -> WorkerType:
        """The ``worker_type`` this worker executes."""

    @abstractmethod
    async def run(self, job: Job, payload: JobPayload) -> ExecutionResult:
        """Execute *job* and report counters."""


# ---------------------------------------------------------------------------
# Fetch and stage
# ---------------------------------------------------------------------------

class FetchAndStageWorker(Worker):
    """Pulls raw records from a platform fetcher into the staging area.

    Every newly staged record gets its own ``canonicalization`` job carrying
    the fetch job's mode, so canonicalization failures are retried per
    record rather than per batch.  The mix-detection verdict is stored under
    ``raw_metadata["mix_detection"]``; records that look like something
    other than a mix are still staged, for moderators to review.
    """

    def __init__(
        self,
        fetcher: ISourceFetcher,
        staging: IStagingStore,
        resolver: DuplicateResolver,
        job_store: IJobStore,
        max_attempts: int = 3,
    ) -> None:
        self._fetcher = fetcher
        self._staging = staging
        self._resolver = resolver
        self._job_store = job_store
        self._max_attempts = max_attempts
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def worker_type(self) -> WorkerType:
        return WorkerType(self._fetcher.provider.value)

    async def run(self, job: Job, payload: JobPayload) -> ExecutionResult:
        started = time.monotonic()
        records = await self._fetcher.fetch(
            payload.source_id, payload.mode, payload.batch_size, payload.config
        )
        self._logger.info(
            "records_fetched",
            fetcher=self._fetcher.get_provider_name(),
            source_id=payload.source_id,
            count=len(records),
        )

        added = skipped = failed = 0
        errors: list[str] = []
        for raw in records:
            if raw.provider is not self._fetcher.provider:
                failed += 1
                errors.append(
                    f"{raw.source_url}: provider {raw.provider.value} "
                    f"from {self._fetcher.provider.value} fetcher"
                )
                continue
            try:
                if await self._resolver.is_duplicate_staged(raw.source_url, raw.external_id, raw.provider):
                    skipped += 1
                    continue
                detection = detect_mix(raw.raw_title, raw.raw_description, raw.duration_seconds)
                if not detection.is_mix:
                    self._logger.info(
                        "record_flagged_not_mix",
                        source_url=raw.source_url,
                        score=detection.score,
                        reasons=detection.reasons,
                    )
                metadata = {**raw.raw_metadata, "mix_detection": detection.as_metadata()}
                staged = await self._staging.insert_if_absent(raw.model_copy(update={"raw_metadata": metadata}))
                if staged is None:
                    skipped += 1
                    continue
                await self._job_store.create_job(
                    WorkerType.CANONICALIZATION.value,
                    {
                        "worker_type": WorkerType.CANONICALIZATION.value,
                        "source_id": payload.source_id,
                        "mode": payload.mode.value,
                        "batch_size": 1,
                        "staged_record_id": staged.id,
                    },
                    max_attempts=self._max_attempts,
                    requested_by=f"job:{job.id}",
                )
                added += 1
            except MixCatalogError as exc:
                failed += 1
                errors.append(f"{raw.source_url}: {exc}")
                self._logger.warning("record_staging_failed", source_url=raw.source_url, error=str(exc))

        return ExecutionResult(
            success=failed == 0,
            items_found=len(records),
            items_added=added,
            items_skipped=skipped,
            items_failed=failed,
            errors=errors,
            duration_seconds=time.monotonic() - started,
        )


# ---------------------------------------------------------------------------
# Canonicalize
# ---------------------------------------------------------------------------

class CanonicalizeWorker(Worker):
    """Runs the canonicalization orchestrator for one record or a batch.

    ``rolling`` jobs use the configured options as-is (auto-verify when the
    deployment enables it); ``backfill`` jobs never auto-verify.
    """

    def __init__(
        self,
        canonicalizer: Canonicalizer,
        staging: IStagingStore,
        options: CanonicalizationOptions | None = None,
    ) -> None:
        self._canonicalizer = canonicalizer
        self._staging = staging
        self._options = options or CanonicalizationOptions()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def worker_type(self) -> WorkerType:
        return WorkerType.CANONICALIZATION

    def options_for(self, mode: IngestionMode) -> CanonicalizationOptions:
        if mode is IngestionMode.ROLLING:
            return self._options
        return self._options.model_copy(update={"auto_verify": False})

    async def run(self, job: Job, payload: JobPayload) -> ExecutionResult:
        started = time.monotonic()
        options = self.options_for(payload.mode)

        if payload.staged_record_id:
            outcome = await self._canonicalizer.canonicalize(payload.staged_record_id, options, resume=True)
            added, skipped = _tally(outcome)
            return ExecutionResult(
                success=True,
                items_found=1,
                items_added=added,
                items_skipped=skipped,
                duration_seconds=time.monotonic() - started,
            )

        records = await self._staging.list_by_status(StagedStatus.PENDING, payload.batch_size)
        added = skipped = 0
        failed_ids: list[str] = []
        errors: list[str] = []
        for record in records:
            try:
                outcome = await self._canonicalizer.canonicalize(record.id, options)
            except Exception as exc:  # noqa: BLE001 — counted and reported in the result
                failed_ids.append(record.id)
                errors.append(f"{record.id}: {exc}")
                continue
            record_added, record_skipped = _tally(outcome)
            added += record_added
            skipped += record_skipped

        # Failures go back to pending for this job's next attempt.
        requeued = 0
        if failed_ids and job.attempts + 1 < job.max_attempts:
            requeued = await self._staging.requeue_failed(record_ids=failed_ids)

        self._logger.info(
            "canonicalization_batch_complete",
            found=len(records),
            added=added,
            skipped=skipped,
            failed=len(failed_ids),
            requeued=requeued,
        )
        return ExecutionResult(
            success=not failed_ids,
            items_found=len(records),
            items_added=added,
            items_skipped=skipped,
            items_failed=len(failed_ids),
            errors=errors,
            duration_seconds=time.monotonic() - started,
        )


def _tally(outcome: CanonicalizationOutcome) -> tuple[int, int]:
    """``(added, skipped)`` contribution of one outcome; merges count as skipped."""
    if outcome.created:
        return 1, 0
    return 0, 1
