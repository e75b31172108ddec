"""Backfill job planning for newly approved artists.

When a moderator approves an artist, the platform profiles discovered for
that artist (each with a confidence that it really is the same act) decide
where to backfill from: one ``backfill`` job per platform whose best
profile clears the confidence floor.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.interfaces.job_store import IJobStore
from mixcatalog.models.jobs import IngestionMode, Job, WorkerType
from mixcatalog.models.staging import Provider
from mixcatalog.utils.logging import get_logger

BACKFILL_CONFIDENCE_FLOOR = 0.4

PLATFORM_WORKERS: dict[Provider, WorkerType] = {
    Provider.YOUTUBE: WorkerType.YOUTUBE,
    Provider.SOUNDCLOUD: WorkerType.SOUNDCLOUD,
    Provider.TRACKLISTS_1001: WorkerType.TRACKLISTS_1001,
}


class PlatformProfile(BaseModel):
    """An artist's presence on one platform (channel ID, username, page slug)."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    source_id: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)


class BackfillPlanner:
    """Creates backfill jobs for an approved artist."""

    def __init__(
        self,
        job_store: IJobStore,
        confidence_floor: float = BACKFILL_CONFIDENCE_FLOOR,
        batch_size: int = 50,
        max_attempts: int = 3,
    ) -> None:
        self._job_store = job_store
        self._confidence_floor = confidence_floor
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def plan_for_approved_artist(
        self,
        artist_name: str,
        profiles: list[PlatformProfile],
        requested_by: str | None = None,
    ) -> list[Job]:
        """Enqueue one backfill job per platform with a confident profile.

        Parameters
        ----------
        artist_name:
            Display name of the approved artist, passed to the fetcher as config.
        profiles:
            Candidate platform profiles.  When a platform has several, the
            most confident one is used.
        requested_by:
            Identity recorded on the created jobs.

        Returns
        -------
        list[Job]
            The jobs created, in platform order.
        """
        best: dict[Provider, PlatformProfile] = {}
        for profile in profiles:
            if profile.confidence <= self._confidence_floor:
                self._logger.info(
                    "backfill_profile_skipped",
                    artist=artist_name,
                    provider=profile.provider.value,
                    confidence=profile.confidence,
                )
                continue
            current = best.get(profile.provider)
            if current is None or profile.confidence > current.confidence:
                best[profile.provider] = profile

        jobs: list[Job] = []
        for provider in PLATFORM_WORKERS:
            profile = best.get(provider)
            if profile is None:
                continue
            worker_type = PLATFORM_WORKERS[provider]
            job = await self._job_store.create_job(
                worker_type.value,
                {
                    "worker_type": worker_type.value,
                    "source_id": profile.source_id,
                    "mode": IngestionMode.BACKFILL.value,
                    "batch_size": self._batch_size,
                    "config": {"artist_name": artist_name},
                },
                max_attempts=self._max_attempts,
                requested_by=requested_by,
            )
            jobs.append(job)

        self._logger.info("backfill_jobs_planned", artist=artist_name, jobs=len(jobs))
        return jobs
