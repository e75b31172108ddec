"""Pipeline components: canonicalization orchestrator, workers and the job processor."""

from mixcatalog.pipeline.canonicalizer import (
    CanonicalizationOptions,
    CanonicalizationOutcome,
    Canonicalizer,
)
from mixcatalog.pipeline.job_processor import JobProcessor, compute_backoff
from mixcatalog.pipeline.workers import CanonicalizeWorker, FetchAndStageWorker, Worker

__all__ = [
    "CanonicalizationOptions",
    "CanonicalizationOutcome",
    "CanonicalizeWorker",
    "Canonicalizer",
    "FetchAndStageWorker",
    "JobProcessor",
    "Worker",
    "compute_backoff",
]
