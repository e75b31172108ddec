"""mixcatalog composition root.

Wires stores, services, workers and the job processor together via
constructor injection.  The CLI (``python -m mixcatalog.cli``) and the
integration tests both build their object graph through
:func:`build_components`, so there is exactly one place that decides
which concrete provider backs each interface.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from mixcatalog.config.settings import Settings
from mixcatalog.interfaces.source_fetcher import ISourceFetcher
from mixcatalog.models.staging import Provider
from mixcatalog.pipeline.canonicalizer import CanonicalizationOptions, Canonicalizer
from mixcatalog.pipeline.job_processor import JobProcessor
from mixcatalog.pipeline.workers import CanonicalizeWorker, FetchAndStageWorker, Worker
from mixcatalog.providers.cache.memory_cache import MemoryCacheProvider
from mixcatalog.providers.fetchers.json_file_fetcher import JsonFileFetcher
from mixcatalog.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from mixcatalog.providers.store.sqlite_job_store import SQLiteJobStore
from mixcatalog.providers.store.sqlite_rule_store import SQLiteRuleStore
from mixcatalog.providers.store.sqlite_staging_store import SQLiteStagingStore
from mixcatalog.services.backfill_planner import BackfillPlanner
from mixcatalog.services.context_linker import ContextLinker
from mixcatalog.services.context_rules_engine import ContextRulesEngine
from mixcatalog.services.duplicate_resolver import DuplicateResolver
from mixcatalog.services.entity_matcher import EntityMatcher
from mixcatalog.services.fuzzy_matcher import FuzzyMatcher
from mixcatalog.utils.logging import get_logger

_logger = get_logger(__name__)


@dataclass
class Components:
    """Every long-lived object the CLI or a test needs."""

    settings: Settings
    job_store: SQLiteJobStore
    staging_store: SQLiteStagingStore
    catalog_store: SQLiteCatalogStore
    rule_store: SQLiteRuleStore
    rules_engine: ContextRulesEngine
    canonicalizer: Canonicalizer
    canonicalization_options: CanonicalizationOptions
    backfill_planner: BackfillPlanner
    processor: JobProcessor
    workers: list[Worker] = field(default_factory=list)

    async def initialize(self) -> None:
        """Create all tables (idempotent)."""
        await self.job_store.initialize()
        await self.staging_store.initialize()
        await self.catalog_store.initialize()
        await self.rule_store.initialize()


def canonicalization_options(settings: Settings) -> CanonicalizationOptions:
    """Options for rolling ingestion; backfill jobs drop ``auto_verify`` themselves."""
    return CanonicalizationOptions(
        auto_verify=settings.auto_verify_active,
        verified_by=settings.auto_verify_identity.strip() or None,
        auto_verify_threshold=settings.auto_verify_threshold,
        auto_link_contexts=settings.auto_link_contexts,
        context_floor=settings.context_auto_link_floor,
    )


def default_fetchers(settings: Settings) -> list[ISourceFetcher]:
    """One JSON-export fetcher per platform, reading from ``settings.import_dir``."""
    return [JsonFileFetcher(provider, settings.import_dir) for provider in Provider]


def build_components(
    custom_settings: Settings | None = None,
    fetchers: Iterable[ISourceFetcher] | None = None,
) -> Components:
    """Construct and return every store, service and worker.

    Parameters
    ----------
    custom_settings:
        Application settings.  A fresh :class:`Settings` is read from the
        environment if not provided.
    fetchers:
        Source fetchers to register as fetch-and-stage workers.  Defaults
        to :func:`default_fetchers`.

    Returns
    -------
    Components
        The wired object graph.  Call :meth:`Components.initialize` before use.
    """
    settings = custom_settings or Settings()
    db_path = Path(settings.db_path)

    # -- Stores (one SQLite file) --
    job_store = SQLiteJobStore(db_path)
    staging_store = SQLiteStagingStore(db_path)
    catalog_store = SQLiteCatalogStore(db_path)
    rule_store = SQLiteRuleStore(db_path)

    # -- Cache --
    cache = MemoryCacheProvider(max_size=16, ttl=settings.rule_cache_ttl_seconds)

    # -- Services --
    fuzzy = FuzzyMatcher(ambiguous_floor=settings.ambiguous_floor)
    matcher = EntityMatcher(
        catalog_store,
        fuzzy,
        track_threshold=settings.track_title_threshold,
        artist_threshold=settings.artist_name_threshold,
    )
    resolver = DuplicateResolver(staging_store, catalog_store)
    rules_engine = ContextRulesEngine(rule_store, cache)
    linker = ContextLinker(catalog_store)
    canonicalizer = Canonicalizer(staging_store, catalog_store, resolver, matcher, rules_engine, linker)
    options = canonicalization_options(settings)

    # -- Workers --
    workers: list[Worker] = [
        FetchAndStageWorker(
            fetcher,
            staging_store,
            resolver,
            job_store,
            max_attempts=settings.job_max_attempts,
        )
        for fetcher in (default_fetchers(settings) if fetchers is None else fetchers)
    ]
    workers.append(CanonicalizeWorker(canonicalizer, staging_store, options))

    processor = JobProcessor(
        job_store,
        workers,
        poll_interval=settings.poll_interval_seconds,
        backoff_base=timedelta(minutes=settings.backoff_base_minutes),
        service_name=settings.heartbeat_service_name,
    )

    planner = BackfillPlanner(
        job_store,
        confidence_floor=settings.backfill_confidence_floor,
        batch_size=settings.backfill_batch_size,
        max_attempts=settings.job_max_attempts,
    )

    _logger.debug("components_built", db_path=str(db_path), workers=processor.worker_types)
    return Components(
        settings=settings,
        job_store=job_store,
        staging_store=staging_store,
        catalog_store=catalog_store,
        rule_store=rule_store,
        rules_engine=rules_engine,
        canonicalizer=canonicalizer,
        canonicalization_options=options,
        backfill_planner=planner,
        processor=processor,
        workers=workers,
    )
