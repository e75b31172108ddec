"""Shared pytest fixtures for the mixcatalog test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import structlog

from mixcatalog.config.settings import Settings
from mixcatalog.interfaces.source_fetcher import ISourceFetcher
from mixcatalog.models.jobs import IngestionMode
from mixcatalog.models.staging import Provider, StagedRecordInput, StagedTrackInput
from mixcatalog.pipeline.canonicalizer import Canonicalizer
from mixcatalog.providers.cache.memory_cache import MemoryCacheProvider
from mixcatalog.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from mixcatalog.providers.store.sqlite_job_store import SQLiteJobStore
from mixcatalog.providers.store.sqlite_rule_store import SQLiteRuleStore
from mixcatalog.providers.store.sqlite_staging_store import SQLiteStagingStore
from mixcatalog.services.context_linker import ContextLinker
from mixcatalog.services.context_rules_engine import ContextRulesEngine
from mixcatalog.services.duplicate_resolver import DuplicateResolver
from mixcatalog.services.entity_matcher import EntityMatcher
from mixcatalog.services.fuzzy_matcher import FuzzyMatcher

# pytest swaps sys.stdout per test, so loggers must not cache the stream.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer(colors=False),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class FakeClock:
    """Settable UTC clock for stores and the job processor."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Stores (one temp SQLite file per test)
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "mixcatalog.db"


@pytest.fixture
async def job_store(db_path: Path, clock: FakeClock) -> SQLiteJobStore:
    store = SQLiteJobStore(db_path, clock=clock)
    await store.initialize()
    return store


@pytest.fixture
async def staging_store(db_path: Path) -> SQLiteStagingStore:
    store = SQLiteStagingStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def catalog_store(db_path: Path) -> SQLiteCatalogStore:
    store = SQLiteCatalogStore(db_path)
    await store.initialize()
    return store


@pytest.fixture
async def rule_store(db_path: Path) -> SQLiteRuleStore:
    store = SQLiteRuleStore(db_path)
    await store.initialize()
    return store


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def fuzzy() -> FuzzyMatcher:
    return FuzzyMatcher()


@pytest.fixture
def entity_matcher(catalog_store: SQLiteCatalogStore, fuzzy: FuzzyMatcher) -> EntityMatcher:
    return EntityMatcher(catalog_store, fuzzy)


@pytest.fixture
def resolver(staging_store: SQLiteStagingStore, catalog_store: SQLiteCatalogStore) -> DuplicateResolver:
    return DuplicateResolver(staging_store, catalog_store)


@pytest.fixture
def rules_engine(rule_store: SQLiteRuleStore) -> ContextRulesEngine:
    return ContextRulesEngine(rule_store, MemoryCacheProvider(ttl=300))


@pytest.fixture
def canonicalizer(
    staging_store: SQLiteStagingStore,
    catalog_store: SQLiteCatalogStore,
    resolver: DuplicateResolver,
    entity_matcher: EntityMatcher,
    rules_engine: ContextRulesEngine,
) -> Canonicalizer:
    return Canonicalizer(
        staging_store,
        catalog_store,
        resolver,
        entity_matcher,
        rules_engine,
        ContextLinker(catalog_store),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        db_path=str(tmp_path / "cli.db"),
        import_dir=str(tmp_path / "imports"),
    )


# ---------------------------------------------------------------------------
# Record builders and fakes
# ---------------------------------------------------------------------------


def make_record(
    provider: Provider = Provider.SOUNDCLOUD,
    source_url: str = "https://soundcloud.com/lane8/summer-mix",
    external_id: str | None = "sc-1001",
    title: str | None = "Lane 8 Summer Mix 2024",
    artist: str | None = "Lane 8",
    tracks: list[str] | None = None,
    **overrides: Any,
) -> StagedRecordInput:
    """Build a fetcher record; *tracks* are raw ``Artist - Title`` lines."""
    return StagedRecordInput(
        provider=provider,
        source_url=source_url,
        external_id=external_id,
        raw_title=title,
        raw_artist=artist,
        tracks=[
            StagedTrackInput(line_text=line, position=index + 1)
            for index, line in enumerate(tracks or [])
        ],
        **overrides,
    )


class FakeFetcher(ISourceFetcher):
    """Returns canned records, or raises a canned error."""

    def __init__(
        self,
        provider: Provider,
        records: list[StagedRecordInput] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._provider = provider
        self.records = records or []
        self.error = error
        self.calls: list[tuple[str, IngestionMode, int]] = []

    @property
    def provider(self) -> Provider:
        return self._provider

    async def fetch(
        self,
        source_id: str,
        mode: IngestionMode,
        batch_size: int,
        config: dict[str, Any],
    ) -> list[StagedRecordInput]:
        self.calls.append((source_id, mode, batch_size))
        if self.error is not None:
            raise self.error
        return self.records[:batch_size]

    def get_provider_name(self) -> str:
        return f"fake:{self._provider.value}"
