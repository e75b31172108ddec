"""Canonicalization orchestrator: promotes one staged record into the catalog.

ARCHITECTURE NOTE:
    For a single staged record the orchestrator runs a fixed sequence:

        1. Claim the record (pending -> processing) so no other job works on it.
        2. Duplicate check by external ID / source URL.
           - Duplicate by external ID: source-priority merge into the existing mix.
           - Built from this record's URL: resume that mix.
           - New: create the mix.
           Created and resumed mixes then get their artists (from the title
           when the record names none) and tracklist.
        3. Run the context rules and apply their suggestions.
        4. Mark the record canonicalized (or failed, re-raising the error).

    Every step is idempotent with respect to re-execution.  A retry after a
    crash finds the mix created by the earlier attempt through its source
    URL and resumes it: artists are re-linked, tracklist positions that
    are still missing get their tracks, and the rules run again.  Rule
    applications are recorded once per (mix, rule).

    Entities are always created unverified.  Only an explicit
    :class:`CanonicalizationOptions` with ``auto_verify`` on and a
    ``verified_by`` identity marks anything verified.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.interfaces.catalog_store import ICatalogStore
from mixcatalog.interfaces.staging_store import IStagingStore
from mixcatalog.models.catalog import (
    DuplicateMatch,
    MatchConfidence,
    Mix,
    MixDraft,
    TrackLineMatch,
)
from mixcatalog.models.rules import MixContent, RuleAction
from mixcatalog.models.staging import StagedRecord, StagedStatus, StagedTrack
from mixcatalog.services.context_linker import ContextLinker
from mixcatalog.services.context_rules_engine import ContextRulesEngine
from mixcatalog.services.artist_extractor import extract_artists
from mixcatalog.services.duplicate_resolver import (
    SOURCE_URL_KEY,
    DuplicateResolver,
    MergeSource,
    merge_by_source_priority,
)
from mixcatalog.services.entity_matcher import EntityMatcher
from mixcatalog.utils import external_ids
from mixcatalog.utils.errors import RecordNotFoundError, ValidationError
from mixcatalog.utils.logging import get_logger
from mixcatalog.utils.text_normalizer import search_aliases

UNTITLED_MIX = "Untitled Mix"
_ALIAS_ARTIST_LIMIT = 2


class CanonicalizationOptions(BaseModel):
    """Per-run switches for verification and context linking."""

    model_config = ConfigDict(frozen=True)

    auto_verify: bool = False
    verified_by: str | None = None
    auto_verify_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    auto_link_contexts: bool = False
    context_floor: float = Field(default=0.9, ge=0.0, le=1.0)

    @property
    def verifier(self) -> str | None:
        """Identity to stamp on verified entities, or ``None`` when auto-verify is off."""
        if self.auto_verify and self.verified_by:
            return self.verified_by
        return None


class CanonicalizationOutcome(BaseModel):
    """What happened to one staged record."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    mix_id: str | None = None
    created: bool = False
    resumed: bool = False
    merged: bool = False
    skipped: bool = False
    duplicate: DuplicateMatch | None = None
    tracks_linked: int = 0
    tracks_created: int = 0
    artists_created: int = 0
    suggestions: dict[str, int] = Field(default_factory=dict)


class Canonicalizer:
    """Turns staged records into canonical mixes, tracks and links.

    All collaborators are injected; see ``mixcatalog/main.py`` for wiring.
    """

    def __init__(
        self,
        staging: IStagingStore,
        catalog: ICatalogStore,
        resolver: DuplicateResolver,
        matcher: EntityMatcher,
        rules_engine: ContextRulesEngine,
        linker: ContextLinker,
    ) -> None:
        self._staging = staging
        self._catalog = catalog
        self._resolver = resolver
        self._matcher = matcher
        self._rules_engine = rules_engine
        self._linker = linker
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def canonicalize(
        self,
        record_id: str,
        options: CanonicalizationOptions | None = None,
        *,
        resume: bool = False,
    ) -> CanonicalizationOutcome:
        """Canonicalize one staged record.

        Parameters
        ----------
        record_id:
            Staged record to process.
        options:
            Verification and linking switches; defaults leave everything unverified.
        resume:
            Also accept records left ``processing`` or ``failed`` by an
            earlier attempt.  Set by the job that owns the record; batch
            sweeps only take ``pending`` records.

        Returns
        -------
        CanonicalizationOutcome
            ``skipped`` when the record was already canonicalized or
            another worker holds it.

        Raises
        ------
        RecordNotFoundError
            If *record_id* does not exist.
        Exception
            Anything raised while processing, after the record is marked
            ``failed``.
        """
        options = options or CanonicalizationOptions()
        record = await self._staging.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Staged record {record_id} not found")

        if record.status is StagedStatus.CANONICALIZED:
            self._logger.info(
                "staged_record_already_canonicalized",
                record_id=record_id,
                mix_id=record.canonical_mix_id,
            )
            return CanonicalizationOutcome(
                record_id=record_id, mix_id=record.canonical_mix_id, skipped=True
            )

        from_statuses = (
            (StagedStatus.PENDING, StagedStatus.PROCESSING, StagedStatus.FAILED)
            if resume
            else (StagedStatus.PENDING,)
        )
        if not await self._staging.claim_for_processing(record_id, from_statuses):
            self._logger.info("staged_record_claim_lost", record_id=record_id, status=record.status.value)
            return CanonicalizationOutcome(record_id=record_id, skipped=True)
        self._logger.info("staged_record_processing", record_id=record_id, provider=record.provider.value)

        try:
            outcome = await self._process(record, options)
            mix_id = outcome.mix_id
            if mix_id is None:
                raise ValidationError(f"Staged record {record_id} produced no mix")
        except Exception as exc:
            await self._staging.mark_failed(record_id, str(exc) or type(exc).__name__)
            self._logger.error("staged_record_failed", record_id=record_id, error=str(exc))
            raise

        await self._staging.mark_canonicalized(record_id, mix_id)
        self._logger.info(
            "staged_record_canonicalized",
            record_id=record_id,
            mix_id=mix_id,
            merged=outcome.merged,
            resumed=outcome.resumed,
            tracks_linked=outcome.tracks_linked,
            tracks_created=outcome.tracks_created,
        )
        return outcome

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _process(self, record: StagedRecord, options: CanonicalizationOptions) -> CanonicalizationOutcome:
        ids = _record_external_ids(record)
        tracks = await self._staging.get_tracks(record.id)

        duplicate = await self._resolver.find_duplicate_canonical(ids, source_url=record.source_url)
        if duplicate is not None and duplicate.matched_key != SOURCE_URL_KEY:
            return await self._merge_into_existing(record, duplicate, ids, tracks, options)

        verifier = options.verifier
        if duplicate is None:
            mix = await self._catalog.create_mix(_draft_from_record(record, ids), verified_by=verifier)
        else:
            # The mix carries this record's own URL: an earlier attempt created
            # it and stopped part way.  Every step below tolerates repeats.
            existing = await self._catalog.get_mix(duplicate.entity_id)
            if existing is None:
                raise RecordNotFoundError(f"Mix {duplicate.entity_id} disappeared during resume")
            mix = existing
            self._logger.info("mix_resumed", mix_id=mix.id, record_id=record.id)

        artists_created = await self._link_mix_artists(mix.id, _artist_credit(record))
        tracks_linked, tracks_created = await self._link_tracks(mix.id, record, tracks, options)

        suggestions = await self._rules_engine.suggest_contexts(_content_from_record(record))
        applied = await self._linker.apply_suggestions(
            mix.id,
            suggestions,
            auto_link=options.auto_link_contexts,
            floor=options.context_floor,
            verified_by=verifier,
        )

        return CanonicalizationOutcome(
            record_id=record.id,
            mix_id=mix.id,
            created=True,
            resumed=duplicate is not None,
            duplicate=duplicate,
            tracks_linked=tracks_linked,
            tracks_created=tracks_created,
            artists_created=artists_created,
            suggestions=_action_counts(applied),
        )

    async def _merge_into_existing(
        self,
        record: StagedRecord,
        duplicate: DuplicateMatch,
        ids: dict[str, str],
        tracks: list[StagedTrack],
        options: CanonicalizationOptions,
    ) -> CanonicalizationOutcome:
        existing = await self._catalog.get_mix(duplicate.entity_id)
        if existing is None:
            raise RecordNotFoundError(f"Mix {duplicate.entity_id} disappeared during merge")

        merged = merge_by_source_priority(
            MergeSource(existing.ingestion_source, _mix_fields(existing)),
            MergeSource(record.provider, _record_fields(record)),
        )
        merged["title"] = merged["title"] or UNTITLED_MIX
        draft = MixDraft(**merged, external_ids=external_ids.merge(existing.external_ids, ids))
        await self._catalog.update_mix(existing.id, draft)

        tracks_linked = tracks_created = 0
        if tracks and await self._catalog.count_mix_tracks(existing.id) == 0:
            tracks_linked, tracks_created = await self._link_tracks(existing.id, record, tracks, options)

        self._logger.info(
            "mix_merged",
            mix_id=existing.id,
            record_id=record.id,
            matched_key=duplicate.matched_key,
            winner=merged["ingestion_source"].value,
        )
        return CanonicalizationOutcome(
            record_id=record.id,
            mix_id=existing.id,
            merged=True,
            duplicate=duplicate,
            tracks_linked=tracks_linked,
            tracks_created=tracks_created,
        )

    async def _link_mix_artists(self, mix_id: str, raw_artist: str | None) -> int:
        created = 0
        for credit in await self._matcher.match_artist_credit(raw_artist):
            artist_id = credit.match.match_id
            if credit.match.should_create_new or artist_id is None:
                artist_id = (await self._catalog.create_artist(credit.name)).id
                created += 1
            await self._catalog.link_mix_artist(mix_id, artist_id)
        return created

    async def _link_tracks(
        self,
        mix_id: str,
        record: StagedRecord,
        tracks: list[StagedTrack],
        options: CanonicalizationOptions,
    ) -> tuple[int, int]:
        """Resolve and link each tracklist row; returns ``(linked, created)``.

        Positions the mix already has are left alone.
        """
        linked = created = 0
        taken = await self._catalog.linked_track_positions(mix_id)
        for staged_track in tracks:
            if staged_track.position in taken:
                continue
            line = await self._matcher.match_track_line(
                staged_track.line_text, staged_track.raw_artist, staged_track.raw_title
            )
            if line is None:
                self._logger.debug("track_line_skipped", position=staged_track.position)
                continue

            track_id = line.track.match_id
            if line.should_create_new or track_id is None:
                track_id = await self._create_track(line, staged_track.line_text, record.provider.value)
                created += 1

            await self._catalog.link_mix_track(
                mix_id,
                track_id,
                staged_track.position,
                staged_track.timestamp_seconds,
                line.track.score,
                verified_by=_track_verifier(line, options),
            )
            linked += 1
        return linked, created

    async def _create_track(self, line: TrackLineMatch, line_text: str, source: str) -> str:
        track = await self._catalog.create_track(line.title)
        await self._catalog.add_track_aliases(track.id, _track_aliases(line, line_text), source)
        for credit in line.artists:
            artist_id = credit.match.match_id
            if credit.match.should_create_new or artist_id is None:
                artist_id = (await self._catalog.create_artist(credit.name)).id
            await self._catalog.link_track_artist(track.id, artist_id)
        return track.id


# ----------------------------------------------------------------------
# Record -> catalog field mapping
# ----------------------------------------------------------------------

def _record_fields(record: StagedRecord) -> dict:
    return {
        "title": record.raw_title,
        "description": record.raw_description,
        "artist_name": record.raw_artist,
        "published_at": record.uploaded_at,
        "duration_seconds": record.duration_seconds,
        "artwork_url": record.artwork_url,
        "audio_url": record.source_url,
        "metadata": dict(record.raw_metadata),
    }


def _mix_fields(mix: Mix) -> dict:
    return {
        "title": mix.title,
        "description": mix.description,
        "artist_name": mix.artist_name,
        "published_at": mix.published_at,
        "duration_seconds": mix.duration_seconds,
        "artwork_url": mix.artwork_url,
        "audio_url": mix.audio_url,
        "metadata": dict(mix.metadata),
    }


def _record_external_ids(record: StagedRecord) -> dict[str, str]:
    # The record's own identifier wins over whatever a cross-link claims.
    own = external_ids.external_ids_for(record.provider, record.external_id)
    return external_ids.merge(external_ids.linked_external_ids(record.linked_ids), own)


def _draft_from_record(record: StagedRecord, ids: dict[str, str]) -> MixDraft:
    fields = _record_fields(record)
    fields["title"] = fields["title"] or UNTITLED_MIX
    return MixDraft(**fields, ingestion_source=record.provider, external_ids=ids)


def _content_from_record(record: StagedRecord) -> MixContent:
    return MixContent(
        title=record.raw_title or "",
        description=record.raw_description or "",
        platform=record.provider,
        channel_id=record.channel_id,
        channel_name=record.channel_name,
        artist_name=record.raw_artist,
    )


def _artist_credit(record: StagedRecord) -> str | None:
    if record.raw_artist and record.raw_artist.strip():
        return record.raw_artist
    extraction = extract_artists(
        record.raw_title, record.channel_name, record.raw_description, record.channel_id
    )
    return extraction.artist_credit


def _track_aliases(line: TrackLineMatch, line_text: str) -> list[str]:
    aliases = list(search_aliases(line.title))
    for credit in line.artists[:_ALIAS_ARTIST_LIMIT]:
        aliases.append(f"{credit.name} - {line.title}")
        aliases.append(f"{line.title} by {credit.name}")
    aliases.append(line_text)
    return aliases


def _track_verifier(line: TrackLineMatch, options: CanonicalizationOptions) -> str | None:
    verifier = options.verifier
    if verifier is None:
        return None
    if line.track.confidence is MatchConfidence.HIGH and line.track.score >= options.auto_verify_threshold:
        return verifier
    return None


def _action_counts(applied: dict[RuleAction, int]) -> dict[str, int]:
    return {action.value: count for action, count in applied.items() if count}
