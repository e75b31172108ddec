"""mixcatalog domain models — re-exports all public model classes.

The models are organized across four submodules by domain concern:
    - staging.py  — raw records and tracklist rows delivered by fetchers
    - catalog.py  — canonical entities plus transient match results
    - jobs.py     — job queue rows, payloads and execution results
    - rules.py    — context rules (tagged config union) and suggestions
"""

from __future__ import annotations

from mixcatalog.models.catalog import (
    ROLE_BY_CONTEXT_TYPE,
    Artist,
    ArtistCredit,
    CanonicalEntity,
    Context,
    ContextType,
    DuplicateMatch,
    EntityMatch,
    MatchCandidate,
    MatchConfidence,
    MatchResult,
    Mix,
    MixContextRole,
    MixDraft,
    ScoredCandidate,
    Track,
    TrackLineMatch,
    Venue,
)
from mixcatalog.models.jobs import (
    ExecutionResult,
    IngestionMode,
    Job,
    JobPayload,
    JobStatus,
    WorkerType,
)
from mixcatalog.models.rules import (
    ChannelMappingConfig,
    ContextRule,
    ContextSuggestion,
    KeywordConfig,
    MixContent,
    PatternConfig,
    RuleAction,
    RuleConfig,
    RuleScope,
    TitlePatternConfig,
)
from mixcatalog.models.staging import (
    Provider,
    StagedRecord,
    StagedRecordInput,
    StagedStatus,
    StagedTrack,
    StagedTrackInput,
)

__all__ = [
    "ROLE_BY_CONTEXT_TYPE",
    "Artist",
    "ArtistCredit",
    "CanonicalEntity",
    "ChannelMappingConfig",
    "Context",
    "ContextRule",
    "ContextSuggestion",
    "ContextType",
    "DuplicateMatch",
    "EntityMatch",
    "ExecutionResult",
    "IngestionMode",
    "Job",
    "JobPayload",
    "JobStatus",
    "KeywordConfig",
    "MatchCandidate",
    "MatchConfidence",
    "MatchResult",
    "Mix",
    "MixContent",
    "MixContextRole",
    "MixDraft",
    "PatternConfig",
    "Provider",
    "RuleAction",
    "RuleConfig",
    "RuleScope",
    "ScoredCandidate",
    "StagedRecord",
    "StagedRecordInput",
    "StagedStatus",
    "StagedTrack",
    "StagedTrackInput",
    "TitlePatternConfig",
    "Track",
    "TrackLineMatch",
    "Venue",
    "WorkerType",
]
