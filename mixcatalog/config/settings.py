"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# This class uses pydantic-settings to read configuration from TWO
# sources (in priority order):
#
#   1. **Environment variables**: e.g. JOB_MAX_ATTEMPTS=5
#      (highest priority, always wins)
#   2. **.env file**: key=value lines in the project root .env file
#      (lower priority, used for local development)
#
# The mapping is automatic: field name `auto_verify_identity` maps to the
# env var `AUTO_VERIFY_IDENTITY` (pydantic-settings matches case-insensitively).
#
# Default values are used when neither an env var nor a .env entry
# exists for that field.
#
# AUTO-VERIFY: entities are only ever marked verified when BOTH
# `auto_verify_enabled` is true AND `auto_verify_identity` names the
# operator/service account that vouches for them.  An empty identity
# keeps auto-verify off regardless of the flag.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """mixcatalog settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Storage ===
    db_path: str = "data/mixcatalog.db"
    import_dir: str = "data/imports"  # JSON exports read by the fetch workers

    # === Job Processor ===
    poll_interval_seconds: float = Field(default=120.0, gt=0)
    job_max_attempts: int = Field(default=3, ge=1)
    backoff_base_minutes: float = Field(default=5.0, gt=0)
    job_retention_days: int = Field(default=30, ge=1)
    heartbeat_service_name: str = "job-processor"

    # === Context Rules ===
    rule_cache_ttl_seconds: int = Field(default=300, ge=0)
    context_rules_file: str = "config/context_rules.yaml"

    # === Fuzzy Matching ===
    track_title_threshold: float = Field(default=0.90, ge=0.0, le=1.0)
    artist_name_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    ambiguous_floor: float = Field(default=0.6, ge=0.0, le=1.0)

    # === Verification & Linking ===
    auto_verify_enabled: bool = False
    auto_verify_identity: str = ""  # Empty string = auto-verify disabled
    auto_verify_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    auto_link_contexts: bool = False
    context_auto_link_floor: float = Field(default=0.9, ge=0.0, le=1.0)

    # === Backfill ===
    backfill_confidence_floor: float = Field(default=0.4, ge=0.0, le=1.0)
    backfill_batch_size: int = Field(default=50, gt=0)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def auto_verify_active(self) -> bool:
        """True only when auto-verify is enabled and an identity is configured."""
        return self.auto_verify_enabled and bool(self.auto_verify_identity.strip())
