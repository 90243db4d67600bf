"""Configuration management for unitlink.

Uses pydantic-settings to load configuration from environment variables
prefixed with ``UNITLINK_``. Settings are read-only inputs: every session
builds its own caches, policies and resolvers from them.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Search for .env file in the working directory and its parents."""
    check_dir = Path.cwd()
    for _ in range(5):
        if (check_dir / ".env").exists():
            return check_dir / ".env"
        parent = check_dir.parent
        if parent == check_dir:
            break
        check_dir = parent

    return None


_env_file = _find_env_file()


TimeoutProfileName = Literal[
    "ultra_fast", "fast", "normal", "slow", "very_slow", "critical"
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="UNITLINK_",
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    # =========================
    # Matching thresholds
    # =========================
    # Tuned for Portuguese judicial unit names; re-tune for other domains.
    equivalence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    dual_coverage_floor: float = Field(default=0.95, ge=0.0, le=1.0)
    jaccard_floor: float = Field(default=0.85, ge=0.0, le=1.0)
    jaccard_coverage_floor: float = Field(default=0.90, ge=0.0, le=1.0)
    ambiguity_margin: float = Field(default=0.95, ge=0.0, le=1.0)
    role_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    containment_min_length: int = Field(default=5, ge=1)
    containment_max_tokens: int = Field(default=1, ge=0)
    numeral_guard: bool = True
    token_cache_capacity: int = Field(default=1000, ge=0)

    # =========================
    # Timeouts
    # =========================
    timeout_profile: TimeoutProfileName = "normal"
    timeout_min_ms: int = 500
    timeout_max_ms: int = 30000
    adaptive_timeouts: bool = True

    # =========================
    # Retries
    # =========================
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=500, ge=0)
    retry_max_delay_ms: int = Field(default=10000, ge=0)
    retry_backoff: float = Field(default=1.5, ge=1.0)
    retry_jitter: float = Field(default=0.0, ge=0.0, le=1.0)

    # =========================
    # Verification / resolution
    # =========================
    scan_timeout_ms: int = 15000
    batch_pause_ms: int = 100
    expansion_settle_ms: int = 500
    max_handles_per_pattern: int = Field(default=10, ge=1)
    locator_config_path: Path | None = None
    history_path: Path | None = None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
