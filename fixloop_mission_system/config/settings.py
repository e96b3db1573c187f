"""Runtime settings for fixloop.

All behavior is configurable through environment variables (or a .env
file). Field names map to upper-case env vars, e.g. MAX_ITERATIONS.
"""

import re
from typing import TYPE_CHECKING, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fixloop_control_tower.resources.retry import RetryPolicy

# URL pattern for HTTP/HTTPS endpoints
_URL_PATTERN = re.compile(r'^https?://[^\s/$.?#].[^\s]*$', re.IGNORECASE)

if TYPE_CHECKING:
    from fixloop_protocols import LoggerProtocol
    from fixloop_mission_system.transcript.compaction import CompactionConfig


class Settings(BaseSettings):
    """fixloop settings."""

    # =========================================================================
    # CODE HOST
    # =========================================================================
    github_owner: str = ""
    github_repo: str = ""
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    dry_run: bool = False

    # =========================================================================
    # WORKFLOW BOUNDS
    # =========================================================================
    max_iterations: int = Field(default=3, ge=1, le=20)
    max_tool_calls_per_run: int = Field(default=100, ge=1)
    reviewer_max_tool_calls: int = Field(default=30, ge=1)

    # =========================================================================
    # RETRY
    # =========================================================================
    retry_max_retries: int = Field(default=3, ge=0, le=10)
    retry_initial_delay_ms: float = Field(default=1000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # =========================================================================
    # CI STATUS POLLING
    # =========================================================================
    ci_poll_interval_seconds: float = Field(default=30.0, ge=0)
    ci_max_rechecks: int = Field(default=2, ge=0)

    # =========================================================================
    # TRANSCRIPT COMPACTION
    # =========================================================================
    compaction_result_chars: int = Field(default=500, ge=50)
    compaction_instruction_chars: int = Field(default=200, ge=20)
    compaction_max_total_chars: int = Field(default=80_000, ge=1_000)
    compaction_reasoning_chars: int = Field(default=200, ge=20)
    compaction_preserve_recent: int = Field(default=10, ge=1)
    max_diff_chars: int = Field(default=50_000, ge=1_000)

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_json: bool = True

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator('github_api_url', mode='after')
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Validate that URL fields contain valid HTTP/HTTPS URLs."""
        if not _URL_PATTERN.match(v):
            raise ValueError(f"Invalid URL format: {v}. Must be http:// or https://")
        return v.rstrip("/")

    @field_validator('log_level', mode='after')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # =========================================================================
    # HELPER METHODS
    # =========================================================================
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            initial_delay_ms=self.retry_initial_delay_ms,
            backoff_multiplier=self.retry_backoff_multiplier,
        )

    def compaction_config(self) -> "CompactionConfig":
        from fixloop_mission_system.transcript.compaction import CompactionConfig
        return CompactionConfig(
            result_chars=self.compaction_result_chars,
            instruction_chars=self.compaction_instruction_chars,
            max_total_chars=self.compaction_max_total_chars,
            reasoning_chars=self.compaction_reasoning_chars,
            preserve_recent=self.compaction_preserve_recent,
        )

    @property
    def has_github(self) -> bool:
        return bool(self.github_owner and self.github_repo and self.github_token)

    def log_config(self, logger: "LoggerProtocol") -> None:
        """Log the effective configuration (token excluded)."""
        logger.info(
            "fixloop_config",
            repo=f"{self.github_owner}/{self.github_repo}",
            dry_run=self.dry_run,
            max_iterations=self.max_iterations,
            max_tool_calls_per_run=self.max_tool_calls_per_run,
            retry_max_retries=self.retry_max_retries,
            ci_max_rechecks=self.ci_max_rechecks,
        )


# =============================================================================
# GLOBAL SETTINGS (Lazy Initialization)
# =============================================================================

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance.

    Prefer dependency injection over this global getter for testability.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings_instance: Settings) -> None:
    global _settings
    _settings = settings_instance


def reset_settings() -> None:
    """Forces re-creation on next get_settings() call."""
    global _settings
    _settings = None


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
