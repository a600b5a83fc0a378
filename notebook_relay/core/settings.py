"""Application settings with Pydantic validation."""

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notebook_relay.constants import (
    AccountPoolConfig,
    Delays,
    Intervals,
    Retries,
    SessionPoolConfig,
    StabilityConfig,
    Timeouts,
)
from notebook_relay.core.enums import RotationStrategy


class RelaySettings(BaseSettings):
    """Application settings with validation and environment variable support."""

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_env_for_pytest(cls, data: Any) -> Any:
        """Auto-detect testing environment when running under pytest."""
        import sys

        if not isinstance(data, dict):
            return data

        if ("env" not in data or not data.get("env")) and "pytest" in sys.modules:
            data["env"] = "testing"

        return data

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(default=True, description="Write the file log as JSON lines")

    # Storage
    data_dir: Path = Field(
        default=Path.home() / ".notebook-relay",
        description="Directory holding accounts, profiles and the notebook directory",
    )
    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description=(
            "Base64-encoded Fernet key for credential encryption. "
            'Generate with: python -c "from cryptography.fernet import Fernet; '
            'print(Fernet.generate_key().decode())"'
        ),
    )

    # Session pool
    max_sessions: int = Field(
        default=SessionPoolConfig.MAX_SESSIONS, ge=1, le=100, description="Maximum live sessions"
    )
    session_timeout_seconds: int = Field(
        default=SessionPoolConfig.SESSION_TIMEOUT_SECONDS,
        ge=0,
        description="Idle seconds before a session is closed (0 = never)",
    )
    cleanup_interval_seconds: int = Field(
        default=Intervals.SESSION_CLEANUP, ge=1, description="Idle-session sweep interval"
    )

    # Answer detection
    answer_timeout_seconds: float = Field(
        default=Timeouts.ANSWER_SECONDS, gt=0, description="Deadline for a stable answer"
    )
    poll_interval_seconds: float = Field(
        default=Intervals.ANSWER_POLL, ge=0, description="Delay between answer polls"
    )
    stability_threshold: int = Field(
        default=StabilityConfig.REQUIRED_STABLE_POLLS,
        ge=1,
        description="Identical consecutive polls needed to accept an answer",
    )
    placeholder_max_length: int = Field(
        default=StabilityConfig.PLACEHOLDER_MAX_LENGTH,
        ge=0,
        description="Short ellipsis-terminated texts below this length are loading placeholders",
    )
    phrases_file: Optional[Path] = Field(
        default=None, description="YAML file overriding classifier phrase sets"
    )

    # Browser
    headless: bool = Field(default=True, description="Run the browser headless")
    browser_timeout_ms: int = Field(
        default=Timeouts.NAVIGATION, ge=1000, description="Navigation timeout in milliseconds"
    )
    default_notebook_url: Optional[str] = Field(
        default=None, description="Target used when a request names no notebook"
    )

    # Accounts and failover
    rotation_strategy: RotationStrategy = Field(
        default=RotationStrategy.LEAST_USED, description="Account selection policy"
    )
    default_daily_quota: int = Field(
        default=AccountPoolConfig.DEFAULT_DAILY_QUOTA, ge=1, description="Queries per account per day"
    )
    max_consecutive_failures: int = Field(
        default=AccountPoolConfig.MAX_CONSECUTIVE_FAILURES,
        ge=1,
        description="Failures after which an account is skipped",
    )
    max_failover_retries: int = Field(
        default=Retries.MAX_FAILOVER, ge=0, le=10, description="Failover attempts per ask"
    )
    profile_release_grace_seconds: float = Field(
        default=Delays.PROFILE_RELEASE_GRACE,
        ge=0,
        description="Wait after closing the browser before touching the profile",
    )

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["production", "development", "testing", "staging"]
        if v.lower() not in allowed:
            raise ValueError(f'ENV must be one of: {", ".join(allowed)}')
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(allowed)}')
        return v_upper

    @field_validator("default_notebook_url")
    @classmethod
    def validate_notebook_url(cls, v: Optional[str]) -> Optional[str]:
        """Require an http(s) URL when a default notebook is configured."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("DEFAULT_NOTEBOOK_URL must be an http(s) URL")
        return v or None

    @property
    def answer_timeout_ms(self) -> int:
        """Answer deadline in milliseconds."""
        return int(self.answer_timeout_seconds * 1000)

    @property
    def poll_interval_ms(self) -> int:
        """Poll interval in milliseconds."""
        return int(self.poll_interval_seconds * 1000)

    def is_development(self) -> bool:
        """Check if running in development or testing mode."""
        return self.env in ("development", "testing")


_settings: Optional[RelaySettings] = None


def get_settings() -> RelaySettings:
    """
    Get the process-wide settings instance.

    Returns:
        Cached RelaySettings
    """
    global _settings
    if _settings is None:
        _settings = RelaySettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (used by tests)."""
    global _settings
    _settings = None
