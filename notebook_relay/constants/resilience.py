"""Resilience-related constants (retries, session pool, account rotation)."""

from typing import Final


class Retries:
    """Retry configuration."""

    MAX_FAILOVER: Final[int] = 3
    MAX_PROFILE_COPY: Final[int] = 3
    MAX_NAVIGATION: Final[int] = 2
    BACKOFF_MULTIPLIER: Final[int] = 1
    BACKOFF_MIN_SECONDS: Final[int] = 1
    BACKOFF_MAX_SECONDS: Final[int] = 5


class SessionPoolConfig:
    """Conversation session pool configuration."""

    MAX_SESSIONS: Final[int] = 10
    SESSION_TIMEOUT_SECONDS: Final[int] = 900  # 15 minutes
    SESSION_ID_LENGTH: Final[int] = 8


class AccountPoolConfig:
    """Account rotation configuration."""

    DEFAULT_DAILY_QUOTA: Final[int] = 50  # Free tier daily query limit
    MAX_CONSECUTIVE_FAILURES: Final[int] = 3
    LOW_QUOTA_PERCENT: Final[int] = 20
    INACTIVE_WARNING_HOURS: Final[int] = 24


class StabilityConfig:
    """Answer completion detection configuration."""

    REQUIRED_STABLE_POLLS: Final[int] = 3
    PLACEHOLDER_MAX_LENGTH: Final[int] = 50
    LOG_PREVIEW_CHARS: Final[int] = 60
