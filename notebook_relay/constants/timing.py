"""Timing-related constants (timeouts, intervals, delays)."""

from typing import Final


class Timeouts:
    """Timeout values - MILLISECONDS for Playwright, SECONDS noted separately."""

    # Playwright timeouts (milliseconds)
    PAGE_LOAD: Final[int] = 30_000
    NAVIGATION: Final[int] = 30_000
    CHAT_INPUT_WAIT: Final[int] = 15_000
    CHAT_INPUT_FALLBACK_WAIT: Final[int] = 5_000

    # Answer polling (seconds)
    ANSWER_SECONDS: Final[float] = 120.0


class Intervals:
    """Interval values in SECONDS."""

    ANSWER_POLL: Final[float] = 1.0
    PLACEHOLDER_POLL: Final[float] = 0.25
    SESSION_CLEANUP: Final[int] = 60


class Delays:
    """UI interaction delays in SECONDS."""

    PROFILE_RELEASE_GRACE: Final[float] = 2.0  # Wait for the browser to unlock the profile
    PAGE_SETTLE: Final[tuple[float, float]] = (2.0, 3.0)
    BEFORE_SUBMIT: Final[tuple[float, float]] = (0.5, 1.0)
    AFTER_SUBMIT: Final[tuple[float, float]] = (1.0, 1.5)


class TypingDelays:
    """Human-like typing delays."""

    TYPING_MIN_MS: Final[int] = 50
    TYPING_MAX_MS: Final[int] = 150
    PAUSE_CHANCE: Final[float] = 0.1
    PAUSE_MIN: Final[float] = 0.1
    PAUSE_MAX: Final[float] = 0.3
