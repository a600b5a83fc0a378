"""Unified constants and configuration values for notebook-relay.

All classes and constants can be imported directly from this package:
    from notebook_relay.constants import Timeouts, StabilityConfig, LogEmoji
"""

# Logging
from .logging import LogEmoji

# Phrase sets
from .phrases import (
    ELLIPSIS_SUFFIXES,
    HARD_ERROR_PHRASES,
    INPUT_RATE_LIMIT_PHRASES,
    PLACEHOLDER_PHRASES,
    RATE_LIMIT_PHRASES,
)

# Resilience-related
from .resilience import (
    AccountPoolConfig,
    Retries,
    SessionPoolConfig,
    StabilityConfig,
)

# Page selectors
from .selectors import ChatSelectors

# Timing-related
from .timing import (
    Delays,
    Intervals,
    Timeouts,
    TypingDelays,
)

__all__ = [
    # Timing
    "Timeouts",
    "Intervals",
    "Delays",
    "TypingDelays",
    # Resilience
    "Retries",
    "SessionPoolConfig",
    "AccountPoolConfig",
    "StabilityConfig",
    # Phrases
    "PLACEHOLDER_PHRASES",
    "HARD_ERROR_PHRASES",
    "RATE_LIMIT_PHRASES",
    "INPUT_RATE_LIMIT_PHRASES",
    "ELLIPSIS_SUFFIXES",
    # Selectors
    "ChatSelectors",
    # Logging
    "LogEmoji",
]
