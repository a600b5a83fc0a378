"""Centralized enum definitions for notebook-relay."""

from enum import Enum


class RotationStrategy(str, Enum):
    """Account selection policies."""
    LEAST_USED = "least_used"
    ROUND_ROBIN = "round_robin"
    FAILOVER = "failover"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class ClassificationState(str, Enum):
    """States produced by the response classifier."""
    STILL_STREAMING = "still_streaming"
    STABLE_ANSWER = "stable_answer"
    PLACEHOLDER = "placeholder"
    RECOVERABLE_ERROR = "recoverable_error"
    QUOTA_EXCEEDED = "quota_exceeded"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]

    @property
    def is_terminal(self) -> bool:
        """Terminal states end a classification loop."""
        return self in (
            ClassificationState.STABLE_ANSWER,
            ClassificationState.RECOVERABLE_ERROR,
            ClassificationState.QUOTA_EXCEEDED,
        )


class SessionStatus(str, Enum):
    """Authentication status recorded per account."""
    UNKNOWN = "unknown"
    VALID = "valid"
    EXPIRED = "expired"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class DriverMode(str, Enum):
    """Browser visibility of a conversation driver."""
    HEADLESS = "headless"
    VISIBLE = "visible"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]

    @property
    def headless(self) -> bool:
        return self is DriverMode.HEADLESS
