"""Logging-related constants."""

from typing import Final


class LogEmoji:
    """Emoji constants for consistent logging."""

    SUCCESS: Final[str] = "✅"
    ERROR: Final[str] = "❌"
    WARNING: Final[str] = "⚠️"
    INFO: Final[str] = "ℹ️"
    DEBUG: Final[str] = "🔍"
    START: Final[str] = "🚀"
    STOP: Final[str] = "🛑"
    WAITING: Final[str] = "⏳"
    RETRY: Final[str] = "🔄"
    FOUND: Final[str] = "🎯"
    LOCK: Final[str] = "🔒"
    UNLOCK: Final[str] = "🔓"
    KEY: Final[str] = "🔑"
    ALERT: Final[str] = "🚨"
    BLOCKED: Final[str] = "🚫"
    QUESTION: Final[str] = "💬"
    SNAPSHOT: Final[str] = "📸"
    QUOTA: Final[str] = "📊"
    SAVE: Final[str] = "💾"
