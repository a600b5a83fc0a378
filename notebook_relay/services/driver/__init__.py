"""Conversation driver interfaces and the Playwright implementation."""

from .base import ConversationDriver, DriverFactory, DriverObservation
from .browser_manager import SharedContextManager
from .playwright_driver import (
    PlaywrightConversationDriver,
    PlaywrightDriverFactory,
    playwright_errors,
)

__all__ = [
    "ConversationDriver",
    "DriverFactory",
    "DriverObservation",
    "SharedContextManager",
    "PlaywrightConversationDriver",
    "PlaywrightDriverFactory",
    "playwright_errors",
]
