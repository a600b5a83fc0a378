"""Conversation driver capability interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from notebook_relay.core.enums import DriverMode


@dataclass(frozen=True)
class DriverObservation:
    """What the chat page shows at one instant."""

    # Visible answer texts, oldest first
    responses: Tuple[str, ...] = ()
    # Prompt input placeholder and value; None when the page exposes no input
    input_text: Optional[str] = None

    @property
    def latest(self) -> Optional[str]:
        """Newest visible answer text."""
        return self.responses[-1] if self.responses else None


class ConversationDriver(ABC):
    """
    One automation handle bound to one knowledge-base chat page.

    Every method raises ``DriverClosedError`` once ``close()`` has been called
    and ``DriverError`` for other automation failures.
    """

    mode: DriverMode = DriverMode.HEADLESS

    @abstractmethod
    async def submit(self, question: str) -> None:
        """Type ``question`` into the prompt input and send it."""

    @abstractmethod
    async def observe(self) -> DriverObservation:
        """Read the visible answers and the prompt input surface."""

    @abstractmethod
    async def dismiss(self) -> None:
        """Clear the visible conversation."""

    @abstractmethod
    async def close(self) -> None:
        """Release the handle. Safe to call more than once."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """True once the handle has been closed."""


class DriverFactory(ABC):
    """Opens conversation drivers on the shared, account-bound browser context."""

    @abstractmethod
    async def open(self, target_url: str, mode: Optional[DriverMode] = None) -> ConversationDriver:
        """
        Open a driver on ``target_url``.

        Args:
            target_url: Knowledge-base chat URL
            mode: Browser visibility; None uses the configured default
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """Close the shared context, releasing the profile lock."""
