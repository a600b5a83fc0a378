"""A long-lived conversation bound to one driver handle and one target."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from notebook_relay.constants import LogEmoji
from notebook_relay.core.enums import ClassificationState, DriverMode
from notebook_relay.core.exceptions import (
    DriverClosedError,
    DriverError,
    QuotaExceededError,
    RecoverableAnswerError,
    SessionBusyError,
)
from notebook_relay.services.classifier import ResponseClassifier, ResponseSnapshot
from notebook_relay.services.driver.base import ConversationDriver

# async (message, step, total) -> None
ProgressCallback = Callable[[str, int, int], Awaitable[None]]

_TOTAL_STEPS = 4


@dataclass(frozen=True)
class AskResult:
    """Answer returned by a session."""

    answer: str
    raw: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSession:
    """
    Owns one driver handle for its whole life.

    At most one ask may be in flight. After ``close()`` every operation
    raises ``DriverClosedError``; an ask that is in flight when the session is
    closed fails the same way.
    """

    def __init__(
        self,
        session_id: str,
        target_url: str,
        driver: ConversationDriver,
        classifier: ResponseClassifier,
        driver_mode: Optional[DriverMode] = None,
    ):
        """
        Initialize session.

        Args:
            session_id: Session identifier
            target_url: Knowledge-base chat URL the driver is bound to
            driver: Exclusively owned driver handle
            classifier: Response classifier
            driver_mode: Visibility the driver was opened with
        """
        self.id = session_id
        self.target_url = target_url
        self.driver = driver
        self.classifier = classifier
        self.driver_mode = driver_mode or driver.mode
        self.created_at = _utcnow()
        self.last_activity = self.created_at
        self.message_count = 0
        self._in_flight = False
        self._closed = False

    @property
    def in_flight(self) -> bool:
        """True while an ask is running."""
        return self._in_flight

    @property
    def is_closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        """Record activity now."""
        self.last_activity = _utcnow()

    def is_expired(self, timeout_seconds: float) -> bool:
        """Inactive for longer than ``timeout_seconds`` (0 or less: never)."""
        if timeout_seconds <= 0:
            return False
        return (_utcnow() - self.last_activity).total_seconds() > timeout_seconds

    def _ensure_open(self) -> None:
        if self._closed:
            raise DriverClosedError(f"Session {self.id} is closed", session_id=self.id)

    async def _report(self, progress: Optional[ProgressCallback], message: str, step: int) -> None:
        if progress is None:
            return
        try:
            await progress(message, step, _TOTAL_STEPS)
        except Exception as e:
            logger.warning(f"{LogEmoji.WARNING} Progress callback failed at step {step}: {e}")

    async def ask(self, question: str, progress: Optional[ProgressCallback] = None) -> AskResult:
        """
        Submit ``question`` and wait for a complete answer.

        Args:
            question: Question text
            progress: Optional observer awaited in step order

        Returns:
            AskResult with the trimmed answer and the raw text

        Raises:
            DriverClosedError: If the session is (or gets) closed
            SessionBusyError: If another ask is in flight
            QuotaExceededError: If the account's daily limit is reached
            RecoverableAnswerError: If the service answered with an error or timed out
            DriverError: On other automation failures
        """
        self._ensure_open()
        if self._in_flight:
            raise SessionBusyError(session_id=self.id)

        self._in_flight = True
        self.touch()
        try:
            return await self._ask(question, progress)
        except DriverError as e:
            if self._closed and not isinstance(e, DriverClosedError):
                raise DriverClosedError(
                    f"Session {self.id} was closed during ask", session_id=self.id
                ) from e
            raise
        finally:
            self._in_flight = False
            self.touch()

    async def _ask(self, question: str, progress: Optional[ProgressCallback]) -> AskResult:
        logger.info(f"{LogEmoji.QUESTION} [{self.id}] Asking: {question[:100]!r}")

        await self._report(progress, "Snapshotting existing responses...", 1)
        observation = await self.driver.observe()
        if self.classifier.phrases.is_input_rate_limit(observation.input_text):
            logger.warning(f"{LogEmoji.BLOCKED} [{self.id}] Daily limit shown before submit")
            raise QuotaExceededError(
                "Daily query limit reached before submitting", raw_text=observation.input_text
            )
        known_hashes = ResponseSnapshot.from_observation(observation).known_hashes
        logger.debug(f"{LogEmoji.SNAPSHOT} [{self.id}] {len(known_hashes)} existing responses")

        await self._report(progress, "Submitting question...", 2)
        await self.driver.submit(question)
        self.message_count += 1

        await self._report(progress, "Waiting for the answer...", 3)
        outcome = await self.classifier.classify_stream(
            self.driver, known_hashes, question=question
        )
        self._ensure_open()

        raw = outcome.text or ""
        if outcome.state == ClassificationState.QUOTA_EXCEEDED:
            raise QuotaExceededError("Daily query limit reached", raw_text=raw)
        if outcome.state == ClassificationState.RECOVERABLE_ERROR:
            raise RecoverableAnswerError("Knowledge service returned an error", raw_text=raw)

        await self._report(progress, "Answer received", 4)
        logger.info(
            f"{LogEmoji.SUCCESS} [{self.id}] Received answer "
            f"({len(raw)} chars, {self.message_count} total messages)"
        )
        return AskResult(answer=raw.rstrip(), raw=raw)

    async def reset(self) -> None:
        """Clear the visible conversation, keeping id and target."""
        self._ensure_open()
        if self._in_flight:
            raise SessionBusyError(session_id=self.id)
        await self.driver.dismiss()
        self.message_count = 0
        self.touch()
        logger.info(f"{LogEmoji.RETRY} [{self.id}] Chat history reset")

    async def close(self) -> None:
        """Close the driver handle. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.driver.close()
        except DriverError as e:
            logger.warning(f"{LogEmoji.WARNING} Error closing driver of session {self.id}: {e}")
        logger.info(f"{LogEmoji.STOP} Session {self.id} closed")

    def get_info(self) -> Dict[str, Any]:
        """Session summary for listings."""
        now = _utcnow()
        return {
            "id": self.id,
            "target_url": self.target_url,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "age_seconds": round((now - self.created_at).total_seconds(), 1),
            "inactive_seconds": round((now - self.last_activity).total_seconds(), 1),
            "message_count": self.message_count,
            "driver_mode": self.driver_mode.value if self.driver_mode else None,
        }
