"""Streaming answer classification.

The knowledge service streams its answer into the page. Completion is never
signalled, so an answer is accepted once the same new text has been observed
on ``stability_threshold`` consecutive polls. Loading placeholders, service
errors and quota messages are recognised by phrase sets.
"""

import asyncio
import hashlib
from dataclasses import dataclass, field
from typing import Optional, Set

from loguru import logger

from notebook_relay.constants import Intervals, LogEmoji, StabilityConfig, Timeouts
from notebook_relay.core.enums import ClassificationState
from notebook_relay.core.exceptions import AnswerTimeoutError
from notebook_relay.services.classifier.phrases import PhraseSets
from notebook_relay.services.driver.base import ConversationDriver, DriverObservation


def text_hash(text: str) -> str:
    """Stable short hash of a stripped response text."""
    return hashlib.blake2b(text.strip().encode("utf-8"), digest_size=8).hexdigest()


def _preview(text: Optional[str]) -> str:
    if not text:
        return ""
    limit = StabilityConfig.LOG_PREVIEW_CHARS
    return text[:limit] + ("..." if len(text) > limit else "")


@dataclass
class ResponseSnapshot:
    """Hashes of every visible response plus the newest one."""

    known_hashes: Set[str] = field(default_factory=set)
    latest: Optional[str] = None

    @classmethod
    def from_observation(cls, observation: DriverObservation) -> "ResponseSnapshot":
        return cls(
            known_hashes={text_hash(t) for t in observation.responses if t.strip()},
            latest=observation.latest,
        )


@dataclass(frozen=True)
class ClassificationOutcome:
    """Result of one classification loop."""

    state: ClassificationState
    text: Optional[str] = None
    polls: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class ResponseClassifier:
    """Polls a driver and decides when the streamed answer is complete."""

    def __init__(
        self,
        phrases: Optional[PhraseSets] = None,
        timeout_ms: int = int(Timeouts.ANSWER_SECONDS * 1000),
        poll_interval_ms: int = int(Intervals.ANSWER_POLL * 1000),
        placeholder_poll_ms: int = int(Intervals.PLACEHOLDER_POLL * 1000),
    ):
        """
        Initialize classifier.

        Args:
            phrases: Phrase sets and thresholds (defaults to built-ins)
            timeout_ms: Default deadline for a stable answer
            poll_interval_ms: Default delay between polls
            placeholder_poll_ms: Upper bound on the delay after a placeholder poll
        """
        self.phrases = phrases or PhraseSets()
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.placeholder_poll_ms = placeholder_poll_ms

    def classify_sample(self, text: str) -> ClassificationState:
        """
        Classify one new response text, ignoring stability.

        Returns:
            PLACEHOLDER, RECOVERABLE_ERROR, QUOTA_EXCEEDED or STILL_STREAMING
        """
        if self.phrases.is_placeholder(text):
            return ClassificationState.PLACEHOLDER
        if self.phrases.is_hard_error(text):
            return ClassificationState.RECOVERABLE_ERROR
        if self.phrases.is_rate_limit(text):
            return ClassificationState.QUOTA_EXCEEDED
        return ClassificationState.STILL_STREAMING

    @staticmethod
    def _first_unknown(observation: DriverObservation, known_hashes: Set[str]) -> Optional[str]:
        for text in observation.responses:
            normalized = text.strip()
            if normalized and text_hash(normalized) not in known_hashes:
                return normalized
        return None

    async def classify_stream(
        self,
        driver: ConversationDriver,
        known_hashes: Set[str],
        timeout_ms: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
        question: Optional[str] = None,
    ) -> ClassificationOutcome:
        """
        Poll ``driver`` until a terminal state or the deadline.

        Args:
            driver: Driver to observe
            known_hashes: Hashes of responses to ignore; question echoes are added
            timeout_ms: Deadline (defaults to the classifier's)
            poll_interval_ms: Delay between polls (defaults to the classifier's)
            question: Submitted question, used to skip its echo

        Returns:
            Terminal ClassificationOutcome (stable answer, recoverable error or quota)

        Raises:
            AnswerTimeoutError: If no terminal state is reached before the deadline
            DriverError: If the driver fails
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        poll_interval = (self.poll_interval_ms if poll_interval_ms is None else poll_interval_ms) / 1000
        placeholder_interval = min(poll_interval, self.placeholder_poll_ms / 1000)
        threshold = self.phrases.stability_threshold
        sanitized_question = question.strip().lower() if question else None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000

        polls = 0
        stable_count = 0
        last_candidate: Optional[str] = None

        while loop.time() < deadline:
            polls += 1
            observation = await driver.observe()

            if self.phrases.is_input_rate_limit(observation.input_text):
                logger.warning(
                    f"{LogEmoji.BLOCKED} Rate limit on input surface: {_preview(observation.input_text)!r}"
                )
                return ClassificationOutcome(
                    ClassificationState.QUOTA_EXCEEDED, observation.input_text, polls
                )

            candidate = self._first_unknown(observation, known_hashes)
            if candidate is None:
                logger.debug(f"Poll {polls}: no new text")
                await asyncio.sleep(poll_interval)
                continue

            state = self.classify_sample(candidate)
            if state == ClassificationState.PLACEHOLDER:
                logger.debug(f"Poll {polls}: placeholder {_preview(candidate)!r}")
                await asyncio.sleep(placeholder_interval)
                continue

            if state == ClassificationState.RECOVERABLE_ERROR:
                logger.warning(f"{LogEmoji.WARNING} Service error detected: {_preview(candidate)!r}")
                return ClassificationOutcome(state, candidate, polls)

            if state == ClassificationState.QUOTA_EXCEEDED:
                logger.warning(f"{LogEmoji.BLOCKED} Rate limit detected: {_preview(candidate)!r}")
                return ClassificationOutcome(state, candidate, polls)

            if sanitized_question is not None and candidate.lower() == sanitized_question:
                logger.debug(f"Poll {polls}: question echo ignored")
                known_hashes.add(text_hash(candidate))
                await asyncio.sleep(poll_interval)
                continue

            if candidate == last_candidate:
                stable_count += 1
            else:
                stable_count = 1
                last_candidate = candidate
            logger.debug(
                f"Poll {polls}: {len(candidate)} chars, stable {stable_count}/{threshold}"
            )

            if stable_count >= threshold:
                logger.info(
                    f"{LogEmoji.SUCCESS} Stable answer after {polls} polls ({len(candidate)} chars)"
                )
                return ClassificationOutcome(ClassificationState.STABLE_ANSWER, candidate, polls)

            await asyncio.sleep(poll_interval)

        logger.warning(f"{LogEmoji.WAITING} No stable answer after {polls} polls ({timeout_ms} ms)")
        raise AnswerTimeoutError(
            f"Timed out after {timeout_ms / 1000:.1f}s waiting for a stable answer",
            timeout_seconds=timeout_ms / 1000,
            last_candidate=last_candidate,
        )
