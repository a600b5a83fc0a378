"""Bounded pool of conversation sessions with quota failover."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from loguru import logger

from notebook_relay.constants import Intervals, LogEmoji, Retries, SessionPoolConfig
from notebook_relay.core.enums import DriverMode
from notebook_relay.core.exceptions import (
    AuthenticationRequiredError,
    DriverClosedError,
    DriverError,
    QuotaExceededError,
)
from notebook_relay.core.logger import session_id_ctx
from notebook_relay.services.accounts import AccountStore
from notebook_relay.services.classifier import ResponseClassifier
from notebook_relay.services.driver.base import DriverFactory
from notebook_relay.services.session.conversation_session import (
    AskResult,
    ConversationSession,
    ProgressCallback,
)
from notebook_relay.services.session.failover import FailoverCoordinator


class SessionManager:
    """
    Manages the live conversation sessions.

    Features:
    - Get-or-create by session id, recreated when the target or mode changes
    - Capacity bound with least-recently-active eviction (idle sessions first)
    - Background cleanup of idle sessions
    - Bounded account failover when an ask hits the daily quota
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        classifier: ResponseClassifier,
        account_store: Optional[AccountStore] = None,
        failover: Optional[FailoverCoordinator] = None,
        max_sessions: int = SessionPoolConfig.MAX_SESSIONS,
        session_timeout_seconds: int = SessionPoolConfig.SESSION_TIMEOUT_SECONDS,
        cleanup_interval_seconds: float = Intervals.SESSION_CLEANUP,
        max_failover_retries: int = Retries.MAX_FAILOVER,
    ):
        """
        Initialize session manager.

        Args:
            driver_factory: Opens driver handles
            classifier: Shared response classifier
            account_store: Account registry (quota accounting on success)
            failover: Failover coordinator; None disables failover
            max_sessions: Maximum live sessions
            session_timeout_seconds: Idle seconds before cleanup (0 = never)
            cleanup_interval_seconds: Interval of the cleanup task
            max_failover_retries: Failovers attempted per ask
        """
        self.driver_factory = driver_factory
        self.classifier = classifier
        self.account_store = account_store
        self.failover = failover
        self.max_sessions = max_sessions
        self.session_timeout_seconds = session_timeout_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.max_failover_retries = max_failover_retries

        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

        logger.info(
            f"SessionManager initialized (max: {max_sessions}, "
            f"timeout: {session_timeout_seconds}s, failover retries: {max_failover_retries})"
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _generate_id(self) -> str:
        while True:
            session_id = uuid4().hex[: SessionPoolConfig.SESSION_ID_LENGTH]
            if session_id not in self._sessions:
                return session_id

    def _ensure_cleanup_task(self) -> None:
        if self.session_timeout_seconds <= 0:
            return
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup())

    async def get_or_create_session(
        self,
        session_id: Optional[str] = None,
        target_url: str = "",
        force_driver_mode: Optional[DriverMode] = None,
    ) -> ConversationSession:
        """
        Return the session for ``session_id``, creating it if needed.

        Args:
            session_id: Existing or desired id; None generates one
            target_url: Knowledge-base chat URL
            force_driver_mode: Required browser visibility

        Returns:
            Live ConversationSession
        """
        async with self._lock:
            self._ensure_cleanup_task()

            if session_id and session_id in self._sessions:
                session = self._sessions[session_id]
                mode_matches = force_driver_mode is None or force_driver_mode == session.driver_mode
                handle_alive = not session.is_closed and not session.driver.is_closed
                if session.target_url == target_url and mode_matches and handle_alive:
                    session.touch()
                    logger.debug(f"Reusing session {session_id}")
                    return session

                logger.info(
                    f"{LogEmoji.RETRY} Recreating session {session_id} "
                    "(target, driver mode or handle changed)"
                )
                await self._remove_unlocked(session_id)

            session_id = session_id or self._generate_id()

            if len(self._sessions) >= self.max_sessions:
                await self._evict_unlocked()

            driver = await self.driver_factory.open(target_url, force_driver_mode)
            session = ConversationSession(
                session_id, target_url, driver, self.classifier, driver_mode=driver.mode
            )
            self._sessions[session_id] = session

            logger.info(
                f"{LogEmoji.SUCCESS} Session {session_id} created "
                f"(active: {len(self._sessions)}/{self.max_sessions})"
            )
            return session

    async def _evict_unlocked(self) -> None:
        """Close the least-recently-active session, preferring idle ones."""
        if not self._sessions:
            return
        candidates = [s for s in self._sessions.values() if not s.in_flight]
        if not candidates:
            logger.warning(
                f"{LogEmoji.WARNING} All sessions busy; evicting one with an ask in flight"
            )
            candidates = list(self._sessions.values())

        victim = min(candidates, key=lambda s: s.last_activity)
        logger.info(
            f"{LogEmoji.STOP} Session limit reached, evicting {victim.id} "
            f"(inactive {victim.get_info()['inactive_seconds']}s)"
        )
        await self._remove_unlocked(victim.id)

    async def _remove_unlocked(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        return True

    def get_session(self, session_id: str) -> Optional[ConversationSession]:
        """Live session by id, or None."""
        return self._sessions.get(session_id)

    async def close_session(self, session_id: str) -> bool:
        """
        Close and remove one session.

        Returns:
            False if the session does not exist
        """
        async with self._lock:
            closed = await self._remove_unlocked(session_id)
        if not closed:
            logger.warning(f"Attempted to close non-existent session {session_id}")
        return closed

    async def close_all_sessions(self) -> None:
        """Close every live session (the shared context stays up)."""
        async with self._lock:
            logger.info(f"Closing all sessions ({len(self._sessions)} sessions)...")
            for session_id in list(self._sessions):
                await self._remove_unlocked(session_id)
            logger.info("All sessions closed")

    async def shutdown(self) -> None:
        """Stop the cleanup task, close all sessions and the shared context."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None

        await self.close_all_sessions()
        await self.driver_factory.shutdown()

    async def cleanup_expired_sessions(self) -> int:
        """
        Close sessions idle longer than the session timeout.

        Returns:
            Number of sessions closed
        """
        async with self._lock:
            expired = [
                s.id
                for s in self._sessions.values()
                if not s.in_flight and s.is_expired(self.session_timeout_seconds)
            ]
            for session_id in expired:
                logger.info(
                    f"{LogEmoji.WAITING} Closing idle session {session_id} "
                    f"(idle > {self.session_timeout_seconds}s)"
                )
                await self._remove_unlocked(session_id)
        return len(expired)

    async def _periodic_cleanup(self) -> None:
        """Periodic cleanup of idle sessions."""
        try:
            while True:
                await asyncio.sleep(self.cleanup_interval_seconds)
                await self.cleanup_expired_sessions()
        except asyncio.CancelledError:
            logger.debug("Periodic cleanup task cancelled")
            raise
        except Exception as e:
            logger.error(f"Error in periodic cleanup: {e}")

    # ------------------------------------------------------------------
    # Asking
    # ------------------------------------------------------------------

    async def ask(
        self,
        question: str,
        target_url: str,
        session_id: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        force_driver_mode: Optional[DriverMode] = None,
    ) -> Tuple[AskResult, ConversationSession]:
        """
        Ask ``question`` in a session, failing over accounts on quota or sign-in errors.

        Driver failures other than a closed handle are recorded against the
        active account, so repeatedly failing accounts drop out of rotation.

        Args:
            question: Question text
            target_url: Knowledge-base chat URL
            session_id: Session to continue; None starts a new one
            progress: Optional progress observer
            force_driver_mode: Required browser visibility

        Returns:
            (AskResult, session that answered)

        Raises:
            QuotaExceededError: If failover is unavailable or the retry bound is hit
            AllAccountsExhaustedError: If no account has quota left
            FailoverError: If the profile swap failed
            AuthenticationRequiredError: If the account is signed out and failover
                is unavailable or the retry bound is hit
            RecoverableAnswerError: If the service answered with an error or timed out
            DriverError: On automation failures
        """
        failovers = 0
        while True:
            observed_account_id = await self._current_account_id()
            token = None
            try:
                session = await self.get_or_create_session(
                    session_id, target_url, force_driver_mode
                )
                session_id = session.id
                token = session_id_ctx.set(session.id)
                result = await session.ask(question, progress)
            except (QuotaExceededError, AuthenticationRequiredError) as e:
                signed_out = isinstance(e, AuthenticationRequiredError)
                if self.failover is None or failovers >= self.max_failover_retries:
                    if self.failover is not None:
                        logger.warning(
                            f"{LogEmoji.WARNING} Max failover retries reached ({failovers})"
                        )
                    if signed_out:
                        await self._record_failure(observed_account_id, e)
                    raise
                failovers += 1
                logger.warning(
                    f"{LogEmoji.BLOCKED} {type(e).__name__} in session {session_id}: {e.message} "
                    f"(failover {failovers}/{self.max_failover_retries})"
                )
                await self.failover.fail_over(
                    self.close_all_sessions,
                    observed_account_id,
                    failure=e.message if signed_out else None,
                )
                continue
            except DriverClosedError:
                raise
            except DriverError as e:
                await self._record_failure(observed_account_id, e)
                raise
            finally:
                if token is not None:
                    session_id_ctx.reset(token)

            if observed_account_id and self.account_store is not None:
                await self.account_store.mark_success(observed_account_id)
            return result, session

    async def _current_account_id(self) -> Optional[str]:
        if self.account_store is None:
            return None
        return await self.account_store.get_current_account_id()

    async def _record_failure(self, account_id: Optional[str], error: DriverError) -> None:
        if account_id and self.account_store is not None:
            await self.account_store.record_failure(
                account_id, f"{type(error).__name__}: {error.message}"
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Info dicts of every live session."""
        return [s.get_info() for s in self._sessions.values()]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get pool statistics.

        Returns:
            Dictionary with pool stats
        """
        now = datetime.now(timezone.utc)
        oldest = max(
            ((now - s.created_at).total_seconds() for s in self._sessions.values()),
            default=0.0,
        )
        return {
            "active_sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "session_timeout": self.session_timeout_seconds,
            "oldest_session_seconds": round(oldest, 1),
            "total_messages": sum(s.message_count for s in self._sessions.values()),
        }

    async def __aenter__(self) -> "SessionManager":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.shutdown()
