"""Transport-facing facade over the session engine.

Every public coroutine returns a ``Result`` and never raises, so a transport
(tool protocol, HTTP gateway, CLI) can serialize the outcome with
``result.to_dict()``.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from notebook_relay.constants import LogEmoji
from notebook_relay.core.enums import DriverMode
from notebook_relay.core.exceptions import FailoverError, NotFoundError, RelayError
from notebook_relay.core.result import Failure, Result, Success
from notebook_relay.core.settings import RelaySettings, get_settings
from notebook_relay.services.accounts import AccountStore, ProfileSwapper
from notebook_relay.services.classifier import PhraseSets, ResponseClassifier
from notebook_relay.services.driver import PlaywrightDriverFactory, SharedContextManager
from notebook_relay.services.notebooks import NotebookDirectory
from notebook_relay.services.session import FailoverCoordinator, ProgressCallback, SessionManager


class RelayService:
    """Wires the account store, session manager and notebook directory together."""

    def __init__(
        self,
        session_manager: SessionManager,
        account_store: AccountStore,
        notebooks: NotebookDirectory,
        settings: Optional[RelaySettings] = None,
    ):
        self.session_manager = session_manager
        self.account_store = account_store
        self.notebooks = notebooks
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[RelaySettings] = None) -> "RelayService":
        """
        Build the full Playwright-backed stack from settings.

        Args:
            settings: Settings to use (defaults to the global instance)

        Returns:
            Unstarted RelayService; call ``start()`` before use
        """
        settings = settings or get_settings()
        data_dir = settings.data_dir

        account_store = AccountStore(
            data_dir,
            default_daily_quota=settings.default_daily_quota,
            max_consecutive_failures=settings.max_consecutive_failures,
            default_rotation_strategy=settings.rotation_strategy,
        )
        swapper = ProfileSwapper(data_dir)
        context_manager = SharedContextManager(
            profile_dir=swapper.active_profile_dir,
            state_file=swapper.active_state_file,
            headless=settings.headless,
        )
        driver_factory = PlaywrightDriverFactory(
            context_manager,
            default_mode=DriverMode.HEADLESS if settings.headless else DriverMode.VISIBLE,
            navigation_timeout_ms=settings.browser_timeout_ms,
        )
        phrases = PhraseSets.load(
            settings.phrases_file,
            stability_threshold=settings.stability_threshold,
            placeholder_max_length=settings.placeholder_max_length,
        )
        classifier = ResponseClassifier(
            phrases,
            timeout_ms=settings.answer_timeout_ms,
            poll_interval_ms=settings.poll_interval_ms,
        )
        failover = FailoverCoordinator(
            account_store,
            driver_factory,
            swapper,
            release_grace_seconds=settings.profile_release_grace_seconds,
        )
        session_manager = SessionManager(
            driver_factory,
            classifier,
            account_store=account_store,
            failover=failover,
            max_sessions=settings.max_sessions,
            session_timeout_seconds=settings.session_timeout_seconds,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
            max_failover_retries=settings.max_failover_retries,
        )
        notebooks = NotebookDirectory(data_dir / "library.json")
        return cls(session_manager, account_store, notebooks, settings)

    async def start(self) -> None:
        """Load accounts and the notebook directory, and activate an account if none is."""
        await self.account_store.load()
        self.notebooks.load()
        failover = self.session_manager.failover
        if failover is not None:
            try:
                await failover.ensure_active_account()
            except FailoverError as e:
                logger.error(f"{LogEmoji.ERROR} Could not activate an account: {e.message}")
        logger.info(f"{LogEmoji.START} Relay service started")

    async def close(self) -> None:
        """Close every session and the shared browser context."""
        await self.session_manager.shutdown()
        logger.info(f"{LogEmoji.STOP} Relay service stopped")

    async def _guard(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Result[Any, str]:
        try:
            return Success(await call())
        except RelayError as e:
            logger.error(f"{LogEmoji.ERROR} {operation} failed: {e.message}")
            return Failure(e.message, e)
        except Exception as e:
            logger.exception(f"{LogEmoji.ERROR} {operation} failed unexpectedly: {e}")
            return Failure(str(e), e)

    async def ask(
        self,
        question: str,
        session_id: Optional[str] = None,
        notebook_id: Optional[str] = None,
        notebook_url: Optional[str] = None,
        show_browser: Optional[bool] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Result[Dict[str, Any], str]:
        """
        Ask a question in a (new or existing) session.

        Returns:
            Success({answer, session_id, session_info}) or Failure
        """

        async def _ask() -> Dict[str, Any]:
            target_url = self.notebooks.resolve_url(
                notebook_id=notebook_id,
                notebook_url=notebook_url,
                default_url=self.settings.default_notebook_url,
            )
            mode = None
            if show_browser is not None:
                mode = DriverMode.VISIBLE if show_browser else DriverMode.HEADLESS
            result, session = await self.session_manager.ask(
                question,
                target_url,
                session_id=session_id,
                progress=progress,
                force_driver_mode=mode,
            )
            return {
                "answer": result.answer,
                "session_id": session.id,
                "session_info": session.get_info(),
            }

        return await self._guard("ask", _ask)

    async def list_sessions(self) -> Result[Dict[str, Any], str]:
        """Success({active_sessions, max_sessions, session_timeout, sessions, ...})."""

        async def _list() -> Dict[str, Any]:
            return {**self.session_manager.get_stats(), "sessions": self.session_manager.list_sessions()}

        return await self._guard("list_sessions", _list)

    async def close_session(self, session_id: str) -> Result[Dict[str, Any], str]:
        """Close one session; Failure(NotFoundError) if unknown."""

        async def _close() -> Dict[str, Any]:
            if not await self.session_manager.close_session(session_id):
                raise NotFoundError(
                    f"Session not found: {session_id}", resource="session", identifier=session_id
                )
            return {"status": "closed", "session_id": session_id}

        return await self._guard("close_session", _close)

    async def reset_session(self, session_id: str) -> Result[Dict[str, Any], str]:
        """Clear one session's conversation; Failure(NotFoundError) if unknown."""

        async def _reset() -> Dict[str, Any]:
            session = self.session_manager.get_session(session_id)
            if session is None:
                raise NotFoundError(
                    f"Session not found: {session_id}", resource="session", identifier=session_id
                )
            await session.reset()
            return {"status": "reset", "session_id": session_id}

        return await self._guard("reset_session", _reset)

    async def get_health(self) -> Result[Dict[str, Any], str]:
        """Session pool stats plus per-account health."""

        async def _health() -> Dict[str, Any]:
            return {
                "sessions": self.session_manager.get_stats(),
                "current_account": await self.account_store.get_current_account_id(),
                "rotation_strategy": self.account_store.rotation_strategy.value,
                "accounts": self.account_store.health_check(),
            }

        return await self._guard("get_health", _health)

    async def __aenter__(self) -> "RelayService":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
