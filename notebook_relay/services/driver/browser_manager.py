"""Shared persistent browser context on the active account profile."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger
from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from notebook_relay.constants import LogEmoji
from notebook_relay.core.exceptions import DriverError

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/135.0.0.0 Safari/537.36"
)


class SharedContextManager:
    """
    Owns the single persistent Chromium context used by every session.

    A persistent context holds an exclusive lock on its profile directory, so
    there is at most one per process. Pages (one per session) are created in
    it; ``close()`` releases the profile lock.
    """

    def __init__(
        self,
        profile_dir: Union[str, Path],
        state_file: Optional[Union[str, Path]] = None,
        headless: bool = True,
    ):
        """
        Initialize shared context manager.

        Args:
            profile_dir: Active browser profile directory
            state_file: Storage-state file restored into and saved from the context
            headless: Default visibility
        """
        self.profile_dir = Path(profile_dir)
        self.state_file = Path(state_file) if state_file else None
        self.default_headless = headless
        self.playwright: Optional[Playwright] = None
        self.context: Optional[BrowserContext] = None
        self._headless: Optional[bool] = None
        self._lock = asyncio.Lock()
        self._last_activity: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        """True while a context is running."""
        return self.context is not None

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of the last page creation."""
        return self._last_activity

    async def get_or_create_context(self, headless: Optional[bool] = None) -> BrowserContext:
        """
        Return the shared context, launching it if needed.

        A running context with a different visibility is closed and relaunched.

        Args:
            headless: Requested visibility; None uses the default
        """
        headless = self.default_headless if headless is None else headless
        async with self._lock:
            if self.context is not None and self._headless != headless:
                logger.info(
                    f"{LogEmoji.RETRY} Browser visibility changed (headless={headless}), relaunching"
                )
                await self._close_unlocked()

            if self.context is None:
                await self._start(headless)
            return self.context  # type: ignore[return-value]

    async def _start(self, headless: bool) -> None:
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        try:
            self.playwright = await async_playwright().start()
            self.context = await self.playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.profile_dir),
                headless=headless,
                args=["--disable-blink-features=AutomationControlled"],
                viewport={"width": 1920, "height": 1080},
                user_agent=_USER_AGENT,
            )
            self._headless = headless
            await self._restore_cookies()
            logger.info(f"{LogEmoji.START} Shared browser context started (headless={headless})")
        except PlaywrightError as e:
            await self._close_unlocked()
            raise DriverError(f"Failed to launch browser context: {e}") from e

    async def _restore_cookies(self) -> None:
        if self.context is None or self.state_file is None or not self.state_file.exists():
            return
        try:
            state: Dict[str, Any] = json.loads(self.state_file.read_text(encoding="utf-8"))
            cookies = state.get("cookies") or []
            if cookies:
                await self.context.add_cookies(cookies)
                logger.debug(f"Restored {len(cookies)} cookies from {self.state_file}")
        except (OSError, ValueError, PlaywrightError) as e:
            logger.warning(f"{LogEmoji.WARNING} Could not restore browser state: {e}")

    async def new_page(self, headless: Optional[bool] = None) -> Page:
        """Create a page in the shared context."""
        context = await self.get_or_create_context(headless)
        page = await context.new_page()
        self._last_activity = datetime.now(timezone.utc)
        return page

    async def close(self) -> None:
        """Save storage state and close the context and Playwright."""
        async with self._lock:
            await self._close_unlocked()

    async def _close_unlocked(self) -> None:
        if self.context is not None:
            if self.state_file is not None:
                try:
                    self.state_file.parent.mkdir(parents=True, exist_ok=True)
                    await self.context.storage_state(path=str(self.state_file))
                    logger.debug(f"{LogEmoji.SAVE} Browser state saved to {self.state_file}")
                except (OSError, PlaywrightError) as e:
                    logger.warning(f"{LogEmoji.WARNING} Could not save browser state: {e}")
            try:
                await self.context.close()
                logger.debug("Browser context closed")
            except PlaywrightError as e:
                logger.warning(f"Error closing browser context: {e}")
            self.context = None
            self._headless = None

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self.playwright = None

        logger.info(f"{LogEmoji.UNLOCK} Browser resources cleaned up")

    async def __aenter__(self) -> "SharedContextManager":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
