"""Playwright implementation of the conversation driver."""

import asyncio
import random
import re
from contextlib import contextmanager
from typing import Iterator, List, Optional

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from notebook_relay.constants import ChatSelectors, Delays, LogEmoji, Timeouts, TypingDelays
from notebook_relay.core.enums import DriverMode
from notebook_relay.core.exceptions import (
    AuthenticationRequiredError,
    DriverClosedError,
    DriverError,
)
from notebook_relay.core.retry import get_navigation_retry
from notebook_relay.services.driver.base import (
    ConversationDriver,
    DriverFactory,
    DriverObservation,
)
from notebook_relay.services.driver.browser_manager import SharedContextManager

_CLOSED_PATTERN = re.compile(
    r"has been closed|Target .* closed|Browser has been closed|Context .* closed", re.IGNORECASE
)


@contextmanager
def playwright_errors(action: str) -> Iterator[None]:
    """Translate Playwright errors raised inside the block into driver errors."""
    try:
        yield
    except PlaywrightError as e:
        if _CLOSED_PATTERN.search(str(e)):
            raise DriverClosedError(f"{action} failed: page or context closed") from e
        raise DriverError(f"{action} failed: {e}", details={"action": action}) from e


async def _random_delay(bounds: tuple) -> None:
    await asyncio.sleep(random.uniform(*bounds))


class PlaywrightConversationDriver(ConversationDriver):
    """Drives one chat page (tab) in the shared persistent context."""

    def __init__(self, page: Page, target_url: str, mode: DriverMode = DriverMode.HEADLESS):
        """
        Initialize driver.

        Args:
            page: Page already navigated to ``target_url``
            target_url: Knowledge-base chat URL
            mode: Browser visibility the page was opened with
        """
        self.page = page
        self.target_url = target_url
        self.mode = mode
        self._closed = False

    @property
    def is_closed(self) -> bool:
        if self._closed:
            return True
        try:
            return self.page.is_closed()
        except PlaywrightError:
            return True

    def _ensure_open(self) -> None:
        if self.is_closed:
            raise DriverClosedError("Chat page is closed")

    def ensure_authenticated(self) -> None:
        """
        Fail fast when the page was redirected to the sign-in flow.

        Raises:
            AuthenticationRequiredError: If the current URL belongs to the sign-in flow
        """
        url = self.page.url or ""
        if any(marker in url for marker in ChatSelectors.SIGN_IN_URL_MARKERS):
            logger.warning(f"{LogEmoji.BLOCKED} Redirected to sign-in: {url[:120]}")
            raise AuthenticationRequiredError("Account is signed out (sign-in page shown)", url=url)

    async def wait_until_ready(self) -> None:
        """
        Wait for the chat input to become visible.

        Raises:
            DriverError: If no chat input appears
        """
        primary, *fallbacks = ChatSelectors.CHAT_INPUTS
        try:
            await self.page.wait_for_selector(
                primary, state="visible", timeout=Timeouts.CHAT_INPUT_WAIT
            )
            return
        except PlaywrightError as e:
            if _CLOSED_PATTERN.search(str(e)):
                raise DriverClosedError("Chat page closed while loading") from e

        for selector in fallbacks:
            try:
                await self.page.wait_for_selector(
                    selector, state="visible", timeout=Timeouts.CHAT_INPUT_FALLBACK_WAIT
                )
                return
            except PlaywrightError as e:
                if _CLOSED_PATTERN.search(str(e)):
                    raise DriverClosedError("Chat page closed while loading") from e

        self.ensure_authenticated()
        raise DriverError(
            "Could not find the chat input; check the notebook URL and access rights",
            details={"url": self.page.url},
        )

    async def _find_chat_input(self) -> Optional[str]:
        for selector in ChatSelectors.CHAT_INPUTS:
            element = await self.page.query_selector(selector)
            if element is not None and await element.is_visible():
                return selector
        return None

    async def submit(self, question: str) -> None:
        """Type the question with human-like delays and press Enter."""
        self._ensure_open()
        self.ensure_authenticated()
        with playwright_errors("submit"):
            selector = await self._find_chat_input()
            if selector is None:
                raise DriverError("Could not find a visible chat input", details={"url": self.page.url})

            await self.page.click(selector)
            for char in question:
                await self.page.keyboard.type(char)
                await asyncio.sleep(
                    random.uniform(TypingDelays.TYPING_MIN_MS, TypingDelays.TYPING_MAX_MS) / 1000
                )
                if random.random() < TypingDelays.PAUSE_CHANCE:
                    await asyncio.sleep(random.uniform(TypingDelays.PAUSE_MIN, TypingDelays.PAUSE_MAX))

            await _random_delay(Delays.BEFORE_SUBMIT)
            await self.page.keyboard.press("Enter")
            await _random_delay(Delays.AFTER_SUBMIT)

        logger.debug(f"{LogEmoji.QUESTION} Question submitted ({len(question)} chars)")

    async def observe(self) -> DriverObservation:
        """Read visible answers (oldest first) and the prompt input surface."""
        self._ensure_open()
        self.ensure_authenticated()
        with playwright_errors("observe"):
            try:
                await self.page.evaluate(ChatSelectors.SCROLL_SCRIPT)
            except PlaywrightError as e:
                if _CLOSED_PATTERN.search(str(e)):
                    raise
                logger.debug(f"Scroll script failed: {e}")

            locator = self.page.locator(
                f"{ChatSelectors.RESPONSE_CONTAINER} {ChatSelectors.RESPONSE_TEXT}"
            )
            texts = [t.strip() for t in await locator.all_inner_texts()]
            responses = tuple(t for t in texts if t)

            input_text = await self._read_input_surface()

        return DriverObservation(responses=responses, input_text=input_text)

    async def _read_input_surface(self) -> Optional[str]:
        for selector in ChatSelectors.CHAT_INPUTS:
            element = await self.page.query_selector(selector)
            if element is None:
                continue
            parts: List[str] = []
            placeholder = await element.get_attribute("placeholder")
            if placeholder:
                parts.append(placeholder)
            value = await element.input_value()
            if value:
                parts.append(value)
            return " ".join(parts)
        return None

    async def dismiss(self) -> None:
        """Reload the page, which starts a fresh conversation."""
        self._ensure_open()
        with playwright_errors("dismiss"):
            await self.page.reload(wait_until="domcontentloaded")
            await _random_delay(Delays.PAGE_SETTLE)
        self.ensure_authenticated()
        await self.wait_until_ready()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.page.close()
        except PlaywrightError as e:
            logger.warning(f"{LogEmoji.WARNING} Error closing page: {e}")


class PlaywrightDriverFactory(DriverFactory):
    """Opens chat pages on the shared persistent context."""

    def __init__(
        self,
        context_manager: SharedContextManager,
        default_mode: DriverMode = DriverMode.HEADLESS,
        navigation_timeout_ms: int = Timeouts.NAVIGATION,
    ):
        """
        Initialize driver factory.

        Args:
            context_manager: Shared context owner
            default_mode: Visibility used when a request names none
            navigation_timeout_ms: Page navigation timeout
        """
        self.context_manager = context_manager
        self.default_mode = default_mode
        self.navigation_timeout_ms = navigation_timeout_ms

    async def open(self, target_url: str, mode: Optional[DriverMode] = None) -> ConversationDriver:
        """Open a new page on ``target_url`` and wait for its chat input."""
        mode = mode or self.default_mode
        with playwright_errors("open page"):
            page = await self.context_manager.new_page(headless=mode.headless)

        driver = PlaywrightConversationDriver(page, target_url, mode=mode)
        try:
            await self._navigate(page, target_url)
            await _random_delay(Delays.PAGE_SETTLE)
            driver.ensure_authenticated()
            await driver.wait_until_ready()
        except DriverError:
            await driver.close()
            raise

        logger.info(f"{LogEmoji.SUCCESS} Chat page ready: {target_url}")
        return driver

    @get_navigation_retry()
    async def _navigate(self, page: Page, target_url: str) -> None:
        logger.info(f"Navigating to: {target_url}")
        with playwright_errors("navigate"):
            await page.goto(
                target_url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
            )

    async def shutdown(self) -> None:
        logger.info(f"{LogEmoji.STOP} Closing shared browser context to release the profile lock")
        await self.context_manager.close()
