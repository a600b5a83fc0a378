"""Tests for the Playwright conversation driver with a mocked page."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from tenacity import wait_none

from notebook_relay.core.enums import DriverMode
from notebook_relay.core.exceptions import (
    AuthenticationRequiredError,
    DriverClosedError,
    DriverError,
)
from notebook_relay.services.driver import (
    PlaywrightConversationDriver,
    PlaywrightDriverFactory,
    playwright_errors,
)

URL = "https://kb.example.com/notebook/1"


@pytest.fixture(autouse=True)
def no_human_delays(monkeypatch):
    """Remove typing and settle delays."""
    monkeypatch.setattr(
        "notebook_relay.services.driver.playwright_driver.random.uniform", lambda a, b: 0
    )
    monkeypatch.setattr(
        "notebook_relay.services.driver.playwright_driver.random.random", lambda: 1.0
    )


def make_input(placeholder="Start typing...", value=""):
    element = MagicMock()
    element.is_visible = AsyncMock(return_value=True)
    element.get_attribute = AsyncMock(return_value=placeholder)
    element.input_value = AsyncMock(return_value=value)
    return element


@pytest.fixture
def page():
    """Create a mock page showing two answers."""
    page = MagicMock()
    page.url = URL
    page.is_closed = MagicMock(return_value=False)
    page.evaluate = AsyncMock()
    page.click = AsyncMock()
    page.goto = AsyncMock()
    page.reload = AsyncMock()
    page.close = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.keyboard.type = AsyncMock()
    page.keyboard.press = AsyncMock()
    page.query_selector = AsyncMock(return_value=make_input())

    locator = MagicMock()
    locator.all_inner_texts = AsyncMock(return_value=["  First answer \n", "", "Second answer"])
    page.locator = MagicMock(return_value=locator)
    return page


class TestPlaywrightErrors:
    """Tests for Playwright error translation."""

    def test_closed_error(self):
        """Test closed-target errors become DriverClosedError."""
        with pytest.raises(DriverClosedError):
            with playwright_errors("observe"):
                raise PlaywrightError("Target page, context or browser has been closed")

    def test_other_error(self):
        """Test other errors become DriverError with the action."""
        with pytest.raises(DriverError) as exc_info:
            with playwright_errors("submit"):
                raise PlaywrightError("Timeout 30000ms exceeded")
        assert not isinstance(exc_info.value, DriverClosedError)
        assert exc_info.value.details == {"action": "submit"}


class TestConversationDriver:
    """Tests for PlaywrightConversationDriver."""

    @pytest.mark.asyncio
    async def test_observe(self, page):
        """Test answers are stripped, blanks dropped, and the input surface read."""
        driver = PlaywrightConversationDriver(page, URL)

        observation = await driver.observe()

        assert observation.responses == ("First answer", "Second answer")
        assert observation.latest == "Second answer"
        assert observation.input_text == "Start typing..."
        page.locator.assert_called_once_with(".to-user-container .message-text-content")

    @pytest.mark.asyncio
    async def test_observe_input_value_and_placeholder(self, page):
        """Test placeholder and value are both part of the input surface."""
        page.query_selector = AsyncMock(
            return_value=make_input("Vous avez atteint la limite", "draft")
        )
        observation = await PlaywrightConversationDriver(page, URL).observe()
        assert observation.input_text == "Vous avez atteint la limite draft"

    @pytest.mark.asyncio
    async def test_observe_without_input(self, page):
        """Test a page without a prompt input has no input surface."""
        page.query_selector = AsyncMock(return_value=None)
        observation = await PlaywrightConversationDriver(page, URL).observe()
        assert observation.input_text is None

    @pytest.mark.asyncio
    async def test_submit_types_and_presses_enter(self, page):
        """Test the question is typed character by character."""
        driver = PlaywrightConversationDriver(page, URL)

        await driver.submit("Hi?")

        page.click.assert_awaited_once_with("textarea.query-box-input")
        assert [c.args[0] for c in page.keyboard.type.await_args_list] == ["H", "i", "?"]
        page.keyboard.press.assert_awaited_once_with("Enter")

    @pytest.mark.asyncio
    async def test_submit_without_input(self, page):
        """Test a missing chat input is a driver error."""
        page.query_selector = AsyncMock(return_value=None)
        with pytest.raises(DriverError, match="chat input"):
            await PlaywrightConversationDriver(page, URL).submit("Hi?")

    @pytest.mark.asyncio
    async def test_closed_driver(self, page):
        """Test every operation fails after close, and close is idempotent."""
        driver = PlaywrightConversationDriver(page, URL)
        await driver.close()
        await driver.close()

        page.close.assert_awaited_once()
        assert driver.is_closed
        with pytest.raises(DriverClosedError):
            await driver.observe()
        with pytest.raises(DriverClosedError):
            await driver.submit("Q")
        with pytest.raises(DriverClosedError):
            await driver.dismiss()

    @pytest.mark.asyncio
    async def test_page_closed_externally(self, page):
        """Test a page closed by the browser is reported as closed."""
        page.is_closed = MagicMock(return_value=True)
        with pytest.raises(DriverClosedError):
            await PlaywrightConversationDriver(page, URL).observe()

    @pytest.mark.asyncio
    async def test_sign_in_redirect_is_typed(self, page):
        """Test a page sitting on the sign-in flow raises AuthenticationRequiredError."""
        page.url = "https://accounts.google.com/v3/signin/identifier?flowName=GlifWebSignIn"
        driver = PlaywrightConversationDriver(page, URL)

        with pytest.raises(AuthenticationRequiredError) as exc_info:
            await driver.observe()
        with pytest.raises(AuthenticationRequiredError):
            await driver.submit("Hi?")

        assert exc_info.value.details["url"] == page.url
        page.keyboard.type.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dismiss_reloads(self, page):
        """Test dismiss reloads the page and waits for the input."""
        await PlaywrightConversationDriver(page, URL).dismiss()

        page.reload.assert_awaited_once()
        page.wait_for_selector.assert_awaited()


class TestDriverFactory:
    """Tests for PlaywrightDriverFactory."""

    @pytest.fixture
    def context_manager(self, page):
        manager = MagicMock()
        manager.new_page = AsyncMock(return_value=page)
        manager.close = AsyncMock()
        return manager

    @pytest.mark.asyncio
    async def test_open(self, context_manager, page):
        """Test open navigates and returns a ready driver in the requested mode."""
        factory = PlaywrightDriverFactory(context_manager)

        driver = await factory.open(URL, DriverMode.VISIBLE)

        context_manager.new_page.assert_awaited_once_with(headless=False)
        page.goto.assert_awaited_once()
        assert page.goto.await_args.args[0] == URL
        assert driver.mode == DriverMode.VISIBLE

    @pytest.mark.asyncio
    async def test_open_uses_default_mode(self, context_manager):
        """Test the default mode applies when none is requested."""
        factory = PlaywrightDriverFactory(context_manager, default_mode=DriverMode.HEADLESS)
        driver = await factory.open(URL)

        context_manager.new_page.assert_awaited_once_with(headless=True)
        assert driver.mode == DriverMode.HEADLESS

    @pytest.mark.asyncio
    async def test_open_without_chat_input_closes_page(self, context_manager, page):
        """Test a page that never shows the chat input is closed and reported."""
        page.wait_for_selector = AsyncMock(side_effect=PlaywrightError("Timeout exceeded"))
        factory = PlaywrightDriverFactory(context_manager)

        with pytest.raises(DriverError, match="chat input"):
            await factory.open(URL)

        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_open_redirected_to_sign_in(self, context_manager, page):
        """Test a navigation that lands on sign-in closes the page and is typed."""

        async def redirect(*args, **kwargs):
            page.url = "https://accounts.google.com/ServiceLogin?continue=x"

        page.goto = AsyncMock(side_effect=redirect)

        with pytest.raises(AuthenticationRequiredError):
            await PlaywrightDriverFactory(context_manager).open(URL)

        page.close.assert_awaited_once()
        page.wait_for_selector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigation_is_retried(self, context_manager, page, monkeypatch):
        """Test a failed navigation is retried once."""
        monkeypatch.setattr(PlaywrightDriverFactory._navigate.retry, "wait", wait_none())
        page.goto = AsyncMock(side_effect=[PlaywrightError("net::ERR_CONNECTION_RESET"), None])

        await PlaywrightDriverFactory(context_manager).open(URL)

        assert page.goto.await_count == 2

    @pytest.mark.asyncio
    async def test_shutdown_closes_context(self, context_manager):
        """Test shutdown releases the shared context."""
        await PlaywrightDriverFactory(context_manager).shutdown()
        context_manager.close.assert_awaited_once()
