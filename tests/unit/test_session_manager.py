"""Tests for SessionManager."""

import asyncio
from datetime import timedelta

import pytest

from fakes import FakeDriverFactory, answer_script, obs
from notebook_relay.core.enums import DriverMode
from notebook_relay.core.exceptions import QuotaExceededError
from notebook_relay.services.session import SessionManager

URL_A = "https://kb.example.com/notebook/a"
URL_B = "https://kb.example.com/notebook/b"


@pytest.fixture
def manager(driver_factory, fast_classifier):
    return SessionManager(
        driver_factory,
        fast_classifier,
        max_sessions=3,
        session_timeout_seconds=0,
    )


class TestGetOrCreate:
    """Tests for session creation and reuse."""

    @pytest.mark.asyncio
    async def test_creates_with_generated_id(self, manager, driver_factory):
        """Test a new session gets an 8-character id."""
        session = await manager.get_or_create_session(target_url=URL_A)

        assert len(session.id) == 8
        assert manager.get_session(session.id) is session
        assert len(driver_factory.opened) == 1

    @pytest.mark.asyncio
    async def test_reuses_matching_session(self, manager, driver_factory):
        """Test same id and target returns the same session."""
        first = await manager.get_or_create_session(target_url=URL_A)
        second = await manager.get_or_create_session(first.id, URL_A)

        assert second is first
        assert len(driver_factory.opened) == 1

    @pytest.mark.asyncio
    async def test_caller_chosen_id(self, manager):
        """Test an unknown id is used for the new session."""
        session = await manager.get_or_create_session("my-session", URL_A)
        assert session.id == "my-session"

    @pytest.mark.asyncio
    async def test_target_change_recreates(self, manager, driver_factory):
        """Test a different target closes the old driver and keeps the id."""
        first = await manager.get_or_create_session("s1", URL_A)
        second = await manager.get_or_create_session("s1", URL_B)

        assert second is not first
        assert second.id == "s1"
        assert second.target_url == URL_B
        assert first.is_closed
        assert driver_factory.opened[0].is_closed
        assert len(manager.list_sessions()) == 1

    @pytest.mark.asyncio
    async def test_forced_mode_change_recreates(self, manager, driver_factory):
        """Test a forced visible mode recreates a headless session."""
        first = await manager.get_or_create_session("s1", URL_A)
        second = await manager.get_or_create_session("s1", URL_A, DriverMode.VISIBLE)

        assert second is not first
        assert second.driver_mode == DriverMode.VISIBLE
        assert driver_factory.opened[1].mode == DriverMode.VISIBLE

    @pytest.mark.asyncio
    async def test_matching_forced_mode_reuses(self, manager):
        """Test forcing the mode a session already has reuses it."""
        first = await manager.get_or_create_session("s1", URL_A, DriverMode.HEADLESS)
        second = await manager.get_or_create_session("s1", URL_A, DriverMode.HEADLESS)
        assert second is first

    @pytest.mark.asyncio
    async def test_dead_driver_recreates(self, manager, driver_factory):
        """Test a session whose page was closed underneath it is reopened."""
        first = await manager.get_or_create_session("s1", URL_A)
        await driver_factory.opened[0].close()

        second = await manager.get_or_create_session("s1", URL_A)

        assert second is not first
        assert second.id == "s1"
        assert not second.driver.is_closed
        assert len(driver_factory.opened) == 2

    @pytest.mark.asyncio
    async def test_ask_after_page_loss(self, manager, driver_factory):
        """Test asking on an id whose page died answers from a fresh page."""
        await manager.get_or_create_session("s1", URL_A)
        await driver_factory.opened[0].close()

        result, session = await manager.ask("What is it?", URL_A, session_id="s1")

        assert result.answer == "The answer is 42."
        assert session.id == "s1"
        assert driver_factory.opened[1].submitted == ["What is it?"]


class TestCapacity:
    """Tests for the session bound and eviction."""

    @pytest.mark.asyncio
    async def test_never_exceeds_max_sessions(self, manager):
        """Test creating more sessions than the bound keeps the bound."""
        for _ in range(7):
            await manager.get_or_create_session(target_url=URL_A)
            assert len(manager.list_sessions()) <= 3

        assert manager.get_stats()["active_sessions"] == 3

    @pytest.mark.asyncio
    async def test_evicts_least_recently_active(self, manager):
        """Test the stalest session is evicted when full."""
        a = await manager.get_or_create_session("a", URL_A)
        b = await manager.get_or_create_session("b", URL_A)
        c = await manager.get_or_create_session("c", URL_A)
        a.last_activity -= timedelta(seconds=30)
        b.last_activity -= timedelta(seconds=60)
        c.last_activity -= timedelta(seconds=10)

        await manager.get_or_create_session("d", URL_A)

        assert manager.get_session("b") is None
        assert b.is_closed
        assert {s["id"] for s in manager.list_sessions()} == {"a", "c", "d"}

    @pytest.mark.asyncio
    async def test_eviction_prefers_idle_sessions(self, manager):
        """Test a session with an ask in flight is not evicted while idle ones exist."""
        a = await manager.get_or_create_session("a", URL_A)
        await manager.get_or_create_session("b", URL_A)
        await manager.get_or_create_session("c", URL_A)
        a.last_activity -= timedelta(seconds=300)
        a._in_flight = True

        await manager.get_or_create_session("d", URL_A)

        assert manager.get_session("a") is a
        assert len(manager.list_sessions()) == 3


class TestClosing:
    """Tests for close and cleanup."""

    @pytest.mark.asyncio
    async def test_close_session(self, manager):
        """Test closing an existing and an unknown session."""
        session = await manager.get_or_create_session(target_url=URL_A)

        assert await manager.close_session(session.id) is True
        assert session.is_closed
        assert await manager.close_session(session.id) is False
        assert await manager.close_session("unknown") is False

    @pytest.mark.asyncio
    async def test_cleanup_expired_sessions(self, driver_factory, fast_classifier):
        """Test idle sessions beyond the timeout are closed."""
        manager = SessionManager(
            driver_factory, fast_classifier, session_timeout_seconds=60, cleanup_interval_seconds=3600
        )
        idle = await manager.get_or_create_session("idle", URL_A)
        await manager.get_or_create_session("fresh", URL_A)
        idle.last_activity -= timedelta(seconds=120)

        closed = await manager.cleanup_expired_sessions()

        assert closed == 1
        assert idle.is_closed
        assert [s["id"] for s in manager.list_sessions()] == ["fresh"]
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_periodic_cleanup_runs(self, driver_factory, fast_classifier):
        """Test the background task closes idle sessions."""
        manager = SessionManager(
            driver_factory, fast_classifier, session_timeout_seconds=60, cleanup_interval_seconds=0.01
        )
        idle = await manager.get_or_create_session("idle", URL_A)
        idle.last_activity -= timedelta(seconds=120)

        for _ in range(100):
            if idle.is_closed:
                break
            await asyncio.sleep(0.01)

        assert idle.is_closed
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown(self, manager, driver_factory):
        """Test shutdown closes every session and the shared context."""
        sessions = [await manager.get_or_create_session(target_url=URL_A) for _ in range(2)]

        await manager.shutdown()

        assert all(s.is_closed for s in sessions)
        assert manager.list_sessions() == []
        assert driver_factory.shutdown_calls == 1

    @pytest.mark.asyncio
    async def test_async_context_manager(self, driver_factory, fast_classifier):
        """Test leaving the context shuts the manager down."""
        async with SessionManager(driver_factory, fast_classifier) as manager:
            await manager.get_or_create_session(target_url=URL_A)
        assert driver_factory.shutdown_calls == 1


class TestAsk:
    """Tests for asking through the manager."""

    @pytest.mark.asyncio
    async def test_ask_creates_session(self, manager):
        """Test ask returns the answer and the answering session."""
        result, session = await manager.ask("Q?", URL_A)

        assert result.answer == "The answer is 42."
        assert manager.get_session(session.id) is session
        assert manager.get_stats()["total_messages"] == 1

    @pytest.mark.asyncio
    async def test_ask_reuses_session(self, manager, driver_factory):
        """Test asking with an existing id continues that session."""
        _, session = await manager.ask("Q1?", URL_A)
        driver = driver_factory.opened[0]
        driver.script.extend(answer_script("Second.", ["The answer is 42."])[1:])
        driver.observe_calls = 3

        result, again = await manager.ask("Q2?", URL_A, session_id=session.id)

        assert again is session
        assert result.answer == "Second."
        assert len(driver_factory.opened) == 1

    @pytest.mark.asyncio
    async def test_quota_without_failover_propagates(self, fast_classifier):
        """Test QuotaExceededError reaches the caller when failover is disabled."""
        factory = FakeDriverFactory(lambda url: [obs(), obs("Daily limit reached.")])
        manager = SessionManager(factory, fast_classifier, session_timeout_seconds=0)

        with pytest.raises(QuotaExceededError):
            await manager.ask("Q?", URL_A)

    @pytest.mark.asyncio
    async def test_get_stats(self, manager):
        """Test stats fields."""
        await manager.get_or_create_session(target_url=URL_A)
        stats = manager.get_stats()

        assert stats["active_sessions"] == 1
        assert stats["max_sessions"] == 3
        assert stats["session_timeout"] == 0
        assert stats["oldest_session_seconds"] >= 0
