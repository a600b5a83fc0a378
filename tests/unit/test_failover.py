"""Tests for account failover on quota exhaustion."""

import pytest
import pytest_asyncio

from fakes import FakeDriverFactory, answer_script, obs
from notebook_relay.core.enums import SessionStatus
from notebook_relay.core.exceptions import (
    AllAccountsExhaustedError,
    AuthenticationRequiredError,
    DriverClosedError,
    DriverError,
    FailoverError,
    QuotaExceededError,
)
from notebook_relay.services.accounts import AccountStore, ProfileSwapper
from notebook_relay.services.session import FailoverCoordinator, SessionManager

URL = "https://kb.example.com/notebook/1"
QUOTA_SCRIPT = [obs(), obs("Vous avez atteint la limite quotidienne de discussions.")]


@pytest_asyncio.fixture
async def store(tmp_path):
    store = AccountStore(tmp_path / "data")
    await store.load()
    return store


async def add_accounts(store, count):
    accounts = []
    for i in range(count):
        accounts.append(await store.add_account(f"user{i}@example.com", f"secret-{i}"))
    return accounts


def make_manager(store, factory, classifier, max_failover_retries=3):
    failover = FailoverCoordinator(
        store, factory, ProfileSwapper(store.data_dir), release_grace_seconds=0
    )
    manager = SessionManager(
        factory,
        classifier,
        account_store=store,
        failover=failover,
        session_timeout_seconds=0,
        max_failover_retries=max_failover_retries,
    )
    return manager, failover


class TestFailoverThroughManager:
    """End-to-end failover through SessionManager.ask."""

    @pytest.mark.asyncio
    async def test_switches_to_best_available_account(self, store, fast_classifier):
        """Test exhausted A, B at 10/50 and disabled C: the ask is answered on B."""
        a, b, c = await add_accounts(store, 3)
        await store.set_current_account_id(a.id)
        store.get_account(b.id).quota.used = 10
        await store.set_enabled(c.id, False)

        def script_for(url):
            current = store.current_account_path.read_text(encoding="utf-8").strip()
            return QUOTA_SCRIPT if current == a.id else answer_script("Answer from B.")

        factory = FakeDriverFactory(script_for)
        manager, _ = make_manager(store, factory, fast_classifier)

        result, session = await manager.ask("Q?", URL, session_id="keep-me")

        assert result.answer == "Answer from B."
        assert session.id == "keep-me"
        assert await store.get_current_account_id() == b.id
        assert store.get_account(a.id).is_exhausted
        assert store.get_account(b.id).quota.used == 11
        assert factory.shutdown_calls == 1
        assert factory.opened[0].is_closed
        assert (store.data_dir / "chrome_profile").is_dir()

    @pytest.mark.asyncio
    async def test_all_accounts_exhausted(self, store, fast_classifier):
        """Test failover with no account left raises AllAccountsExhaustedError."""
        a, b = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)
        await store.mark_rate_limited(b.id)

        factory = FakeDriverFactory(lambda url: QUOTA_SCRIPT)
        manager, _ = make_manager(store, factory, fast_classifier)

        with pytest.raises(AllAccountsExhaustedError) as exc_info:
            await manager.ask("Q?", URL)

        assert not exc_info.value.recoverable
        assert store.get_account(a.id).is_exhausted
        assert factory.shutdown_calls == 0

    @pytest.mark.asyncio
    async def test_retry_bound(self, store, fast_classifier):
        """Test failover stops after max_failover_retries switches."""
        accounts = await add_accounts(store, 4)
        await store.set_current_account_id(accounts[0].id)

        factory = FakeDriverFactory(lambda url: QUOTA_SCRIPT)
        manager, _ = make_manager(store, factory, fast_classifier, max_failover_retries=2)

        with pytest.raises(QuotaExceededError) as exc_info:
            await manager.ask("Q?", URL)

        assert not isinstance(exc_info.value, AllAccountsExhaustedError)
        assert factory.shutdown_calls == 2
        assert len(factory.opened) == 3

    @pytest.mark.asyncio
    async def test_zero_retries_disables_failover(self, store, fast_classifier):
        """Test max_failover_retries=0 surfaces the first quota error."""
        a, _ = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        factory = FakeDriverFactory(lambda url: QUOTA_SCRIPT)
        manager, _ = make_manager(store, factory, fast_classifier, max_failover_retries=0)

        with pytest.raises(QuotaExceededError):
            await manager.ask("Q?", URL)
        assert await store.get_current_account_id() == a.id

    @pytest.mark.asyncio
    async def test_missing_profile_raises_failover_error(self, store, fast_classifier):
        """Test a profile that cannot be activated raises FailoverError."""
        a, b = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)
        b.profile_dir.rmdir()

        factory = FakeDriverFactory(lambda url: QUOTA_SCRIPT)
        manager, _ = make_manager(store, factory, fast_classifier)

        with pytest.raises(FailoverError):
            await manager.ask("Q?", URL)

        assert manager.list_sessions() == []
        assert await store.get_current_account_id() == a.id


    @pytest.mark.asyncio
    async def test_signed_out_account_fails_over(self, store, fast_classifier):
        """Test a sign-in redirect records a failure on A and answers on B."""
        a, b = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        def script_for(url):
            current = store.current_account_path.read_text(encoding="utf-8").strip()
            if current == a.id:
                return [AuthenticationRequiredError(url="https://accounts.google.com/signin")]
            return answer_script("Answer from B.")

        factory = FakeDriverFactory(script_for)
        manager, _ = make_manager(store, factory, fast_classifier)

        result, _ = await manager.ask("Q?", URL)

        assert result.answer == "Answer from B."
        assert await store.get_current_account_id() == b.id
        broken = store.get_account(a.id)
        assert broken.consecutive_failures == 1
        assert broken.session_status == SessionStatus.EXPIRED
        assert not broken.is_exhausted
        assert store.get_account(b.id).quota.used == 1

    @pytest.mark.asyncio
    async def test_signed_out_without_retries_records_failure(self, store, fast_classifier):
        """Test a sign-in redirect with no failover left is raised and recorded."""
        a, _ = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        factory = FakeDriverFactory(lambda url: [AuthenticationRequiredError()])
        manager, _ = make_manager(store, factory, fast_classifier, max_failover_retries=0)

        with pytest.raises(AuthenticationRequiredError):
            await manager.ask("Q?", URL)

        assert store.get_account(a.id).consecutive_failures == 1
        assert await store.get_current_account_id() == a.id

    @pytest.mark.asyncio
    async def test_driver_error_is_recorded(self, store, fast_classifier):
        """Test an automation failure counts against the active account."""
        a, _ = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        factory = FakeDriverFactory(lambda url: [DriverError("observe failed: net::ERR_ABORTED")])
        manager, _ = make_manager(store, factory, fast_classifier)

        with pytest.raises(DriverError):
            await manager.ask("Q?", URL)

        account = store.get_account(a.id)
        assert account.consecutive_failures == 1
        assert "net::ERR_ABORTED" in account.last_error
        assert factory.shutdown_calls == 0

    @pytest.mark.asyncio
    async def test_repeated_failures_drop_account_from_rotation(self, store, fast_classifier):
        """Test an account failing max_consecutive_failures times is skipped."""
        a, b = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        factory = FakeDriverFactory(lambda url: [DriverError("observe failed")])
        manager, _ = make_manager(store, factory, fast_classifier)

        for _ in range(store.max_consecutive_failures):
            with pytest.raises(DriverError):
                await manager.ask("Q?", URL)

        assert not store.is_available(store.get_account(a.id))
        assert (await store.get_best_account()).id == b.id

    @pytest.mark.asyncio
    async def test_closed_handle_is_not_recorded(self, store, fast_classifier):
        """Test a closed driver is a session event, not an account failure."""
        a, _ = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)

        factory = FakeDriverFactory(lambda url: [DriverClosedError()])
        manager, _ = make_manager(store, factory, fast_classifier)

        with pytest.raises(DriverClosedError):
            await manager.ask("Q?", URL)

        assert store.get_account(a.id).consecutive_failures == 0


class TestFailoverCoordinator:
    """Direct tests of FailoverCoordinator."""

    @pytest.mark.asyncio
    async def test_already_switched_does_not_mark_again(self, store):
        """Test a second caller that saw the old account reuses the new one."""
        a, b = await add_accounts(store, 2)
        await store.set_current_account_id(b.id)
        factory = FakeDriverFactory()
        _, failover = make_manager(store, factory, None)
        closed = []

        async def close_sessions():
            closed.append(True)

        active = await failover.fail_over(close_sessions, observed_account_id=a.id)

        assert active.id == b.id
        assert not store.get_account(b.id).is_exhausted
        assert closed == []
        assert factory.shutdown_calls == 0

    @pytest.mark.asyncio
    async def test_no_current_pointer(self, store):
        """Test without a pointer the best account is assumed exhausted."""
        a, b = await add_accounts(store, 2)
        factory = FakeDriverFactory()
        _, failover = make_manager(store, factory, None)

        async def close_sessions():
            return None

        active = await failover.fail_over(close_sessions)

        assert active.id == b.id
        assert store.get_account(a.id).is_exhausted
        assert await store.get_current_account_id() == b.id

    @pytest.mark.asyncio
    async def test_ensure_active_account_activates_best(self, store):
        """Test startup without a pointer activates the best account."""
        a, b = await add_accounts(store, 2)
        store.get_account(a.id).quota.used = 30
        factory = FakeDriverFactory()
        _, failover = make_manager(store, factory, None)

        active = await failover.ensure_active_account()

        assert active.id == b.id
        assert await store.get_current_account_id() == b.id
        assert (store.data_dir / "chrome_profile").is_dir()
        assert not store.get_account(a.id).is_exhausted

    @pytest.mark.asyncio
    async def test_ensure_active_account_keeps_pointer(self, store):
        """Test a recorded account is left active and the profile untouched."""
        a, _ = await add_accounts(store, 2)
        await store.set_current_account_id(a.id)
        factory = FakeDriverFactory()
        _, failover = make_manager(store, factory, None)

        active = await failover.ensure_active_account()

        assert active.id == a.id
        assert factory.shutdown_calls == 0
        assert not (store.data_dir / "chrome_profile").exists()

    @pytest.mark.asyncio
    async def test_ensure_active_account_without_accounts(self, store):
        """Test nothing is activated when no account is available."""
        _, failover = make_manager(store, FakeDriverFactory(), None)

        assert await failover.ensure_active_account() is None
        assert await store.get_current_account_id() is None
