"""Account failover on quota exhaustion."""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from notebook_relay.constants import Delays, LogEmoji
from notebook_relay.core.exceptions import AllAccountsExhaustedError
from notebook_relay.services.accounts import Account, AccountStore, ProfileSwapper
from notebook_relay.services.driver.base import DriverFactory
from notebook_relay.utils.masking import mask_email


class FailoverCoordinator:
    """
    Switches the shared browser profile to the next viable account.

    The coordinator is the only writer of the current-account pointer and the
    only code that touches the active profile. Both happen under one lock,
    after every session and the shared context have been closed.
    """

    def __init__(
        self,
        account_store: AccountStore,
        driver_factory: DriverFactory,
        profile_swapper: ProfileSwapper,
        release_grace_seconds: float = Delays.PROFILE_RELEASE_GRACE,
    ):
        """
        Initialize failover coordinator.

        Args:
            account_store: Account registry
            driver_factory: Factory whose shared context holds the profile lock
            profile_swapper: Copies account profiles into the active profile
            release_grace_seconds: Wait after shutdown before touching the profile
        """
        self.account_store = account_store
        self.driver_factory = driver_factory
        self.profile_swapper = profile_swapper
        self.release_grace_seconds = release_grace_seconds
        self._lock = asyncio.Lock()

    async def fail_over(
        self,
        close_sessions: Callable[[], Awaitable[None]],
        observed_account_id: Optional[str] = None,
        failure: Optional[str] = None,
    ) -> Account:
        """
        Retire the exhausted or broken account and activate the next one.

        Args:
            close_sessions: Closes every live session
            observed_account_id: Current account when the error was seen;
                if another failover has switched since, nothing is marked
            failure: Set when the account is broken rather than out of quota
                (e.g. signed out); recorded as a failure instead of exhausting it

        Returns:
            The account now active

        Raises:
            AllAccountsExhaustedError: If no other account is available
            FailoverError: If the profile swap failed (sessions are already closed)
        """
        async with self._lock:
            current_id = await self.account_store.get_current_account_id()

            if current_id != observed_account_id:
                active = self.account_store.get_account(current_id) if current_id else None
                if active is not None:
                    logger.info(
                        f"{LogEmoji.RETRY} Account already switched to {current_id}, retrying"
                    )
                    return active

            if failure:
                logger.warning(f"{LogEmoji.BLOCKED} Account unusable ({failure}), rotating account...")
            else:
                logger.warning(f"{LogEmoji.BLOCKED} Rate limit reached, rotating account...")

            if not current_id:
                logger.warning(
                    f"{LogEmoji.WARNING} No current account recorded; "
                    "assuming the best available one is active"
                )
                assumed = await self.account_store.get_best_account()
                current_id = assumed.id if assumed is not None else None

            if current_id and failure:
                await self.account_store.record_failure(current_id, failure)
            elif current_id:
                await self.account_store.mark_rate_limited(current_id)

            next_account = await self.account_store.get_best_account(exclude_id=current_id)
            if next_account is None:
                logger.error(f"{LogEmoji.ALERT} All accounts exhausted")
                raise AllAccountsExhaustedError(
                    "All accounts exhausted; wait for the daily quota reset or add accounts"
                )

            logger.info(
                f"{LogEmoji.RETRY} Switching to account {mask_email(next_account.email)} "
                f"({next_account.id})"
            )

            await close_sessions()
            await self.driver_factory.shutdown()
            await asyncio.sleep(self.release_grace_seconds)

            await self.profile_swapper.activate(next_account)
            await self.account_store.set_current_account_id(next_account.id)

            logger.info(f"{LogEmoji.SUCCESS} Switched to account {next_account.id}")
            return next_account

    async def ensure_active_account(self) -> Optional[Account]:
        """
        Activate the best account when no current account is recorded.

        Without a recorded account no answer would be counted against any
        quota, so this runs at startup before the first session opens.

        Returns:
            The active account, or None when no account is available

        Raises:
            FailoverError: If the chosen account's profile cannot be activated
        """
        async with self._lock:
            current_id = await self.account_store.get_current_account_id()
            if current_id:
                current = self.account_store.get_account(current_id)
                if current is not None:
                    return current
                logger.warning(
                    f"{LogEmoji.WARNING} Current account {current_id} is not registered; "
                    "selecting another"
                )

            account = await self.account_store.get_best_account()
            if account is None:
                logger.warning(f"{LogEmoji.WARNING} No available account to activate")
                return None

            await self.driver_factory.shutdown()
            await self.profile_swapper.activate(account)
            await self.account_store.set_current_account_id(account.id)

            logger.info(
                f"{LogEmoji.SUCCESS} Activated account {mask_email(account.email)} ({account.id})"
            )
            return account
