"""Swap an account's browser profile into the shared active profile."""

import asyncio
import shutil
from pathlib import Path
from typing import Union

from loguru import logger

from notebook_relay.constants import LogEmoji
from notebook_relay.core.exceptions import FailoverError
from notebook_relay.core.retry import get_profile_copy_retry
from notebook_relay.services.accounts.models import Account


class ProfileSwapper:
    """
    Copies per-account profile state into the shared active locations.

    The active profile directory is locked by the browser while a persistent
    context is open; callers must shut the driver factory down first.
    """

    def __init__(self, data_dir: Union[str, Path]):
        """
        Initialize profile swapper.

        Args:
            data_dir: Root data directory
        """
        self.data_dir = Path(data_dir)
        self.active_profile_dir = self.data_dir / "chrome_profile"
        self.active_state_file = self.data_dir / "browser_state" / "state.json"

    async def activate(self, account: Account) -> None:
        """
        Make ``account``'s profile and storage state the active ones.

        Args:
            account: Account to activate

        Raises:
            FailoverError: If the profile cannot be copied
        """
        if not account.profile_dir.is_dir():
            raise FailoverError(
                f"Profile directory missing for {account.id}",
                account_id=account.id,
                details={"profile_dir": str(account.profile_dir)},
            )

        logger.info(f"{LogEmoji.SAVE} Syncing profile of {account.id} into the active profile")
        try:
            await self._copy_with_retry(account)
        except OSError as e:
            logger.error(f"{LogEmoji.ERROR} Profile swap failed for {account.id}: {e}")
            raise FailoverError(
                f"Could not copy profile for {account.id}: {e}", account_id=account.id
            ) from e

        logger.info(f"{LogEmoji.SUCCESS} Active profile now belongs to {account.id}")

    @get_profile_copy_retry()
    async def _copy_with_retry(self, account: Account) -> None:
        await asyncio.to_thread(self._copy_sync, account)

    def _copy_sync(self, account: Account) -> None:
        """Replace the active profile dir and storage state file."""
        if self.active_profile_dir.exists():
            shutil.rmtree(self.active_profile_dir)
        shutil.copytree(account.profile_dir, self.active_profile_dir)

        if account.state_file.exists():
            self.active_state_file.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(account.state_file, self.active_state_file)
        else:
            logger.warning(f"{LogEmoji.WARNING} No browser state file for {account.id}; keeping profile only")
