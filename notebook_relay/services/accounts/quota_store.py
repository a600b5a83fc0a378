"""Durable per-account quota and state files."""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from notebook_relay.constants import LogEmoji
from notebook_relay.services.accounts.models import AccountQuota, AccountState, utcnow
from notebook_relay.utils.atomic_io import read_json, write_json_atomic


class QuotaStore:
    """
    Reads and writes ``accounts/<id>/quota.json`` and ``accounts/<id>/state.json``.

    Quotas are reset lazily: whenever a stored quota is read after its
    ``reset_at`` it is replaced by a fresh one and written back.
    """

    QUOTA_FILE = "quota.json"
    STATE_FILE = "state.json"

    def __init__(self, accounts_dir: Union[str, Path]):
        """
        Initialize quota store.

        Args:
            accounts_dir: Directory holding one sub-directory per account
        """
        self.accounts_dir = Path(accounts_dir)

    def account_dir(self, account_id: str) -> Path:
        """Directory of one account."""
        return self.accounts_dir / account_id

    def load_quota(
        self, account_id: str, default_limit: int, now: Optional[datetime] = None
    ) -> AccountQuota:
        """
        Load the quota of an account, creating or resetting it as needed.

        Args:
            account_id: Account identifier
            default_limit: Limit for a newly created quota
            now: Reference time (defaults to now)

        Returns:
            Current AccountQuota
        """
        now = now or utcnow()
        path = self.account_dir(account_id) / self.QUOTA_FILE
        data = read_json(path)

        quota: Optional[AccountQuota] = None
        if isinstance(data, dict):
            try:
                quota = AccountQuota.from_dict(data)
            except (ValueError, TypeError) as e:
                logger.warning(f"{LogEmoji.WARNING} Corrupt quota for {account_id}: {e}")

        if quota is None:
            quota = AccountQuota.fresh(default_limit, now=now)
            self.save_quota(account_id, quota)
        else:
            quota = self.refresh(account_id, quota, now=now)
        return quota

    def refresh(
        self, account_id: str, quota: AccountQuota, now: Optional[datetime] = None
    ) -> AccountQuota:
        """
        Reset a quota whose reset time has passed.

        Returns:
            The same quota when still current, otherwise a fresh persisted one
        """
        now = now or utcnow()
        if not quota.is_stale(now):
            return quota

        fresh = AccountQuota.fresh(quota.limit, now=now, previous_reset_at=quota.reset_at)
        self.save_quota(account_id, fresh)
        logger.info(
            f"{LogEmoji.RETRY} Quota reset for {account_id} "
            f"(next reset {fresh.reset_at.isoformat()})"
        )
        return fresh

    def save_quota(self, account_id: str, quota: AccountQuota) -> None:
        """Persist a quota."""
        write_json_atomic(self.account_dir(account_id) / self.QUOTA_FILE, quota.to_dict())

    def load_state(self, account_id: str) -> AccountState:
        """Load the state of an account, creating a default one when missing."""
        path = self.account_dir(account_id) / self.STATE_FILE
        data = read_json(path)
        if isinstance(data, dict):
            try:
                return AccountState.from_dict(data)
            except (ValueError, TypeError) as e:
                logger.warning(f"{LogEmoji.WARNING} Corrupt state for {account_id}: {e}")

        state = AccountState()
        self.save_state(account_id, state)
        return state

    def save_state(self, account_id: str, state: AccountState) -> None:
        """Persist an account state."""
        write_json_atomic(self.account_dir(account_id) / self.STATE_FILE, state.to_dict())
