"""Account registry with quota-aware rotation."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from loguru import logger

from notebook_relay.constants import AccountPoolConfig, LogEmoji
from notebook_relay.core.enums import RotationStrategy, SessionStatus
from notebook_relay.core.exceptions import ConfigurationError, NotFoundError
from notebook_relay.services.accounts.models import (
    Account,
    format_datetime,
    parse_datetime,
    utcnow,
)
from notebook_relay.services.accounts.quota_store import QuotaStore
from notebook_relay.utils.atomic_io import read_json, write_json_atomic
from notebook_relay.utils.encryption import CredentialEncryption, get_encryption
from notebook_relay.utils.masking import mask_email


class AccountStore:
    """
    Process-wide registry of knowledge-service accounts.

    Selection follows the configured rotation strategy among *available*
    accounts (enabled, quota left after lazy reset, fewer consecutive
    failures than the maximum). Accounts are never deleted, only disabled.

    The current-account pointer (``current-account.txt``) names the account
    whose profile is loaded in the shared browser profile. It is read when a
    failover starts and written only by the failover coordinator.
    """

    CONFIG_FILE = "accounts.json"
    CURRENT_ACCOUNT_FILE = "current-account.txt"
    CREDENTIALS_FILE = "credentials.enc.json"

    def __init__(
        self,
        data_dir: Union[str, Path],
        encryption: Optional[CredentialEncryption] = None,
        default_daily_quota: int = AccountPoolConfig.DEFAULT_DAILY_QUOTA,
        max_consecutive_failures: int = AccountPoolConfig.MAX_CONSECUTIVE_FAILURES,
        default_rotation_strategy: RotationStrategy = RotationStrategy.LEAST_USED,
    ):
        """
        Initialize account store.

        Args:
            data_dir: Root data directory
            encryption: Credential encryption (defaults to the global instance)
            default_daily_quota: Daily limit for newly created quotas
            max_consecutive_failures: Failures after which an account is skipped
            default_rotation_strategy: Strategy written to a newly created accounts.json
        """
        self.data_dir = Path(data_dir)
        self.accounts_dir = self.data_dir / "accounts"
        self.config_path = self.data_dir / self.CONFIG_FILE
        self.current_account_path = self.data_dir / self.CURRENT_ACCOUNT_FILE
        self.default_daily_quota = default_daily_quota
        self.max_consecutive_failures = max_consecutive_failures
        self.quota_store = QuotaStore(self.accounts_dir)

        self._encryption = encryption
        self._accounts: Dict[str, Account] = {}
        self._rotation_strategy = RotationStrategy(default_rotation_strategy)
        self._round_robin_index = 0
        self._lock = asyncio.Lock()

    @property
    def encryption(self) -> CredentialEncryption:
        """Credential encryption, resolved lazily."""
        if self._encryption is None:
            try:
                self._encryption = get_encryption()
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        return self._encryption

    @property
    def rotation_strategy(self) -> RotationStrategy:
        """Active selection policy."""
        return self._rotation_strategy

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Load accounts.json and every account's quota and state.

        Returns:
            Number of registered accounts
        """
        async with self._lock:
            return await asyncio.to_thread(self._load_sync)

    def _load_sync(self) -> int:
        self.accounts_dir.mkdir(parents=True, exist_ok=True)

        config = read_json(self.config_path)
        if not isinstance(config, dict):
            config = {"accounts": [], "rotation_strategy": self._rotation_strategy.value}
            write_json_atomic(self.config_path, config)
            logger.info(f"Created default {self.CONFIG_FILE}")

        strategy = config.get("rotation_strategy", RotationStrategy.LEAST_USED.value)
        if strategy not in RotationStrategy.values():
            logger.warning(f"{LogEmoji.WARNING} Unknown rotation strategy {strategy!r}, using least_used")
            strategy = RotationStrategy.LEAST_USED.value
        self._rotation_strategy = RotationStrategy(strategy)

        self._accounts = {}
        for entry in config.get("accounts", []):
            try:
                account = self._load_account(entry)
            except (KeyError, ValueError, OSError) as e:
                logger.warning(f"{LogEmoji.WARNING} Failed to load account {entry.get('id')}: {e}")
                continue
            self._accounts[account.id] = account
            logger.debug(f"Loaded account {account.id} ({mask_email(account.email)})")

        logger.info(
            f"AccountStore loaded {len(self._accounts)} accounts "
            f"(strategy={self._rotation_strategy.value})"
        )
        return len(self._accounts)

    def _load_account(self, entry: Dict[str, Any]) -> Account:
        account_id = entry["id"]
        account_dir = self.quota_store.account_dir(account_id)
        account_dir.mkdir(parents=True, exist_ok=True)

        return Account(
            id=account_id,
            email=entry["email"],
            enabled=bool(entry.get("enabled", True)),
            priority=int(entry.get("priority", len(self._accounts) + 1)),
            quota=self.quota_store.load_quota(account_id, self.default_daily_quota),
            state=self.quota_store.load_state(account_id),
            profile_dir=account_dir / "profile",
            state_file=account_dir / "browser_state" / "state.json",
            created_at=parse_datetime(entry.get("created_at")) or utcnow(),
            notes=entry.get("notes"),
        )

    def _save_config_sync(self) -> None:
        write_json_atomic(
            self.config_path,
            {
                "accounts": [a.config_dict() for a in self._accounts.values()],
                "rotation_strategy": self._rotation_strategy.value,
            },
        )

    # ------------------------------------------------------------------
    # Operator API
    # ------------------------------------------------------------------

    async def add_account(
        self,
        email: str,
        password: str,
        priority: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Account:
        """
        Register an account with encrypted credentials.

        Args:
            email: Login email
            password: Login password
            priority: Failover priority (lower first); defaults to last
            notes: Free-form operator notes

        Returns:
            The new Account
        """
        credentials = {
            "email_encrypted": self.encryption.encrypt(email),
            "password_encrypted": self.encryption.encrypt(password),
            "encrypted_at": format_datetime(utcnow()),
        }

        async with self._lock:
            account_id = f"account-{uuid4().hex[:8]}"
            entry = {
                "id": account_id,
                "email": email,
                "enabled": True,
                "priority": priority if priority is not None else len(self._accounts) + 1,
                "created_at": format_datetime(utcnow()),
                "notes": notes,
            }

            def _create() -> Account:
                account_dir = self.quota_store.account_dir(account_id)
                (account_dir / "profile").mkdir(parents=True, exist_ok=True)
                (account_dir / "browser_state").mkdir(parents=True, exist_ok=True)
                write_json_atomic(account_dir / self.CREDENTIALS_FILE, credentials, private=True)
                account = self._load_account(entry)
                self._accounts[account_id] = account
                self._save_config_sync()
                return account

            account = await asyncio.to_thread(_create)

        logger.info(f"{LogEmoji.SUCCESS} Account added: {mask_email(email)} ({account_id})")
        return account

    async def set_enabled(self, account_id: str, enabled: bool) -> Account:
        """
        Enable or disable an account.

        Raises:
            NotFoundError: If the account is unknown
        """
        async with self._lock:
            account = self._require(account_id)
            account.enabled = enabled
            await asyncio.to_thread(self._save_config_sync)

        state = "enabled" if enabled else "disabled"
        logger.info(f"Account {mask_email(account.email)} {state}")
        return account

    async def set_rotation_strategy(self, strategy: Union[RotationStrategy, str]) -> None:
        """Persist a new rotation strategy."""
        strategy = RotationStrategy(strategy)
        async with self._lock:
            self._rotation_strategy = strategy
            self._round_robin_index = 0
            await asyncio.to_thread(self._save_config_sync)
        logger.info(f"{LogEmoji.SUCCESS} Rotation strategy set to: {strategy.value}")

    async def get_credentials(self, account_id: str) -> Optional[Dict[str, str]]:
        """
        Decrypt the stored credentials of an account.

        Returns:
            ``{"email", "password"}`` or None when missing or undecryptable
        """
        if account_id not in self._accounts:
            logger.warning(f"{LogEmoji.WARNING} Account not found: {account_id}")
            return None

        path = self.quota_store.account_dir(account_id) / self.CREDENTIALS_FILE
        data = await asyncio.to_thread(read_json, path)
        if not isinstance(data, dict):
            logger.warning(f"{LogEmoji.WARNING} No credentials file for: {account_id}")
            return None

        try:
            credentials = {
                "email": self.encryption.decrypt(data["email_encrypted"]),
                "password": self.encryption.decrypt(data["password_encrypted"]),
            }
        except (KeyError, ValueError) as e:
            logger.error(f"{LogEmoji.ERROR} Failed to decrypt credentials for {account_id}: {e}")
            return None

        if self.encryption.needs_migration(data["password_encrypted"]):
            await asyncio.to_thread(self._rotate_credentials_sync, path, data)
            logger.info(f"{LogEmoji.SAVE} Re-encrypted credentials for {account_id} under the current key")
        return credentials

    def _rotate_credentials_sync(self, path: Path, data: Dict[str, Any]) -> None:
        rotated = dict(data)
        rotated["email_encrypted"] = self.encryption.rotate(data["email_encrypted"])
        rotated["password_encrypted"] = self.encryption.rotate(data["password_encrypted"])
        rotated["encrypted_at"] = format_datetime(utcnow())
        write_json_atomic(path, rotated, private=True)

    def list_accounts(self) -> List[Account]:
        """All registered accounts in configuration order."""
        return list(self._accounts.values())

    def get_account(self, account_id: str) -> Optional[Account]:
        """Account by id, or None."""
        return self._accounts.get(account_id)

    def _require(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(
                f"Account not found: {account_id}", resource="account", identifier=account_id
            )
        return account

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def is_available(self, account: Account) -> bool:
        """Enabled, quota left and not failing repeatedly."""
        if not account.enabled:
            return False
        if account.quota.is_exhausted:
            return False
        if account.state.consecutive_failures >= self.max_consecutive_failures:
            return False
        return True

    async def get_best_account(self, exclude_id: Optional[str] = None) -> Optional[Account]:
        """
        Pick the next account according to the rotation strategy.

        Args:
            exclude_id: Account to leave out (e.g. the one that just hit its limit)

        Returns:
            Selected Account, or None when no account is available
        """
        async with self._lock:
            now = utcnow()
            for account in self._accounts.values():
                account.quota = await asyncio.to_thread(
                    self.quota_store.refresh, account.id, account.quota, now
                )

            available = [a for a in self._accounts.values() if self.is_available(a)]
            if exclude_id:
                available = [a for a in available if a.id != exclude_id]
                logger.info(
                    f"{LogEmoji.RETRY} Excluding {exclude_id} from selection "
                    f"({len(available)} remaining)"
                )

            if not available:
                logger.warning(
                    f"{LogEmoji.WARNING} No available accounts "
                    "(all disabled, quota exhausted, or failing)"
                )
                return None

            strategy = self._rotation_strategy
            if strategy == RotationStrategy.ROUND_ROBIN:
                self._round_robin_index = (self._round_robin_index + 1) % len(available)
                selected = available[self._round_robin_index]
                reason = "round robin rotation"
            elif strategy == RotationStrategy.FAILOVER:
                selected = min(available, key=lambda a: a.priority)
                reason = f"failover (priority {selected.priority})"
            else:
                # max() keeps the first of equal candidates
                selected = max(available, key=lambda a: a.quota.remaining)
                reason = f"least used ({selected.quota.used}/{selected.quota.limit} queries)"

        logger.info(f"{LogEmoji.FOUND} Selected: {mask_email(selected.email)} ({reason})")
        return selected

    # ------------------------------------------------------------------
    # Outcome API
    # ------------------------------------------------------------------

    async def mark_success(self, account_id: str) -> None:
        """Count one answered query and clear failure state."""
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                logger.warning(f"{LogEmoji.WARNING} mark_success: unknown account {account_id}")
                return

            now = utcnow()
            quota = self.quota_store.refresh(account_id, account.quota, now)
            quota.used = min(quota.used + 1, quota.limit)
            quota.last_updated = now
            account.quota = quota

            account.state.consecutive_failures = 0
            account.state.session_status = SessionStatus.VALID
            account.state.last_activity = now
            account.state.last_error = None

            await asyncio.to_thread(self.quota_store.save_quota, account_id, quota)
            await asyncio.to_thread(self.quota_store.save_state, account_id, account.state)

        logger.debug(
            f"{LogEmoji.QUOTA} Quota: {quota.used}/{quota.limit} ({quota.remaining} remaining)"
        )

    async def mark_rate_limited(self, account_id: str) -> None:
        """Mark an account's quota as exhausted until its next reset."""
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                logger.warning(f"{LogEmoji.WARNING} mark_rate_limited: unknown account {account_id}")
                return

            logger.warning(f"{LogEmoji.BLOCKED} Marking account {mask_email(account.email)} as rate-limited")
            # Roll a stale window first so the exhaustion lands in the current one
            now = utcnow()
            quota = await asyncio.to_thread(self.quota_store.refresh, account_id, account.quota, now)
            quota.used = quota.limit
            quota.last_updated = now
            account.quota = quota
            await asyncio.to_thread(self.quota_store.save_quota, account_id, quota)

        logger.info(
            f"{LogEmoji.QUOTA} Account quota exhausted: {account.quota.used}/{account.quota.limit}"
        )

    async def record_failure(self, account_id: str, error: str) -> None:
        """Record an authentication/automation failure for an account."""
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                logger.warning(f"{LogEmoji.WARNING} record_failure: unknown account {account_id}")
                return

            account.state.consecutive_failures += 1
            account.state.last_error = error
            account.state.session_status = SessionStatus.EXPIRED
            await asyncio.to_thread(self.quota_store.save_state, account_id, account.state)

        logger.warning(
            f"{LogEmoji.WARNING} Failure recorded for {mask_email(account.email)} "
            f"({account.state.consecutive_failures} consecutive): {error}"
        )

    # ------------------------------------------------------------------
    # Current-account pointer
    # ------------------------------------------------------------------

    async def get_current_account_id(self) -> Optional[str]:
        """Id of the account loaded in the shared profile, or None."""

        def _read() -> Optional[str]:
            try:
                return self.current_account_path.read_text(encoding="utf-8").strip() or None
            except FileNotFoundError:
                return None

        return await asyncio.to_thread(_read)

    async def set_current_account_id(self, account_id: str) -> None:
        """Persist the current-account pointer."""

        def _write() -> None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = self.current_account_path.with_suffix(".tmp")
            tmp.write_text(account_id, encoding="utf-8")
            tmp.replace(self.current_account_path)

        await asyncio.to_thread(_write)
        logger.info(f"{LogEmoji.SAVE} Current account set: {account_id}")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Report quota, session and failure issues per account.

        Returns:
            One dict per account with masked email and a list of issues
        """
        now = now or utcnow()
        results = []
        for account in self._accounts.values():
            issues: List[str] = []
            quota = account.quota
            remaining = quota.remaining if not quota.is_stale(now) else quota.limit
            percent = round(remaining / quota.limit * 100) if quota.limit else 0

            if remaining <= 0:
                issues.append("Quota exhausted")
            elif percent < AccountPoolConfig.LOW_QUOTA_PERCENT:
                issues.append(f"Low quota ({percent}% remaining)")

            if not account.state_file.exists():
                issues.append("No browser state file (needs login)")

            if account.state.consecutive_failures >= self.max_consecutive_failures:
                issues.append(f"{account.state.consecutive_failures} consecutive failures")

            if account.state.last_activity is not None:
                hours = (now - account.state.last_activity).total_seconds() / 3600
                if hours > AccountPoolConfig.INACTIVE_WARNING_HOURS:
                    issues.append(f"Inactive for {round(hours)} hours")

            results.append(
                {
                    "account_id": account.id,
                    "email": mask_email(account.email),
                    "enabled": account.enabled,
                    "quota_remaining": remaining,
                    "quota_percent": percent,
                    "session_status": account.state.session_status.value,
                    "last_activity": format_datetime(account.state.last_activity),
                    "issues": issues,
                }
            )
        return results
