"""Account registry, quota persistence and profile swapping."""

from .account_store import AccountStore
from .models import Account, AccountQuota, AccountState
from .profile_swap import ProfileSwapper
from .quota_store import QuotaStore

__all__ = [
    "Account",
    "AccountQuota",
    "AccountState",
    "AccountStore",
    "ProfileSwapper",
    "QuotaStore",
]
