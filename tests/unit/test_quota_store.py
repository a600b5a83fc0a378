"""Tests for account models and the per-account quota/state files."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from notebook_relay.core.enums import SessionStatus
from notebook_relay.services.accounts import AccountQuota, AccountState, QuotaStore
from notebook_relay.services.accounts.models import next_utc_midnight, parse_datetime

NOON = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


class TestAccountQuota:
    """Tests for AccountQuota."""

    def test_next_utc_midnight(self):
        """Test the reset time is the following UTC midnight."""
        assert next_utc_midnight(NOON) == datetime(2026, 3, 15, tzinfo=timezone.utc)
        midnight = datetime(2026, 3, 15, tzinfo=timezone.utc)
        assert next_utc_midnight(midnight) == datetime(2026, 3, 16, tzinfo=timezone.utc)

    def test_fresh_quota(self):
        """Test a fresh quota is unused and resets at midnight."""
        quota = AccountQuota.fresh(50, now=NOON)
        assert quota.used == 0
        assert quota.remaining == 50
        assert quota.reset_at == datetime(2026, 3, 15, tzinfo=timezone.utc)
        assert not quota.is_stale(NOON)

    def test_fresh_reset_moves_forward(self):
        """Test a replacement quota always resets after the previous one."""
        previous = datetime(2026, 3, 20, tzinfo=timezone.utc)
        quota = AccountQuota.fresh(50, now=NOON, previous_reset_at=previous)
        assert quota.reset_at > previous

    def test_exhausted(self):
        """Test exhaustion and remaining never negative."""
        quota = AccountQuota(used=55, limit=50, reset_at=NOON, last_updated=NOON)
        assert quota.is_exhausted
        assert quota.remaining == 0

    def test_from_dict_requires_fields(self):
        """Test missing fields are rejected."""
        with pytest.raises(ValueError, match="missing required fields"):
            AccountQuota.from_dict({"used": 1, "limit": 50})
        with pytest.raises(ValueError, match="reset_at is empty"):
            AccountQuota.from_dict({"used": 1, "limit": 50, "reset_at": ""})

    def test_to_dict_and_back(self):
        """Test the persisted form keeps every field."""
        quota = AccountQuota(used=3, limit=50, reset_at=NOON, last_updated=NOON)
        assert AccountQuota.from_dict(quota.to_dict()) == quota

    def test_parse_naive_datetime_as_utc(self):
        """Test naive timestamps are treated as UTC."""
        assert parse_datetime("2026-03-14T12:00:00") == NOON
        assert parse_datetime("2026-03-14T12:00:00Z") == NOON
        assert parse_datetime(None) is None


class TestAccountState:
    """Tests for AccountState."""

    def test_unknown_status_becomes_unknown(self):
        """Test unexpected status values load as UNKNOWN."""
        state = AccountState.from_dict({"session_status": "weird"})
        assert state.session_status == SessionStatus.UNKNOWN
        assert state.consecutive_failures == 0


class TestQuotaStore:
    """Tests for QuotaStore."""

    @pytest.fixture
    def quota_store(self, tmp_path):
        return QuotaStore(tmp_path / "accounts")

    def test_load_creates_quota(self, quota_store):
        """Test a missing quota file is created."""
        quota = quota_store.load_quota("acc", 30, now=NOON)

        assert quota.limit == 30
        path = quota_store.account_dir("acc") / "quota.json"
        assert json.loads(path.read_text(encoding="utf-8"))["used"] == 0

    def test_load_keeps_current_quota(self, quota_store):
        """Test a quota before its reset time is returned unchanged."""
        quota_store.save_quota(
            "acc", AccountQuota(used=7, limit=50, reset_at=NOON + timedelta(hours=1), last_updated=NOON)
        )
        assert quota_store.load_quota("acc", 50, now=NOON).used == 7

    def test_load_resets_stale_quota(self, quota_store):
        """Test a quota past its reset time is reset and persisted."""
        quota_store.save_quota(
            "acc", AccountQuota(used=50, limit=40, reset_at=NOON - timedelta(hours=1), last_updated=NOON)
        )

        quota = quota_store.load_quota("acc", 50, now=NOON)

        assert quota.used == 0
        assert quota.limit == 40
        assert quota.reset_at == datetime(2026, 3, 15, tzinfo=timezone.utc)
        stored = json.loads((quota_store.account_dir("acc") / "quota.json").read_text(encoding="utf-8"))
        assert stored["used"] == 0

    def test_corrupt_quota_is_recreated(self, quota_store):
        """Test an unreadable quota file is replaced by a fresh quota."""
        path = quota_store.account_dir("acc") / "quota.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        quota = quota_store.load_quota("acc", 50, now=NOON)
        assert quota.used == 0

    def test_state_round_trip(self, quota_store):
        """Test state is persisted and loaded back."""
        state = AccountState(
            session_status=SessionStatus.EXPIRED, consecutive_failures=2, last_error="x"
        )
        quota_store.save_state("acc", state)
        assert quota_store.load_state("acc") == state

    def test_missing_state_is_created(self, quota_store):
        """Test a missing state file yields and persists a default state."""
        state = quota_store.load_state("acc")
        assert state == AccountState()
        assert (quota_store.account_dir("acc") / "state.json").exists()
