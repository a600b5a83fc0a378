"""Account data models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from notebook_relay.core.enums import SessionStatus


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    """Return the first UTC midnight strictly after ``now``."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc) + timedelta(days=1)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are treated as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """ISO format, or None."""
    return value.isoformat() if value is not None else None


@dataclass
class AccountQuota:
    """Daily query quota of one account."""

    used: int
    limit: int
    reset_at: datetime
    last_updated: datetime

    @classmethod
    def fresh(
        cls,
        limit: int,
        now: Optional[datetime] = None,
        previous_reset_at: Optional[datetime] = None,
    ) -> "AccountQuota":
        """
        Create an unused quota that resets at the next UTC midnight.

        Args:
            limit: Daily query limit
            now: Reference time (defaults to now)
            previous_reset_at: Reset time of the quota being replaced; the new
                reset time is always later than it

        Returns:
            Fresh AccountQuota
        """
        now = now or utcnow()
        reset_at = next_utc_midnight(now)
        if previous_reset_at is not None and reset_at <= previous_reset_at:
            reset_at = next_utc_midnight(previous_reset_at)
        return cls(used=0, limit=limit, reset_at=reset_at, last_updated=now)

    @property
    def remaining(self) -> int:
        """Queries left before the limit."""
        return max(0, self.limit - self.used)

    @property
    def is_exhausted(self) -> bool:
        """True when no queries are left."""
        return self.used >= self.limit

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True once the reset time has passed."""
        return (now or utcnow()) >= self.reset_at

    @classmethod
    def from_dict(cls, data: dict) -> "AccountQuota":
        """Create AccountQuota from dictionary."""
        required_fields = ("used", "limit", "reset_at")
        missing = [f for f in required_fields if f not in data]
        if missing:
            raise ValueError(f"AccountQuota.from_dict: missing required fields: {missing}")
        reset_at = parse_datetime(data["reset_at"])
        if reset_at is None:
            raise ValueError("AccountQuota.from_dict: reset_at is empty")
        return cls(
            used=int(data["used"]),
            limit=int(data["limit"]),
            reset_at=reset_at,
            last_updated=parse_datetime(data.get("last_updated")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for quota.json."""
        return {
            "used": self.used,
            "limit": self.limit,
            "reset_at": format_datetime(self.reset_at),
            "last_updated": format_datetime(self.last_updated),
        }


@dataclass
class AccountState:
    """Authentication and failure state of one account."""

    session_status: SessionStatus = SessionStatus.UNKNOWN
    last_activity: Optional[datetime] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "AccountState":
        """Create AccountState from dictionary."""
        status = data.get("session_status", SessionStatus.UNKNOWN.value)
        if status not in SessionStatus.values():
            status = SessionStatus.UNKNOWN.value
        return cls(
            session_status=SessionStatus(status),
            last_activity=parse_datetime(data.get("last_activity")),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            last_error=data.get("last_error"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for state.json."""
        return {
            "session_status": self.session_status.value,
            "last_activity": format_datetime(self.last_activity),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


@dataclass
class Account:
    """A registered knowledge-service account."""

    id: str
    email: str
    enabled: bool
    priority: int
    quota: AccountQuota
    state: AccountState = field(default_factory=AccountState)
    profile_dir: Path = Path()
    state_file: Path = Path()
    created_at: datetime = field(default_factory=utcnow)
    notes: Optional[str] = None

    @property
    def remaining(self) -> int:
        """Queries left today."""
        return self.quota.remaining

    @property
    def is_exhausted(self) -> bool:
        """True when today's quota is used up."""
        return self.quota.is_exhausted

    @property
    def consecutive_failures(self) -> int:
        return self.state.consecutive_failures

    @property
    def session_status(self) -> SessionStatus:
        return self.state.session_status

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.state.last_activity

    @property
    def last_error(self) -> Optional[str]:
        return self.state.last_error

    def config_dict(self) -> Dict[str, Any]:
        """Entry written to accounts.json."""
        return {
            "id": self.id,
            "email": self.email,
            "enabled": self.enabled,
            "priority": self.priority,
            "created_at": format_datetime(self.created_at),
            "notes": self.notes,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Summary used by operator tooling."""
        return {
            **self.config_dict(),
            "quota": self.quota.to_dict(),
            **self.state.to_dict(),
        }
