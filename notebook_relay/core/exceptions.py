"""Custom exception classes for notebook-relay."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base exception for notebook-relay."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize relay error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Automation layer errors
class DriverError(RelayError):
    """Automation-layer failure unrelated to answer content."""

    def __init__(
        self,
        message: str = "Conversation driver failed",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class DriverClosedError(DriverError):
    """Driver handle was closed while (or before) it was being used."""

    def __init__(self, message: str = "Conversation driver is closed", session_id: Optional[str] = None):
        details = {"session_id": session_id} if session_id else {}
        super().__init__(message, recoverable=False, details=details)


class AuthenticationRequiredError(DriverError):
    """The chat page redirected to a sign-in flow; the active account's login has expired."""

    def __init__(self, message: str = "Sign-in required", url: Optional[str] = None):
        details = {"url": url} if url else {}
        super().__init__(message, recoverable=True, details=details)


# Answer content errors
class RecoverableAnswerError(RelayError):
    """The knowledge service answered with an error text; the same session may retry."""

    def __init__(
        self,
        message: str = "Knowledge service returned an error",
        raw_text: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.raw_text = raw_text
        merged = dict(details or {})
        if raw_text is not None:
            merged["raw_text"] = raw_text
        super().__init__(message, recoverable=True, details=merged)


class AnswerTimeoutError(RecoverableAnswerError):
    """No stable answer was observed before the deadline."""

    def __init__(
        self,
        message: str = "Timed out waiting for a stable answer",
        timeout_seconds: Optional[float] = None,
        last_candidate: Optional[str] = None,
    ):
        self.timeout_seconds = timeout_seconds
        details = {"timeout_seconds": timeout_seconds} if timeout_seconds is not None else {}
        super().__init__(message, raw_text=last_candidate, details=details)


# Quota errors
class QuotaExceededError(RelayError):
    """The active account reached the service's daily query limit."""

    def __init__(
        self,
        message: str = "Daily query limit reached",
        raw_text: Optional[str] = None,
        account_id: Optional[str] = None,
    ):
        self.raw_text = raw_text
        self.account_id = account_id
        details: Dict[str, Any] = {}
        if raw_text is not None:
            details["raw_text"] = raw_text
        if account_id is not None:
            details["account_id"] = account_id
        super().__init__(message, recoverable=True, details=details)


class AllAccountsExhaustedError(QuotaExceededError):
    """No registered account has quota left; failover cannot continue."""

    def __init__(self, message: str = "All accounts exhausted", raw_text: Optional[str] = None):
        super().__init__(message, raw_text=raw_text)
        self.recoverable = False


class FailoverError(RelayError):
    """Account failover could not complete (e.g. profile copy failed)."""

    def __init__(
        self,
        message: str = "Failover failed",
        account_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if account_id is not None:
            merged["account_id"] = account_id
        super().__init__(message, recoverable=True, details=merged)


# Lookup errors
class NotFoundError(RelayError):
    """Unknown session, notebook or account reference."""

    def __init__(self, message: str = "Not found", resource: Optional[str] = None, identifier: Optional[str] = None):
        details: Dict[str, Any] = {}
        if resource:
            details["resource"] = resource
        if identifier:
            details["id"] = identifier
        super().__init__(message, recoverable=False, details=details)


# Configuration Errors
class ConfigurationError(RelayError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class SessionBusyError(RelayError):
    """A second ask was issued on a session that already has one in flight."""

    def __init__(self, message: str = "Session already has an ask in flight", session_id: Optional[str] = None):
        details = {"session_id": session_id} if session_id else {}
        super().__init__(message, recoverable=True, details=details)
