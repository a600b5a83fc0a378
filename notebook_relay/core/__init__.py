"""Core infrastructure module."""

from .enums import ClassificationState, DriverMode, RotationStrategy, SessionStatus
from .exceptions import (
    # Base exception
    RelayError,
    # Automation layer
    DriverError,
    DriverClosedError,
    AuthenticationRequiredError,
    # Answer content
    RecoverableAnswerError,
    AnswerTimeoutError,
    # Quota and failover
    QuotaExceededError,
    AllAccountsExhaustedError,
    FailoverError,
    # Sessions
    SessionBusyError,
    # Lookup
    NotFoundError,
    # Configuration
    ConfigurationError,
)
from .result import Failure, Result, Success
from .settings import RelaySettings, get_settings, reset_settings

__all__ = [
    "ClassificationState",
    "DriverMode",
    "RotationStrategy",
    "SessionStatus",
    "RelayError",
    "DriverError",
    "DriverClosedError",
    "AuthenticationRequiredError",
    "RecoverableAnswerError",
    "AnswerTimeoutError",
    "QuotaExceededError",
    "AllAccountsExhaustedError",
    "FailoverError",
    "SessionBusyError",
    "NotFoundError",
    "ConfigurationError",
    "Failure",
    "Result",
    "Success",
    "RelaySettings",
    "get_settings",
    "reset_settings",
]
