"""Result pattern for transport-facing operations.

Operations exposed to transports never raise; they return ``Success`` or
``Failure`` so a caller always gets a success flag and a message.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass
class Success(Generic[T]):
    """Represents a successful result."""

    value: T

    def is_success(self) -> bool:
        """Check if result is successful."""
        return True

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return False

    def unwrap(self) -> T:
        """Get the success value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the success value or a default."""
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a transport response."""
        return {"success": True, "data": self.value}

    def __repr__(self) -> str:
        """String representation."""
        return f"Success({self.value!r})"


@dataclass
class Failure(Generic[E]):
    """Represents a failed result."""

    error: str
    exception: Optional[Exception] = None

    def is_success(self) -> bool:
        """Check if result is successful."""
        return False

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return True

    def unwrap(self) -> Any:
        """
        Attempt to get value (raises exception).

        Raises:
            RuntimeError: Always, as this is a failure
        """
        raise RuntimeError(f"Called unwrap on Failure: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Get the default value (success value is not available)."""
        return default

    @property
    def error_type(self) -> Optional[str]:
        """Class name of the underlying exception, if any."""
        return type(self.exception).__name__ if self.exception else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a transport response."""
        return {"success": False, "error": self.error, "error_type": self.error_type}

    def __repr__(self) -> str:
        """String representation."""
        if self.exception:
            return f"Failure(error={self.error!r}, exception={type(self.exception).__name__})"
        return f"Failure(error={self.error!r})"


# Type alias for Result
Result = Union[Success[T], Failure[E]]
