"""
Exception classes for the custom hosts system.

All exceptions inherit from CustomHostsError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class CustomHostsError(Exception):
    """Base exception for all custom hosts errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CustomHostsError):
    """Raised when a domain or batch input is rejected before any I/O."""

    pass


class NetworkError(CustomHostsError):
    """Raised when upstream network operations fail."""

    pass


class ResolutionError(NetworkError):
    """Raised when no DNS provider returned a usable IP address."""

    pass


class PersistenceError(CustomHostsError):
    """Raised when key-value store operations fail (file I/O, malformed data)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation of a stored value fails."""

    pass
