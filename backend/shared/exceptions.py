"""
Base exception classes for the identity bridge backend.

Each module should define its own exceptions that inherit from these bases.
This enables consistent error handling across the application.
"""

from typing import Optional, Any


class BridgeError(Exception):
    """
    Base exception for all bridge errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(BridgeError):
    """Resource not found."""

    pass


class ConflictError(BridgeError):
    """A uniqueness constraint rejected a create."""

    pass


class PersistenceError(BridgeError):
    """The backing store failed to complete an operation."""

    pass


class AuthenticationError(BridgeError):
    """Authentication failed (invalid or missing credentials)."""

    pass


class ExternalServiceError(BridgeError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service


class TransportError(ExternalServiceError):
    """An upstream change feed could not be opened or failed while open."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, service="realtime", code=code, details=details)
