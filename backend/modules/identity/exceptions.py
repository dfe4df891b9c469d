"""
Identity module exceptions.

These exceptions are raised by the identity bridge and the sign-in flow and
can be caught by API error handlers to return appropriate HTTP responses.
"""

from typing import Optional

from shared.exceptions import AuthenticationError, NotFoundError, PersistenceError


class AuthenticationFailedError(AuthenticationError):
    """Raised when the identity provider rejects a token."""

    def __init__(self, message: str = "Authentication failed", status_code: Optional[int] = None):
        super().__init__(
            message,
            code="AUTHENTICATION_FAILED",
            details={"status_code": status_code} if status_code is not None else None,
        )


class UserNotFoundError(NotFoundError):
    """Raised when a referenced internal user no longer exists."""

    def __init__(self, user_id: int):
        super().__init__(
            f"User not found: {user_id}",
            code="USER_NOT_FOUND",
            details={"user_id": user_id},
        )


class OrganizationNotFoundError(NotFoundError):
    """Raised when a referenced internal organization no longer exists."""

    def __init__(self, organization_id: int):
        super().__init__(
            f"Organization not found: {organization_id}",
            code="ORGANIZATION_NOT_FOUND",
            details={"organization_id": organization_id},
        )


class ReconciliationError(PersistenceError):
    """Raised when a create-or-update cannot settle on a single row."""

    def __init__(self, external_id: str):
        super().__init__(
            f"Could not reconcile record for external id: {external_id}",
            code="RECONCILIATION_FAILED",
            details={"external_id": external_id},
        )
