"""API models package."""

from .auth import CallbackRequest, ClaimsResponse, UserProfileResponse
from .errors import ErrorResponse, ValidationErrorResponse

__all__ = [
    "CallbackRequest",
    "ClaimsResponse",
    "UserProfileResponse",
    "ErrorResponse",
    "ValidationErrorResponse",
]
