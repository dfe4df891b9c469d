"""
Error response models.

Standardized error responses for the API, matching BridgeError.to_dict().
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationErrorResponse(BaseModel):
    """Validation error response format."""

    error: str = "Validation Error"
    detail: list[dict]
