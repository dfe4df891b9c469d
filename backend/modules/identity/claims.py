"""
Session claim stores.

Two implementations of ISessionClaimStore:
- InMemoryClaimStore: a single process-local slot (development and tests)
- SignedCookieClaimStore: claims carried in an HS256-signed cookie value
"""

import logging
from typing import Optional

import jwt
from pydantic import ValidationError as PydanticValidationError

from .models import SessionClaims

logger = logging.getLogger(__name__)


class InMemoryClaimStore:
    """Holds the current claims in memory for the lifetime of the object."""

    def __init__(self, claims: Optional[SessionClaims] = None):
        self._claims = claims

    def write(self, claims: SessionClaims) -> None:
        self._claims = claims

    def read(self) -> Optional[SessionClaims]:
        return self._claims

    def clear(self) -> None:
        self._claims = None


class SignedCookieClaimStore:
    """
    Claims serialized into a signed token suitable for a cookie.

    The store is built per request from the incoming cookie value. Writes and
    clears only change the pending value; the HTTP layer reads ``dirty`` and
    ``cookie_value`` to set or delete the cookie on the response.

    A missing, tampered or malformed value reads as absent.
    """

    ALGORITHM = "HS256"

    def __init__(self, secret: str, cookie_value: Optional[str] = None):
        if not secret:
            raise RuntimeError(
                "Claims secret missing. Set the CLAIMS_SECRET environment variable."
            )
        self._secret = secret
        self._value = cookie_value or None
        self._dirty = False

    @property
    def cookie_value(self) -> Optional[str]:
        """The signed value to send back, or None if the cookie should be deleted."""
        return self._value

    @property
    def dirty(self) -> bool:
        """Whether write() or clear() changed the value during this request."""
        return self._dirty

    def write(self, claims: SessionClaims) -> None:
        payload = claims.model_dump(mode="json")
        self._value = jwt.encode(payload, self._secret, algorithm=self.ALGORITHM)
        self._dirty = True

    def read(self) -> Optional[SessionClaims]:
        if not self._value:
            return None

        try:
            payload = jwt.decode(self._value, self._secret, algorithms=[self.ALGORITHM])
        except jwt.InvalidTokenError as e:
            logger.info("Discarding invalid claims cookie: %s", e)
            return None

        try:
            return SessionClaims.model_validate(payload)
        except PydanticValidationError:
            logger.info("Discarding claims cookie with unexpected payload")
            return None

    def clear(self) -> None:
        if self._value is not None:
            self._dirty = True
        self._value = None
