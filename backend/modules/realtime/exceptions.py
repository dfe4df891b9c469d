"""
Realtime module exceptions.
"""

from shared.exceptions import TransportError


class FeedOpenError(TransportError):
    """Raised when an upstream feed cannot be opened."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            f"Failed to open change feed {key}: {reason}",
            code="FEED_OPEN_FAILED",
            details={"key": key, "reason": reason},
        )


class FeedClosedError(TransportError):
    """Raised when an open upstream feed fails or is closed by the server."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            f"Change feed {key} failed: {reason}",
            code="FEED_FAILED",
            details={"key": key, "reason": reason},
        )
