"""
Logging setup for the backend.

Modules log through ``logging.getLogger(__name__)``; this only configures
the root handler once at application startup.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # The realtime websocket client is chatty at INFO
    logging.getLogger("realtime").setLevel(logging.WARNING)
