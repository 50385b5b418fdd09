"""placeops.core -- errors, logging and settings shared by every layer.

Architecture::

    errors.py      Structured error hierarchy (PlaceOpsError, ChannelError, ...)
    logging.py     structlog configuration + get_logger
    settings.py    PlaceOpsSettings (pydantic-settings, PLACEOPS_ prefix)
"""

from placeops.core.errors import (
    ChannelError,
    ChannelProcessExited,
    ChannelTimeout,
    ErrorCategory,
    ErrorContext,
    ParseFailure,
    PlaceOpsError,
    RemoteCommandFailed,
)
from placeops.core.logging import configure_logging, get_logger

__all__ = [
    "ChannelError",
    "ChannelProcessExited",
    "ChannelTimeout",
    "ErrorCategory",
    "ErrorContext",
    "ParseFailure",
    "PlaceOpsError",
    "RemoteCommandFailed",
    "configure_logging",
    "get_logger",
]
