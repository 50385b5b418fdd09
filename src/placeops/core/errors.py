"""
Structured error types for placeops.

Every failure the console can surface is a :class:`PlaceOpsError` carrying a
category, a retry hint, structured context and an optional chained cause.
The domain taxonomy mirrors the path data takes through the system: the
command channel (timeouts, process death), the remote shell (classified
command failures), the entity parser, and the local mirror.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode, no bare Exception
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry the command, place type and stage
    - **Error Chaining:** Original exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       PlaceOpsError                              │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ChannelError          RemoteCommandFailed   ParseFailure        │
        │  (CHANNEL)             (REMOTE)              (PARSE)             │
        │       │                                           │              │
        │  ChannelTimeout                              EntitySchemaError   │
        │  ChannelProcessExited                                            │
        │  ChannelClosedError                                              │
        │                                                                  │
        │  UnresolvedParent      MirrorError           ConfigError         │
        │  (RECONCILE)           (STORAGE)             (CONFIG)            │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    - Channel errors always propagate to the caller of ``submit``.
    - ``ParseFailure`` and ``UnresolvedParent`` are recovered locally; they
      are built so their ``to_dict()`` can be logged, not raised.
    - ``RemoteCommandFailed`` is raised by ``CommandResult.raise_for_status``.

Examples:
    >>> error = ChannelTimeout("Get-PlaceV3 -Type Floor", timeout=30.0)
    >>> error.retryable
    True
    >>> error.context.command
    'Get-PlaceV3 -Type Floor'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    placeops, channel, reconciliation

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories are grouped by where the failure originated:
    - **Channel (usually transient):** CHANNEL
    - **Remote shell:** REMOTE, AUTH
    - **Data:** PARSE, VALIDATION, RECONCILE
    - **Local:** STORAGE, CONFIG, INTERNAL
    """

    CHANNEL = "CHANNEL"           # Process I/O, timeouts, restarts
    REMOTE = "REMOTE"             # Remote command classified as failed
    AUTH = "AUTH"                 # Remote session not authenticated

    PARSE = "PARSE"               # Output not interpretable
    VALIDATION = "VALIDATION"     # Record missing required fields
    RECONCILE = "RECONCILE"       # Mirror/remote mismatch

    STORAGE = "STORAGE"           # Local mirror failures
    CONFIG = "CONFIG"             # Missing or invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-``None`` fields are serialized by :meth:`to_dict`; anything
    that has no dedicated field goes into ``metadata``.

    Attributes:
        command: Shell command text that was running
        place_type: Entity type being processed (``Building``, ``Floor``...)
        external_id: External identifier of the entity involved
        stage: Reconciliation stage (``fetch:Floor``, ``delete:Desk``...)
        request_id: Correlation id of the API/CLI request
        metadata: Additional key-value pairs
    """

    command: str | None = None
    place_type: str | None = None
    external_id: str | None = None
    stage: str | None = None
    request_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["command", "place_type", "external_id", "stage", "request_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PlaceOpsError(Exception):
    """
    Base exception for all placeops errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Examples:
        >>> error = PlaceOpsError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(stage="create:Floor").context.stage
        'create:Floor'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PlaceOpsError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MirrorError("insert failed").with_context(
                place_type="Floor", external_id="f-1"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CHANNEL ERRORS
# =============================================================================


class ChannelError(PlaceOpsError):
    """
    Failure of the command channel itself (not of the remote command).

    Channel errors always propagate to whoever called ``submit``. They never
    crash the channel: after a timeout it keeps serving the queue, after a
    process exit it schedules a restart.
    """

    default_category = ErrorCategory.CHANNEL
    default_retryable = True


class ChannelTimeout(ChannelError):
    """A submitted command did not produce its end marker within its deadline."""

    def __init__(self, command: str, timeout: float, **kwargs: Any):
        self.timeout = timeout
        super().__init__(
            f"Command timed out after {timeout:g}s",
            context=ErrorContext(command=command, metadata={"timeout": timeout}),
            **kwargs,
        )


class ChannelProcessExited(ChannelError):
    """The backing shell process died; in-flight and queued commands fail with this."""

    def __init__(
        self,
        message: str = "Shell process exited unexpectedly",
        *,
        returncode: int | None = None,
        command: str | None = None,
        **kwargs: Any,
    ):
        self.returncode = returncode
        super().__init__(
            message,
            context=ErrorContext(command=command, metadata={"returncode": returncode}),
            **kwargs,
        )


class ChannelClosedError(ChannelError):
    """The channel was closed explicitly; no further commands are accepted."""

    default_retryable = False


# =============================================================================
# REMOTE COMMAND ERRORS
# =============================================================================


class RemoteCommandFailed(PlaceOpsError):
    """
    The remote command ran but was classified as failed.

    Carries the raw error text so operators can see exactly what the remote
    shell reported.
    """

    default_category = ErrorCategory.REMOTE
    default_retryable = False

    def __init__(
        self,
        command: str,
        error_text: str,
        *,
        output: str = "",
        rule: str | None = None,
        **kwargs: Any,
    ):
        self.command = command
        self.error_text = error_text
        self.output = output
        self.rule = rule
        first_line = error_text.strip().splitlines()[0] if error_text.strip() else "no output"
        super().__init__(
            f"Remote command failed: {first_line}",
            context=ErrorContext(command=command, metadata={"rule": rule} if rule else {}),
            **kwargs,
        )

    @property
    def requires_connection(self) -> bool:
        """True when the error text says the remote session is missing or expired."""
        lowered = self.error_text.lower()
        return any(
            phrase in lowered
            for phrase in ("connect cmdlet first", "call the connect-", "access denied", "unauthorized")
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["error_text"] = self.error_text
        return result


# =============================================================================
# PARSE / VALIDATION ERRORS
# =============================================================================


class ParseFailure(PlaceOpsError):
    """Output could not be interpreted as any known shape."""

    default_category = ErrorCategory.PARSE
    default_retryable = False

    def __init__(self, message: str, *, shape: str | None = None, **kwargs: Any):
        self.shape = shape
        super().__init__(message, **kwargs)


class EntitySchemaError(PlaceOpsError):
    """A record is missing a required field after alias normalization."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        self.field = field
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


# =============================================================================
# RECONCILIATION / MIRROR ERRORS
# =============================================================================


class UnresolvedParent(PlaceOpsError):
    """An entity's parent could not be found in the local mirror; the entity is skipped."""

    default_category = ErrorCategory.RECONCILE
    default_retryable = True

    def __init__(self, place_type: str, external_id: str, parent_external_id: str | None):
        self.parent_external_id = parent_external_id
        super().__init__(
            f"{place_type} {external_id} has no mirrored parent {parent_external_id!r}",
            context=ErrorContext(
                place_type=place_type,
                external_id=external_id,
                metadata={"parent_external_id": parent_external_id},
            ),
        )


class MirrorError(PlaceOpsError):
    """The local mirror rejected a read or write."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class ConfigError(PlaceOpsError):
    """Configuration is missing or invalid."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, PlaceOpsError):
        return error.retryable
    return isinstance(error, (ConnectionError, BrokenPipeError))


def requires_connection(error: Exception) -> bool:
    """True when recovering from *error* needs the channel or remote session re-established."""
    if isinstance(error, (ChannelProcessExited, ChannelClosedError)):
        return True
    if isinstance(error, RemoteCommandFailed):
        return error.requires_connection
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PlaceOpsError",
    "ChannelError",
    "ChannelTimeout",
    "ChannelProcessExited",
    "ChannelClosedError",
    "RemoteCommandFailed",
    "ParseFailure",
    "EntitySchemaError",
    "UnresolvedParent",
    "MirrorError",
    "ConfigError",
    "is_retryable",
    "requires_connection",
]
