"""
Common API schemas: shared envelopes and RFC 7807 errors.

Every endpoint returns either :class:`SuccessResponse` / :class:`PagedResponse`
(2xx) or :class:`ProblemDetail` (4xx/5xx).

Response Envelope Conventions:
    - ``elapsed_ms`` tracks server-side processing time
    - ``warnings`` contains non-fatal issues (skipped types, repaired nodes)
    - ``requires_connection`` on a problem tells the console to reconnect
      before retrying
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``NOT_FOUND`` (404): Mirrored place does not exist
        - ``VALIDATION_FAILED`` (400): Invalid input data
        - ``CONFLICT`` (409): Place still has children, or a refresh is running
        - ``NOT_CONNECTED`` (409): Remote session missing or expired
        - ``REMOTE_COMMAND_FAILED`` (502): The shell reported an error
        - ``PARSE_FAILED`` (502): Shell output could not be read
        - ``REFRESH_ABORTED`` (502): Reconciliation stopped part way
        - ``CHANNEL_TIMEOUT`` (504): No end-of-command marker in time
        - ``CHANNEL_UNAVAILABLE`` (503): Shell process down or restarting
        - ``INTERNAL`` (500): Unexpected server error
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    code: str = Field(default="INTERNAL", description="Machine-readable error code")
    requires_connection: bool = Field(
        default=False,
        description="True when the remote session must be re-established before retrying",
    )
    details: dict[str, Any] = Field(default_factory=dict, description="Structured error context")


# ── Success Envelopes ────────────────────────────────────────────────────


class PageMeta(BaseModel):
    total: int = Field(description="Total items across all pages")
    limit: int = Field(description="Items per page (requested)")
    offset: int = Field(description="Current offset (0-based)")
    has_more: bool = Field(description="True if more pages exist after current")


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success envelope for single-item responses."""

    data: T = Field(description="Response payload (type varies by endpoint)")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")


class PagedResponse(BaseModel, Generic[T]):
    """Paged success envelope for list responses."""

    data: list[T] = Field(description="List of items for this page")
    page: PageMeta = Field(description="Pagination metadata")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in milliseconds")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")
