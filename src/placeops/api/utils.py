"""
Shared API router utilities.

- ``_handle_error()``: convert a failed OperationResult to a ``problem_response``
- ``_success()`` / ``_paged()``: wrap successful results in the envelopes
"""

from __future__ import annotations

from typing import Any

from placeops.api.middleware.errors import problem_response, status_for_error_code
from placeops.api.schemas.common import PagedResponse, PageMeta, SuccessResponse


def _handle_error(result: Any, instance: str = ""):
    """Convert a failed ``OperationResult`` into a Problem Details response."""
    error = result.error
    code = error.code if error else "INTERNAL"
    return problem_response(
        status=status_for_error_code(code),
        title=error.message if error else "Operation failed",
        detail="; ".join(result.warnings),
        instance=instance,
        code=code,
        requires_connection=error.requires_connection if error else False,
        details=error.details if error else None,
    )


def _success(result: Any) -> SuccessResponse[Any]:
    return SuccessResponse(data=result.data, elapsed_ms=result.elapsed_ms, warnings=result.warnings)


def _paged(result: Any) -> PagedResponse[Any]:
    return PagedResponse(
        data=result.data or [],
        page=PageMeta(
            total=result.total,
            limit=result.limit,
            offset=result.offset,
            has_more=result.has_more,
        ),
        elapsed_ms=result.elapsed_ms,
        warnings=result.warnings,
    )
