"""API schemas package: pydantic request bodies and response envelopes."""

from placeops.api.schemas.common import (
    PagedResponse,
    PageMeta,
    ProblemDetail,
    SuccessResponse,
)

__all__ = [
    "PageMeta",
    "PagedResponse",
    "ProblemDetail",
    "SuccessResponse",
]
