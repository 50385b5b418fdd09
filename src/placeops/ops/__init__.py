"""
Operations layer: transport-agnostic business logic for placeops.

- All functions accept ``OperationContext`` as first argument
- All functions return ``OperationResult[T]`` (never raise)
- The API routers and the CLI call the same functions

Usage::

    from placeops.ops import OperationContext
    from placeops.ops.places import get_hierarchy

    ctx = OperationContext(session=session)
    result = get_hierarchy(ctx)
    assert result.success
"""

from placeops.ops.context import OperationContext
from placeops.ops.result import OperationError, OperationResult, PagedResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
]
