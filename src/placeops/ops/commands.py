"""
Command operations: ad-hoc shell commands and their history.

A command that runs but is classified as failed is still a successful
*operation*: the envelope carries the command result with
``succeeded=False``. Only channel failures (timeout, dead process) fail
the operation itself. Either way the attempt lands in the history.
"""

from __future__ import annotations

from typing import Any

from placeops.core.errors import ChannelError, PlaceOpsError
from placeops.core.logging import get_logger
from placeops.mirror.status import StatusRepository
from placeops.ops.context import OperationContext
from placeops.ops.requests import ExecuteCommandRequest, HistoryRequest
from placeops.ops.result import OperationResult, PagedResult, start_timer

logger = get_logger(__name__)


async def execute_command(
    ctx: OperationContext,
    request: ExecuteCommandRequest,
) -> OperationResult[dict[str, Any]]:
    """Run *request.command* on the shared channel and record it."""
    timer = start_timer()
    command = request.command.strip()
    if not command:
        return OperationResult.fail("VALIDATION_FAILED", "command is required", elapsed_ms=timer.elapsed_ms)
    if request.timeout is not None and request.timeout <= 0:
        return OperationResult.fail("VALIDATION_FAILED", "timeout must be positive", elapsed_ms=timer.elapsed_ms)

    status = StatusRepository(ctx.session)
    try:
        result = await ctx.require_channel().submit(command, timeout=request.timeout)
    except ChannelError as exc:
        status.add_command(command, output=None, error=exc.message, succeeded=False)
        logger.warning("op_failed", op="execute_command", **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    status.add_command(
        command,
        output=result.output,
        error=result.error,
        succeeded=result.succeeded,
        duration_ms=result.duration_ms,
    )
    warnings = [] if result.succeeded else [f"Command classified as failed ({result.rule})"]
    return OperationResult.ok(result.to_dict(), warnings=warnings, elapsed_ms=timer.elapsed_ms)


def get_history(ctx: OperationContext, request: HistoryRequest) -> PagedResult[dict[str, Any]]:
    """Most recent commands first."""
    timer = start_timer()
    if request.limit < 1:
        return PagedResult(
            success=False,
            error=OperationResult.fail("VALIDATION_FAILED", "limit must be at least 1").error,
            elapsed_ms=timer.elapsed_ms,
        )
    rows, total = StatusRepository(ctx.session).list_commands(limit=request.limit, offset=request.offset)
    return PagedResult.from_items(
        rows,
        total=total,
        limit=request.limit,
        offset=request.offset,
        elapsed_ms=timer.elapsed_ms,
    )


def clear_history(ctx: OperationContext) -> OperationResult[dict[str, int]]:
    timer = start_timer()
    if ctx.dry_run:
        _, total = StatusRepository(ctx.session).list_commands(limit=1)
        return OperationResult.ok({"cleared": 0, "would_clear": total}, elapsed_ms=timer.elapsed_ms)
    cleared = StatusRepository(ctx.session).clear_commands()
    logger.info("command_history_cleared", cleared=cleared)
    return OperationResult.ok({"cleared": cleared}, elapsed_ms=timer.elapsed_ms)
