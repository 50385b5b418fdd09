"""
Commands router: ad-hoc shell commands and the command history.

Endpoints:
    POST   /commands/execute   Run one statement on the shared channel
    GET    /commands/history   Most recent commands first
    DELETE /commands/history   Clear the history
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from placeops.api.deps import OpContext
from placeops.api.schemas.common import PagedResponse, SuccessResponse
from placeops.api.schemas.places import ExecuteCommandBody
from placeops.api.utils import _handle_error, _paged, _success
from placeops.ops import commands as ops
from placeops.ops.requests import ExecuteCommandRequest, HistoryRequest

router = APIRouter(prefix="/commands")


@router.post("/execute", response_model=SuccessResponse[dict])
async def execute(ctx: OpContext, body: ExecuteCommandBody, request: Request):
    """Run a command and return its output, error text and verdict.

    A command the shell reports as failed still answers 200 with
    ``data.succeeded = false``; only a timeout or a dead shell is an error.
    """
    result = await ops.execute_command(ctx, ExecuteCommandRequest(command=body.command, timeout=body.timeout))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.get("/history", response_model=PagedResponse[dict])
def history(
    ctx: OpContext,
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    result = ops.get_history(ctx, HistoryRequest(limit=limit, offset=offset))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _paged(result)


@router.delete("/history", response_model=SuccessResponse[dict])
def clear_history(ctx: OpContext):
    return _success(ops.clear_history(ctx))
