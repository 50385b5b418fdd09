"""
Connections router: remote sessions and shell modules.

Endpoints:
    GET  /connections            Recorded connection status per service
    POST /connections/exchange   Connect-ExchangeOnline
    POST /connections/places     Connect the places module
    GET  /modules                Recorded module status
    POST /modules/check          Re-check installed modules
    POST /modules/install        Install one module for the current user
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from placeops.api.deps import OpContext
from placeops.api.schemas.common import SuccessResponse
from placeops.api.schemas.places import ConnectBody, ModuleCheckBody, ModuleInstallBody
from placeops.api.utils import _handle_error, _success
from placeops.ops import connections as ops
from placeops.ops.requests import ConnectRequest, ModuleRequest

router = APIRouter()


@router.get("/connections", response_model=SuccessResponse[list[dict]])
def list_connections(ctx: OpContext):
    return _success(ops.list_connections(ctx))


@router.post("/connections/exchange", response_model=SuccessResponse[dict])
async def connect_exchange(ctx: OpContext, request: Request, body: ConnectBody | None = None):
    """Open the Exchange Online session inside the shared shell.

    The session belongs to the shell process: if the shell restarts the
    session is gone and later commands fail with ``requires_connection``.
    """
    tenant = body.tenant if body else None
    result = await ops.connect_exchange(ctx, ConnectRequest(tenant=tenant))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.post("/connections/places", response_model=SuccessResponse[dict])
async def connect_places(ctx: OpContext, request: Request):
    result = await ops.connect_places(ctx)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.get("/modules", response_model=SuccessResponse[list[dict]])
def list_modules(ctx: OpContext):
    return _success(ops.list_modules(ctx))


@router.post("/modules/check", response_model=SuccessResponse[list[dict]])
async def check_modules(ctx: OpContext, request: Request, body: ModuleCheckBody | None = None):
    result = await ops.check_modules(ctx, ModuleRequest(names=body.names if body else None))
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.post("/modules/install", response_model=SuccessResponse[dict])
async def install_module(ctx: OpContext, body: ModuleInstallBody, request: Request):
    result = await ops.install_module(ctx, body.name)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)
