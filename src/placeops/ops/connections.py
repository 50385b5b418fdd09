"""
Connection and module operations.

The remote session lives inside the shell process, so "connected" is a
statement about the channel's process. It is recorded in the
``connection_status`` table so the console and ``refresh_mirror`` can
check it without running a command. A channel restart loses the session;
callers see ``requires_connection`` on the next failure.
"""

from __future__ import annotations

from typing import Any

from placeops.channel.channel import CommandResult
from placeops.core.errors import PlaceOpsError
from placeops.core.logging import get_logger
from placeops.mirror.status import StatusRepository
from placeops.ops.context import OperationContext
from placeops.ops.requests import ConnectRequest, ModuleRequest
from placeops.ops.result import OperationResult, start_timer
from placeops.places.directory import EXCHANGE_SERVICE, PLACES_SERVICE

logger = get_logger(__name__)


def _record(status: StatusRepository, result: CommandResult) -> None:
    status.add_command(
        result.command,
        output=result.output,
        error=result.error,
        succeeded=result.succeeded,
        duration_ms=result.duration_ms,
    )


async def _connect(
    ctx: OperationContext,
    service: str,
    run: Any,
    *,
    tenant: str | None = None,
) -> OperationResult[dict[str, Any]]:
    timer = start_timer()
    status = StatusRepository(ctx.session)
    status.upsert_connection(service, "connecting", tenant=tenant)
    try:
        result: CommandResult = await run()
    except PlaceOpsError as exc:
        status.upsert_connection(service, "error", error_message=exc.message)
        logger.warning("connect_failed", service=service, **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms, details={"service": service})

    _record(status, result)
    if not result.succeeded:
        message = result.error or result.output or "Connection failed"
        connection = status.upsert_connection(service, "error", error_message=message)
        logger.warning("connect_failed", service=service, rule=result.rule)
        return OperationResult.fail(
            "REMOTE_COMMAND_FAILED",
            f"{service} connection failed",
            details={
                "service": service,
                "connection": connection,
                "result": result.to_dict(),
                "requires_connection": True,
            },
            elapsed_ms=timer.elapsed_ms,
        )

    connection = status.upsert_connection(service, "connected")
    logger.info("connected", service=service, tenant=tenant)
    return OperationResult.ok(
        {"connection": connection, "result": result.to_dict()},
        elapsed_ms=timer.elapsed_ms,
    )


async def connect_exchange(ctx: OperationContext, request: ConnectRequest) -> OperationResult[dict[str, Any]]:
    """Run ``Connect-ExchangeOnline`` for *request.tenant* and record the outcome."""
    try:
        directory = ctx.directory()
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc)
    if ctx.dry_run:
        return OperationResult.ok({"command": directory.connect_command(request.tenant), "dry_run": True})
    return await _connect(
        ctx,
        EXCHANGE_SERVICE,
        lambda: directory.connect(request.tenant),
        tenant=request.tenant,
    )


async def connect_places(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    try:
        directory = ctx.directory()
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc)
    return await _connect(ctx, PLACES_SERVICE, directory.connect_places)


def list_connections(ctx: OperationContext) -> OperationResult[list[dict[str, Any]]]:
    timer = start_timer()
    return OperationResult.ok(StatusRepository(ctx.session).list_connections(), elapsed_ms=timer.elapsed_ms)


def list_modules(ctx: OperationContext) -> OperationResult[list[dict[str, Any]]]:
    timer = start_timer()
    return OperationResult.ok(StatusRepository(ctx.session).list_modules(), elapsed_ms=timer.elapsed_ms)


async def check_modules(ctx: OperationContext, request: ModuleRequest) -> OperationResult[list[dict[str, Any]]]:
    """Ask the shell which of the modules are installed and store the answers."""
    timer = start_timer()
    names = request.names or list(ctx.settings.required_modules)
    status = StatusRepository(ctx.session)
    try:
        directory = ctx.directory()
        modules = []
        for name in names:
            info = await directory.check_module(name)
            status.upsert_module(info.name, info.status, version=info.version)
            modules.append(info.to_dict())
    except PlaceOpsError as exc:
        logger.warning("op_failed", op="check_modules", **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    missing = [m["name"] for m in modules if m["status"] != "installed"]
    warnings = [f"Module not installed: {name}" for name in missing]
    return OperationResult.ok(modules, warnings=warnings, elapsed_ms=timer.elapsed_ms)


async def install_module(ctx: OperationContext, name: str) -> OperationResult[dict[str, Any]]:
    """Install one module for the current user, then re-check it."""
    timer = start_timer()
    if not name or not name.strip():
        return OperationResult.fail("VALIDATION_FAILED", "module name is required", elapsed_ms=timer.elapsed_ms)
    name = name.strip()
    status = StatusRepository(ctx.session)
    try:
        directory = ctx.directory()
        status.upsert_module(name, "installing")
        result = await directory.install_module(name)
        _record(status, result)
        if not result.succeeded:
            module = status.upsert_module(name, "error")
            return OperationResult.fail(
                "REMOTE_COMMAND_FAILED",
                f"Installing {name} failed",
                details={"module": module, "result": result.to_dict()},
                elapsed_ms=timer.elapsed_ms,
            )
        info = await directory.check_module(name)
    except PlaceOpsError as exc:
        status.upsert_module(name, "error")
        logger.warning("op_failed", op="install_module", module=name, **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    module = status.upsert_module(info.name, info.status, version=info.version)
    logger.info("module_installed", module=name, status=info.status, version=info.version)
    return OperationResult.ok({"module": module, "result": result.to_dict()}, elapsed_ms=timer.elapsed_ms)


def channel_status(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Process-level state of the shared channel."""
    channel = ctx.channel
    if channel is None:
        return OperationResult.ok({"state": "absent", "pending": 0, "restarts": 0})
    return OperationResult.ok(
        {
            "state": channel.state.value,
            "pending": channel.pending_count,
            "restarts": channel.restart_count,
        }
    )
