"""
Place operations.

Remote listing and creation go through the command channel; hierarchy and
mirror listings read the local mirror only. ``refresh_mirror`` runs the
reconciliation engine and is the only operation that rewrites the mirror
wholesale.
"""

from __future__ import annotations

from typing import Any

from placeops.core.errors import PlaceOpsError
from placeops.core.logging import get_logger
from placeops.mirror.repository import MirrorRepository, row_to_dict
from placeops.mirror.status import StatusRepository
from placeops.ops.context import OperationContext
from placeops.ops.requests import CreatePlaceRequest, ListMirrorRequest
from placeops.ops.result import OperationResult, PagedResult, start_timer
from placeops.places.directory import EXCHANGE_SERVICE, PlaceDirectory
from placeops.places.hierarchy import build_hierarchy
from placeops.places.models import (
    PlaceType,
    is_allowed_child,
)
from placeops.places.reconcile import MirrorReconciler

logger = get_logger(__name__)


def _place_type(value: str) -> PlaceType | None:
    try:
        return PlaceType.parse(value)
    except ValueError:
        return None


def _invalid_type(value: str, elapsed_ms: float) -> OperationResult[Any]:
    return OperationResult.fail(
        "VALIDATION_FAILED",
        f"Unknown place type '{value}'",
        details={"allowed": [t.value for t in PlaceType]},
        elapsed_ms=elapsed_ms,
    )


# ------------------------------------------------------------------ #
# Remote
# ------------------------------------------------------------------ #


async def list_entities(ctx: OperationContext, place_type: str) -> OperationResult[list[dict[str, Any]]]:
    """List places of one type straight from the remote directory."""
    timer = start_timer()
    resolved = _place_type(place_type)
    if resolved is None:
        return _invalid_type(place_type, timer.elapsed_ms)

    try:
        outcome = await ctx.directory().list_entities(resolved)
    except PlaceOpsError as exc:
        logger.warning("op_failed", op="list_entities", **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    return OperationResult.ok(
        [entity.to_dict() for entity in outcome.entities],
        warnings=outcome.warnings,
        elapsed_ms=timer.elapsed_ms,
        metadata={"shape": outcome.shape.value, "rejected": len(outcome.rejected)},
    )


async def create_entity(ctx: OperationContext, request: CreatePlaceRequest) -> OperationResult[dict[str, Any]]:
    """Create a place remotely and, when its parent is mirrored, mirror it too."""
    timer = start_timer()
    resolved = _place_type(request.place_type)
    if resolved is None:
        return _invalid_type(request.place_type, timer.elapsed_ms)
    if not request.display_name.strip():
        return OperationResult.fail("VALIDATION_FAILED", "display_name is required", elapsed_ms=timer.elapsed_ms)
    if resolved is not PlaceType.BUILDING and not request.parent_external_id:
        return OperationResult.fail(
            "VALIDATION_FAILED",
            f"A {resolved.value} needs parent_external_id",
            elapsed_ms=timer.elapsed_ms,
        )

    repo = MirrorRepository(ctx.session)
    if request.parent_external_id:
        for parent_type in PlaceType:
            row = repo.get_by_external_id(parent_type, request.parent_external_id)
            if row is not None and not is_allowed_child(parent_type, resolved):
                return OperationResult.fail(
                    "VALIDATION_FAILED",
                    f"A {resolved.value} cannot be placed under a {parent_type.value}",
                    elapsed_ms=timer.elapsed_ms,
                )

    attributes = {
        **request.attributes,
        "display_name": request.display_name,
        "description": request.description,
        "parent_external_id": request.parent_external_id if resolved is not PlaceType.BUILDING else None,
    }
    if ctx.dry_run:
        try:
            command = PlaceDirectory.create_command(resolved, attributes)
        except PlaceOpsError as exc:
            return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
        return OperationResult.ok({"command": command, "dry_run": True}, elapsed_ms=timer.elapsed_ms)

    status = StatusRepository(ctx.session)
    try:
        created = await ctx.directory().create_entity(resolved, attributes)
    except PlaceOpsError as exc:
        command = exc.context.command or f"New-Place -Type {resolved.value}"
        status.add_command(command, output=None, error=exc.message, succeeded=False)
        logger.warning("op_failed", op="create_entity", **exc.to_dict())
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    result = created.result
    status.add_command(
        result.command,
        output=result.output,
        error=result.error,
        succeeded=True,
        duration_ms=result.duration_ms,
    )

    mirrored = None
    warnings: list[str] = []
    entity = created.entity
    if entity is None:
        warnings.append("Remote returned no record; the mirror picks it up on the next refresh")
    else:
        parent = repo.resolve_parent(entity)
        if entity.place_type is PlaceType.BUILDING or parent is not None:
            try:
                row = repo.get_by_external_id(entity.place_type, entity.external_id)
                row = repo.update(row, entity, parent) if row else repo.create(entity, parent)
                repo.commit()
                mirrored = row_to_dict(entity.place_type, row)
            except PlaceOpsError as exc:
                warnings.append(f"Created remotely but not mirrored: {exc.message}")
        else:
            warnings.append("Parent is not mirrored yet; the mirror picks it up on the next refresh")

    return OperationResult.ok(
        {
            "entity": entity.to_dict() if entity else None,
            "mirrored": mirrored,
            "result": result.to_dict(),
        },
        warnings=warnings,
        elapsed_ms=timer.elapsed_ms,
    )


async def refresh_mirror(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Run one reconciliation pass against the remote directory."""
    timer = start_timer()

    if ctx.settings.require_connection_for_refresh:
        if not StatusRepository(ctx.session).is_connected(EXCHANGE_SERVICE):
            return OperationResult.fail(
                "NOT_CONNECTED",
                f"{EXCHANGE_SERVICE} connection required",
                details={"requires_connection": True, "service": EXCHANGE_SERVICE},
                elapsed_ms=timer.elapsed_ms,
            )

    lock = ctx.refresh_lock
    if lock is not None and lock.locked():
        return OperationResult.fail(
            "CONFLICT",
            "A refresh is already running",
            retryable=True,
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        reconciler = MirrorReconciler(ctx.directory(), MirrorRepository(ctx.session))
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    if lock is None:
        report = await reconciler.refresh()
    else:
        async with lock:
            report = await reconciler.refresh()

    data = report.to_dict()
    if not report.success:
        message = (report.error or {}).get("message", "Refresh aborted")
        return OperationResult.fail(
            "REFRESH_ABORTED",
            f"Refresh aborted at {report.aborted_stage}: {message}",
            details={"report": data, "requires_connection": report.requires_connection},
            retryable=True,
            elapsed_ms=timer.elapsed_ms,
        )
    warnings = [
        f"{t.value} skipped: {report.stats[t].error}" for t in report.skipped_types
    ]
    return OperationResult.ok(data, warnings=warnings, elapsed_ms=timer.elapsed_ms)


# ------------------------------------------------------------------ #
# Mirror
# ------------------------------------------------------------------ #


def get_hierarchy(ctx: OperationContext) -> OperationResult[dict[str, Any]]:
    """Nested tree built from the mirror."""
    timer = start_timer()
    try:
        entities = MirrorRepository(ctx.session).entities()
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    tree = build_hierarchy(entities)
    warnings = []
    if tree.repaired:
        warnings.append(f"{len(tree.repaired)} place(s) shown under a substitute parent")
    return OperationResult.ok(tree.to_dict(), warnings=warnings, elapsed_ms=timer.elapsed_ms)


def list_mirror(ctx: OperationContext, request: ListMirrorRequest) -> PagedResult[dict[str, Any]]:
    timer = start_timer()
    resolved = _place_type(request.place_type)
    if resolved is None:
        return PagedResult(
            success=False,
            error=_invalid_type(request.place_type, 0).error,
            elapsed_ms=timer.elapsed_ms,
        )

    parent = None
    if request.parent_type is not None and request.parent_id is not None:
        parent_type = _place_type(request.parent_type)
        if parent_type is None:
            return PagedResult(
                success=False,
                error=_invalid_type(request.parent_type, 0).error,
                elapsed_ms=timer.elapsed_ms,
            )
        parent = (parent_type, request.parent_id)

    rows, total = MirrorRepository(ctx.session).list(
        resolved, parent=parent, limit=request.limit, offset=request.offset
    )
    return PagedResult.from_items(
        [row_to_dict(resolved, row) for row in rows],
        total=total,
        limit=request.limit,
        offset=request.offset,
        elapsed_ms=timer.elapsed_ms,
    )


def get_mirror_entity(ctx: OperationContext, place_type: str, row_id: int) -> OperationResult[dict[str, Any]]:
    timer = start_timer()
    resolved = _place_type(place_type)
    if resolved is None:
        return _invalid_type(place_type, timer.elapsed_ms)
    row = MirrorRepository(ctx.session).get(resolved, row_id)
    if row is None:
        return OperationResult.fail(
            "NOT_FOUND",
            f"{resolved.value} {row_id} not found",
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(row_to_dict(resolved, row), elapsed_ms=timer.elapsed_ms)


def delete_mirror_entity(ctx: OperationContext, place_type: str, row_id: int) -> OperationResult[dict[str, Any]]:
    """Remove one mirrored row. Refused while it still has mirrored children."""
    timer = start_timer()
    resolved = _place_type(place_type)
    if resolved is None:
        return _invalid_type(place_type, timer.elapsed_ms)

    repo = MirrorRepository(ctx.session)
    row = repo.get(resolved, row_id)
    if row is None:
        return OperationResult.fail("NOT_FOUND", f"{resolved.value} {row_id} not found", elapsed_ms=timer.elapsed_ms)
    children = repo.child_count(resolved, row_id)
    if children:
        return OperationResult.fail(
            "CONFLICT",
            f"{resolved.value} {row_id} still has {children} mirrored child place(s)",
            details={"children": children},
            elapsed_ms=timer.elapsed_ms,
        )
    if ctx.dry_run:
        return OperationResult.ok({"deleted": False, "dry_run": True}, elapsed_ms=timer.elapsed_ms)

    external_id = row.external_id
    try:
        repo.delete(resolved, row_id)
        repo.commit()
    except PlaceOpsError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    logger.info("mirror_entity_deleted", place_type=resolved.value, row_id=row_id, external_id=external_id)
    return OperationResult.ok(
        {"deleted": True, "id": row_id, "external_id": external_id},
        elapsed_ms=timer.elapsed_ms,
    )


def mirror_summary(ctx: OperationContext) -> OperationResult[dict[str, int]]:
    timer = start_timer()
    return OperationResult.ok(MirrorRepository(ctx.session).snapshot(), elapsed_ms=timer.elapsed_ms)
