"""
Places router: the remote directory.

Endpoints:
    GET  /places/hierarchy    Nested tree built from the local mirror
    POST /places/refresh      Reconcile the mirror against the remote directory
    GET  /places/{type}       List places of one type straight from the remote
    POST /places              Create a place remotely (and mirror it)

Every endpoint except ``hierarchy`` runs shell commands on the shared
channel, so they queue behind whatever is already running.
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Request

from placeops.api.deps import OpContext
from placeops.api.schemas.common import SuccessResponse
from placeops.api.schemas.places import CreatePlaceBody
from placeops.api.utils import _handle_error, _success
from placeops.ops import places as ops
from placeops.ops.requests import CreatePlaceRequest

router = APIRouter(prefix="/places")


@router.get("/hierarchy", response_model=SuccessResponse[dict])
def get_hierarchy(ctx: OpContext, request: Request):
    """Building → Floor → Section → Desk/Room tree from the mirror.

    Places whose parent is missing are attached to a substitute parent and
    flagged ``repaired``; the ``warnings`` list says how many.
    """
    result = ops.get_hierarchy(ctx)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.post("/refresh", response_model=SuccessResponse[dict])
async def refresh(ctx: OpContext, request: Request):
    """Run one reconciliation pass.

    Returns the refresh report. A pass that aborts (Building listing
    failed, or the mirror rejected a write) answers ``502 REFRESH_ABORTED``
    with the report in ``details.report``; types skipped because their
    listing failed appear in ``warnings``.
    """
    result = await ops.refresh_mirror(ctx)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.get("/{place_type}", response_model=SuccessResponse[list[dict]])
async def list_remote(
    ctx: OpContext,
    request: Request,
    place_type: str = Path(..., description="Building, Floor, Section, Desk or Room"),
):
    """List places of one type from the remote directory (not the mirror)."""
    result = await ops.list_entities(ctx, place_type)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.post("", response_model=SuccessResponse[dict], status_code=201)
async def create_place(ctx: OpContext, body: CreatePlaceBody, request: Request):
    """Create a place remotely.

    Example:
        POST /api/v1/places
        {"type": "Floor", "display_name": "Level 1", "parent_external_id": "b-1"}
    """
    result = await ops.create_entity(
        ctx,
        CreatePlaceRequest(
            place_type=body.type,
            display_name=body.display_name,
            description=body.description,
            parent_external_id=body.parent_external_id,
            attributes=body.attributes,
        ),
    )
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)
