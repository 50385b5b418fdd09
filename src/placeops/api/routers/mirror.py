"""
Mirror router: read and prune the local mirror.

Endpoints:
    GET    /mirror                  Row counts per place type
    GET    /mirror/{type}           Paged listing, optionally scoped to a parent
    GET    /mirror/{type}/{id}      One mirrored row
    DELETE /mirror/{type}/{id}      Remove a row (409 while it has children)
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Query, Request

from placeops.api.deps import OpContext
from placeops.api.schemas.common import PagedResponse, SuccessResponse
from placeops.api.utils import _handle_error, _paged, _success
from placeops.ops import places as ops
from placeops.ops.requests import ListMirrorRequest

router = APIRouter(prefix="/mirror")


@router.get("", response_model=SuccessResponse[dict])
def summary(ctx: OpContext):
    return _success(ops.mirror_summary(ctx))


@router.get("/{place_type}", response_model=PagedResponse[dict])
def list_mirror(
    ctx: OpContext,
    request: Request,
    place_type: str = Path(..., description="Building, Floor, Section, Desk or Room"),
    parent_type: str | None = Query(None, description="Type of the parent row"),
    parent_id: int | None = Query(None, description="Surrogate id of the parent row"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """List mirrored places of one type.

    Example:
        GET /api/v1/mirror/Floor?parent_type=Building&parent_id=3
    """
    result = ops.list_mirror(
        ctx,
        ListMirrorRequest(
            place_type=place_type,
            parent_type=parent_type,
            parent_id=parent_id,
            limit=limit,
            offset=offset,
        ),
    )
    if not result.success:
        return _handle_error(result, str(request.url))
    return _paged(result)


@router.get("/{place_type}/{row_id}", response_model=SuccessResponse[dict])
def get_row(ctx: OpContext, request: Request, place_type: str, row_id: int):
    result = ops.get_mirror_entity(ctx, place_type, row_id)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)


@router.delete("/{place_type}/{row_id}", response_model=SuccessResponse[dict])
def delete_row(ctx: OpContext, request: Request, place_type: str, row_id: int):
    """Remove one mirrored row. The remote directory is not touched."""
    result = ops.delete_mirror_entity(ctx, place_type, row_id)
    if not result.success:
        return _handle_error(result, str(request.url))
    return _success(result)
