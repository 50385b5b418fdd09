"""
System router: health probes and console status.

Endpoints:
    GET /health             Liveness plus mirror reachability (root level)
    GET /health/live        Always 200
    GET {prefix}/system/status   Channel state, connections and mirror counts
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from placeops.api.deps import DbSession, OpContext, Settings
from placeops.api.schemas.common import SuccessResponse
from placeops.ops import connections, places

_START_TIME = time.monotonic()

health_router = APIRouter()
router = APIRouter(prefix="/system")


@health_router.get("/health")
def health(session: DbSession, settings: Settings) -> JSONResponse:
    """Primary health: the API is up and the mirror answers a query."""
    checks: dict[str, str] = {}
    try:
        session.execute(text("SELECT 1"))
        checks["mirror"] = "ok"
    except Exception as exc:  # noqa: BLE001
        checks["mirror"] = f"error: {exc}"
    status = "healthy" if all(v == "ok" for v in checks.values()) else "unhealthy"
    body = {
        "status": status,
        "service": "placeops",
        "version": settings.api_version,
        "uptime_s": round(time.monotonic() - _START_TIME, 1),
        "timestamp": datetime.now(UTC).isoformat(),
        "checks": checks,
    }
    return JSONResponse(content=body, status_code=503 if status == "unhealthy" else 200)


@health_router.get("/health/live")
def live() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/status", response_model=SuccessResponse[dict])
def status(ctx: OpContext):
    """Everything the console header shows, in one call."""
    channel = connections.channel_status(ctx)
    conns = connections.list_connections(ctx)
    mirror = places.mirror_summary(ctx)
    return SuccessResponse(
        data={
            "channel": channel.data,
            "connections": conns.data,
            "mirror": mirror.data,
        },
    )
