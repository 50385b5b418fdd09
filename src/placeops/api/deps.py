"""
FastAPI dependency injection: shared singletons and per-request factories.

Usage in routers::

    from placeops.api.deps import OpContext

    @router.get("/things")
    def list_things(ctx: OpContext):
        ...

The engine, session factory, command channel and refresh lock live on
``app.state`` (set by :func:`placeops.api.app.create_app`); every request
gets its own session and :class:`OperationContext`.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from placeops.channel.channel import CommandChannel
from placeops.core.settings import PlaceOpsSettings
from placeops.core.settings import get_settings as _load_settings
from placeops.ops.context import OperationContext

# ── Settings (singleton) ─────────────────────────────────────────────────


def get_settings() -> PlaceOpsSettings:
    """Settings in force; ``create_app`` overrides this with its own."""
    return _load_settings()


# ── Mirror session (per-request) ─────────────────────────────────────────


def get_session(request: Request) -> Generator[Session, None, None]:
    """Yield a mirror session for the request lifespan."""
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_channel(request: Request) -> CommandChannel | None:
    return getattr(request.app.state, "channel", None)


# ── Operation context (per-request) ──────────────────────────────────────


def get_operation_context(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    channel: Annotated[CommandChannel | None, Depends(get_channel)],
    settings: Annotated[PlaceOpsSettings, Depends(get_settings)],
) -> OperationContext:
    """Build an :class:`OperationContext` from the current request."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    dry_run = request.query_params.get("dry_run", "").lower() in ("1", "true", "yes")
    return OperationContext(
        session=session,
        channel=channel,
        settings=settings,
        refresh_lock=getattr(request.app.state, "refresh_lock", None),
        request_id=request_id,
        caller="api",
        dry_run=dry_run,
    )


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[PlaceOpsSettings, Depends(get_settings)]
DbSession = Annotated[Session, Depends(get_session)]
OpContext = Annotated[OperationContext, Depends(get_operation_context)]
