"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers and lifespan
events into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root. The mirror engine,
    the one shared command channel and the refresh lock are created here
    and parked on ``app.state`` so the rest of the codebase never touches
    ``FastAPI`` directly.

Tags:
    placeops, api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from placeops.api.deps import get_settings
from placeops.api.middleware.errors import unhandled_exception_handler
from placeops.api.middleware.request_id import RequestIDMiddleware
from placeops.api.middleware.timing import TimingMiddleware
from placeops.channel.channel import CommandChannel
from placeops.core.logging import configure_logging, get_logger
from placeops.core.settings import PlaceOpsSettings
from placeops.mirror.session import create_engine_for, init_schema, session_factory


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup / shutdown hooks."""
    settings: PlaceOpsSettings = app.state.settings
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    log = get_logger("placeops.api")
    log.info("api_starting", version=app.version, database=settings.database_url)

    init_schema(app.state.engine)
    app.state.refresh_lock = asyncio.Lock()

    yield

    log.info("api_shutting_down")
    await app.state.channel.close()
    app.state.engine.dispose()


def create_app(
    settings: PlaceOpsSettings | None = None,
    channel: CommandChannel | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : PlaceOpsSettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton is used.
    channel : CommandChannel | None
        Pre-built channel (tests pass one over a fake shell). When ``None``
        a channel is built from *settings*; the shell is spawned on the
        first command.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.engine = create_engine_for(settings.database_url)
    app.state.session_factory = session_factory(app.state.engine)
    app.state.channel = channel or CommandChannel.from_settings(settings)

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (outermost → innermost) ────────────────────────────
    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from placeops.api.routers import commands, connections, mirror, places, system

    prefix = settings.api_prefix

    # Health endpoints at root level (no prefix) for container healthchecks
    app.include_router(system.health_router, tags=["health"])

    app.include_router(places.router, prefix=prefix, tags=["places"])
    app.include_router(mirror.router, prefix=prefix, tags=["mirror"])
    app.include_router(commands.router, prefix=prefix, tags=["commands"])
    app.include_router(connections.router, prefix=prefix, tags=["connections"])
    app.include_router(system.router, prefix=prefix, tags=["system"])

    return app


