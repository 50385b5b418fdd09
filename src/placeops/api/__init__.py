"""
REST API layer for placeops.

A FastAPI application factory whose routers delegate to the operations
layer (``placeops.ops``). This package handles HTTP transport only:

- ``app.py``        composition root (lifespan, middleware, routers)
- ``deps.py``       per-request session, channel and OperationContext
- ``middleware/``   request id, timing, RFC 7807 errors
- ``routers/``      places, mirror, commands, connections, system
- ``schemas/``      pydantic request/response models
"""

from placeops.api.app import create_app

__all__ = ["create_app"]
