"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument. The context carries the mirror session, the shared command
channel, settings, caller identity, dry-run flag and arbitrary metadata.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from placeops.channel.channel import CommandChannel
from placeops.core.errors import ConfigError
from placeops.core.settings import PlaceOpsSettings, get_settings
from placeops.places.directory import PlaceDirectory


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        session: SQLAlchemy session on the local mirror.
        channel: The shared :class:`CommandChannel`; ``None`` for
            mirror-only callers.
        settings: Settings in force (defaults to :func:`get_settings`).
        refresh_lock: Serializes refreshes issued through the same process.
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request: ``"api"``, ``"cli"`` or ``"sdk"``.
        user: Optional authenticated user identifier.
        dry_run: When ``True``, operations return a preview without side effects.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    session: Session
    channel: CommandChannel | None = None
    settings: PlaceOpsSettings = field(default_factory=get_settings)
    refresh_lock: asyncio.Lock | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    user: str | None = None
    dry_run: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def require_channel(self) -> CommandChannel:
        if self.channel is None:
            raise ConfigError("No command channel configured for this context")
        return self.channel

    def directory(self) -> PlaceDirectory:
        return PlaceDirectory.from_settings(self.require_channel(), self.settings)
