"""
Shared pytest fixtures for placeops tests.

This module provides:
- ``settings``: test settings over in-memory SQLite with no restart backoff
- In-memory SQLite engine / session / repository fixtures
- ``remote`` and ``make_channel``: a fake place directory and channels over
  scripted shells (see ``tests._support.fake_shell``)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from placeops.channel.channel import CommandChannel
from placeops.core.settings import PlaceOpsSettings
from placeops.mirror.repository import MirrorRepository
from placeops.mirror.session import create_engine_for, init_schema, session_factory
from tests._support.fake_shell import FakeDirectoryShell, FakeShellFactory, Script, echo_script

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture()
def settings() -> PlaceOpsSettings:
    return PlaceOpsSettings(
        database_url="sqlite://",
        restart_backoff_seconds=0,
        require_connection_for_refresh=False,
        log_level="WARNING",
    )


@pytest.fixture()
def engine() -> Iterator[Engine]:
    eng = create_engine_for("sqlite://")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Iterator[Session]:
    s = session_factory(engine)()
    yield s
    s.close()


@pytest.fixture()
def repo(session: Session) -> MirrorRepository:
    return MirrorRepository(session)


@pytest.fixture()
def remote() -> FakeDirectoryShell:
    return FakeDirectoryShell()


@pytest.fixture()
def make_channel() -> Callable[..., CommandChannel]:
    """Build a channel over a fake shell; the factory is exposed as ``channel.fake``."""

    def _make(script: Script = echo_script, **kwargs: Any) -> CommandChannel:
        factory = FakeShellFactory(script)
        kwargs.setdefault("restart_backoff", 0)
        kwargs.setdefault("default_timeout", 5.0)
        channel = CommandChannel(process_factory=factory, **kwargs)
        channel.fake = factory  # type: ignore[attr-defined]
        return channel

    return _make
