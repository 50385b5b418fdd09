"""Engine and session factories for the local mirror.

* ``create_engine_for``  -- SA engine from a URL, SQLite foreign keys enforced.
* ``MirrorSession``      -- ``Session`` with ``expire_on_commit=False``.
* ``session_factory``    -- ``sessionmaker`` producing ``MirrorSession``.
* ``init_schema``        -- create every table that does not exist yet.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from placeops.core.logging import get_logger
from placeops.mirror.base import MirrorBase

logger = get_logger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_engine_for(url: str = "sqlite:///placeops.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite connections get ``PRAGMA foreign_keys=ON`` so the RESTRICT
    constraints on the place tables are enforced. In-memory SQLite uses a
    single shared connection so every session sees the same database.
    """
    if not url.startswith("sqlite"):
        return _sa_create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    if _is_memory_sqlite(url):
        kwargs.setdefault("poolclass", StaticPool)
    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class MirrorSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Prevents lazy-load surprises when rows are serialized after commit.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def session_factory(engine: Engine) -> sessionmaker[MirrorSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``MirrorSession`` instances."""
    return sessionmaker(bind=engine, class_=MirrorSession)


def init_schema(engine: Engine) -> None:
    # importing tables registers them on the metadata
    from placeops.mirror import tables  # noqa: F401

    MirrorBase.metadata.create_all(engine)
    logger.debug("mirror_schema_ready", url=engine.url.render_as_string(hide_password=True))
