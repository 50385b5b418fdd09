"""Declarative base and mixins for the local mirror tables.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` so
``Mapped`` columns can be declared with plain Python types.

Mixins
------
* **TimestampMixin** -- ``created_at`` / ``updated_at`` with server defaults.
* **PlaceColumns**   -- surrogate key plus the fields every mirrored place has.
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class MirrorBase(DeclarativeBase):
    """Shared declarative base for every placeops table.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``bool``  → ``Boolean``
    * ``datetime.datetime`` → ``DateTime``
    * ``dict``  → ``JSON``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.datetime: DateTime,
        dict: JSON,
    }


class TimestampMixin:
    """``created_at`` is written once; ``updated_at`` moves on every UPDATE."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime,
        nullable=True,
        server_default=func.now(),
        onupdate=func.now(),
    )


class PlaceColumns(TimestampMixin):
    """Columns shared by the five place tables.

    ``parent_external_id`` keeps the remote parent reference as fetched;
    the local foreign key columns live on each table.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    parent_external_id: Mapped[str | None] = mapped_column(Text)
