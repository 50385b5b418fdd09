"""SQLAlchemy 2.0 ORM tables for the local mirror and console status.

Place tables
------------
``buildings`` ← ``floors`` ← ``sections`` ← ``desks``; ``rooms`` hang off a
section or, when no section applies, directly off a floor. Foreign keys use
``ON DELETE RESTRICT`` so the mirror can never hold a dangling parent
reference; the reconciliation engine deletes children first.

Status tables
-------------
``command_history``, ``connection_status`` and ``module_status`` record what
the console has done against the remote shell.

Usage::

    from placeops.mirror import MirrorBase
    MirrorBase.metadata.create_all(engine)
"""

from __future__ import annotations

import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from placeops.mirror.base import MirrorBase, PlaceColumns
from placeops.places.models import PlaceType

# =============================================================================
# PLACES
# =============================================================================


class BuildingTable(PlaceColumns, MirrorBase):
    __tablename__ = "buildings"

    country_or_region: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text)
    street: Mapped[str | None] = mapped_column(Text)
    postal_code: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FloorTable(PlaceColumns, MirrorBase):
    __tablename__ = "floors"

    building_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("buildings.id", ondelete="RESTRICT"), nullable=False, index=True
    )


class SectionTable(PlaceColumns, MirrorBase):
    __tablename__ = "sections"

    floor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("floors.id", ondelete="RESTRICT"), nullable=False, index=True
    )


class DeskTable(PlaceColumns, MirrorBase):
    __tablename__ = "desks"

    section_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    capacity: Mapped[int | None] = mapped_column(Integer)
    is_bookable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_address: Mapped[str | None] = mapped_column(Text)


class RoomTable(PlaceColumns, MirrorBase):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint(
            "section_id IS NOT NULL OR floor_id IS NOT NULL",
            name="ck_rooms_has_parent",
        ),
    )

    section_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sections.id", ondelete="RESTRICT"), index=True
    )
    floor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("floors.id", ondelete="RESTRICT"), index=True
    )
    capacity: Mapped[int | None] = mapped_column(Integer)
    is_bookable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_address: Mapped[str | None] = mapped_column(Text)


PlaceRow = BuildingTable | FloorTable | SectionTable | DeskTable | RoomTable

TABLES: dict[PlaceType, type[MirrorBase]] = {
    PlaceType.BUILDING: BuildingTable,
    PlaceType.FLOOR: FloorTable,
    PlaceType.SECTION: SectionTable,
    PlaceType.DESK: DeskTable,
    PlaceType.ROOM: RoomTable,
}

# local foreign key column per (child type, parent type)
PARENT_COLUMNS: dict[tuple[PlaceType, PlaceType], str] = {
    (PlaceType.FLOOR, PlaceType.BUILDING): "building_id",
    (PlaceType.SECTION, PlaceType.FLOOR): "floor_id",
    (PlaceType.DESK, PlaceType.SECTION): "section_id",
    (PlaceType.ROOM, PlaceType.SECTION): "section_id",
    (PlaceType.ROOM, PlaceType.FLOOR): "floor_id",
}


# =============================================================================
# CONSOLE STATUS
# =============================================================================


class CommandHistoryTable(MirrorBase):
    __tablename__ = "command_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    command: Mapped[str] = mapped_column(Text, nullable=False)
    output: Mapped[str | None] = mapped_column(Text)
    error: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False)  # success | error
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    executed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )


class ConnectionStatusTable(MirrorBase):
    __tablename__ = "connection_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)  # connected | connecting | disconnected | error
    tenant: Mapped[str | None] = mapped_column(Text)
    last_connected: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    error_message: Mapped[str | None] = mapped_column(Text)


class ModuleStatusTable(MirrorBase):
    __tablename__ = "module_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)  # installed | installing | not_installed | error
    version: Mapped[str | None] = mapped_column(Text)
    last_checked: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
