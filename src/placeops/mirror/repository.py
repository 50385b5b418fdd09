"""
Mirror repository -- keyed access to the five mirrored place tables.

The reconciliation engine is the only writer during a refresh; route
handlers read through the same class. Every write flushes immediately so
constraint violations surface at the call that caused them, wrapped in
:class:`MirrorError`. Transaction boundaries belong to the caller
(``commit()`` / ``rollback()``).

Architecture::

    ┌──────────────────────────────────────────────────────────────┐
    │  places/reconcile.py,  ops/places.py                         │
    └──────────────────────────┬───────────────────────────────────┘
                               │ uses
                               ▼
    ┌──────────────────────────────────────────────────────────────┐
    │  MirrorRepository(session)                                   │
    │   get / get_by_external_id / resolve_parent                  │
    │   list(type, parent=...) -> (rows, total)                    │
    │   create / update / delete / child_count / snapshot          │
    └──────────────────────────┬───────────────────────────────────┘
                               ▼
            buildings  floors  sections  desks  rooms

Guardrails:
    ❌ DON'T: delete a row that still has mirrored children
    ✅ DO: check ``child_count()`` first (the FK would refuse anyway)

Tags:
    repository, sqlalchemy, mirror, places, crud

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placeops.core.errors import MirrorError
from placeops.core.logging import get_logger
from placeops.mirror.tables import PARENT_COLUMNS, TABLES
from placeops.places.models import (
    ALLOWED_CHILDREN,
    ENTITY_CLASSES,
    TYPE_ORDER,
    PlaceEntity,
    PlaceType,
    allowed_parent_types,
)

logger = get_logger(__name__)

ParentRef = tuple[PlaceType, int]


def row_to_dict(place_type: PlaceType, row: Any) -> dict[str, Any]:
    """Serialize a mirrored row, including its local parent reference."""
    data: dict[str, Any] = {"type": place_type.value}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        data[column.key] = value.isoformat() if hasattr(value, "isoformat") else value
    return data


def row_to_entity(place_type: PlaceType, row: Any) -> PlaceEntity:
    cls = ENTITY_CLASSES[place_type]
    values = {f.name: getattr(row, f.name) for f in fields(cls)}
    return cls(**values)


class MirrorRepository:
    """Typed CRUD over the mirrored place tables."""

    def __init__(self, session: Session):
        self.session = session

    # -- reads -----------------------------------------------------------------

    def get(self, place_type: PlaceType, row_id: int) -> Any | None:
        return self.session.get(TABLES[place_type], row_id)

    def get_by_external_id(self, place_type: PlaceType, external_id: str) -> Any | None:
        table = TABLES[place_type]
        return self.session.scalars(select(table).where(table.external_id == external_id)).first()

    def resolve_parent(self, entity: PlaceEntity) -> ParentRef | None:
        """Find the mirrored parent of *entity*, trying each allowed parent type in turn.

        Rooms try a section first and fall back to a floor.
        """
        if entity.parent_external_id is None:
            return None
        for parent_type in allowed_parent_types(entity.place_type):
            row = self.get_by_external_id(parent_type, entity.parent_external_id)
            if row is not None:
                return parent_type, row.id
        return None

    def list(
        self,
        place_type: PlaceType,
        *,
        parent: ParentRef | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Any], int]:
        """List rows of one type, optionally scoped to a parent.  Returns ``(rows, total)``."""
        table = TABLES[place_type]
        stmt = select(table)
        if parent is not None:
            column = PARENT_COLUMNS.get((place_type, parent[0]))
            if column is None:
                return [], 0
            stmt = stmt.where(getattr(table, column) == parent[1])
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(table.display_name, table.external_id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt)), total

    def external_ids(self, place_type: PlaceType) -> dict[str, int]:
        """Map of external id to surrogate id for every mirrored row of *place_type*."""
        table = TABLES[place_type]
        return dict(self.session.execute(select(table.external_id, table.id)).all())

    def entities(self, place_type: PlaceType | None = None) -> list[PlaceEntity]:
        types = [place_type] if place_type else list(TYPE_ORDER)
        result: list[PlaceEntity] = []
        for t in types:
            rows, _ = self.list(t)
            result.extend(row_to_entity(t, row) for row in rows)
        return result

    def child_count(self, place_type: PlaceType, row_id: int) -> int:
        total = 0
        for child_type in ALLOWED_CHILDREN[place_type]:
            table = TABLES[child_type]
            column = getattr(table, PARENT_COLUMNS[(child_type, place_type)])
            total += self.session.scalar(select(func.count()).where(column == row_id)) or 0
        return total

    def snapshot(self) -> dict[str, int]:
        """Row count per place type."""
        return {
            t.value: self.session.scalar(select(func.count()).select_from(TABLES[t])) or 0
            for t in TYPE_ORDER
        }

    # -- writes ----------------------------------------------------------------

    def create(self, entity: PlaceEntity, parent: ParentRef | None = None) -> Any:
        row = TABLES[entity.place_type](external_id=entity.external_id)
        self._apply(row, entity, parent)
        self.session.add(row)
        self._flush("create", entity.place_type, entity.external_id)
        return row

    def update(self, row: Any, entity: PlaceEntity, parent: ParentRef | None = None) -> Any:
        """Overwrite attributes; the surrogate key and ``created_at`` are kept."""
        self._apply(row, entity, parent)
        self._flush("update", entity.place_type, entity.external_id)
        return row

    def delete(self, place_type: PlaceType, row_id: int) -> None:
        row = self.get(place_type, row_id)
        if row is None:
            return
        external_id = row.external_id
        self.session.delete(row)
        self._flush("delete", place_type, external_id)

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise MirrorError("Commit failed", cause=exc) from exc

    def rollback(self) -> None:
        self.session.rollback()

    # -- helpers ---------------------------------------------------------------

    @staticmethod
    def _apply(row: Any, entity: PlaceEntity, parent: ParentRef | None) -> None:
        row.display_name = entity.display_name
        row.description = entity.description
        row.parent_external_id = entity.parent_external_id
        for key, value in entity.attributes().items():
            setattr(row, key, value)
        if parent is None:
            return
        column = PARENT_COLUMNS[(entity.place_type, parent[0])]
        setattr(row, column, parent[1])
        if entity.place_type is PlaceType.ROOM:
            # a room hangs off exactly one parent
            other = "floor_id" if column == "section_id" else "section_id"
            setattr(row, other, None)

    def _flush(self, action: str, place_type: PlaceType, external_id: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "mirror_write_failed",
                action=action,
                place_type=place_type.value,
                external_id=external_id,
                error=str(exc),
            )
            raise MirrorError(f"Mirror {action} failed", cause=exc).with_context(
                place_type=place_type.value, external_id=external_id
            ) from exc


__all__ = ["MirrorRepository", "ParentRef", "row_to_dict", "row_to_entity"]
