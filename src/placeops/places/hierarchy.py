"""
Hierarchy builder -- nests a flat entity list into a sorted tree for display.

This tree is for presentation only; nothing persistent is decided from it.
That is why it repairs on a best-effort basis: an entity whose parent is
missing or of the wrong type is re-homed under a plausible root instead of
being dropped, and flagged ``repaired`` so the UI can show it. The
reconciliation engine makes the opposite choice for persisted rows.

Algorithm:
    1. Index by external id; later duplicates are ignored with a warning.
    2. Attach every entity whose parent exists and may hold it.
    3. Buildings with a stray parent become roots.
    4. Other orphans, in parent-to-child type order, go under the first
       root (by name, then id) of an allowed parent type; failing that they
       become roots themselves.
    5. Sort roots and children by ``(display_name, external_id)``.
       ``display_name`` compares by code point, so uppercase sorts before
       lowercase.

    Every valid link goes strictly down the type ladder, so valid links
    cannot form a cycle; self references and loops are invalid links and
    take the repair path.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from placeops.core.logging import get_logger
from placeops.places.models import (
    TYPE_ORDER,
    PlaceEntity,
    PlaceType,
    allowed_parent_types,
    is_allowed_child,
)

logger = get_logger(__name__)


@dataclass
class PlaceNode:
    entity: PlaceEntity
    children: list[PlaceNode] = field(default_factory=list)
    repaired: bool = False

    def walk(self) -> Iterator[PlaceNode]:
        yield self
        for child in self.children:
            yield from child.walk()

    def sort(self) -> None:
        self.children.sort(key=lambda node: node.entity.sort_key)
        for child in self.children:
            child.sort()

    def to_dict(self) -> dict[str, Any]:
        data = self.entity.to_dict()
        data["repaired"] = self.repaired
        data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class HierarchyResult:
    roots: list[PlaceNode] = field(default_factory=list)
    repaired: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)

    def walk(self) -> Iterator[PlaceNode]:
        for root in self.roots:
            yield from root.walk()

    @property
    def count(self) -> int:
        return sum(1 for _ in self.walk())

    def to_dict(self) -> dict[str, Any]:
        return {
            "roots": [root.to_dict() for root in self.roots],
            "repaired": list(self.repaired),
            "duplicates": list(self.duplicates),
            "count": self.count,
        }


def _has_valid_parent(entity: PlaceEntity, index: dict[str, PlaceEntity]) -> bool:
    parent_id = entity.parent_external_id
    if parent_id is None or parent_id == entity.external_id:
        return False
    parent = index.get(parent_id)
    return parent is not None and is_allowed_child(parent.place_type, entity.place_type)


def _repair_target(entity: PlaceEntity, roots: list[PlaceNode]) -> PlaceNode | None:
    preference = allowed_parent_types(entity.place_type)
    candidates = [node for node in roots if node.entity.place_type in preference]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda node: (preference.index(node.entity.place_type), node.entity.sort_key),
    )


def build_hierarchy(entities: Iterable[PlaceEntity]) -> HierarchyResult:
    """Nest *entities* into a sorted forest; never drops an entity."""
    result = HierarchyResult()
    index: dict[str, PlaceEntity] = {}
    for entity in entities:
        if entity.external_id in index:
            result.duplicates.append(entity.external_id)
            logger.warning(
                "duplicate_external_id",
                external_id=entity.external_id,
                place_type=entity.place_type.value,
            )
            continue
        index[entity.external_id] = entity

    nodes = {external_id: PlaceNode(entity) for external_id, entity in index.items()}
    orphans: list[PlaceNode] = []

    for external_id, entity in index.items():
        node = nodes[external_id]
        if entity.place_type is PlaceType.BUILDING:
            if entity.parent_external_id is not None:
                node.repaired = True
                result.repaired.append(external_id)
                logger.warning(
                    "building_has_parent",
                    external_id=external_id,
                    parent_external_id=entity.parent_external_id,
                )
            result.roots.append(node)
        elif _has_valid_parent(entity, index):
            nodes[entity.parent_external_id].children.append(node)
        else:
            orphans.append(node)

    orphans.sort(key=lambda node: TYPE_ORDER.index(node.entity.place_type))
    for node in orphans:
        entity = node.entity
        target = _repair_target(entity, result.roots)
        node.repaired = True
        result.repaired.append(entity.external_id)
        if target is None:
            result.roots.append(node)
        else:
            target.children.append(node)
        logger.warning(
            "orphan_reattached",
            external_id=entity.external_id,
            place_type=entity.place_type.value,
            parent_external_id=entity.parent_external_id,
            attached_to=target.entity.external_id if target else None,
        )

    result.roots.sort(key=lambda node: node.entity.sort_key)
    for root in result.roots:
        root.sort()
    return result


__all__ = ["HierarchyResult", "PlaceNode", "build_hierarchy"]
