"""
Place domain: entity model, parser, hierarchy builder, remote directory and reconciliation.

Modules:
    models     PlaceType, PlaceEntity variants, normalize_record, to_structured
    parser     parse_entities, strip_ansi
    hierarchy  build_hierarchy (presentation tree, best-effort repair)
    directory  PlaceDirectory (cmdlets over the command channel)
    reconcile  MirrorReconciler (mirror sync, skip-on-unresolved-parent)
"""

from placeops.places.hierarchy import HierarchyResult, PlaceNode, build_hierarchy
from placeops.places.models import (
    ALLOWED_CHILDREN,
    TYPE_ORDER,
    BuildingEntity,
    DeskEntity,
    FloorEntity,
    PlaceEntity,
    PlaceType,
    RoomEntity,
    SectionEntity,
    normalize_record,
    to_structured,
)
from placeops.places.parser import OutputShape, ParseOutcome, parse_entities, strip_ansi

__all__ = [
    "ALLOWED_CHILDREN",
    "TYPE_ORDER",
    "BuildingEntity",
    "DeskEntity",
    "FloorEntity",
    "HierarchyResult",
    "OutputShape",
    "ParseOutcome",
    "PlaceEntity",
    "PlaceNode",
    "PlaceType",
    "RoomEntity",
    "SectionEntity",
    "build_hierarchy",
    "normalize_record",
    "parse_entities",
    "strip_ansi",
    "to_structured",
]
