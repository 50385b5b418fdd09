"""
Place entities -- the typed intermediate record between the remote shell and everything else.

The remote directory hands back loosely typed field bags whose casing and
naming drift between cmdlet versions (``DisplayName`` vs ``Name``,
``ParentId`` vs ``ParentPlaceId``). This module pins them to one fixed
schema per place type and does the alias mapping in exactly one place.

Manifesto:
    - **Tagged variants:** One frozen dataclass per place type
    - **Loud on missing keys:** No identifier or name → ``EntitySchemaError``
    - **Empty parent is no parent:** ``""`` and ``"  "`` become ``None``

Architecture:
    ::

        Building ──► Floor ──► Section ──► Desk
                       │           └─────► Room
                       └─────────────────► Room     (no section applies)

        raw dict ──normalize_record()──► PlaceEntity subclass
        PlaceEntity ──to_structured()──► raw dict (canonical source names)

Examples:
    >>> entity = normalize_record({"PlaceId": "f-1", "Name": "Main", "ParentId": " "}, PlaceType.FLOOR)
    >>> entity.parent_external_id is None
    True

Tags:
    domain-model, dataclass, normalization, places, hierarchy

Doc-Types:
    - API Reference
    - Data Model
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, ClassVar

from placeops.core.errors import EntitySchemaError


class PlaceType(str, Enum):
    """The five kinds of place the directory knows about."""

    BUILDING = "Building"
    FLOOR = "Floor"
    SECTION = "Section"
    DESK = "Desk"
    ROOM = "Room"

    @classmethod
    def parse(cls, value: str | PlaceType) -> PlaceType:
        """Case-insensitive lookup; ``Workspace`` is the remote name for a desk."""
        if isinstance(value, PlaceType):
            return value
        key = str(value).strip().lower()
        if key == "workspace":
            return cls.DESK
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Unknown place type: {value!r}")


# Parent-to-child order; deletion walks it backwards.
TYPE_ORDER: tuple[PlaceType, ...] = (
    PlaceType.BUILDING,
    PlaceType.FLOOR,
    PlaceType.SECTION,
    PlaceType.DESK,
    PlaceType.ROOM,
)

ALLOWED_CHILDREN: dict[PlaceType, frozenset[PlaceType]] = {
    PlaceType.BUILDING: frozenset({PlaceType.FLOOR}),
    PlaceType.FLOOR: frozenset({PlaceType.SECTION, PlaceType.ROOM}),
    PlaceType.SECTION: frozenset({PlaceType.DESK, PlaceType.ROOM}),
    PlaceType.DESK: frozenset(),
    PlaceType.ROOM: frozenset(),
}


def is_allowed_child(parent: PlaceType, child: PlaceType) -> bool:
    return child in ALLOWED_CHILDREN[parent]


def allowed_parent_types(child: PlaceType) -> tuple[PlaceType, ...]:
    """Parent types that may hold *child*, most specific first (Section before Floor)."""
    return tuple(t for t in reversed(TYPE_ORDER) if child in ALLOWED_CHILDREN[t])


# =============================================================================
# ENTITY VARIANTS
# =============================================================================


@dataclass(frozen=True)
class PlaceEntity:
    """Fields every place carries."""

    place_type: ClassVar[PlaceType]

    external_id: str
    display_name: str
    description: str | None = None
    parent_external_id: str | None = None

    COMMON_FIELDS: ClassVar[tuple[str, ...]] = (
        "external_id",
        "display_name",
        "description",
        "parent_external_id",
    )

    def attributes(self) -> dict[str, Any]:
        """Type-specific field values (empty for floors and sections)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in self.COMMON_FIELDS}

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.display_name, self.external_id)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.place_type.value
        return data


@dataclass(frozen=True)
class BuildingEntity(PlaceEntity):
    place_type: ClassVar[PlaceType] = PlaceType.BUILDING

    country_or_region: str | None = None
    state: str | None = None
    city: str | None = None
    street: str | None = None
    postal_code: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class FloorEntity(PlaceEntity):
    place_type: ClassVar[PlaceType] = PlaceType.FLOOR


@dataclass(frozen=True)
class SectionEntity(PlaceEntity):
    place_type: ClassVar[PlaceType] = PlaceType.SECTION


@dataclass(frozen=True)
class BookableEntity(PlaceEntity):
    """Shared schema of desks and rooms."""

    capacity: int | None = None
    is_bookable: bool = False
    email_address: str | None = None


@dataclass(frozen=True)
class DeskEntity(BookableEntity):
    place_type: ClassVar[PlaceType] = PlaceType.DESK


@dataclass(frozen=True)
class RoomEntity(BookableEntity):
    place_type: ClassVar[PlaceType] = PlaceType.ROOM


ENTITY_CLASSES: dict[PlaceType, type[PlaceEntity]] = {
    PlaceType.BUILDING: BuildingEntity,
    PlaceType.FLOOR: FloorEntity,
    PlaceType.SECTION: SectionEntity,
    PlaceType.DESK: DeskEntity,
    PlaceType.ROOM: RoomEntity,
}


# =============================================================================
# NORMALIZATION
# =============================================================================

# canonical field -> accepted source names, lower-cased, first match wins
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "external_id": ("placeid", "identity", "id", "externalid"),
    "display_name": ("displayname", "name"),
    "description": ("description",),
    "parent_external_id": ("parentid", "parentplaceid", "parentexternalid"),
    "country_or_region": ("countryorregion", "country"),
    "state": ("state",),
    "city": ("city",),
    "street": ("street",),
    "postal_code": ("postalcode",),
    "phone": ("phone",),
    "capacity": ("capacity",),
    "is_bookable": ("isbookable",),
    "email_address": ("emailaddress", "contactaddress", "email"),
}

# canonical field -> source name written by to_structured()
STRUCTURED_NAMES: dict[str, str] = {
    "external_id": "PlaceId",
    "display_name": "DisplayName",
    "description": "Description",
    "parent_external_id": "ParentId",
    "country_or_region": "CountryOrRegion",
    "state": "State",
    "city": "City",
    "street": "Street",
    "postal_code": "PostalCode",
    "phone": "Phone",
    "capacity": "Capacity",
    "is_bookable": "IsBookable",
    "email_address": "EmailAddress",
}

_TRUE = {"true", "yes", "1", "$true"}
_FALSE = {"false", "no", "0", "$false", ""}


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lookup(record: Mapping[str, Any], canonical: str) -> Any:
    for alias in FIELD_ALIASES[canonical]:
        if alias in record and record[alias] is not None:
            return record[alias]
    return None


def _coerce_capacity(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError as exc:
        raise EntitySchemaError(f"Capacity is not a number: {text!r}", field="capacity") from exc


def _coerce_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise EntitySchemaError(f"IsBookable is not a boolean: {value!r}", field="is_bookable")


def normalize_record(raw: Mapping[str, Any], place_type: PlaceType | str) -> PlaceEntity:
    """Map a raw field bag onto the fixed schema of its place type.

    A ``Type`` field in the record wins over *place_type* when it names a
    known type. Unknown source fields are ignored.

    Raises:
        EntitySchemaError: identifier or display name missing, or a typed
            field that cannot be coerced
    """
    record = {str(k).strip().lower(): v for k, v in raw.items()}
    resolved = PlaceType.parse(place_type)
    declared = _clean(record.get("type"))
    if declared:
        try:
            resolved = PlaceType.parse(declared)
        except ValueError:
            pass

    external_id = _clean(_lookup(record, "external_id"))
    if external_id is None:
        raise EntitySchemaError(f"{resolved.value} record has no identifier", field="external_id")
    display_name = _clean(_lookup(record, "display_name"))
    if display_name is None:
        raise EntitySchemaError(
            f"{resolved.value} {external_id} has no display name", field="display_name"
        ).with_context(external_id=external_id)

    cls = ENTITY_CLASSES[resolved]
    values: dict[str, Any] = {
        "external_id": external_id,
        "display_name": display_name,
        "description": _clean(_lookup(record, "description")),
        "parent_external_id": _clean(_lookup(record, "parent_external_id")),
    }
    for f in fields(cls):
        if f.name in values:
            continue
        raw_value = _lookup(record, f.name)
        if f.name == "capacity":
            values[f.name] = _coerce_capacity(raw_value)
        elif f.name == "is_bookable":
            values[f.name] = _coerce_bool(raw_value)
        else:
            values[f.name] = _clean(raw_value)
    return cls(**values)


def to_structured(entity: PlaceEntity) -> dict[str, Any]:
    """Encode *entity* as a structured-list record using canonical source names."""
    record: dict[str, Any] = {"Type": entity.place_type.value}
    for f in fields(entity):
        record[STRUCTURED_NAMES[f.name]] = getattr(entity, f.name)
    return record


__all__ = [
    "ALLOWED_CHILDREN",
    "ENTITY_CLASSES",
    "TYPE_ORDER",
    "BookableEntity",
    "BuildingEntity",
    "DeskEntity",
    "FloorEntity",
    "PlaceEntity",
    "PlaceType",
    "RoomEntity",
    "SectionEntity",
    "allowed_parent_types",
    "is_allowed_child",
    "normalize_record",
    "to_structured",
]
