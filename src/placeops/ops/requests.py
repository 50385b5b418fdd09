"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function. Requests carry only transport-agnostic data: no raw HTTP
bodies, no Typer params.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------ #
# Place operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class CreatePlaceRequest:
    """Request for :func:`placeops.ops.places.create_entity`.

    Attributes:
        place_type: ``Building``, ``Floor``, ``Section``, ``Desk`` or ``Room``.
        display_name: Name of the new place.
        parent_external_id: Remote id of the parent (required below Building).
        attributes: Type-specific fields by canonical name
            (``city``, ``capacity``, ``is_bookable``…).
    """

    place_type: str = ""
    display_name: str = ""
    description: str | None = None
    parent_external_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ListMirrorRequest:
    """Request for :func:`placeops.ops.places.list_mirror`.

    ``parent_type`` / ``parent_id`` scope the listing to the children of
    one mirrored row, e.g. all floors of building 3.
    """

    place_type: str = ""
    parent_type: str | None = None
    parent_id: int | None = None
    limit: int = 100
    offset: int = 0


# ------------------------------------------------------------------ #
# Command operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ExecuteCommandRequest:
    """Request for :func:`placeops.ops.commands.execute_command`."""

    command: str = ""
    timeout: float | None = None


@dataclass(frozen=True, slots=True)
class HistoryRequest:
    """Request for :func:`placeops.ops.commands.get_history`."""

    limit: int = 50
    offset: int = 0


# ------------------------------------------------------------------ #
# Connection operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ConnectRequest:
    """Request for :func:`placeops.ops.connections.connect_exchange`.

    ``tenant`` is either a user principal name (contains ``@``) or an
    organization domain such as ``contoso.onmicrosoft.com``.
    """

    tenant: str | None = None


@dataclass(frozen=True, slots=True)
class ModuleRequest:
    """Request for :func:`placeops.ops.connections.check_modules` / ``install_module``."""

    names: list[str] | None = None  # ``None`` → settings.required_modules
