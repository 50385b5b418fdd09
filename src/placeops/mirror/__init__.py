"""
Local mirror of the remote place directory, plus console status tables.

Modules:
    base        MirrorBase, TimestampMixin, PlaceColumns
    tables      ORM tables and the type → table / parent-column maps
    session     engine, session factory and schema creation
    repository  MirrorRepository (place tables)
    status      StatusRepository (history, connections, modules)
"""

from placeops.mirror.base import MirrorBase, TimestampMixin
from placeops.mirror.repository import MirrorRepository, row_to_dict, row_to_entity
from placeops.mirror.session import MirrorSession, create_engine_for, init_schema, session_factory
from placeops.mirror.status import StatusRepository

__all__ = [
    "MirrorBase",
    "MirrorRepository",
    "MirrorSession",
    "StatusRepository",
    "TimestampMixin",
    "create_engine_for",
    "init_schema",
    "row_to_dict",
    "row_to_entity",
    "session_factory",
]
