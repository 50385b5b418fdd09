"""
Entity parser -- raw shell output to ``PlaceEntity`` lists.

Listing commands ask the remote shell for JSON, but not every cmdlet
version honours that and console formatting sometimes wins. The parser
therefore recognises three shapes and never raises on bad input: a response
it cannot read is logged and becomes an empty outcome, so one bad listing
cannot abort work on unrelated place types.

Architecture:
    ::

        raw text ──strip_ansi()──► detect_shape()
                                      │
               ┌──────────────────────┼───────────────────┬─────────────┐
               ▼                      ▼                   ▼             ▼
             json               records (Key: Value)     table        unknown
          json.loads()        split on repeating id     rejected      ParseFailure
               │                      │                 + warning     logged
               └────────► normalize_record() per row ◄──┘
                                      │
                        EntitySchemaError → row rejected

Examples:
    >>> outcome = parse_entities('[{"PlaceId": "b-1", "DisplayName": "HQ"}]', PlaceType.BUILDING)
    >>> [e.external_id for e in outcome.entities]
    ['b-1']

Tags:
    parser, json, ansi, records, placeops

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from placeops.core.errors import EntitySchemaError, ParseFailure
from placeops.core.logging import get_logger
from placeops.places.models import FIELD_ALIASES, PlaceEntity, PlaceType, normalize_record

logger = get_logger(__name__)

ANSI_PATTERN = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"  # CSI: colours, cursor movement
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC: window titles, hyperlinks
    r"|\x1b[@-Z\\-_]"  # two-byte escapes
)

_KEY_VALUE = re.compile(r"^(?P<key>[A-Za-z_][\w .-]*?)\s*:(?P<value>.*)$")
_TABLE_RULE = re.compile(r"^[\s-]*-[\s-]*$")
_IDENTIFIER_KEYS = frozenset(FIELD_ALIASES["external_id"])


class OutputShape(str, Enum):
    JSON = "json"
    RECORDS = "records"
    TABLE = "table"
    EMPTY = "empty"
    UNKNOWN = "unknown"


@dataclass
class ParseOutcome:
    """Result of parsing one listing response.

    ``rejected`` holds the ``to_dict()`` of every record that failed
    normalization; ``warnings`` holds human-readable notes about the
    response as a whole.
    """

    place_type: PlaceType
    shape: OutputShape
    entities: list[PlaceEntity] = field(default_factory=list)
    rejected: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.shape not in (OutputShape.UNKNOWN, OutputShape.TABLE) and not self.rejected


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from *text*."""
    return ANSI_PATTERN.sub("", text)


def detect_shape(text: str) -> OutputShape:
    stripped = text.strip()
    if not stripped:
        return OutputShape.EMPTY
    if stripped[0] in "[{":
        return OutputShape.JSON
    lines = [line for line in stripped.splitlines() if line.strip()]
    if len(lines) >= 2 and _TABLE_RULE.match(lines[1]) and not _KEY_VALUE.match(lines[0]):
        return OutputShape.TABLE
    if any(_KEY_VALUE.match(line) for line in lines):
        return OutputShape.RECORDS
    return OutputShape.UNKNOWN


def parse_json_records(text: str) -> list[Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"Invalid JSON at line {exc.lineno}: {exc.msg}", shape="json", cause=exc) from exc
    if isinstance(data, list):
        return data
    return [data]


def parse_key_value_records(text: str) -> list[dict[str, str]]:
    """Split ``Key : Value`` blocks into records.

    A record ends at a blank line or when an identifier key shows up a
    second time. Indented lines continue the previous value.
    """
    records: list[dict[str, str]] = []
    current: dict[str, str] = {}
    last_key: str | None = None

    def flush() -> None:
        nonlocal current, last_key
        if current:
            records.append(current)
        current = {}
        last_key = None

    for line in text.splitlines():
        if not line.strip():
            flush()
            continue
        if line[0].isspace() and last_key is not None:
            current[last_key] = f"{current[last_key]} {line.strip()}".strip()
            continue
        match = _KEY_VALUE.match(line.strip())
        if match is None:
            continue
        key = match.group("key").strip()
        value = (match.group("value") or "").strip()
        if key.lower() in _IDENTIFIER_KEYS and any(k.lower() in _IDENTIFIER_KEYS for k in current):
            flush()
        current[key] = value
        last_key = key
    flush()
    return records


def parse_entities(raw: str, place_type: PlaceType | str) -> ParseOutcome:
    """Parse one listing response into entities of *place_type*.

    Never raises: unreadable output is logged and yields an empty outcome.
    """
    place_type = PlaceType.parse(place_type)
    text = strip_ansi(raw or "")
    shape = detect_shape(text)
    outcome = ParseOutcome(place_type=place_type, shape=shape)

    if shape is OutputShape.EMPTY:
        return outcome

    try:
        if shape is OutputShape.JSON:
            rows: list[Any] = parse_json_records(text.strip())
        elif shape is OutputShape.RECORDS:
            rows = parse_key_value_records(text)
        elif shape is OutputShape.TABLE:
            raise ParseFailure("Tabular output is not parsed; request JSON output", shape="table")
        else:
            raise ParseFailure("Output matches no known shape", shape="unknown")
    except ParseFailure as exc:
        exc.with_context(place_type=place_type.value)
        logger.warning("parse_failed", **exc.to_dict())
        outcome.warnings.append(exc.message)
        return outcome

    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            outcome.rejected.append({"index": index, "message": f"Expected an object, got {type(row).__name__}"})
            continue
        try:
            outcome.entities.append(normalize_record(row, place_type))
        except EntitySchemaError as exc:
            exc.with_context(place_type=place_type.value, index=index)
            logger.warning("record_rejected", **exc.to_dict())
            outcome.rejected.append(exc.to_dict())

    if outcome.rejected:
        outcome.warnings.append(f"{len(outcome.rejected)} {place_type.value} record(s) rejected")
    logger.debug(
        "entities_parsed",
        place_type=place_type.value,
        shape=shape.value,
        parsed=len(outcome.entities),
        rejected=len(outcome.rejected),
    )
    return outcome


__all__ = [
    "OutputShape",
    "ParseOutcome",
    "detect_shape",
    "parse_entities",
    "parse_json_records",
    "parse_key_value_records",
    "strip_ansi",
]
