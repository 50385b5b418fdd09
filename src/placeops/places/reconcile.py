"""
Reconciliation engine -- brings the local mirror in line with the remote directory.

Manifesto:
    A refresh must never leave the mirror worse than it found it. Every
    fetch happens before any write, deletes run child-to-parent, creates run
    parent-to-child, and an entity whose parent cannot be found locally is
    left out rather than stored with a wrong parent. It will be picked up
    by a later refresh once its parent exists.

Architecture:
    ::

        fetch:Building ─fail─► abort whole refresh
        fetch:Floor    ─fail─► skip Floor this cycle (rows untouched)
        fetch:Section  ─fail─► skip Section
        fetch:Desk     ─fail─► skip Desk
        fetch:Room     ─fail─► skip Room
              │
              ▼
        delete:Room → delete:Desk → delete:Section → delete:Floor → delete:Building
              │   (a row that still has mirrored children is deferred)
              ▼
        upsert:Building → upsert:Floor → upsert:Section → upsert:Desk → upsert:Room
              │   (unresolved parent → skipped + UnresolvedParent logged)
              ▼
        delete:<Type> again, child-to-parent, for rows deferred above
              │   (only rows whose children were re-linked away)
              ▼
        RefreshReport(per-type stats, completed stages, aborted stage)

    Each mutation stage is committed on its own. A mirror failure rolls the
    current stage back and aborts the stages after it; the report says
    which stages completed.

    Treating a failed fetch as "zero entities" would delete every mirrored
    row of that type, so a failed or unreadable fetch skips the type
    entirely. A listing in which some records were rejected still creates
    and updates the readable ones but deletes nothing of that type.

Examples:
    >>> reconciler = MirrorReconciler(directory, MirrorRepository(session))
    >>> report = await reconciler.refresh()
    >>> report.stats[PlaceType.FLOOR].created
    1

Tags:
    reconciliation, sync, mirror, referential-integrity, placeops

Doc-Types:
    - API Reference
    - Architecture Decision Record
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from placeops.core.errors import (
    MirrorError,
    ParseFailure,
    PlaceOpsError,
    UnresolvedParent,
    requires_connection,
)
from placeops.core.logging import LogContext, get_logger
from placeops.places.models import TYPE_ORDER, PlaceEntity, PlaceType
from placeops.places.parser import OutputShape

if TYPE_CHECKING:
    from placeops.mirror.repository import MirrorRepository
    from placeops.places.directory import PlaceDirectory

logger = get_logger(__name__)


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass
class TypeSyncStats:
    place_type: PlaceType
    fetched: int = 0
    created: int = 0
    updated: int = 0
    removed: int = 0
    unresolved: int = 0
    deferred: int = 0
    rejected: int = 0
    status: SyncStatus = SyncStatus.PENDING
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "created": self.created,
            "updated": self.updated,
            "removed": self.removed,
            "unresolved": self.unresolved,
            "deferred": self.deferred,
            "rejected": self.rejected,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class RefreshReport:
    """What one refresh did, per place type and per stage."""

    refresh_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    stats: dict[PlaceType, TypeSyncStats] = field(
        default_factory=lambda: {t: TypeSyncStats(t) for t in TYPE_ORDER}
    )
    completed_stages: list[str] = field(default_factory=list)
    aborted_stage: str | None = None
    error: dict[str, Any] | None = None
    requires_connection: bool = False
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.aborted_stage is None

    @property
    def skipped_types(self) -> list[PlaceType]:
        return [t for t, s in self.stats.items() if s.status is SyncStatus.SKIPPED]

    def totals(self) -> dict[str, int]:
        return {
            key: sum(getattr(s, key) for s in self.stats.values())
            for key in ("created", "updated", "removed", "unresolved", "deferred")
        }

    def abort(self, stage: str, exc: PlaceOpsError) -> None:
        self.aborted_stage = stage
        self.error = exc.to_dict()
        self.requires_connection = requires_connection(exc)
        for stats in self.stats.values():
            if stats.status is SyncStatus.PENDING:
                stats.status = SyncStatus.ABORTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "refresh_id": self.refresh_id,
            "success": self.success,
            "aborted_stage": self.aborted_stage,
            "error": self.error,
            "requires_connection": self.requires_connection,
            "completed_stages": list(self.completed_stages),
            "types": {t.value: s.to_dict() for t, s in self.stats.items()},
            "totals": self.totals(),
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class _FreshSet:
    entities: list[PlaceEntity]
    deletable: bool
    deferred: dict[str, int] = field(default_factory=dict)


class MirrorReconciler:
    """Diffs a fresh fetch against the mirror and applies deletes, creates and updates."""

    def __init__(self, directory: PlaceDirectory, repository: MirrorRepository):
        self.directory = directory
        self.repository = repository

    async def refresh(self) -> RefreshReport:
        report = RefreshReport()
        started = time.monotonic()
        with LogContext(refresh_id=report.refresh_id):
            logger.info("refresh_started")
            try:
                fresh = await self._fetch_all(report)
                if fresh is not None:
                    self._apply(report, fresh)
            finally:
                report.duration_ms = (time.monotonic() - started) * 1000
            logger.info(
                "refresh_finished",
                success=report.success,
                aborted_stage=report.aborted_stage,
                skipped=[t.value for t in report.skipped_types],
                **report.totals(),
            )
        return report

    # ── Fetch ────────────────────────────────────────────────────────

    async def _fetch_all(self, report: RefreshReport) -> dict[PlaceType, _FreshSet] | None:
        fresh: dict[PlaceType, _FreshSet] = {}
        for place_type in TYPE_ORDER:
            stage = f"fetch:{place_type.value}"
            stats = report.stats[place_type]
            try:
                outcome = await self.directory.list_entities(place_type)
            except PlaceOpsError as exc:
                exc.with_context(stage=stage, place_type=place_type.value)
                if place_type is PlaceType.BUILDING:
                    logger.error("refresh_aborted", **exc.to_dict())
                    report.abort(stage, exc)
                    return None
                logger.warning("type_skipped", **exc.to_dict())
                stats.status = SyncStatus.SKIPPED
                stats.error = exc.message
                continue

            if outcome.shape in (OutputShape.UNKNOWN, OutputShape.TABLE):
                message = "; ".join(outcome.warnings) or "Unreadable listing"
                if place_type is PlaceType.BUILDING:
                    exc = ParseFailure(message, shape=outcome.shape.value)
                    exc.with_context(stage=stage, place_type=place_type.value)
                    logger.error("refresh_aborted", **exc.to_dict())
                    report.abort(stage, exc)
                    return None
                logger.warning("type_skipped", place_type=place_type.value, reason=message)
                stats.status = SyncStatus.SKIPPED
                stats.error = message
                continue

            entities = _first_seen(outcome.entities)
            stats.fetched = len(entities)
            stats.rejected = len(outcome.rejected)
            fresh[place_type] = _FreshSet(entities=entities, deletable=not outcome.rejected)
            report.completed_stages.append(stage)
        return fresh

    # ── Mutations ────────────────────────────────────────────────────

    def _apply(self, report: RefreshReport, fresh: dict[PlaceType, _FreshSet]) -> None:
        stages = [
            (f"delete:{t.value}", self._delete_stage, t) for t in reversed(TYPE_ORDER) if t in fresh
        ] + [(f"upsert:{t.value}", self._upsert_stage, t) for t in TYPE_ORDER if t in fresh]
        if not self._run_stages(report, fresh, stages):
            return

        # Children re-linked by the upserts may have released a deferred parent.
        sweeps = [
            (f"delete:{t.value}", self._sweep_deferred, t)
            for t in reversed(TYPE_ORDER)
            if t in fresh and fresh[t].deferred
        ]
        if not self._run_stages(report, fresh, sweeps):
            return

        for place_type in fresh:
            report.stats[place_type].status = SyncStatus.SYNCED

    def _run_stages(self, report: RefreshReport, fresh: dict[PlaceType, _FreshSet], stages) -> bool:
        for stage, run, place_type in stages:
            with LogContext(stage=stage):
                try:
                    run(place_type, fresh[place_type], report.stats[place_type])
                    self.repository.commit()
                except MirrorError as exc:
                    self.repository.rollback()
                    exc.with_context(stage=stage)
                    logger.error("refresh_aborted", **exc.to_dict())
                    report.abort(stage, exc)
                    return False
            report.completed_stages.append(stage)
        return True

    def _delete_stage(self, place_type: PlaceType, fresh: _FreshSet, stats: TypeSyncStats) -> None:
        if not fresh.deletable:
            logger.warning(
                "deletes_suppressed",
                place_type=place_type.value,
                rejected=stats.rejected,
            )
            return
        keep = {e.external_id for e in fresh.entities if e.place_type is place_type}
        mirrored = self.repository.external_ids(place_type)
        for external_id in sorted(set(mirrored) - keep):
            row_id = mirrored[external_id]
            children = self.repository.child_count(place_type, row_id)
            if children:
                stats.deferred += 1
                fresh.deferred[external_id] = row_id
                logger.warning(
                    "delete_deferred",
                    place_type=place_type.value,
                    external_id=external_id,
                    children=children,
                )
                continue
            self.repository.delete(place_type, row_id)
            stats.removed += 1
            logger.debug("mirror_deleted", place_type=place_type.value, external_id=external_id)

    def _sweep_deferred(self, place_type: PlaceType, fresh: _FreshSet, stats: TypeSyncStats) -> None:
        for external_id, row_id in sorted(fresh.deferred.items()):
            if self.repository.child_count(place_type, row_id):
                continue
            self.repository.delete(place_type, row_id)
            del fresh.deferred[external_id]
            stats.deferred -= 1
            stats.removed += 1
            logger.info("deferred_delete_applied", place_type=place_type.value, external_id=external_id)

    def _upsert_stage(self, place_type: PlaceType, fresh: _FreshSet, stats: TypeSyncStats) -> None:
        for entity in fresh.entities:
            if entity.place_type is not place_type:
                logger.warning(
                    "type_mismatch_skipped",
                    place_type=place_type.value,
                    record_type=entity.place_type.value,
                    external_id=entity.external_id,
                )
                continue
            existing = self.repository.get_by_external_id(place_type, entity.external_id)
            parent = None
            if place_type is not PlaceType.BUILDING:
                parent = self.repository.resolve_parent(entity)
                if parent is None:
                    stats.unresolved += 1
                    problem = UnresolvedParent(
                        place_type.value, entity.external_id, entity.parent_external_id
                    )
                    if existing is None:
                        logger.warning("create_skipped", **problem.to_dict())
                        continue
                    logger.warning("parent_link_kept", **problem.to_dict())
                    entity = replace(entity, parent_external_id=existing.parent_external_id)

            if existing is None:
                self.repository.create(entity, parent)
                stats.created += 1
            else:
                self.repository.update(existing, entity, parent)
                stats.updated += 1


def _first_seen(entities: list[PlaceEntity]) -> list[PlaceEntity]:
    seen: set[str] = set()
    unique: list[PlaceEntity] = []
    for entity in entities:
        if entity.external_id in seen:
            logger.warning(
                "duplicate_external_id",
                external_id=entity.external_id,
                place_type=entity.place_type.value,
            )
            continue
        seen.add(entity.external_id)
        unique.append(entity)
    return unique


__all__ = ["MirrorReconciler", "RefreshReport", "SyncStatus", "TypeSyncStats"]
