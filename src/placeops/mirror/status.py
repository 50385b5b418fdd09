"""Console status repository: command history, connection and module status."""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from placeops.mirror.tables import CommandHistoryTable, ConnectionStatusTable, ModuleStatusTable


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _as_dict(row: Any) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        data[column.key] = value.isoformat() if isinstance(value, datetime.datetime) else value
    return data


class StatusRepository:
    """CRUD for ``command_history``, ``connection_status`` and ``module_status``.

    Writes are committed immediately; status rows are independent of any
    refresh transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    # -- command history -------------------------------------------------------

    def add_command(
        self,
        command: str,
        *,
        output: str | None,
        error: str | None = None,
        succeeded: bool,
        duration_ms: float | None = None,
    ) -> dict[str, Any]:
        row = CommandHistoryTable(
            command=command,
            output=output,
            error=error or None,
            status="success" if succeeded else "error",
            duration_ms=int(duration_ms) if duration_ms is not None else None,
            executed_at=_utcnow(),
        )
        self.session.add(row)
        self.session.commit()
        return _as_dict(row)

    def list_commands(self, *, limit: int = 50, offset: int = 0) -> tuple[list[dict[str, Any]], int]:
        """Newest first.  Returns ``(rows, total)``."""
        total = self.session.scalar(select(func.count()).select_from(CommandHistoryTable)) or 0
        rows = self.session.scalars(
            select(CommandHistoryTable)
            .order_by(CommandHistoryTable.executed_at.desc(), CommandHistoryTable.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [_as_dict(row) for row in rows], total

    def clear_commands(self) -> int:
        result = self.session.execute(delete(CommandHistoryTable))
        self.session.commit()
        return result.rowcount or 0

    # -- connection status -----------------------------------------------------

    def get_connection(self, service_name: str) -> dict[str, Any] | None:
        row = self._connection_row(service_name)
        return _as_dict(row) if row else None

    def list_connections(self) -> list[dict[str, Any]]:
        rows = self.session.scalars(select(ConnectionStatusTable).order_by(ConnectionStatusTable.service_name))
        return [_as_dict(row) for row in rows]

    def upsert_connection(
        self,
        service_name: str,
        status: str,
        *,
        tenant: str | None = None,
        error_message: str | None = None,
    ) -> dict[str, Any]:
        row = self._connection_row(service_name)
        if row is None:
            row = ConnectionStatusTable(service_name=service_name, status=status)
            self.session.add(row)
        row.status = status
        row.error_message = error_message
        if tenant is not None:
            row.tenant = tenant
        if status == "connected":
            row.last_connected = _utcnow()
        self.session.commit()
        return _as_dict(row)

    def is_connected(self, service_name: str) -> bool:
        row = self._connection_row(service_name)
        return row is not None and row.status == "connected"

    def _connection_row(self, service_name: str) -> ConnectionStatusTable | None:
        return self.session.scalars(
            select(ConnectionStatusTable).where(ConnectionStatusTable.service_name == service_name)
        ).first()

    # -- module status ---------------------------------------------------------

    def list_modules(self) -> list[dict[str, Any]]:
        rows = self.session.scalars(select(ModuleStatusTable).order_by(ModuleStatusTable.module_name))
        return [_as_dict(row) for row in rows]

    def upsert_module(self, module_name: str, status: str, *, version: str | None = None) -> dict[str, Any]:
        row = self.session.scalars(
            select(ModuleStatusTable).where(ModuleStatusTable.module_name == module_name)
        ).first()
        if row is None:
            row = ModuleStatusTable(module_name=module_name, status=status)
            self.session.add(row)
        row.status = status
        row.version = version
        row.last_checked = _utcnow()
        self.session.commit()
        return _as_dict(row)


__all__ = ["StatusRepository"]
