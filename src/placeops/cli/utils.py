"""
CLI utility helpers: context construction and output formatting.

A CLI invocation is one short-lived process: it opens the mirror, builds
its own command channel, runs one operation and closes both.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from placeops.channel.channel import CommandChannel
from placeops.core.logging import configure_logging
from placeops.core.settings import PlaceOpsSettings, get_settings
from placeops.mirror.session import create_engine_for, init_schema, session_factory
from placeops.ops.context import OperationContext
from placeops.ops.result import OperationResult, PagedResult

console = Console()
err_console = Console(stderr=True)


# ── Context helpers ──────────────────────────────────────────────────────


def load_settings(database: str | None = None, **overrides: Any) -> PlaceOpsSettings:
    settings = get_settings()
    if database:
        overrides["database_url"] = database
    return settings.model_copy(update=overrides) if overrides else settings


@contextmanager
def make_context(
    settings: PlaceOpsSettings,
    *,
    channel: CommandChannel | None = None,
    dry_run: bool = False,
) -> Iterator[OperationContext]:
    """Yield an ``OperationContext`` over a fresh mirror session."""
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    engine = create_engine_for(settings.database_url)
    init_schema(engine)
    session = session_factory(engine)()
    try:
        yield OperationContext(
            session=session,
            channel=channel,
            settings=settings,
            caller="cli",
            dry_run=dry_run,
        )
    finally:
        session.close()
        engine.dispose()


def run_with_channel(
    settings: PlaceOpsSettings,
    body: Callable[[OperationContext], Awaitable[OperationResult[Any]]],
    *,
    dry_run: bool = False,
) -> OperationResult[Any]:
    """Run *body* with a channel that lives for this invocation only."""

    async def _main() -> OperationResult[Any]:
        async with CommandChannel.from_settings(settings) as channel:
            with make_context(settings, channel=channel, dry_run=dry_run) as ctx:
                return await body(ctx)

    return asyncio.run(_main())


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def fail(result: OperationResult[Any], *, as_json: bool = False) -> None:
    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        raise typer.Exit(code=1)
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    if err and err.requires_connection:
        err_console.print("[yellow]Reconnect the remote session and retry.[/yellow]")
    raise typer.Exit(code=1)


def print_warnings(result: OperationResult[Any]) -> None:
    for warning in result.warnings:
        err_console.print(f"[yellow]warning:[/yellow] {warning}")


def output_result(
    result: OperationResult[Any],
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        fail(result, as_json=as_json)

    data = result.data

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    print_warnings(result)
    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def output_paged(
    result: PagedResult[Any],
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render a ``PagedResult`` to the terminal with pagination info."""
    if not result.success:
        fail(result, as_json=as_json)

    items = result.data or []

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    _print_table(items, title=title)
    console.print(f"\n[dim]Showing {len(items)} of {result.total} (offset {result.offset})[/dim]")


def output_tree(result: OperationResult[dict[str, Any]], *, as_json: bool = False) -> None:
    """Render a hierarchy payload as a rich tree."""
    if not result.success:
        fail(result, as_json=as_json)
    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    print_warnings(result)
    roots = (result.data or {}).get("roots", [])
    if not roots:
        console.print("[dim]Mirror is empty. Run `placeops refresh` first.[/dim]")
        return
    tree = Tree("[bold]Places[/bold]")
    for node in roots:
        _add_node(tree, node)
    console.print(tree)


# ── Private helpers ──────────────────────────────────────────────────────


def _add_node(parent: Tree, node: dict[str, Any]) -> None:
    label = f"[cyan]{node['type']}[/cyan] {node['display_name']} [dim]({node['external_id']})[/dim]"
    if node.get("repaired"):
        label += " [yellow]repaired[/yellow]"
    branch = parent.add(label)
    for child in node.get("children", []):
        _add_node(branch, child)


def _print_table(items: list[Any], *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
