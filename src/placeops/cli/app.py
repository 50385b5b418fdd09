"""
Root Typer application for the placeops CLI.

Commands:
    serve       start the HTTP API (uvicorn)
    refresh     connect and reconcile the local mirror
    hierarchy   print the mirrored Building → Floor → Section → Desk/Room tree
    exec        run one shell statement through a fresh command channel
    history     show recorded commands
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from placeops import __version__
from placeops.cli.utils import (
    console,
    load_settings,
    make_context,
    output_paged,
    output_result,
    output_tree,
    run_with_channel,
)

app = Typer(
    name="placeops",
    help="placeops: facilities directory console (buildings, floors, sections, desks, rooms).",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("placeops")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"placeops {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """placeops CLI: mirror and browse the facilities directory."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default from settings)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the placeops REST API server.

    One worker only: the command channel is a single shell process per
    server.
    """
    import uvicorn

    settings = load_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting placeops API[/bold green] on {host}:{port}")
    uvicorn.run(
        "placeops.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
        log_level=log_level,
    )


@app.command()
def refresh(
    tenant: str | None = typer.Option(None, "--tenant", "-t", help="UPN or organization domain"),
    connect: bool = typer.Option(True, "--connect/--no-connect", help="Run Connect-ExchangeOnline first"),
    database: str | None = typer.Option(None, "--database", "-d", help="Mirror database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Reconcile the local mirror against the remote directory.

    Each CLI run starts its own shell, so by default it connects first;
    ``--no-connect`` skips that (for shells whose profile already connects).
    """
    from placeops.ops.connections import connect_exchange
    from placeops.ops.places import refresh_mirror
    from placeops.ops.requests import ConnectRequest

    settings = load_settings(database, require_connection_for_refresh=connect)

    async def _body(ctx):
        if connect:
            connected = await connect_exchange(ctx, ConnectRequest(tenant=tenant))
            if not connected.success:
                return connected
        return await refresh_mirror(ctx)

    result = run_with_channel(settings, _body)
    if result.success and not json_out:
        totals = result.data["totals"]
        console.print(
            f"[bold green]Refreshed[/bold green] "
            f"created={totals['created']} updated={totals['updated']} "
            f"removed={totals['removed']} unresolved={totals['unresolved']}"
        )
    output_result(result, as_json=json_out, title="Refresh")


@app.command()
def hierarchy(
    database: str | None = typer.Option(None, "--database", "-d", help="Mirror database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Print the mirrored place tree."""
    from placeops.ops.places import get_hierarchy

    with make_context(load_settings(database)) as ctx:
        result = get_hierarchy(ctx)
    output_tree(result, as_json=json_out)


@app.command("exec")
def exec_command(
    command: str = typer.Argument(..., help="Shell statement to run"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds"),
    database: str | None = typer.Option(None, "--database", "-d", help="Mirror database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one statement in a fresh shell and print its output."""
    from placeops.ops.commands import execute_command
    from placeops.ops.requests import ExecuteCommandRequest

    settings = load_settings(database)
    result = run_with_channel(
        settings,
        lambda ctx: execute_command(ctx, ExecuteCommandRequest(command=command, timeout=timeout)),
    )
    if not result.success or json_out:
        output_result(result, as_json=json_out)
        return
    data = result.data
    if data["output"]:
        console.print(data["output"], markup=False, highlight=False)
    if data["error"]:
        console.print(f"[red]{data['error']}[/red]")
    if not data["succeeded"]:
        raise typer.Exit(code=2)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    clear: bool = typer.Option(False, "--clear", help="Delete the history instead of listing it"),
    database: str | None = typer.Option(None, "--database", "-d", help="Mirror database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the most recent commands."""
    from placeops.ops.commands import clear_history, get_history
    from placeops.ops.requests import HistoryRequest

    with make_context(load_settings(database)) as ctx:
        if clear:
            output_result(clear_history(ctx), as_json=json_out, title="History")
            return
        result = get_history(ctx, HistoryRequest(limit=limit, offset=offset))
    output_paged(result, as_json=json_out, title="Command history")
