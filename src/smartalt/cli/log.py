"""smartalt log commands.

Commands:
  smartalt log list            recent change-log entries (filterable)
  smartalt log revert ID       restore the alt text an entry replaced
  smartalt log prune           delete old entries and expired cache keys
  smartalt log stats           totals, errors, AI-generated count
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from smartalt.audit.changelog import ChangeLog
from smartalt.cli.common import DEFAULT_DB, cli_config, connect
from smartalt.cli.errors import err_log_entry_not_found, err_revert
from smartalt.db.repository import Repository
from smartalt.db.transients import TransientStore
from smartalt.errors import LogEntryNotFoundError, RevertError

console = Console()

log_app = typer.Typer(
    name="log",
    help="Inspect, revert and prune the alt-text change log.",
    add_completion=False,
)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")]


def _changelog(db: Path):
    cfg = cli_config()
    conn = connect(db)
    return conn, ChangeLog(conn, cfg.logging, Repository(conn))


@log_app.command("list")
def log_list_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Entries to show.")] = 20,
    offset: Annotated[int, typer.Option("--offset", help="Entries to skip.")] = 0,
    image: Annotated[Optional[int], typer.Option("--image", help="Only this image id.")] = None,
    document: Annotated[Optional[int], typer.Option("--document", help="Only this document id.")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="success | error | skipped.")] = None,
    source: Annotated[Optional[str], typer.Option("--source", help="heuristic | ai | ai-fallback | ...")] = None,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """List change-log entries, newest first."""
    conn, changelog = _changelog(db)
    try:
        entries = changelog.list(
            limit=limit, offset=offset, image_id=image, document_id=document, status=status, source=source
        )
    finally:
        conn.close()

    if not entries:
        console.print("[dim]No log entries.[/]")
        return

    table = Table(title="Alt-text change log", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Time", style="dim")
    table.add_column("Image", justify="right")
    table.add_column("Doc", justify="right")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Old → New")
    table.add_column("Message", style="dim")

    colours = {"success": "green", "error": "red", "skipped": "yellow"}
    for e in entries:
        colour = colours.get(e.status, "white")
        change = ""
        if e.new_alt is not None:
            change = f"{e.old_alt or '(empty)'} → {e.new_alt or '(empty)'}"
        table.add_row(
            str(e.id),
            e.time or "",
            str(e.image_id) if e.image_id is not None else "-",
            str(e.document_id) if e.document_id is not None else "-",
            e.source,
            f"[{colour}]{e.status}[/]",
            change,
            e.message or "",
        )
    console.print(table)


@log_app.command("revert")
def log_revert_cmd(
    log_id: Annotated[int, typer.Argument(help="Change-log entry to revert.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Restore the alt text a change-log entry replaced."""
    conn, changelog = _changelog(db)
    try:
        entry = changelog.revert(log_id, actor="cli")
    except LogEntryNotFoundError:
        console.print(err_log_entry_not_found(log_id))
        raise typer.Exit(1)
    except RevertError as exc:
        console.print(err_revert(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    restored = entry.new_alt or "(removed)"
    console.print(f"[green]✓[/] Image {entry.image_id} alt text restored: {restored}")


@log_app.command("prune")
def log_prune_cmd(
    days: Annotated[
        Optional[int],
        typer.Option("--days", help="Retention in days (default: logging.retention_days)."),
    ] = None,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Delete entries older than the retention window and expired cache keys."""
    conn, changelog = _changelog(db)
    try:
        removed = changelog.prune(days)
        purged = TransientStore(conn).purge_expired()
    finally:
        conn.close()
    console.print(f"[green]✓[/] Removed {removed} old entries and {purged} expired cache keys")


@log_app.command("stats")
def log_stats_cmd(db: _DbOption = DEFAULT_DB) -> None:
    """Show change-log totals."""
    conn, changelog = _changelog(db)
    try:
        stats = changelog.stats()
    finally:
        conn.close()
    console.print(
        f"Entries: [bold]{stats.total}[/]  |  Errors: [red]{stats.errors}[/]  |  "
        f"AI generated: [bold]{stats.ai_generated}[/]  |  Last: [dim]{stats.last_run or 'never'}[/]"
    )
