"""smartalt cache commands.

Commands:
  smartalt cache clear         forget which images carry fresh AI text
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from smartalt.audit.changelog import ChangeLog, LogEntry
from smartalt.cli.common import DEFAULT_DB, cli_config, connect
from smartalt.db.repository import Repository

console = Console()

cache_app = typer.Typer(
    name="cache",
    help="Manage the AI result cache.",
    add_completion=False,
)


@cache_app.command("clear")
def cache_clear_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")] = DEFAULT_DB,
) -> None:
    """Drop AI cache metadata so forced runs regenerate every image."""
    cfg = cli_config()
    conn = connect(db)
    try:
        repo = Repository(conn)
        cleared = repo.clear_ai_caches()
        ChangeLog(conn, cfg.logging, repo).record(LogEntry(
            source="system", status="success",
            message=f"AI caches cleared from cli ({cleared} images)",
        ))
    finally:
        conn.close()
    console.print(f"[green]✓[/] Cleared AI cache for {cleared} images")
