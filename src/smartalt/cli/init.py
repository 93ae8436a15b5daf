"""smartalt init: create the database and starter configuration.

Creates:
  .smartalt.db              empty store with schema
  smartalt.yaml             commented project config (kept if present)
  ~/.smartalt/config.yaml   global defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from smartalt.config import PROJECT_CONFIG_NAME, ensure_global_config, write_project_config
from smartalt.db.schema import open_db

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
) -> None:
    """Initialize a smartalt project (database + smartalt.yaml)."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / ".smartalt.db"
    existed = db_path.exists()
    conn = open_db(db_path)
    conn.close()
    if existed:
        console.print(f"  [yellow]⚠[/] {db_path.name} already exists; schema checked, data preserved.")
    else:
        console.print(f"  [green]✓[/] {db_path.name}")

    config_path = project_dir / PROJECT_CONFIG_NAME
    if config_path.exists():
        console.print(f"  [dim]-[/] {PROJECT_CONFIG_NAME} kept")
    else:
        write_project_config(project_dir)
        console.print(f"  [green]✓[/] {PROJECT_CONFIG_NAME}")

    global_path = ensure_global_config()
    console.print(f"  [green]✓[/] {global_path}")

    console.print(
        "\n[bold green]Done.[/] Next steps:\n"
        "  smartalt import site.yaml      # seed documents and images\n"
        "  smartalt bulk run --dry-run    # preview generated alt text"
    )
