"""smartalt status: configuration, image coverage, AI breaker and log totals."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from smartalt.ai.breaker import CircuitBreaker
from smartalt.ai.client import AiBatchClient
from smartalt.audit.changelog import ChangeLog
from smartalt.cli.common import DEFAULT_DB, cli_config
from smartalt.cli.errors import err_ai_connection, err_config
from smartalt.config import SmartAltConfig
from smartalt.db.repository import Repository
from smartalt.db.schema import open_db
from smartalt.db.transients import TransientStore
from smartalt.errors import ConfigError

console = Console()


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")] = DEFAULT_DB,
    check_ai: Annotated[
        bool,
        typer.Option("--check-ai", help="Send one sample request to the AI endpoint."),
    ] = False,
) -> None:
    """Show configuration and database status."""
    cfg = cli_config()
    _show_config_panel(cfg)
    if check_ai:
        _check_ai_connection(cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  smartalt init",
                title="[bold]Images[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        total, with_alt = repo.count_images()
        coverage = (with_alt / total * 100) if total else 100.0
        console.print(
            Panel(
                f"Images: [bold]{total}[/]  |  With alt: [bold]{with_alt}[/]  |  "
                f"Missing: [bold]{total - with_alt}[/]  |  Coverage: [bold]{coverage:.1f}%[/]",
                title="[bold]Images[/]",
                expand=False,
            )
        )

        breaker = CircuitBreaker(TransientStore(conn), cfg.ai.model_name)
        if breaker.is_open():
            state = f"[red]open[/] ({breaker.failures} consecutive failures)"
        else:
            state = f"[green]closed[/] ({breaker.failures} recent failures)"
        stats = ChangeLog(conn, cfg.logging, repo).stats()
        console.print(
            Panel(
                f"Circuit breaker: {state}\n"
                f"Log entries: [bold]{stats.total}[/]  |  Errors: [red]{stats.errors}[/]  |  "
                f"AI generated: [bold]{stats.ai_generated}[/]\n"
                f"Last activity: [dim]{stats.last_run or 'never'}[/]",
                title="[bold]AI & Log[/]",
                expand=False,
            )
        )
    finally:
        conn.close()


def _show_config_panel(cfg: SmartAltConfig) -> None:
    lines = [
        f"Enabled:     {'[green]yes[/]' if cfg.enabled else '[red]no[/]'}",
        f"Alt source:  [bold]{cfg.alt_source}[/]",
        f"Injection:   {cfg.injection_method}",
        f"Max length:  {cfg.max_alt_length}",
        f"Force:       {cfg.force_update}",
        f"Bulk:        {cfg.bulk.scope}, chunks of {cfg.bulk.batch_size}",
        f"Logging:     {cfg.logging.level if cfg.logging.enabled else 'off'}, "
        f"{cfg.logging.retention_days} days",
    ]
    if cfg.alt_source == "ai":
        endpoint = cfg.ai.endpoint or "[yellow](not set)[/]"
        key = "[green]set[/]" if cfg.ai.key else "[dim]none[/]"
        lines.append(f"AI endpoint: {endpoint} ({cfg.ai.method}, key {key})")
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _check_ai_connection(cfg: SmartAltConfig) -> None:
    """Print the result of a sample AI request; exit 1 when it fails."""
    conn = open_db(":memory:")
    try:
        client = AiBatchClient(cfg.ai, CircuitBreaker(TransientStore(conn), cfg.ai.model_name))
        check = client.test_connection()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    if not check.ok:
        console.print(err_ai_connection(check.message))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] {check.message}")
