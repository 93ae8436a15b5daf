"""smartalt bulk commands.

Commands:
  smartalt bulk start      snapshot candidates, print the job id
  smartalt bulk next ID    process one chunk
  smartalt bulk progress ID
  smartalt bulk run        start a job and process it to completion
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from smartalt.bulk.orchestrator import BulkOrchestrator, BulkProgress
from smartalt.cli.common import DEFAULT_DB, processor_for
from smartalt.cli.errors import err_job_not_found
from smartalt.errors import JobNotFoundError

console = Console()

bulk_app = typer.Typer(
    name="bulk",
    help="Process many images in resumable chunks.",
    add_completion=False,
)

_DbOption = Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")]
_ScopeOption = Annotated[
    Optional[str],
    typer.Option("--scope", help="all | attached_only | attached_products (default from config)."),
]
_ForceOption = Annotated[bool, typer.Option("--force", help="Include images that already have alt text.")]
_DryRunOption = Annotated[bool, typer.Option("--dry-run", help="Preview only, change nothing.")]


@bulk_app.command("start")
def bulk_start_cmd(
    scope: _ScopeOption = None,
    force: _ForceOption = False,
    dry_run: _DryRunOption = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Start a bulk job and print its id."""
    conn, processor = processor_for(db)
    try:
        orchestrator = BulkOrchestrator(processor)
        job_id = _start(orchestrator, scope, force, dry_run)
        progress = orchestrator.get_progress(job_id)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Started {job_id} ({progress.total} images)")
    _print_preview(progress)


@bulk_app.command("next")
def bulk_next_cmd(
    job_id: Annotated[str, typer.Argument(help="Job id from 'smartalt bulk start'.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Process the next chunk of a job."""
    conn, processor = processor_for(db)
    try:
        progress = BulkOrchestrator(processor).process_next_chunk(job_id)
    except JobNotFoundError:
        console.print(err_job_not_found(job_id))
        raise typer.Exit(1)
    finally:
        conn.close()
    _print_progress(progress)


@bulk_app.command("progress")
def bulk_progress_cmd(
    job_id: Annotated[str, typer.Argument(help="Job id from 'smartalt bulk start'.")],
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Show a job's progress."""
    conn, processor = processor_for(db)
    try:
        progress = BulkOrchestrator(processor).get_progress(job_id)
    except JobNotFoundError:
        console.print(err_job_not_found(job_id))
        raise typer.Exit(1)
    finally:
        conn.close()
    _print_progress(progress)


@bulk_app.command("run")
def bulk_run_cmd(
    scope: _ScopeOption = None,
    force: _ForceOption = False,
    dry_run: _DryRunOption = False,
    db: _DbOption = DEFAULT_DB,
) -> None:
    """Start a job and process every chunk."""
    conn, processor = processor_for(db)
    try:
        orchestrator = BulkOrchestrator(processor)
        job_id = _start(orchestrator, scope, force, dry_run)
        total = orchestrator.get_progress(job_id).total
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as bar:
            task = bar.add_task(job_id, total=total or 1)
            final = orchestrator.run(job_id, on_chunk=lambda p: bar.update(task, completed=p.processed))
    finally:
        conn.close()
    _print_progress(final)
    _print_preview(final)


def _start(orchestrator: BulkOrchestrator, scope: str | None, force: bool, dry_run: bool) -> str:
    try:
        return orchestrator.start_job(scope, force_update=force, dry_run=dry_run)
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)


def _print_progress(progress: BulkProgress) -> None:
    state = "[green]complete[/]" if progress.complete else "[yellow]running[/]"
    console.print(
        f"{progress.job_id}: {progress.processed}/{progress.total} "
        f"({progress.percent:.1f}%), {progress.errors} errors, {state}"
        + (" [dim](dry run)[/]" if progress.dry_run else "")
    )


def _print_preview(progress: BulkProgress) -> None:
    if not progress.preview:
        return
    table = Table(title="Preview", show_header=True, header_style="bold")
    table.add_column("Image", justify="right")
    table.add_column("Current alt", style="dim")
    table.add_column("New alt")
    for row in progress.preview:
        table.add_row(str(row.image_id), row.old_alt or "(empty)", row.new_alt or "(none)")
    console.print(table)
