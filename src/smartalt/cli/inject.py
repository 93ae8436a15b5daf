"""smartalt inject / process: run the pipeline on one page or one document."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from smartalt.cli.common import DEFAULT_DB, cli_config, processor_for
from smartalt.cli.errors import (
    err_document_not_found,
    err_file_not_found,
    warn_ai_endpoint_missing,
    warn_circuit_open,
)
from smartalt.config import SmartAltConfig
from smartalt.errors import DocumentNotFoundError
from smartalt.pipeline.processor import AltTextProcessor, append_script

console = Console()


def inject_cmd(
    file: Annotated[Path, typer.Argument(help="HTML file to process ('-' for stdin).")],
    document_id: Annotated[
        Optional[int],
        typer.Option("--document-id", "-d", help="Stored document the page renders (for context)."),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the result here instead of stdout."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")] = DEFAULT_DB,
) -> None:
    """Add alt text to the images of a rendered HTML page."""
    if str(file) == "-":
        html = sys.stdin.read()
    elif file.exists():
        html = file.read_text(encoding="utf-8")
    else:
        console.print(err_file_not_found(str(file)))
        raise typer.Exit(1)

    cfg = cli_config()
    _warn_ai(cfg)
    conn, processor = processor_for(db, cfg)
    try:
        if cfg.injection_method == "client_script":
            result = append_script(html, processor.page_script(html, document_id))
        else:
            result = processor.inject_into_buffer(html, document_id)
        _warn_breaker(processor)
    finally:
        conn.close()

    if output is not None:
        output.write_text(result, encoding="utf-8")
        console.print(f"[green]✓[/] Written to {output}")
    else:
        typer.echo(result, nl=False)


def process_cmd(
    document_id: Annotated[int, typer.Argument(help="Document whose images should be processed.")],
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing alt text."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")] = DEFAULT_DB,
) -> None:
    """Generate and store alt text for one document's images (save hook)."""
    cfg = cli_config()
    _warn_ai(cfg)
    conn, processor = processor_for(db, cfg)
    try:
        summary = processor.process_document_save(document_id, force_update=force or None)
        _warn_breaker(processor)
    except DocumentNotFoundError:
        console.print(err_document_not_found(document_id))
        raise typer.Exit(1)
    finally:
        conn.close()

    if summary.ignored:
        console.print(f"[yellow]Skipped:[/] {summary.ignored}")
        return
    console.print(
        f"Document {document_id}: [bold]{summary.images}[/] images, "
        f"[green]{summary.updated} updated[/], {summary.skipped} skipped, "
        f"[red]{summary.errors} errors[/]"
    )


def _warn_ai(cfg: SmartAltConfig) -> None:
    if cfg.alt_source == "ai" and not cfg.ai.endpoint:
        console.print(warn_ai_endpoint_missing())


def _warn_breaker(processor: AltTextProcessor) -> None:
    if processor.client is not None and processor.client.breaker.is_open():
        console.print(warn_circuit_open(processor.client.breaker.failures))
