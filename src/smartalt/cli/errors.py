"""smartalt rich error messages.

Every message says what went wrong and the command or edit that fixes it.

Usage:
    from smartalt.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".smartalt.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  smartalt init"
    )


def err_config(detail: str) -> str:
    """Configuration failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix smartalt.yaml (or ~/.smartalt/config.yaml) and run the command again."
    )


def warn_ai_endpoint_missing() -> str:
    return (
        "[yellow]Warning:[/] alt_source is 'ai' but no AI endpoint is configured; heuristic text is used.\n"
        "  Set ai.endpoint in smartalt.yaml or:  export SMARTALT_AI_ENDPOINT=https://..."
    )


def err_document_not_found(document_id: int) -> str:
    return (
        f"[red]Error:[/] Document {document_id} is not in the database.\n"
        "  Seed it first:  smartalt import <file.yaml>"
    )


def err_job_not_found(job_id: str) -> str:
    return (
        f"[red]Error:[/] Bulk job '{job_id}' not found or expired (jobs expire after 1 hour).\n"
        "  Start a new one:  smartalt bulk start"
    )


def err_log_entry_not_found(log_id: int) -> str:
    return (
        f"[red]Error:[/] No change-log entry with id {log_id}.\n"
        "  Run:  smartalt log list  to see recent entries."
    )


def err_revert(detail: str) -> str:
    return (
        f"[red]Error:[/] Cannot revert: {detail}\n"
        "  Only entries with an image and a recorded previous value can be reverted."
    )


def err_seed_file(path: str, detail: str) -> str:
    """Seed YAML unreadable or malformed."""
    return (
        f"[red]Error:[/] Cannot import '{path}': {detail}\n"
        "  Expected a mapping with 'documents' and/or 'images' lists."
    )


def err_file_not_found(path: str) -> str:
    return f"[red]Error:[/] File not found: '{path}'"


def warn_circuit_open(failures: int) -> str:
    return (
        f"[yellow]Warning:[/] AI circuit breaker is open ({failures} consecutive failures).\n"
        "  Heuristic alt text is used until the 30 minute cooldown lapses."
    )


def err_ai_connection(detail: str) -> str:
    return (
        f"[red]Error:[/] AI connection test failed: {detail}\n"
        "  Check ai.endpoint and the SMARTALT_AI_KEY value, then run:  smartalt status --check-ai"
    )
