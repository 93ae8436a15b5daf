"""smartalt CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from smartalt.cli.bulk import bulk_app
from smartalt.cli.cache import cache_app
from smartalt.cli.init import init_cmd
from smartalt.cli.inject import inject_cmd, process_cmd
from smartalt.cli.log import log_app
from smartalt.cli.seed import import_cmd
from smartalt.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("smartalt")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"smartalt {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app = typer.Typer(
    name="smartalt",
    help=(
        "smartalt: automatic image alt text.\n\n"
        "  smartalt inject   Add alt attributes to a rendered page.\n"
        "  smartalt process  Store alt text for a document's images.\n"
        "  smartalt bulk     Backfill the whole library in chunks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging on stderr."),
    ] = False,
) -> None:
    """smartalt: automatic image alt text."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("import")(import_cmd)
app.command("inject")(inject_cmd)
app.command("process")(process_cmd)
app.command("status")(status_cmd)
app.add_typer(bulk_app, name="bulk")
app.add_typer(cache_app, name="cache")
app.add_typer(log_app, name="log")


@app.command("version")
def version_cmd() -> None:
    """Show the installed smartalt version."""
    typer.echo(f"smartalt {_installed_version()}")


if __name__ == "__main__":
    app()
