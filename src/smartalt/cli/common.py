"""Helpers shared by the smartalt commands: config, database and pipeline wiring."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from smartalt.cli.errors import err_config, err_no_db
from smartalt.config import SmartAltConfig, load_config
from smartalt.db.schema import open_db
from smartalt.errors import ConfigError
from smartalt.pipeline.processor import AltTextProcessor, build_processor

console = Console()

DEFAULT_DB = Path(".smartalt.db")


def cli_config() -> SmartAltConfig:
    """load_config() with validation errors turned into a message and exit 1."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def connect(db: Path) -> sqlite3.Connection:
    """Open an existing database; exit 1 with a hint when it is missing."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    return open_db(db)


def processor_for(db: Path, cfg: SmartAltConfig | None = None) -> tuple[sqlite3.Connection, AltTextProcessor]:
    cfg = cfg or cli_config()
    conn = connect(db)
    return conn, build_processor(cfg, conn)
