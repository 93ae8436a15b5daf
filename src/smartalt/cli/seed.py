"""smartalt import: seed documents and images from a YAML file.

File layout::

    documents:
      - id: 10
        kind: post            # post | page | product
        title: Garden Guide
        excerpt: ...
        content: "<p>...</p><img src='...'>"
        images:
          - url: https://example.com/rose-bush.jpg
            alt: ""
            featured: true
    images:                   # unattached uploads
      - url: https://example.com/logo.png
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console

from smartalt.cli.common import DEFAULT_DB
from smartalt.cli.errors import err_file_not_found, err_seed_file
from smartalt.db.models import DOCUMENT_KINDS, Document
from smartalt.db.repository import Repository
from smartalt.db.schema import open_db

console = Console()


def import_cmd(
    file: Annotated[Path, typer.Argument(help="YAML file with documents and images.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .smartalt.db.")] = DEFAULT_DB,
) -> None:
    """Load documents and images into the database."""
    if not file.exists():
        console.print(err_file_not_found(str(file)))
        raise typer.Exit(1)
    try:
        data = yaml.safe_load(file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        console.print(err_seed_file(str(file), str(exc)))
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print(err_seed_file(str(file), "top level is not a mapping"))
        raise typer.Exit(1)

    conn = open_db(db)
    repo = Repository(conn)
    try:
        documents, images = _seed(repo, data)
    except (KeyError, TypeError, ValueError, sqlite3.IntegrityError) as exc:
        console.print(err_seed_file(str(file), str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Imported {documents} documents and {images} images into {db}")


def _seed(repo: Repository, data: dict[str, Any]) -> tuple[int, int]:
    documents = 0
    images = 0
    for doc in data.get("documents") or []:
        kind = str(doc.get("kind", "post"))
        if kind not in DOCUMENT_KINDS:
            raise ValueError(f"document {doc.get('id')}: unknown kind '{kind}'")
        document_id = repo.add_document(Document(
            id=int(doc["id"]),
            kind=kind,
            title=str(doc.get("title") or ""),
            excerpt=str(doc.get("excerpt") or ""),
            content=str(doc.get("content") or ""),
        ))
        documents += 1
        for image in doc.get("images") or []:
            _add_image(repo, image, document_id)
            images += 1
    for image in data.get("images") or []:
        _add_image(repo, image, None)
        images += 1
    return documents, images


def _add_image(repo: Repository, image: dict[str, Any], parent_id: int | None) -> int:
    alt = image.get("alt")
    return repo.add_image(
        str(image["url"]),
        parent_id=parent_id,
        title=str(image.get("title") or ""),
        alt_text=str(alt) if alt is not None else None,
        featured=bool(image.get("featured", False)),
        image_id=int(image["id"]) if image.get("id") is not None else None,
    )
