"""Resumable bulk processing over a snapshot of candidate images.

A job is a small JSON document in the transient store (one hour TTL). Each
``process_next_chunk`` call handles one fixed-size slice of the snapshot, so
long runs are spread across many short invocations (CLI loop, cron tick or
polling client) instead of one long one.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from smartalt.audit.changelog import LogEntry
from smartalt.config import BULK_SCOPES
from smartalt.errors import JobNotFoundError
from smartalt.pipeline.processor import AltTextProcessor

logger = logging.getLogger(__name__)

JOB_TTL_SECONDS = 60 * 60
PREVIEW_SIZE = 10


@dataclass(frozen=True)
class PreviewRow:
    image_id: int
    old_alt: str
    new_alt: str


@dataclass(frozen=True)
class BulkProgress:
    job_id: str
    total: int
    processed: int
    errors: int
    complete: bool
    dry_run: bool = False
    preview: list[PreviewRow] = field(default_factory=list)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(self.processed / self.total * 100, 1)


class BulkOrchestrator:
    """Start, advance and inspect bulk jobs."""

    def __init__(
        self,
        processor: AltTextProcessor,
        chunk_size: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._processor = processor
        self._transients = processor.transients
        self._chunk_size = chunk_size or processor.config.bulk.batch_size
        self._clock = clock

    def start_job(
        self,
        scope: str | None = None,
        force_update: bool = False,
        dry_run: bool = False,
    ) -> str:
        """Snapshot the candidates for *scope* and return a new job id.

        Raises:
            ValueError: Unknown scope.
        """
        scope = scope or self._processor.config.bulk.scope
        if scope not in BULK_SCOPES:
            raise ValueError(f"Unknown bulk scope '{scope}'. Use one of: {', '.join(BULK_SCOPES)}.")

        candidates = self._processor.storage.list_candidate_images(scope, include_with_alt=force_update)
        job_id = f"bulk_{uuid.uuid4().hex}"
        state: dict[str, Any] = {
            "total": len(candidates),
            "processed": 0,
            "errors": 0,
            "candidates": candidates,
            "cursor": 0,
            "scope": scope,
            "force_update": force_update,
            "dry_run": dry_run,
            "started_at": self._clock(),
            "complete": False,
            "preview": [],
        }
        if dry_run:
            state["preview"] = [self._preview_row(image_id) for image_id in candidates[:PREVIEW_SIZE]]
        self._save(job_id, state)

        logger.info("Bulk job %s started: %d candidates (scope=%s)", job_id, len(candidates), scope)
        self._processor.changelog.record(LogEntry(
            source="system",
            message=(
                f"Bulk job {job_id} started: {len(candidates)} images, scope {scope}"
                + (", dry run" if dry_run else "")
            ),
        ))
        return job_id

    def process_next_chunk(self, job_id: str) -> BulkProgress:
        """Process the next slice of the job's snapshot.

        The chunk that reaches the end of the snapshot marks the job complete
        and deletes its state; later calls raise JobNotFoundError.
        """
        state = self._load(job_id)
        candidates: list[int] = state["candidates"]
        start = state["cursor"] * self._chunk_size
        chunk = candidates[start:start + self._chunk_size]

        for image_id in chunk:
            if not state["dry_run"]:
                try:
                    self._processor.process_image(image_id, force_update=state["force_update"])
                except Exception as exc:
                    state["errors"] += 1
                    logger.exception("Bulk job %s: image %d failed: %s", job_id, image_id, exc)
                    self._processor.changelog.record(LogEntry(
                        image_id=image_id, source="system",
                        status="error", severity="error", message=str(exc),
                    ))
            state["processed"] += 1

        state["cursor"] += 1
        if start + self._chunk_size >= len(candidates):
            state["complete"] = True
            self._transients.delete(_key(job_id))
            logger.info(
                "Bulk job %s complete: %d processed, %d errors",
                job_id, state["processed"], state["errors"],
            )
            self._processor.changelog.record(LogEntry(
                source="system",
                message=f"Bulk job {job_id} complete: {state['processed']} processed, {state['errors']} errors",
            ))
        else:
            self._save(job_id, state)
        return _progress(job_id, state)

    def get_progress(self, job_id: str) -> BulkProgress:
        return _progress(job_id, self._load(job_id))

    def run(self, job_id: str, on_chunk: Callable[[BulkProgress], None] | None = None) -> BulkProgress:
        """Process chunks until the job completes."""
        while True:
            progress = self.process_next_chunk(job_id)
            if on_chunk is not None:
                on_chunk(progress)
            if progress.complete:
                return progress

    def cancel(self, job_id: str) -> None:
        self._transients.delete(_key(job_id))

    def _preview_row(self, image_id: int) -> dict[str, Any]:
        old_alt, new_alt = self._processor.preview_image(image_id)
        return {"image_id": image_id, "old_alt": old_alt, "new_alt": new_alt}

    def _load(self, job_id: str) -> dict[str, Any]:
        state = self._transients.get(_key(job_id))
        if state is None:
            raise JobNotFoundError(f"Bulk job '{job_id}' not found or expired.")
        return state

    def _save(self, job_id: str, state: dict[str, Any]) -> None:
        self._transients.set(_key(job_id), state, ttl=JOB_TTL_SECONDS)


def _key(job_id: str) -> str:
    return f"smartalt_job_{job_id}"


def _progress(job_id: str, state: dict[str, Any]) -> BulkProgress:
    return BulkProgress(
        job_id=job_id,
        total=state["total"],
        processed=state["processed"],
        errors=state["errors"],
        complete=state["complete"],
        dry_run=state["dry_run"],
        preview=[PreviewRow(**row) for row in state["preview"]],
    )
