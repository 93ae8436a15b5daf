"""Alt-text pipeline entry points for the render path and storage hooks.

``inject_into_buffer`` runs on every page render and must never break the
page: any unexpected error returns the buffer untouched. The save and upload
hooks (``process_document_save``, ``process_attachment``) persist canonical
alt text through the host storage's conditional write and log every outcome.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from smartalt.ai.breaker import CircuitBreaker
from smartalt.ai.client import AiBatchClient
from smartalt.audit.changelog import ChangeLog, LogEntry
from smartalt.config import SmartAltConfig
from smartalt.db.base import HostStorage
from smartalt.db.models import CanonicalImage, DocumentContext
from smartalt.db.repository import Repository
from smartalt.db.transients import TransientStore
from smartalt.errors import DocumentNotFoundError, ImageNotFoundError
from smartalt.html.context import page_context_from_html
from smartalt.html.extractor import ImageReference, extract_images
from smartalt.html.injector import inject_alts
from smartalt.pipeline.decision import (
    SKIP_HAS_ALT,
    Decision,
    DecisionBatch,
    DecisionEngine,
    GenerationPolicy,
    reference_for,
)
from smartalt.pipeline.heuristic import heuristic_alt

logger = logging.getLogger(__name__)

MIN_BUFFER_LENGTH = 100
SAVE_DEDUP_SECONDS = 1
AI_PREVIEW_TEXT = "(AI generated)"
SKIP_CACHED = "AI alt text cached and still fresh"
SKIP_UNATTACHED = "inline image is not in the media library; not persisted"


@dataclass
class DocumentSaveSummary:
    document_id: int
    images: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    ignored: str | None = None


class AltTextProcessor:
    """Per-document alt-text processing against one host storage."""

    def __init__(
        self,
        config: SmartAltConfig,
        storage: HostStorage,
        transients: TransientStore,
        changelog: ChangeLog,
        client: AiBatchClient | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.transients = transients
        self.changelog = changelog
        self.client = client
        self._in_progress: set[int] = set()

    def engine(self, force_update: bool | None = None) -> DecisionEngine:
        return DecisionEngine(GenerationPolicy.from_config(self.config, force_update), self.client)

    # ------------------------------------------------------------------
    # Render path
    # ------------------------------------------------------------------

    def inject_into_buffer(
        self,
        html: str,
        document_id: int | None = None,
        context: DocumentContext | None = None,
    ) -> str:
        """Return *html* with generated alt attributes applied.

        Images that already carry non-empty alt text are left alone unless
        ``force_update`` is set, so a second pass over the output is a no-op.
        """
        if not self.config.enabled or self.config.injection_method != "server_buffer":
            return html
        if len(html) < MIN_BUFFER_LENGTH:
            return html
        try:
            targets, alts = self._resolve_page(html, document_id, context)
            if not alts:
                return html
            return inject_alts(html, targets, alts)
        except Exception:
            logger.exception("Alt-text injection failed; page served unmodified")
            return html

    def page_script(
        self,
        html: str,
        document_id: int | None = None,
        context: DocumentContext | None = None,
    ) -> str:
        """Client-side counterpart of inject_into_buffer: a ``<script>`` applying the alts."""
        if not self.config.enabled:
            return ""
        try:
            _, alts = self._resolve_page(html, document_id, context)
        except Exception:
            logger.exception("Alt-text resolution for client script failed")
            return ""
        return client_script(alts) if alts else ""

    def _resolve_page(
        self,
        html: str,
        document_id: int | None,
        context: DocumentContext | None,
    ) -> tuple[list[ImageReference], dict[str, str]]:
        images = extract_images(html)
        engine = self.engine()
        targets: list[ImageReference] = []
        for image in images:
            if engine.should_process(image):
                targets.append(image)
                continue
            self._log(LogEntry(
                document_id=document_id, old_alt=image.current_alt,
                source="system", status="skipped", severity="debug",
                message=SKIP_HAS_ALT,
            ))
        if not targets:
            return [], {}

        alts: dict[str, str] = {}
        undecided: list[ImageReference] = []
        for image in targets:
            image_id = self.storage.find_image_by_url(image.source_url, document_id)
            stored = self.storage.get_image_alt_text(image_id) if image_id is not None else ""
            if stored and not engine.policy.force_update:
                alts.setdefault(image.source_url, stored)
                self._log(LogEntry(
                    image_id=image_id, document_id=document_id,
                    old_alt=image.current_alt, new_alt=stored,
                    source="system", severity="debug",
                    message="stored alt text applied at render",
                ))
            else:
                undecided.append(image)

        if undecided:
            context = context or self._context_for_document(document_id) or page_context_from_html(html)
            batch = engine.decide_batch(undecided, context, image_count=len(images))
            self._log_ai_failure(batch.ai_failure, document_id=document_id)
            for image, decision in zip(undecided, batch.decisions):
                self._log(_entry_for(decision, None, document_id, image.current_alt, severity="debug"))
            for url, text in batch.alts(undecided).items():
                alts.setdefault(url, text)
        return targets, alts

    def _context_for_document(self, document_id: int | None) -> DocumentContext | None:
        if document_id is None:
            return None
        return self.storage.get_document_context(document_id)

    # ------------------------------------------------------------------
    # Storage hooks
    # ------------------------------------------------------------------

    def process_document_save(
        self, document_id: int, force_update: bool | None = None
    ) -> DocumentSaveSummary:
        """Generate and store alt text for every image belonging to a document.

        Attached images come first (featured image leading), then inline
        images resolved by URL. Inline images with no stored counterpart get
        a decision and a log entry but nothing is persisted.

        Raises:
            DocumentNotFoundError: The storage has no such document.
        """
        summary = DocumentSaveSummary(document_id=document_id)
        if not self.config.enabled:
            summary.ignored = "disabled"
            return summary
        if document_id in self._in_progress:
            summary.ignored = "already in progress"
            return summary

        context = self.storage.get_document_context(document_id)
        if context is None:
            raise DocumentNotFoundError(f"No document with id {document_id}.")

        image_ids = list(self.storage.get_attached_images(document_id))
        unattached: list[ImageReference] = []
        for inline in extract_images(context.content):
            image_id = self.storage.find_image_by_url(inline.source_url, document_id)
            if image_id is None:
                if all(u.source_url != inline.source_url for u in unattached):
                    unattached.append(inline)
            elif image_id not in image_ids:
                image_ids.append(image_id)

        dedup_key = _save_dedup_key(document_id, image_ids, unattached)
        if self.transients.get(dedup_key):
            summary.ignored = "duplicate save"
            return summary
        self.transients.set(dedup_key, True, ttl=SAVE_DEDUP_SECONDS)

        self._in_progress.add(document_id)
        try:
            self._process_document_images(document_id, context, image_ids, unattached, force_update, summary)
        finally:
            self._in_progress.discard(document_id)
        logger.info(
            "Document %d: %d images, %d updated, %d skipped, %d errors",
            document_id, summary.images, summary.updated, summary.skipped, summary.errors,
        )
        return summary

    def _process_document_images(
        self,
        document_id: int,
        context: DocumentContext,
        image_ids: Sequence[int],
        unattached: Sequence[ImageReference],
        force_update: bool | None,
        summary: DocumentSaveSummary,
    ) -> None:
        engine = self.engine(force_update)
        stored: list[CanonicalImage] = []
        for image_id in image_ids:
            image = self.storage.get_image(image_id)
            if image is not None:
                stored.append(image)
        total = len(stored) + len(unattached)
        summary.images = total

        decide: list[tuple[CanonicalImage | None, ImageReference]] = []
        for position, image in enumerate(stored):
            if engine.policy.force_update and self._ai_cache_fresh(image):
                summary.skipped += 1
                self._log(LogEntry(
                    image_id=image.id, document_id=document_id,
                    old_alt=image.stored_alt_text, source="system",
                    status="skipped", message=SKIP_CACHED,
                ))
                continue
            decide.append((image, reference_for(image, position)))
        for offset, inline in enumerate(unattached):
            position = len(stored) + offset
            decide.append((None, ImageReference(
                source_url=inline.source_url,
                current_alt=inline.current_alt,
                has_alt_attribute=inline.has_alt_attribute,
                raw=inline.raw,
                position=position,
            )))
        if not decide:
            return

        batch: DecisionBatch = engine.decide_batch([ref for _, ref in decide], context, image_count=total)
        self._log_ai_failure(batch.ai_failure, document_id=document_id)

        for (image, ref), decision in zip(decide, batch.decisions):
            if image is None:
                summary.skipped += 1
                entry = _entry_for(decision, None, document_id, ref.current_alt)
                if decision.changed:
                    entry = LogEntry(
                        document_id=document_id, old_alt=ref.current_alt, new_alt=decision.text,
                        source=decision.source, model=decision.model,
                        status="skipped", message=SKIP_UNATTACHED,
                    )
                self._log(entry)
                continue
            try:
                changed = self._apply(image, document_id, decision, engine.policy.force_update)
            except sqlite3.Error as exc:
                summary.errors += 1
                logger.error("Storing alt text for image %d failed: %s", image.id, exc)
                self._log(LogEntry(
                    image_id=image.id, document_id=document_id,
                    old_alt=image.stored_alt_text, new_alt=decision.text or None,
                    source=decision.source, model=decision.model,
                    status="error", severity="error", message=str(exc),
                ))
                continue
            if changed:
                summary.updated += 1
            else:
                summary.skipped += 1

    def process_attachment(self, image_id: int) -> Decision | None:
        """Upload hook: fill in alt text for a newly attached image.

        Returns None when the image is unattached, already described, or the
        pipeline is disabled.
        """
        if not self.config.enabled:
            return None
        image = self.storage.get_image(image_id)
        if image is None or image.parent_id is None or image.has_alt:
            return None
        return self.process_image(image_id)

    def process_image(self, image_id: int, force_update: bool | None = None) -> Decision:
        """Decide and store alt text for one canonical image (bulk and admin flows).

        Raises:
            ImageNotFoundError: The storage has no such image.
        """
        image = self.storage.get_image(image_id)
        if image is None:
            raise ImageNotFoundError(f"No image with id {image_id}.")
        engine = self.engine(force_update)

        if engine.policy.force_update and self._ai_cache_fresh(image):
            decision = Decision(status="skipped", source="system", reason=SKIP_CACHED)
            self._log(_entry_for(decision, image.id, image.parent_id, image.stored_alt_text))
            return decision

        context, position, count = self._image_context(image)
        decision, failure = engine.decide_one(reference_for(image, position), context, count)
        self._log_ai_failure(failure, image_id=image.id, document_id=image.parent_id)
        self._apply(image, image.parent_id, decision, engine.policy.force_update)
        return decision

    def preview_image(self, image_id: int) -> tuple[str, str]:
        """Would-be ``(old, new)`` alt text for a dry run; never calls the AI provider."""
        image = self.storage.get_image(image_id)
        if image is None:
            raise ImageNotFoundError(f"No image with id {image_id}.")
        if self.config.alt_source == "ai":
            return image.stored_alt_text, AI_PREVIEW_TEXT
        context, position, count = self._image_context(image)
        return image.stored_alt_text, heuristic_alt(
            context, image.url, position, count, self.config.max_alt_length
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _image_context(self, image: CanonicalImage) -> tuple[DocumentContext, int, int]:
        """Page context, position and page image count for a stored image."""
        if image.parent_id is not None:
            context = self.storage.get_document_context(image.parent_id)
            siblings = self.storage.get_attached_images(image.parent_id)
            if context is not None:
                position = siblings.index(image.id) if image.id in siblings else 0
                return context, position, max(len(siblings), 1)
        return DocumentContext(title=image.title), 0, 1

    def _ai_cache_fresh(self, image: CanonicalImage) -> bool:
        if not self.config.cache.ai_results or self.config.alt_source != "ai" or not image.has_alt:
            return False
        return self.storage.get_ai_cache(image.id, self.config.cache.ai_ttl_days) is not None

    def _apply(
        self,
        image: CanonicalImage,
        document_id: int | None,
        decision: Decision,
        force_update: bool,
    ) -> bool:
        """Persist a successful decision and log the outcome. Returns True if stored."""
        old_alt = image.stored_alt_text
        if not decision.changed:
            self._log(_entry_for(decision, image.id, document_id, old_alt))
            return False

        if not self.storage.set_image_alt_text(image.id, decision.text, force=force_update):
            self._log(LogEntry(
                image_id=image.id, document_id=document_id,
                old_alt=old_alt, new_alt=decision.text,
                source=decision.source, model=decision.model,
                status="skipped", message="alt text set concurrently; not overwritten",
            ))
            return False

        if decision.source == "ai" and self.config.cache.ai_results and decision.model:
            self.storage.set_ai_cache(image.id, decision.model)
        self._log(_entry_for(decision, image.id, document_id, old_alt))
        return True

    def _log(self, entry: LogEntry) -> None:
        self.changelog.record(entry)

    def _log_ai_failure(
        self,
        failure: str | None,
        *,
        image_id: int | None = None,
        document_id: int | None = None,
        severity: str = "error",
    ) -> None:
        if failure is None:
            return
        self._log(LogEntry(
            image_id=image_id, document_id=document_id,
            source="ai-fallback", model=self.client.model_name if self.client else None,
            status="error", severity=severity,
            message=f"AI generation failed, heuristic used: {failure}",
        ))


def _entry_for(
    decision: Decision,
    image_id: int | None,
    document_id: int | None,
    old_alt: str,
    severity: str = "info",
) -> LogEntry:
    if decision.changed:
        return LogEntry(
            image_id=image_id, document_id=document_id,
            old_alt=old_alt, new_alt=decision.text,
            source=decision.source, model=decision.model,
            status="success", severity=severity,
        )
    return LogEntry(
        image_id=image_id, document_id=document_id,
        old_alt=old_alt, source=decision.source, model=decision.model,
        status=decision.status, severity=severity, message=decision.reason,
    )


def _save_dedup_key(
    document_id: int, image_ids: Sequence[int], unattached: Sequence[ImageReference]
) -> str:
    payload = json.dumps([document_id, list(image_ids), [i.source_url for i in unattached]])
    digest = hashlib.md5(payload.encode("utf-8")).hexdigest()
    return f"smartalt_save_{document_id}_{digest}"


def client_script(alts: Mapping[str, str]) -> str:
    """``<script>`` that sets alt text from a ``{src: alt}`` map on images lacking one."""
    data = json.dumps(dict(alts)).replace("</", "<\\/")
    return (
        "<script>(function(){"
        f"var m={data};"
        "document.querySelectorAll('img[src]').forEach(function(i){"
        "var s=i.getAttribute('src');"
        "if(m[s]&&!(i.getAttribute('alt')||'').trim()){i.setAttribute('alt',m[s]);}"
        "});"
        "})();</script>"
    )


def append_script(html: str, script: str) -> str:
    """Insert *script* before the last ``</body>``, or append it when there is none."""
    if not script:
        return html
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + script
    return html[:index] + script + html[index:]


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_processor(
    config: SmartAltConfig,
    conn: sqlite3.Connection,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], None] = time.sleep,
) -> AltTextProcessor:
    """Assemble a processor over an initialised database connection."""
    repo = Repository(conn, clock=clock)
    transients = TransientStore(conn, clock=clock)
    changelog = ChangeLog(conn, config.logging, repo, clock=clock)
    breaker = CircuitBreaker(
        transients,
        config.ai.model_name,
        on_open=lambda count: changelog.record(LogEntry(
            source="system", model=config.ai.model_name,
            status="error", severity="error",
            message=f"AI circuit breaker opened after {count} consecutive failures",
        )),
    )
    client = AiBatchClient(config.ai, breaker, config.max_alt_length, sleep=sleep)
    return AltTextProcessor(config, repo, transients, changelog, client)
