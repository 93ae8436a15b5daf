"""Decide whether an image needs alt text and what it should be.

The engine never raises on provider trouble. AI output is used where the
provider produced text; every other pending image falls back to heuristic
text, and the provider's reason is handed back for the change log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from smartalt.ai.client import AiBatchClient, AltsGenerated, CircuitOpen, ProviderFailure
from smartalt.config import SmartAltConfig
from smartalt.db.models import CanonicalImage, DocumentContext
from smartalt.errors import ConfigError
from smartalt.html.extractor import ImageReference
from smartalt.pipeline.heuristic import heuristic_alt

logger = logging.getLogger(__name__)

SKIP_HAS_ALT = "alt text already present"
SKIP_NO_TEXT = "no alt text generated"


@dataclass(frozen=True)
class GenerationPolicy:
    source: str = "heuristic"
    force_update: bool = False
    max_length: int = 125

    @classmethod
    def from_config(cls, config: SmartAltConfig, force_update: bool | None = None) -> GenerationPolicy:
        return cls(
            source=config.alt_source,
            force_update=config.force_update if force_update is None else force_update,
            max_length=config.max_alt_length,
        )


@dataclass(frozen=True)
class Decision:
    """Outcome for one image.

    ``status`` is ``success`` (``text`` should be applied), ``skipped``
    (leave the image alone, ``reason`` says why) or ``error``.
    """

    status: str
    text: str = ""
    source: str = "heuristic"
    model: str | None = None
    reason: str | None = None

    @property
    def changed(self) -> bool:
        return self.status == "success"


@dataclass
class DecisionBatch:
    decisions: list[Decision] = field(default_factory=list)
    # Set when an AI call was attempted and failed; None when the breaker
    # was open, since that transition has already been reported.
    ai_failure: str | None = None

    def alts(self, images: Sequence[ImageReference]) -> dict[str, str]:
        """Successful decisions as a ``source_url -> text`` map."""
        out: dict[str, str] = {}
        for image, decision in zip(images, self.decisions):
            if decision.changed and image.source_url not in out:
                out[image.source_url] = decision.text
        return out


def reference_for(image: CanonicalImage, position: int = 0) -> ImageReference:
    """View a stored image as a document occurrence so it can go through the engine."""
    return ImageReference(
        source_url=image.url,
        current_alt=image.stored_alt_text,
        has_alt_attribute=image.alt_text is not None,
        raw="",
        position=position,
    )


class DecisionEngine:
    def __init__(self, policy: GenerationPolicy, client: AiBatchClient | None = None) -> None:
        self.policy = policy
        self._client = client

    def should_process(self, image: ImageReference) -> bool:
        return self.policy.force_update or image.needs_alt

    def decide_batch(
        self,
        images: Sequence[ImageReference],
        context: DocumentContext,
        image_count: int | None = None,
    ) -> DecisionBatch:
        """Decide every image of one document, with at most one AI call.

        Args:
            images: Images in document order.
            context: Page metadata.
            image_count: Images on the page for heuristic variation;
                defaults to ``len(images)``.

        Returns:
            A DecisionBatch whose ``decisions`` line up with *images*.
        """
        count = len(images) if image_count is None else image_count
        pending = [image for image in images if self.should_process(image)]

        ai_alts: dict[str, str] = {}
        model: str | None = None
        failure: str | None = None
        if pending and self.policy.source == "ai":
            ai_alts, model, failure = self._request_ai(pending, context)

        batch = DecisionBatch(ai_failure=failure)
        for image in images:
            if not self.should_process(image):
                batch.decisions.append(Decision(status="skipped", reason=SKIP_HAS_ALT))
                continue
            text = ai_alts.get(image.source_url, "")
            if text:
                batch.decisions.append(Decision(status="success", text=text, source="ai", model=model))
            else:
                batch.decisions.append(self._heuristic(image, context, count))
        return batch

    def decide_one(
        self,
        image: ImageReference,
        context: DocumentContext,
        image_count: int = 1,
    ) -> tuple[Decision, str | None]:
        """Single-image decision for bulk and admin flows.

        Returns the decision and the AI failure reason, if any.
        """
        if not self.should_process(image):
            return Decision(status="skipped", reason=SKIP_HAS_ALT), None
        if self.policy.source != "ai":
            return self._heuristic(image, context, image_count), None

        failure: str | None
        if self._client is None:
            failure = "AI client not configured"
        else:
            try:
                outcome = self._client.generate_one(image, context)
            except ConfigError as exc:
                outcome = ProviderFailure(reason=str(exc))
            failure = _failure_reason(outcome)
            text = outcome.alts.get(image.source_url, "")
            if text:
                return Decision(status="success", text=text, source="ai", model=self._client.model_name), None
        return self._heuristic(image, context, image_count), failure

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _request_ai(
        self, pending: Sequence[ImageReference], context: DocumentContext
    ) -> tuple[dict[str, str], str | None, str | None]:
        if self._client is None:
            return {}, None, "AI client not configured"
        try:
            outcome = self._client.request_batch(pending, context)
        except ConfigError as exc:
            logger.warning("AI generation unavailable: %s", exc)
            return {}, None, str(exc)
        return outcome.alts, self._client.model_name, _failure_reason(outcome)

    def _heuristic(self, image: ImageReference, context: DocumentContext, image_count: int) -> Decision:
        source = "ai-fallback" if self.policy.source == "ai" else "heuristic"
        text = heuristic_alt(
            context,
            image.source_url,
            image.position,
            image_count,
            self.policy.max_length,
        )
        if not text:
            return Decision(status="skipped", source=source, reason=SKIP_NO_TEXT)
        return Decision(status="success", text=text, source=source)


def _failure_reason(outcome: AltsGenerated | CircuitOpen | ProviderFailure) -> str | None:
    if isinstance(outcome, ProviderFailure):
        return outcome.reason
    return None
