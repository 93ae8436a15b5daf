"""Abstract host-storage capability consumed by the alt-text pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod

from smartalt.db.models import AiCache, CanonicalImage, DocumentContext


class HostStorage(ABC):
    """What the pipeline needs from the content store that owns images and documents.

    Implementations must make ``set_image_alt_text`` a conditional write:
    the value only changes when the stored alt is empty or *force* is set.
    """

    @abstractmethod
    def get_image(self, image_id: int) -> CanonicalImage | None:
        """Return the image with *image_id*, or None."""

    @abstractmethod
    def get_image_alt_text(self, image_id: int) -> str:
        """Return the stored alt text ("" when unset)."""

    @abstractmethod
    def set_image_alt_text(self, image_id: int, text: str, force: bool = False) -> bool:
        """Store *text* as alt. Returns True if the stored value changed."""

    @abstractmethod
    def delete_image_alt_text(self, image_id: int) -> None:
        """Remove the stored alt entirely (distinct from storing "")."""

    @abstractmethod
    def get_attached_images(self, parent_id: int) -> list[int]:
        """Image ids attached to *parent_id*, featured image first."""

    @abstractmethod
    def find_image_by_url(self, url: str, parent_id: int | None = None) -> int | None:
        """Resolve an image URL (possibly a resized variant) to an image id."""

    @abstractmethod
    def get_document_context(self, parent_id: int) -> DocumentContext | None:
        """Title / excerpt / content of a document, or None if it does not exist."""

    @abstractmethod
    def list_candidate_images(self, scope: str, include_with_alt: bool = False) -> list[int]:
        """Image ids for a bulk run over *scope*."""

    @abstractmethod
    def get_ai_cache(self, image_id: int, ttl_days: int) -> AiCache | None:
        """Fresh AI cache metadata for *image_id*; expired metadata is dropped."""

    @abstractmethod
    def set_ai_cache(self, image_id: int, model: str) -> None:
        """Record that *image_id*'s alt came from *model* just now."""
