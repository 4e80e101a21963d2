"""
Registry of open documents under review.

Keeps one PdfFormSurface and ReviewController per (owner, document) so
that a review survives across HTTP requests, and writes the filled form
back to the document store.
"""

import threading
from dataclasses import dataclass

from formzilla.config import get_logger
from formzilla.document import PdfFormSurface
from formzilla.knowledge import ProfileKnowledgeWriter, ProfileStore
from formzilla.review.controller import FormAnalyzer, ReviewController
from formzilla.storage import DocumentRecord, DocumentStore


logger = get_logger(__name__)


@dataclass(slots=True)
class OpenDocument:
    """A loaded document and the controller reviewing it."""

    record: DocumentRecord
    surface: PdfFormSurface
    controller: ReviewController


class ReviewRegistry:
    """
    Lazily opens documents and caches their review controllers.

    Example:
        registry = ReviewRegistry(document_store, profile_store, analyzer)
        opened = registry.open(user_id, document_id)
        await opened.controller.start_round(knowledge_base)
        registry.persist(user_id, document_id)
    """

    def __init__(
        self,
        document_store: DocumentStore,
        profile_store: ProfileStore,
        analyzer: FormAnalyzer,
        render_width: int | None = None,
        poll_interval_ms: int | None = None,
    ) -> None:
        self._document_store = document_store
        self._profile_store = profile_store
        self._analyzer = analyzer
        self._render_width = render_width
        self._poll_interval_ms = poll_interval_ms
        self._open: dict[tuple[str, str], OpenDocument] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._open)

    def get(self, owner_id: str, document_id: str) -> OpenDocument | None:
        return self._open.get((owner_id, document_id))

    def open(self, owner_id: str, document_id: str) -> OpenDocument:
        """
        Return the open document, loading it from the store if needed.

        Raises:
            DocumentNotFoundError: If the owner has no such document.
            PDFCorruptionError: If the stored file cannot be parsed.
        """
        key = (owner_id, document_id)
        with self._lock:
            opened = self._open.get(key)
            if opened is not None:
                return opened

            record = self._document_store.get(owner_id, document_id)
            surface = PdfFormSurface.from_bytes(
                self._document_store.read_bytes(record),
                name=record.file_name,
            )
            controller = ReviewController(
                surface,
                self._analyzer,
                knowledge_writer=ProfileKnowledgeWriter(self._profile_store, owner_id),
                render_width=self._render_width,
                poll_interval_ms=self._poll_interval_ms,
            )
            opened = OpenDocument(record=record, surface=surface, controller=controller)
            self._open[key] = opened

        logger.info("review_document_opened", owner_id=owner_id, document_id=document_id)
        return opened

    def persist(self, owner_id: str, document_id: str) -> DocumentRecord:
        """
        Write the open document's current contents back to the store.

        Raises:
            KeyError: If the document is not open.
            DocumentStoreError: If the store cannot be written.
        """
        opened = self._open[(owner_id, document_id)]
        opened.record = self._document_store.write_bytes(opened.record, opened.surface.to_bytes())
        return opened.record

    async def close(self, owner_id: str, document_id: str) -> bool:
        """Close a document's review. Returns False if it was not open."""
        with self._lock:
            opened = self._open.pop((owner_id, document_id), None)
        if opened is None:
            return False

        await opened.controller.close()
        opened.surface.close()
        logger.info("review_document_closed", owner_id=owner_id, document_id=document_id)
        return True

    async def close_all(self) -> None:
        for owner_id, document_id in list(self._open):
            await self.close(owner_id, document_id)
