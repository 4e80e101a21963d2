"""
Document storage for uploaded PDF forms.

Stores each upload as a blob file plus a JSON metadata record. Records
are scoped to their owner; documents of other users are invisible.
"""

import json
import re
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from formzilla.config import get_logger, get_settings
from formzilla.document import PDFValidationError, validate_pdf_bytes


logger = get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class DocumentStoreError(Exception):
    """Base exception for document storage errors."""

    pass


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document does not exist for the requesting owner."""

    pass


class DocumentValidationError(DocumentStoreError):
    """Raised when an upload is rejected."""

    pass


class DocumentRecord(BaseModel):
    """Metadata of a stored document."""

    id: str = Field(..., description="Document identifier")
    owner_id: str = Field(..., description="Uploading user")
    file_name: str = Field(..., description="Original file name")
    file_path: str = Field(..., description="Blob name within the store")
    file_size: int = Field(..., ge=0, description="Blob size in bytes")
    page_count: int = Field(default=0, ge=0, description="Number of pages")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def safe_file_name(file_name: str) -> str:
    """Reduce a client supplied file name to a safe blob suffix."""
    name = Path(file_name).name
    name = _UNSAFE_NAME_CHARS.sub("_", name).strip("._")
    return name or "document.pdf"


class DocumentStore:
    """
    File-based storage for PDF documents.

    Layout:
        <storage_dir>/blobs/<owner>-<timestamp>-<name>.pdf
        <storage_dir>/records/<document_id>.json
    """

    def __init__(
        self,
        storage_dir: str | Path,
        max_file_size_bytes: int | None = None,
        max_pages: int | None = None,
    ) -> None:
        """
        Initialize the document store.

        Args:
            storage_dir: Directory to store blobs and records.
            max_file_size_bytes: Upload size limit. Defaults to settings.
            max_pages: Page count limit. Defaults to settings.
        """
        settings = get_settings().pdf

        self._storage_dir = Path(storage_dir)
        self._blob_dir = self._storage_dir / "blobs"
        self._record_dir = self._storage_dir / "records"
        self._max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes
        self._max_pages = max_pages or settings.max_pages
        self._lock = threading.Lock()

        self._blob_dir.mkdir(parents=True, exist_ok=True)
        self._record_dir.mkdir(parents=True, exist_ok=True)

    def _get_record_path(self, document_id: str) -> Path:
        return self._record_dir / f"{document_id}.json"

    def _get_blob_path(self, record: DocumentRecord) -> Path:
        return self._blob_dir / record.file_path

    def _write_record(self, record: DocumentRecord) -> None:
        with self._lock:
            with open(self._get_record_path(record.id), "w", encoding="utf-8") as f:
                f.write(record.model_dump_json(indent=2))

    def _read_record(self, path: Path) -> DocumentRecord | None:
        try:
            with open(path, encoding="utf-8") as f:
                return DocumentRecord.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("document_record_read_error", path=str(path), error=str(e))
            return None

    def save(self, owner_id: str, file_name: str, data: bytes) -> DocumentRecord:
        """
        Validate and store an uploaded PDF.

        Args:
            owner_id: Uploading user.
            file_name: Client supplied file name.
            data: File contents.

        Returns:
            The stored document record.

        Raises:
            DocumentValidationError: If the upload is not an acceptable PDF.
            DocumentStoreError: If the document cannot be written.
        """
        if not file_name.lower().endswith(".pdf"):
            raise DocumentValidationError("Only PDF files are allowed")

        try:
            page_count = validate_pdf_bytes(data, self._max_file_size_bytes, self._max_pages)
        except PDFValidationError as e:
            raise DocumentValidationError(str(e)) from e

        timestamp = int(datetime.now(UTC).timestamp() * 1000)
        record = DocumentRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            file_name=file_name,
            file_path=f"{safe_file_name(owner_id)}-{timestamp}-{safe_file_name(file_name)}",
            file_size=len(data),
            page_count=page_count,
        )
        blob_path = self._get_blob_path(record)

        try:
            blob_path.write_bytes(data)
        except OSError as e:
            logger.error("document_blob_write_error", owner_id=owner_id, error=str(e))
            raise DocumentStoreError(f"Failed to store document: {e}") from e

        try:
            self._write_record(record)
        except OSError as e:
            blob_path.unlink(missing_ok=True)
            logger.error("document_record_write_error", document_id=record.id, error=str(e))
            raise DocumentStoreError(f"Failed to record document: {e}") from e

        logger.info(
            "document_stored",
            document_id=record.id,
            owner_id=owner_id,
            file_size=record.file_size,
            page_count=page_count,
        )
        return record

    def get(self, owner_id: str, document_id: str) -> DocumentRecord:
        """
        Retrieve a document record owned by the caller.

        Raises:
            DocumentNotFoundError: If missing or owned by someone else.
        """
        path = self._get_record_path(safe_file_name(document_id))
        record = self._read_record(path) if path.exists() else None
        if record is None or record.owner_id != owner_id:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return record

    def list_documents(self, owner_id: str) -> list[DocumentRecord]:
        """List an owner's documents, newest first."""
        records = []
        for path in self._record_dir.glob("*.json"):
            record = self._read_record(path)
            if record is not None and record.owner_id == owner_id:
                records.append(record)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def read_bytes(self, record: DocumentRecord) -> bytes:
        """
        Load a document's current contents.

        Raises:
            DocumentNotFoundError: If the blob is missing.
        """
        try:
            return self._get_blob_path(record).read_bytes()
        except FileNotFoundError as e:
            raise DocumentNotFoundError(f"Document file missing: {record.id}") from e

    def write_bytes(self, record: DocumentRecord, data: bytes) -> DocumentRecord:
        """
        Replace a document's contents, e.g. after filling.

        Raises:
            DocumentStoreError: If the blob or record cannot be written.
        """
        try:
            with self._lock:
                self._get_blob_path(record).write_bytes(data)
        except OSError as e:
            raise DocumentStoreError(f"Failed to update document: {e}") from e

        updated = record.model_copy(update={"file_size": len(data), "updated_at": datetime.now(UTC)})
        try:
            self._write_record(updated)
        except OSError as e:
            raise DocumentStoreError(f"Failed to update document record: {e}") from e

        logger.debug("document_updated", document_id=record.id, file_size=len(data))
        return updated

    def delete(self, owner_id: str, document_id: str) -> None:
        """
        Delete a document: the record first, then its blob.

        A blob that cannot be removed is logged and left behind; the
        document is already gone for the owner.

        Raises:
            DocumentNotFoundError: If missing or owned by someone else.
        """
        record = self.get(owner_id, document_id)

        with self._lock:
            self._get_record_path(record.id).unlink(missing_ok=True)

        try:
            self._get_blob_path(record).unlink(missing_ok=True)
        except OSError as e:
            logger.error("document_blob_delete_error", document_id=record.id, error=str(e))

        logger.info("document_deleted", document_id=record.id, owner_id=owner_id)


# Module-level singleton
_document_store: DocumentStore | None = None
_store_lock = threading.Lock()


def get_document_store(storage_dir: str | Path | None = None) -> DocumentStore:
    """
    Get or create the document store singleton.

    Args:
        storage_dir: Optional storage directory override.

    Returns:
        DocumentStore instance.
    """
    global _document_store

    with _store_lock:
        if _document_store is None:
            _document_store = DocumentStore(
                storage_dir=storage_dir or get_settings().storage.documents_dir,
            )

    return _document_store
