"""
Storage module for uploaded documents.
"""

from formzilla.storage.document_store import (
    DocumentNotFoundError,
    DocumentRecord,
    DocumentStore,
    DocumentStoreError,
    DocumentValidationError,
    get_document_store,
    safe_file_name,
)


__all__ = [
    "DocumentRecord",
    "DocumentStore",
    "DocumentStoreError",
    "DocumentNotFoundError",
    "DocumentValidationError",
    "get_document_store",
    "safe_file_name",
]
