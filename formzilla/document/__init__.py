"""
Document surface module.

Exposes the capability interface the rest of Formzilla uses to read and
write PDF form fields, plus its PyMuPDF implementation.
"""

from formzilla.document.pdf_surface import (
    PDFCorruptionError,
    PDFEncryptionError,
    PDFPageLimitError,
    PDFSizeError,
    PDFValidationError,
    PdfFormSurface,
    validate_pdf_bytes,
)
from formzilla.document.surface import (
    DEFAULT_STYLE,
    HIGHLIGHT_STYLE,
    DocumentSurface,
    DocumentSurfaceError,
    DocumentUnavailable,
    FieldKind,
    FieldValue,
    FieldWriteFailed,
    FormField,
    WidgetHandle,
    WidgetStyle,
)


__all__ = [
    # Interface
    "DocumentSurface",
    "FieldKind",
    "FieldValue",
    "FormField",
    "WidgetHandle",
    "WidgetStyle",
    "HIGHLIGHT_STYLE",
    "DEFAULT_STYLE",
    # Errors
    "DocumentSurfaceError",
    "DocumentUnavailable",
    "FieldWriteFailed",
    "PDFValidationError",
    "PDFSizeError",
    "PDFCorruptionError",
    "PDFEncryptionError",
    "PDFPageLimitError",
    # PyMuPDF implementation
    "PdfFormSurface",
    "validate_pdf_bytes",
]
