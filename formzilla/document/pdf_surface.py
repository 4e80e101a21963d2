"""
PyMuPDF implementation of the document surface.

Handles PDF validation, AcroForm widget introspection and mutation, widget
border styling for highlights, and page-to-PNG rasterization at a fixed
pixel width.
"""

import io
from collections.abc import Mapping

import fitz  # PyMuPDF
from PIL import Image

from formzilla.config import get_logger
from formzilla.document.surface import (
    DocumentSurface,
    DocumentUnavailable,
    FieldKind,
    FieldValue,
    FieldWriteFailed,
    FormField,
    WidgetHandle,
    WidgetStyle,
)


logger = get_logger(__name__)

PDF_MAGIC = b"%PDF-"
CHECKBOX_OFF_VALUES = frozenset({"", "Off", "off", "No", "no", "false", "False", "0"})


class PDFValidationError(Exception):
    """Raised when an uploaded PDF fails validation."""

    pass


class PDFSizeError(PDFValidationError):
    """Raised when PDF exceeds size limits."""

    pass


class PDFCorruptionError(PDFValidationError):
    """Raised when PDF data is corrupted or not a PDF."""

    pass


class PDFEncryptionError(PDFValidationError):
    """Raised when PDF is encrypted and cannot be processed."""

    pass


class PDFPageLimitError(PDFValidationError):
    """Raised when PDF exceeds page limits."""

    pass


def validate_pdf_bytes(data: bytes, max_size_bytes: int, max_pages: int) -> int:
    """
    Validate raw PDF bytes before a document is accepted.

    Args:
        data: File contents.
        max_size_bytes: Upper bound on the file size.
        max_pages: Upper bound on the page count.

    Returns:
        Page count of the document.

    Raises:
        PDFSizeError: If the data is empty or too large.
        PDFCorruptionError: If the data is not a readable PDF.
        PDFEncryptionError: If the document is encrypted.
        PDFPageLimitError: If the document has too many pages.
        PDFValidationError: If the document has no pages.
    """
    if not data:
        raise PDFSizeError("File is empty")

    if len(data) > max_size_bytes:
        raise PDFSizeError(
            f"File size ({len(data) / (1024 * 1024):.2f} MB) exceeds "
            f"limit ({max_size_bytes / (1024 * 1024):.2f} MB)"
        )

    if not data[:8].startswith(PDF_MAGIC):
        raise PDFCorruptionError("Invalid PDF header. File may be corrupted or not a PDF.")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError) as e:
        raise PDFCorruptionError(f"PDF file is corrupted: {e}") from e

    try:
        if doc.is_encrypted:
            raise PDFEncryptionError("PDF is encrypted. Please provide an unencrypted document.")
        if doc.page_count > max_pages:
            raise PDFPageLimitError(f"Page count ({doc.page_count}) exceeds limit ({max_pages})")
        if doc.page_count == 0:
            raise PDFValidationError("PDF contains no pages")
        page_count = doc.page_count
    finally:
        doc.close()

    logger.debug("pdf_validation_passed", size_bytes=len(data), page_count=page_count)
    return page_count


def _field_kind(widget: fitz.Widget) -> FieldKind:
    if widget.field_type == fitz.PDF_WIDGET_TYPE_TEXT:
        return FieldKind.TEXT
    if widget.field_type == fitz.PDF_WIDGET_TYPE_CHECKBOX:
        return FieldKind.CHECKBOX
    if widget.field_type == fitz.PDF_WIDGET_TYPE_RADIOBUTTON:
        return FieldKind.RADIO
    return FieldKind.OTHER


def _is_checked(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value) not in CHECKBOX_OFF_VALUES


class PdfFormSurface(DocumentSurface):
    """
    Document surface backed by an in-memory PyMuPDF document.

    Fields are enumerated page by page in widget order and deduplicated by
    name, so every widget of a radio group maps to one FormField.

    Example:
        surface = PdfFormSurface.from_bytes(pdf_bytes)
        fields = await surface.list_fields()
        await surface.set_field_values({"first_name": "Jane"})
        filled = surface.to_bytes()
    """

    def __init__(self, document: fitz.Document | None = None, name: str = "document") -> None:
        super().__init__()
        self._doc = document
        self._name = name

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "document") -> "PdfFormSurface":
        """
        Open a surface over PDF bytes.

        Raises:
            PDFCorruptionError: If the data cannot be parsed as a PDF.
        """
        try:
            document = fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError) as e:
            raise PDFCorruptionError(f"PDF file is corrupted: {e}") from e
        logger.info("document_opened", document=name, page_count=document.page_count)
        return cls(document, name=name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_ready(self) -> bool:
        return self._doc is not None and not self._doc.is_closed

    @property
    def page_count(self) -> int:
        self._ensure_ready()
        return self._doc.page_count

    def _load_pages(self) -> list[fitz.Page]:
        self._ensure_ready()
        return [self._doc[page_index] for page_index in range(self._doc.page_count)]

    def _iter_widgets(self, pages: list[fitz.Page] | None = None):
        """Yield (page_index, widget) for every form widget in page order."""
        for page_index, page in enumerate(pages if pages is not None else self._load_pages()):
            for widget in page.widgets():
                yield page_index, widget

    def _widgets_by_name(self, pages: list[fitz.Page]) -> dict[str, list[fitz.Widget]]:
        by_name: dict[str, list[fitz.Widget]] = {}
        for _, widget in self._iter_widgets(pages):
            if widget.field_name:
                by_name.setdefault(widget.field_name, []).append(widget)
        return by_name

    async def list_fields(self) -> list[FormField]:
        fields: dict[str, FormField] = {}
        for page_index, widget in self._iter_widgets():
            name = widget.field_name
            if not name or name in fields:
                continue
            kind = _field_kind(widget)
            if kind in (FieldKind.CHECKBOX, FieldKind.RADIO):
                value: FieldValue = _is_checked(widget.field_value)
            else:
                value = "" if widget.field_value is None else str(widget.field_value)
            fields[name] = FormField(
                name=name,
                kind=kind,
                value=value,
                page_index=page_index,
                read_only=bool(widget.field_flags & fitz.PDF_FIELD_IS_READ_ONLY),
            )
        return list(fields.values())

    async def set_field_values(self, values: Mapping[str, FieldValue]) -> None:
        # Widgets only hold a weak reference to their page
        pages = self._load_pages()
        widgets = self._widgets_by_name(pages)
        applied: dict[str, FieldValue] = {}
        try:
            for field_name, value in values.items():
                members = widgets.get(field_name)
                if not members:
                    raise FieldWriteFailed(field_name, "no such field")
                applied[field_name] = self._write_field(field_name, members, value)
        finally:
            self._notify_change(applied)

    def _write_field(self, field_name: str, members: list[fitz.Widget], value: FieldValue) -> FieldValue:
        """Write one field and return the value as list_fields will report it."""
        if members[0].field_flags & fitz.PDF_FIELD_IS_READ_ONLY:
            raise FieldWriteFailed(field_name, "field is read-only")

        kind = _field_kind(members[0])
        try:
            if kind == FieldKind.CHECKBOX:
                checked = _is_checked(value)
                for widget in members:
                    widget.field_value = checked
                    widget.update()
                return checked
            elif kind == FieldKind.RADIO:
                if isinstance(value, bool):
                    raise FieldWriteFailed(field_name, "radio groups need an option name")
                for widget in members:
                    widget.field_value = widget.on_state() == value
                    widget.update()
                return value
            else:
                for widget in members:
                    widget.field_value = str(value)
                    widget.update()
                return str(value)
        except FieldWriteFailed:
            raise
        except Exception as e:
            raise FieldWriteFailed(field_name, str(e)) from e

    async def render_page(self, page_index: int, width: int) -> bytes:
        self._ensure_ready()
        if not 0 <= page_index < self._doc.page_count:
            raise ValueError(f"Page index {page_index} out of range")

        page = self._doc[page_index]
        zoom = width / page.rect.width
        pixmap = page.get_pixmap(
            matrix=fitz.Matrix(zoom, zoom),
            colorspace=fitz.csRGB,
            alpha=False,
        )
        img = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        image_bytes = buffer.getvalue()

        logger.debug(
            "page_rendered",
            document=self._name,
            page_index=page_index,
            width=pixmap.width,
            height=pixmap.height,
            size_kb=round(len(image_bytes) / 1024, 2),
        )
        return image_bytes

    async def find_widget_for_field(self, field_name: str) -> WidgetHandle | None:
        for page_index, widget in self._iter_widgets():
            if widget.field_name == field_name:
                return WidgetHandle(field_name=field_name, page_index=page_index, xref=widget.xref)
        return None

    async def set_widget_style(self, handle: WidgetHandle, style: WidgetStyle) -> None:
        self._ensure_ready()
        page = self._doc[handle.page_index]
        for widget in page.widgets():
            if widget.xref != handle.xref:
                continue
            current_color = tuple(widget.border_color or ())
            if current_color == style.border_color and widget.border_width == style.border_width:
                return
            widget.border_color = style.border_color
            widget.border_width = style.border_width
            widget.update()
            return
        logger.warning(
            "widget_not_found",
            document=self._name,
            field_name=handle.field_name,
            xref=handle.xref,
        )

    def to_bytes(self) -> bytes:
        """Serialize the document with its current field values."""
        self._ensure_ready()
        return self._doc.tobytes(deflate=True)

    def close(self) -> None:
        if self._doc is not None and not self._doc.is_closed:
            self._doc.close()
        self._doc = None

    def _ensure_ready(self) -> None:
        if not self.is_ready:
            raise DocumentUnavailable(f"Document '{self._name}' is not loaded")
