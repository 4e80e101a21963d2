"""
Document surface capability interface.

Everything above the document layer talks to a PDF form only through
DocumentSurface: enumerate fillable fields, write values in bulk, rasterize
pages and restyle the widget that backs a field. Field kinds are derived
once, at this boundary, into the FieldKind enum.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from formzilla.config import get_logger


logger = get_logger(__name__)


FieldValue = str | bool
ChangeListener = Callable[[Mapping[str, FieldValue]], None]


class DocumentSurfaceError(Exception):
    """Base exception for document surface errors."""

    pass


class DocumentUnavailable(DocumentSurfaceError):
    """Raised when the document is not loaded or has been closed."""

    pass


class FieldWriteFailed(DocumentSurfaceError):
    """Raised when a field rejects a value write."""

    def __init__(self, field_name: str, reason: str = "") -> None:
        self.field_name = field_name
        self.reason = reason
        message = f"Failed to write field '{field_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FieldKind(str, Enum):
    """Kind of a fillable form field."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class FormField:
    """
    Snapshot of one fillable field.

    Attributes:
        name: Fully qualified field name, unique within the document.
        kind: Field kind.
        value: Current value. Checkboxes report a bool, other kinds a string.
        page_index: Zero-indexed page holding the field's first widget.
        read_only: Whether the field is flagged read-only.
    """

    name: str
    kind: FieldKind
    value: FieldValue
    page_index: int
    read_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "value": self.value,
            "page_index": self.page_index,
            "read_only": self.read_only,
        }


@dataclass(frozen=True, slots=True)
class WidgetHandle:
    """Reference to the on-page annotation backing a field."""

    field_name: str
    page_index: int
    xref: int


@dataclass(frozen=True, slots=True)
class WidgetStyle:
    """Border style applied to a widget annotation."""

    border_color: tuple[float, float, float]
    border_width: float


HIGHLIGHT_STYLE = WidgetStyle(border_color=(1.0, 0.0, 0.0), border_width=2)
DEFAULT_STYLE = WidgetStyle(border_color=(0.0, 0.0, 0.0), border_width=1)


class DocumentSurface(ABC):
    """
    Abstract capability provider over a loaded PDF form.

    Implementations own all field mutation. Callers treat a failed bulk
    write as "unknown which subset applied". Successful writes are pushed
    to change listeners as a {field_name: value} mapping.
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the document is loaded and accepts calls."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        """Number of pages in the document."""

    @abstractmethod
    async def list_fields(self) -> list[FormField]:
        """Enumerate fillable fields in a stable order."""

    @abstractmethod
    async def set_field_values(self, values: Mapping[str, FieldValue]) -> None:
        """
        Apply every entry of a {field_name: value} mapping.

        Raises:
            DocumentUnavailable: If the document is not loaded.
            FieldWriteFailed: If any entry fails.
        """

    @abstractmethod
    async def render_page(self, page_index: int, width: int) -> bytes:
        """Rasterize one page to PNG bytes at the given pixel width."""

    @abstractmethod
    async def find_widget_for_field(self, field_name: str) -> WidgetHandle | None:
        """Locate the widget annotation for a field, if any."""

    @abstractmethod
    async def set_widget_style(self, handle: WidgetHandle, style: WidgetStyle) -> None:
        """Apply a border style to a widget. Re-applying a style is a no-op."""

    def add_change_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Subscribe to field value changes.

        Args:
            listener: Called with the {field_name: value} mapping after each
                successful write.

        Returns:
            Callable that removes the subscription.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_change(self, changes: Mapping[str, FieldValue]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(dict(changes))
            except Exception as e:
                logger.error(
                    "change_listener_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def _ensure_ready(self) -> None:
        if not self.is_ready:
            raise DocumentUnavailable("Document is not loaded")
