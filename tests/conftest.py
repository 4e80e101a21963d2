"""
Pytest configuration and shared fixtures.

Provides an isolated settings environment, an in-memory document surface,
a deterministic stand-in for the vision model and a small fillable PDF.
"""

import asyncio
import dataclasses
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import fitz
import pytest
from fastapi.testclient import TestClient

# Add repository root to Python path
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from formzilla.client import InferenceRecord
from formzilla.config import get_settings
from formzilla.document import (
    DocumentSurface,
    FieldKind,
    FieldValue,
    FieldWriteFailed,
    FormField,
    WidgetHandle,
    WidgetStyle,
)
from formzilla.knowledge import ProfileStore
from formzilla.review import ReviewRegistry
from formzilla.security import create_access_token
from formzilla.storage import DocumentStore


TEST_SECRET_KEY = "test-secret-key-for-pytest-sessions-12345-do-not-use-in-production"


# =============================================================================
# Test doubles
# =============================================================================


class InMemorySurface(DocumentSurface):
    """
    Document surface over a dict of FormField snapshots.

    Fields named in failing_fields reject every write. Fields named in
    widgetless have no widget to highlight.
    """

    def __init__(
        self,
        fields: Sequence[FormField],
        page_count: int = 1,
        failing_fields: Sequence[str] = (),
        widgetless: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self._fields = {f.name: f for f in fields}
        self._page_count = page_count
        self.failing_fields = set(failing_fields)
        self.widgetless = set(widgetless)
        self.ready = True
        self.write_calls: list[dict[str, FieldValue]] = []
        self.rendered: list[tuple[int, int]] = []
        self.styles: dict[str, WidgetStyle] = {}
        self.style_calls: list[tuple[str, WidgetStyle]] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def page_count(self) -> int:
        self._ensure_ready()
        return self._page_count

    def value(self, name: str) -> FieldValue:
        return self._fields[name].value

    def values(self) -> dict[str, FieldValue]:
        return {name: f.value for name, f in self._fields.items()}

    def set_silently(self, name: str, value: FieldValue) -> None:
        """Change a value without notifying listeners, like typing in a viewer."""
        self._fields[name] = dataclasses.replace(self._fields[name], value=value)

    async def list_fields(self) -> list[FormField]:
        self._ensure_ready()
        return list(self._fields.values())

    async def set_field_values(self, values: Mapping[str, FieldValue]) -> None:
        self._ensure_ready()
        self.write_calls.append(dict(values))
        applied: dict[str, FieldValue] = {}
        try:
            for name, value in values.items():
                current = self._fields.get(name)
                if current is None or name in self.failing_fields:
                    raise FieldWriteFailed(name, "rejected")
                if current.kind == FieldKind.CHECKBOX and not isinstance(value, bool):
                    value = value not in ("", "Off")
                self._fields[name] = dataclasses.replace(current, value=value)
                applied[name] = value
        finally:
            self._notify_change(applied)

    async def render_page(self, page_index: int, width: int) -> bytes:
        self._ensure_ready()
        self.rendered.append((page_index, width))
        return f"page-{page_index}".encode()

    async def find_widget_for_field(self, field_name: str) -> WidgetHandle | None:
        form_field = self._fields.get(field_name)
        if form_field is None or field_name in self.widgetless:
            return None
        return WidgetHandle(field_name=field_name, page_index=form_field.page_index, xref=1)

    async def set_widget_style(self, handle: WidgetHandle, style: WidgetStyle) -> None:
        self.style_calls.append((handle.field_name, style))
        self.styles[handle.field_name] = style


class StubAnalyzer:
    """Vision model stand-in returning canned records or raising."""

    def __init__(
        self,
        records: Sequence[InferenceRecord | dict] = (),
        error: Exception | None = None,
    ) -> None:
        self.records = [
            r if isinstance(r, InferenceRecord) else InferenceRecord(**r) for r in records
        ]
        self.error = error
        self.calls: list[tuple[list[bytes], str]] = []

    async def analyze(self, images: Sequence[bytes], knowledge_base: str) -> list[InferenceRecord]:
        self.calls.append((list(images), knowledge_base))
        if self.error is not None:
            raise self.error
        return list(self.records)


class RecordingWriter:
    """Knowledge writer that keeps entries in a dict."""

    def __init__(self, error: Exception | None = None) -> None:
        self.entries: dict[str, str] = {}
        self.error = error

    async def upsert_entry(self, label: str, value: str) -> None:
        if self.error is not None:
            raise self.error
        self.entries[label] = value


def default_form_fields() -> list[FormField]:
    return [
        FormField(name="first_name", kind=FieldKind.TEXT, value="", page_index=0),
        FormField(name="last_name", kind=FieldKind.TEXT, value="", page_index=0),
        FormField(name="subscribe", kind=FieldKind.CHECKBOX, value=False, page_index=0),
        FormField(name="contact_method", kind=FieldKind.RADIO, value=False, page_index=1),
        FormField(name="email", kind=FieldKind.TEXT, value="", page_index=1),
    ]


def build_form_pdf(read_only: Sequence[str] = ()) -> bytes:
    """Build a one-page PDF with text fields 'name' and 'email' and checkbox 'agree'."""
    doc = fitz.open()
    page = doc.new_page()
    specs = [
        ("name", fitz.PDF_WIDGET_TYPE_TEXT, fitz.Rect(100, 50, 300, 70)),
        ("email", fitz.PDF_WIDGET_TYPE_TEXT, fitz.Rect(100, 90, 300, 110)),
        ("agree", fitz.PDF_WIDGET_TYPE_CHECKBOX, fitz.Rect(100, 130, 115, 145)),
    ]
    for name, field_type, rect in specs:
        page.insert_text((30, rect.y1 - 5), name.title())
        widget = fitz.Widget()
        widget.field_name = name
        widget.field_type = field_type
        widget.rect = rect
        widget.field_value = False if field_type == fitz.PDF_WIDGET_TYPE_CHECKBOX else ""
        if name in read_only:
            widget.field_flags = fitz.PDF_FIELD_IS_READ_ONLY
        page.add_widget(widget)
    data = doc.tobytes()
    doc.close()
    return data


# =============================================================================
# Function-scoped Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temporary data directory for every test."""
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.setenv("STORAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LOG_FILE_PATH", str(tmp_path / "logs" / "formzilla.log"))
    monkeypatch.setenv("REVIEW_POLL_INTERVAL_MS", "0")
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET_KEY)
    monkeypatch.setenv("VISION_API_KEY", "")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def make_surface():
    """Factory for in-memory surfaces; defaults to a five-field, two-page form."""

    def factory(fields: Sequence[FormField] | None = None, **kwargs) -> InMemorySurface:
        if fields is None:
            fields = default_form_fields()
            kwargs.setdefault("page_count", 2)
        return InMemorySurface(fields, **kwargs)

    return factory


@pytest.fixture
def surface(make_surface) -> InMemorySurface:
    return make_surface()


@pytest.fixture
def stub_analyzer_cls():
    return StubAnalyzer


@pytest.fixture
def recording_writer_cls():
    return RecordingWriter


@pytest.fixture
def form_pdf_bytes() -> bytes:
    return build_form_pdf()


@pytest.fixture
def form_pdf_factory():
    return build_form_pdf


@pytest.fixture
def auth_headers() -> dict[str, str]:
    token = create_access_token("user-1", email="jane@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    token = create_access_token("user-2")
    return {"Authorization": f"Bearer {token}"}


@dataclasses.dataclass
class ApiHarness:
    """Test client wired to stores under tmp_path and a stub analyzer."""

    client: TestClient
    documents: DocumentStore
    profiles: ProfileStore
    analyzer: StubAnalyzer
    registry: ReviewRegistry


@pytest.fixture
def api(tmp_path):
    from formzilla.api import dependencies
    from formzilla.api.app import create_app

    documents = DocumentStore(tmp_path / "documents")
    profiles = ProfileStore(tmp_path / "profiles")
    analyzer = StubAnalyzer()
    registry = ReviewRegistry(documents, profiles, analyzer, poll_interval_ms=0)

    app = create_app()
    app.dependency_overrides[dependencies.document_store] = lambda: documents
    app.dependency_overrides[dependencies.profile_store] = lambda: profiles
    app.dependency_overrides[dependencies.vision_client] = lambda: analyzer
    app.dependency_overrides[dependencies.review_registry] = lambda: registry

    yield ApiHarness(
        client=TestClient(app),
        documents=documents,
        profiles=profiles,
        analyzer=analyzer,
        registry=registry,
    )
    asyncio.run(registry.close_all())


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
