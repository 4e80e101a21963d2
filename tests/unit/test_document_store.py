"""
Tests for formzilla/storage/document_store.py: owner-scoped PDF storage.
"""

import time

import pytest

from formzilla.storage import (
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    DocumentValidationError,
    safe_file_name,
)


class TestSafeFileName:

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("form.pdf", "form.pdf"),
            ("../../etc/passwd.pdf", "passwd.pdf"),
            ("my form (1).pdf", "my_form_1_.pdf"),
            ("...", "document.pdf"),
        ],
    )
    def test_sanitizes(self, raw, expected):
        assert safe_file_name(raw) == expected


class TestSave:

    def test_stores_blob_and_record(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)

        record = store.save("user-1", "form.pdf", form_pdf_bytes)

        assert record.owner_id == "user-1"
        assert record.file_size == len(form_pdf_bytes)
        assert record.page_count == 1
        assert (tmp_path / "blobs" / record.file_path).read_bytes() == form_pdf_bytes
        assert (tmp_path / "records" / f"{record.id}.json").exists()

    def test_blob_name_layout(self, tmp_path, form_pdf_bytes):
        record = DocumentStore(tmp_path).save("user-1", "My Form.pdf", form_pdf_bytes)

        prefix = "user-1-"
        assert record.file_path.startswith(prefix)
        timestamp, name = record.file_path[len(prefix):].split("-", 1)
        assert timestamp.isdigit()
        assert name == "My_Form.pdf"

    def test_rejects_non_pdf_name(self, tmp_path, form_pdf_bytes):
        with pytest.raises(DocumentValidationError, match="PDF"):
            DocumentStore(tmp_path).save("user-1", "form.docx", form_pdf_bytes)

    def test_rejects_bad_header(self, tmp_path):
        with pytest.raises(DocumentValidationError):
            DocumentStore(tmp_path).save("user-1", "form.pdf", b"hello world")

    def test_rejects_oversized(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path, max_file_size_bytes=16)
        with pytest.raises(DocumentValidationError, match="exceeds"):
            store.save("user-1", "form.pdf", form_pdf_bytes)

    def test_blob_removed_when_record_write_fails(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        (tmp_path / "records").rmdir()

        with pytest.raises(DocumentStoreError):
            store.save("user-1", "form.pdf", form_pdf_bytes)

        assert list((tmp_path / "blobs").iterdir()) == []


class TestOwnerScoping:

    def test_get_own_document(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)
        assert store.get("user-1", record.id) == record

    def test_other_owner_cannot_see(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)

        with pytest.raises(DocumentNotFoundError):
            store.get("user-2", record.id)
        assert store.list_documents("user-2") == []

    def test_unknown_id(self, tmp_path):
        with pytest.raises(DocumentNotFoundError):
            DocumentStore(tmp_path).get("user-1", "missing")

    def test_list_newest_first(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        first = store.save("user-1", "a.pdf", form_pdf_bytes)
        time.sleep(0.01)
        second = store.save("user-1", "b.pdf", form_pdf_bytes)

        assert [r.id for r in store.list_documents("user-1")] == [second.id, first.id]


class TestContents:

    def test_read_and_write_bytes(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)

        updated = store.write_bytes(record, form_pdf_bytes + b"\n")

        assert store.read_bytes(updated) == form_pdf_bytes + b"\n"
        assert updated.file_size == len(form_pdf_bytes) + 1
        assert store.get("user-1", record.id).file_size == updated.file_size

    def test_read_missing_blob(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)
        (tmp_path / "blobs" / record.file_path).unlink()

        with pytest.raises(DocumentNotFoundError):
            store.read_bytes(record)


class TestDelete:

    def test_removes_record_and_blob(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)

        store.delete("user-1", record.id)

        assert not (tmp_path / "records" / f"{record.id}.json").exists()
        assert not (tmp_path / "blobs" / record.file_path).exists()
        with pytest.raises(DocumentNotFoundError):
            store.get("user-1", record.id)

    def test_record_removed_before_blob(self, tmp_path, form_pdf_bytes, monkeypatch):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)
        record_path = tmp_path / "records" / f"{record.id}.json"
        seen = []

        original = store._get_blob_path

        def spy(rec):
            seen.append(record_path.exists())
            return original(rec)

        monkeypatch.setattr(store, "_get_blob_path", spy)
        store.delete("user-1", record.id)

        assert seen == [False]

    def test_other_owner_cannot_delete(self, tmp_path, form_pdf_bytes):
        store = DocumentStore(tmp_path)
        record = store.save("user-1", "form.pdf", form_pdf_bytes)

        with pytest.raises(DocumentNotFoundError):
            store.delete("user-2", record.id)
        assert store.get("user-1", record.id) == record
