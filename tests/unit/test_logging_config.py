"""
Unit tests for logging configuration and personal data masking.
"""

import logging

import pytest

from formzilla.config import get_settings
from formzilla.config.logging_config import (
    PIIFilter,
    add_service_info,
    configure_logging,
    get_logger,
    mask_pii,
    mask_text,
)


class TestMaskText:

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("mail jane@example.com now", "mail [EMAIL-MASKED] now"),
            ("ssn 123-45-6789", "ssn [SSN-MASKED]"),
            ("call (555) 123-4567", "call [PHONE-MASKED]"),
            ("card 4111 1111 1111 1111", "card [CC-MASKED]"),
            ("nothing to hide", "nothing to hide"),
        ],
    )
    def test_patterns(self, text, expected):
        assert mask_text(text) == expected


class TestMaskPii:

    def test_redacts_sensitive_keys(self):
        event = {
            "event": "vision_request_started",
            "knowledge_base": "First Name: Jane",
            "value": "Jane",
            "page_count": 2,
        }

        masked = mask_pii(None, "info", event)

        assert masked["knowledge_base"] == "[REDACTED]"
        assert masked["value"] == "[REDACTED]"
        assert masked["page_count"] == 2
        assert masked["event"] == "vision_request_started"

    def test_masks_nested_values(self):
        masked = mask_pii(None, "info", {"details": {"contact": ["jane@example.com"]}})
        assert masked["details"] == {"contact": ["[EMAIL-MASKED]"]}

    def test_empty_sensitive_value_kept(self):
        assert mask_pii(None, "info", {"value": ""})["value"] == ""

    def test_disabled(self, monkeypatch):
        monkeypatch.setenv("PRIVACY_PII_MASKING_ENABLED", "false")
        get_settings.cache_clear()

        event = {"knowledge_base": "Email: jane@example.com"}
        assert mask_pii(None, "info", dict(event)) == event


class TestPIIFilter:

    def test_masks_stdlib_record(self):
        record = logging.LogRecord("httpx", logging.INFO, __file__, 1, "to %s", ("jane@example.com",), None)

        assert PIIFilter().filter(record) is True
        assert record.getMessage() == "to [EMAIL-MASKED]"


class TestServiceInfo:

    def test_adds_service_metadata(self):
        event = add_service_info(None, "info", {})
        assert event["service"] == "formzilla"
        assert event["environment"] == "testing"


class TestConfigureLogging:

    def test_writes_log_file(self, isolated_settings):
        configure_logging()
        try:
            get_logger("formzilla.test").info("logging_configured", value="secret")
            for handler in logging.getLogger().handlers:
                handler.flush()

            log_file = isolated_settings.logging.file_path
            contents = log_file.read_text(encoding="utf-8")
            assert "logging_configured" in contents
            assert "secret" not in contents
        finally:
            root = logging.getLogger()
            for handler in root.handlers[:]:
                handler.close()
                root.removeHandler(handler)
