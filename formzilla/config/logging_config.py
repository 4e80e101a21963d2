"""
Structured logging configuration using structlog.

Provides JSON-formatted logging with contextual information, masking of
personal data taken from user knowledge bases, and integration with
Python's standard logging module.
"""

import logging
import logging.handlers
import re
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from formzilla.config.settings import LogFormat, get_settings


# Patterns for masking personal information
PII_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN-MASKED]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL-MASKED]"),
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CC-MASKED]"),
    (re.compile(r"(?:\+\d{1,3}[\s.-]?)?\(?\b\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b"), "[PHONE-MASKED]"),
]

# Event keys whose values are user data and are never logged verbatim
SENSITIVE_KEYS = frozenset(
    {
        "knowledge_base",
        "value",
        "values",
        "inferred_value",
        "current_value",
        "custom_fields",
    }
)


def mask_text(text: str) -> str:
    """Apply every PII pattern to a string."""
    for pattern, replacement in PII_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_pii(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Mask personal information in log entries.

    Args:
        logger: Logger instance.
        method_name: Name of the logging method.
        event_dict: The event dictionary to process.

    Returns:
        EventDict with personal data masked.
    """
    settings = get_settings()
    if not settings.privacy.pii_masking_enabled:
        return event_dict

    def mask_value(value: Any) -> Any:
        if isinstance(value, str):
            return mask_text(value)
        if isinstance(value, dict):
            return {k: mask_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(mask_value(item) for item in value)
        return value

    masked: EventDict = {}
    for key, val in event_dict.items():
        if key in SENSITIVE_KEYS and val not in (None, ""):
            masked[key] = "[REDACTED]"
        else:
            masked[key] = mask_value(val)
    return masked


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO-8601 timestamp to log entries."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_service_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service metadata to log entries."""
    settings = get_settings()
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["environment"] = settings.app_env.value
    return event_dict


def add_caller_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add caller information to log entries."""
    settings = get_settings()
    if not settings.logging.include_caller:
        return event_dict

    record = event_dict.get("_record")
    if record:
        event_dict["caller"] = {
            "filename": record.filename,
            "function": record.funcName,
            "line": record.lineno,
            "module": record.module,
        }
    return event_dict


def drop_color_message_key(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Remove color_message key that's only used for console output."""
    event_dict.pop("color_message", None)
    return event_dict


class PIIFilter(logging.Filter):
    """
    Logging filter that masks personal data in stdlib log records.

    Covers records emitted by third-party libraries that bypass structlog.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        settings = get_settings()
        if not settings.privacy.pii_masking_enabled:
            return True

        if isinstance(record.msg, str):
            record.msg = mask_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                mask_text(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True


def get_json_processors() -> list[Processor]:
    """
    Get processors for JSON log output.

    Returns:
        List of structlog processors for JSON formatting.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        add_service_info,
        add_caller_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_pii,
        drop_color_message_key,
        structlog.processors.JSONRenderer(),
    ]


def get_console_processors() -> list[Processor]:
    """
    Get processors for console log output.

    Returns:
        List of structlog processors for console formatting.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_pii,
        structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging() -> None:
    """
    Configure the logging system with structlog.

    Sets up both structlog and standard library logging with JSON or
    console output, personal data masking and a rotating log file.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.logging.level.value)

    if settings.logging.format == LogFormat.JSON:
        processors = get_json_processors()
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        processors = get_console_processors()
        renderer = structlog.dev.ConsoleRenderer(colors=settings.logging.format == LogFormat.CONSOLE)

    # The stdlib handlers render; structlog only prepares the event dict
    processors = [*processors[:-1], structlog.stdlib.ProcessorFormatter.wrap_for_formatter]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            add_timestamp,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.processors.format_exc_info,
            mask_pii,
        ],
        processor=renderer,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(PIIFilter())
    root_logger.addHandler(console_handler)

    log_file = settings.logging.file_path
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=str(log_file),
        maxBytes=settings.logging.file_max_size_mb * 1024 * 1024,
        backupCount=settings.logging.file_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(PIIFilter())
    root_logger.addHandler(file_handler)

    # Quiet noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog BoundLogger instance.
    """
    return structlog.get_logger(name)
