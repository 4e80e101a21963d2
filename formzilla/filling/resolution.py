"""
Resolution and fill.

Joins the model's inference records back to the fields they were meant
for, writes the resolved values in one bulk call and then blanks any token
still visible in the form.

Duplicate policy: when the model returns several records for one token the
last record wins, and the tracked field keeps the position of the token's
first occurrence.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from formzilla.client import InferenceRecord
from formzilla.config import get_logger
from formzilla.document import DocumentSurface, FieldValue, FieldWriteFailed
from formzilla.filling.marking import CorrelationEntry, is_token


logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TrackedField:
    """
    A model suggestion joined to the field it targets.

    Attributes:
        token: Correlation token the model answered for.
        label: Human-readable label chosen by the model.
        original_field_name: Target field, or "" when the token is unknown.
        inferred_value: Suggested value, "" meaning no suggestion.
    """

    token: str
    label: str
    original_field_name: str
    inferred_value: str

    @property
    def is_orphaned(self) -> bool:
        return self.original_field_name == ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "label": self.label,
            "original_field_name": self.original_field_name,
            "inferred_value": self.inferred_value,
            "orphaned": self.is_orphaned,
        }


@dataclass(slots=True)
class WriteReport:
    """Outcome of a bulk write with per-field fallback."""

    applied: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResolutionResult:
    """Everything a round's resolution step produced."""

    tracked_fields: list[TrackedField]
    filled: list[str] = field(default_factory=list)
    cleared: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def orphan_count(self) -> int:
        return sum(1 for tracked in self.tracked_fields if tracked.is_orphaned)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tracked_fields": [tracked.to_dict() for tracked in self.tracked_fields],
            "filled": list(self.filled),
            "cleared": list(self.cleared),
            "failed": list(self.failed),
        }


def index_inferences(records: Iterable[InferenceRecord]) -> dict[str, InferenceRecord]:
    """Map token to record, last record winning."""
    by_token: dict[str, InferenceRecord] = {}
    duplicates: set[str] = set()
    for record in records:
        if record.field_id in by_token:
            duplicates.add(record.field_id)
        by_token[record.field_id] = record
    if duplicates:
        logger.warning("duplicate_inference_tokens", tokens=sorted(duplicates))
    return by_token


def join_inferences(
    correlation: Sequence[CorrelationEntry],
    records: Iterable[InferenceRecord],
) -> list[TrackedField]:
    """
    Join inference records to the correlation table.

    Records whose token is not in the table are kept as orphans with an
    empty original field name.
    """
    field_names = {entry.token: entry.original_field_name for entry in correlation}
    tracked = [
        TrackedField(
            token=record.field_id,
            label=record.name,
            original_field_name=field_names.get(record.field_id, ""),
            inferred_value=record.value,
        )
        for record in index_inferences(records).values()
    ]

    orphans = [t.token for t in tracked if t.is_orphaned]
    if orphans:
        logger.warning("orphaned_inference_tokens", tokens=orphans)
    return tracked


async def apply_values(surface: DocumentSurface, values: Mapping[str, FieldValue]) -> WriteReport:
    """
    Write values in one bulk call, falling back to one call per field.

    A failed bulk call leaves it unknown which entries were applied, so
    every entry is re-written individually and failures are skipped.
    """
    report = WriteReport()
    if not values:
        return report

    try:
        await surface.set_field_values(values)
    except FieldWriteFailed as e:
        logger.warning(
            "bulk_write_failed",
            field_name=e.field_name,
            field_count=len(values),
            error=str(e),
        )
    else:
        report.applied.extend(values)
        return report

    for field_name, value in values.items():
        try:
            await surface.set_field_values({field_name: value})
        except FieldWriteFailed as e:
            report.failed.append(field_name)
            logger.warning("field_write_failed", field_name=field_name, error=str(e))
        else:
            report.applied.append(field_name)
    return report


async def fill_analyzed_fields(
    surface: DocumentSurface,
    correlation: Sequence[CorrelationEntry],
    records: Iterable[InferenceRecord],
) -> WriteReport:
    """
    Write resolved values into fields that still display their token.

    A field is filled only if its live value is a token from this round's
    correlation table and the model suggested a non-empty value for it.
    Orphaned records never reach the document.
    """
    known_tokens = {entry.token for entry in correlation}
    by_token = index_inferences(records)

    values: dict[str, FieldValue] = {}
    for form_field in await surface.list_fields():
        token = form_field.value
        if not is_token(token) or token not in known_tokens:
            continue
        record = by_token.get(token)
        if record is not None and record.value != "":
            values[form_field.name] = record.value

    report = await apply_values(surface, values)
    logger.info(
        "fields_filled",
        filled=len(report.applied),
        failed=len(report.failed),
    )
    return report


async def unmark_form_fields(surface: DocumentSurface) -> WriteReport:
    """Blank every field whose value still matches the token pattern."""
    values: dict[str, FieldValue] = {
        form_field.name: ""
        for form_field in await surface.list_fields()
        if is_token(form_field.value)
    }
    report = await apply_values(surface, values)
    if values:
        logger.info(
            "fields_unmarked",
            cleared=len(report.applied),
            failed=len(report.failed),
        )
    return report


async def resolve_round(
    surface: DocumentSurface,
    correlation: Sequence[CorrelationEntry],
    records: Sequence[InferenceRecord],
) -> ResolutionResult:
    """
    Run join, fill and cleanup for one round.

    Args:
        surface: Document surface marked during this round.
        correlation: Correlation table from marking.
        records: Validated inference records.

    Returns:
        ResolutionResult with the tracked fields and write outcomes.
    """
    tracked = join_inferences(correlation, records)
    fill_report = await fill_analyzed_fields(surface, correlation, records)
    cleanup_report = await unmark_form_fields(surface)

    return ResolutionResult(
        tracked_fields=tracked,
        filled=fill_report.applied,
        cleared=cleanup_report.applied,
        failed=fill_report.failed + cleanup_report.failed,
    )
