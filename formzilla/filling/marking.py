"""
Field marking.

Overwrites every eligible form field with a unique correlation token so the
vision model can refer to fields by a short synthetic code instead of their
internal names.
"""

import re
from dataclasses import dataclass
from typing import Any

from formzilla.config import get_logger
from formzilla.document import DocumentSurface, FieldKind, FieldWriteFailed


logger = get_logger(__name__)

TOKEN_PREFIX = "idx_"
TOKEN_PATTERN = re.compile(r"^idx_\d+$")
CHECKBOX_SENTINEL = "Yes"


@dataclass(frozen=True, slots=True)
class CorrelationEntry:
    """Link between a correlation token and the field it was written into."""

    token: str
    original_field_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "original_field_name": self.original_field_name}


def make_token(index: int) -> str:
    """Build the token for a 1-based marking index."""
    if index < 1:
        raise ValueError(f"Token index must be positive, got {index}")
    return f"{TOKEN_PREFIX}{index}"


def is_token(value: object) -> bool:
    """Check whether a field value is a correlation token."""
    return isinstance(value, str) and TOKEN_PATTERN.match(value) is not None


async def mark_form_fields(surface: DocumentSurface) -> list[CorrelationEntry]:
    """
    Write a correlation token into every eligible field.

    Fields are visited in surface order and written one at a time. Checkboxes
    are set to the checked sentinel and get no entry; radio groups are left
    untouched. The counter advances only when a token is written, so tokens
    run idx_1..idx_n without gaps.

    Args:
        surface: Loaded document surface.

    Returns:
        Correlation table in marking order.

    Raises:
        DocumentUnavailable: If the document is not loaded.
    """
    fields = await surface.list_fields()
    correlation: list[CorrelationEntry] = []
    skipped = 0

    for form_field in fields:
        if form_field.kind == FieldKind.RADIO:
            continue

        if form_field.kind == FieldKind.CHECKBOX:
            try:
                await surface.set_field_values({form_field.name: CHECKBOX_SENTINEL})
            except FieldWriteFailed as e:
                skipped += 1
                logger.warning("checkbox_mark_failed", field_name=form_field.name, error=str(e))
            continue

        token = make_token(len(correlation) + 1)
        try:
            await surface.set_field_values({form_field.name: token})
        except FieldWriteFailed as e:
            skipped += 1
            logger.warning("field_mark_failed", field_name=form_field.name, error=str(e))
            continue
        correlation.append(CorrelationEntry(token=token, original_field_name=form_field.name))

    logger.info(
        "fields_marked",
        field_count=len(fields),
        token_count=len(correlation),
        skipped=skipped,
    )
    return correlation
