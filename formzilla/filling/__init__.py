"""
Form marking and filling module.

Implements the token round trip around the vision model: mark fields with
correlation tokens, resolve the model's answer back to field names, fill
the form and clear leftover tokens.
"""

from formzilla.filling.marking import (
    CHECKBOX_SENTINEL,
    TOKEN_PATTERN,
    CorrelationEntry,
    is_token,
    make_token,
    mark_form_fields,
)
from formzilla.filling.resolution import (
    ResolutionResult,
    TrackedField,
    WriteReport,
    apply_values,
    fill_analyzed_fields,
    index_inferences,
    join_inferences,
    resolve_round,
    unmark_form_fields,
)


__all__ = [
    # Marking
    "CHECKBOX_SENTINEL",
    "TOKEN_PATTERN",
    "CorrelationEntry",
    "is_token",
    "make_token",
    "mark_form_fields",
    # Resolution
    "TrackedField",
    "WriteReport",
    "ResolutionResult",
    "apply_values",
    "index_inferences",
    "join_inferences",
    "fill_analyzed_fields",
    "unmark_form_fields",
    "resolve_round",
]
