"""
Review session state.

One ReviewSession holds everything the user reviews after a round: the
tracked suggestions keyed by token, each with an explicit state and the
live value of its target field.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from formzilla.document import FieldValue, FormField
from formzilla.filling import CorrelationEntry, TrackedField


class SuggestionState(str, Enum):
    """Review state of one suggestion."""

    PENDING = "pending"
    HIDDEN = "hidden"
    ACCEPTED = "accepted"


class SuggestionNotFoundError(KeyError):
    """Raised when a token has no suggestion in the session."""


@dataclass(slots=True)
class Suggestion:
    """A tracked field under review."""

    field: TrackedField
    state: SuggestionState = SuggestionState.PENDING
    current_value: FieldValue | None = None

    @property
    def token(self) -> str:
        return self.field.token

    @property
    def is_visible(self) -> bool:
        return self.state == SuggestionState.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.field.to_dict(),
            "state": self.state.value,
            "current_value": self.current_value,
        }


class ReviewSession:
    """
    Aggregate of all suggestions produced by one round.

    Suggestions keep the order in which the model returned their tokens.
    Live values are tracked per original field name; orphaned suggestions
    have no field and never receive one.
    """

    def __init__(
        self,
        correlation: Sequence[CorrelationEntry],
        tracked_fields: Iterable[TrackedField],
    ) -> None:
        self.correlation = list(correlation)
        self.created_at = datetime.now(UTC)
        self._suggestions: dict[str, Suggestion] = {
            tracked.token: Suggestion(field=tracked) for tracked in tracked_fields
        }

    def __len__(self) -> int:
        return len(self._suggestions)

    def __contains__(self, token: object) -> bool:
        return token in self._suggestions

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions.values())

    def visible_suggestions(self) -> list[Suggestion]:
        return [s for s in self._suggestions.values() if s.is_visible]

    def get(self, token: str) -> Suggestion:
        try:
            return self._suggestions[token]
        except KeyError:
            raise SuggestionNotFoundError(token) from None

    def hide(self, token: str) -> Suggestion:
        """Hide a suggestion. Accepted suggestions keep their state."""
        suggestion = self.get(token)
        if suggestion.state == SuggestionState.PENDING:
            suggestion.state = SuggestionState.HIDDEN
        return suggestion

    def mark_accepted(self, token: str) -> Suggestion:
        suggestion = self.get(token)
        suggestion.state = SuggestionState.ACCEPTED
        return suggestion

    def apply_values(self, values: Mapping[str, FieldValue]) -> int:
        """
        Update live values from a {field_name: value} mapping.

        Returns:
            Number of suggestions whose live value changed.
        """
        changed = 0
        for suggestion in self._suggestions.values():
            field_name = suggestion.field.original_field_name
            if not field_name or field_name not in values:
                continue
            if suggestion.current_value != values[field_name]:
                suggestion.current_value = values[field_name]
                changed += 1
        return changed

    def apply_fields(self, fields: Iterable[FormField]) -> int:
        return self.apply_values({f.name: f.value for f in fields})

    def to_dict(self, include_hidden: bool = False) -> dict[str, Any]:
        suggestions = self.suggestions if include_hidden else self.visible_suggestions()
        return {
            "created_at": self.created_at.isoformat(),
            "suggestion_count": len(self._suggestions),
            "suggestions": [s.to_dict() for s in suggestions],
        }
