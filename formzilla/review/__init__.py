"""
Review module.

Round orchestration and the interactive review of model suggestions.
"""

from formzilla.review.controller import (
    FormAnalyzer,
    KnowledgeWriter,
    ReviewController,
    ReviewNotActiveError,
    RoundInProgressError,
    RoundState,
)
from formzilla.review.registry import OpenDocument, ReviewRegistry
from formzilla.review.session import (
    ReviewSession,
    Suggestion,
    SuggestionNotFoundError,
    SuggestionState,
)


__all__ = [
    # Controller
    "ReviewController",
    "RoundState",
    "RoundInProgressError",
    "ReviewNotActiveError",
    "FormAnalyzer",
    "KnowledgeWriter",
    # Session
    "ReviewSession",
    "Suggestion",
    "SuggestionState",
    "SuggestionNotFoundError",
    # Registry
    "ReviewRegistry",
    "OpenDocument",
]
