"""
Review controller.

Drives one analysis round through Marking, Rendering, Analyzing and
Filling, then owns the interactive review of the resulting suggestions:
live values, hide, accept-and-promote and widget highlighting.
"""

import asyncio
import contextlib
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Protocol

from formzilla.client import AnalysisFailed, InferenceRecord
from formzilla.config import get_logger, get_settings
from formzilla.document import (
    DEFAULT_STYLE,
    HIGHLIGHT_STYLE,
    DocumentSurface,
    DocumentUnavailable,
    FieldValue,
    WidgetStyle,
)
from formzilla.filling import (
    ResolutionResult,
    WriteReport,
    mark_form_fields,
    resolve_round,
    unmark_form_fields,
)
from formzilla.knowledge import PersistenceFailed
from formzilla.review.session import ReviewSession, Suggestion, SuggestionState


logger = get_logger(__name__)


class RoundState(str, Enum):
    """Lifecycle of an analysis round."""

    IDLE = "idle"
    MARKING = "marking"
    RENDERING = "rendering"
    ANALYZING = "analyzing"
    FILLING = "filling"
    REVIEWING = "reviewing"


IN_FLIGHT_STATES = frozenset(
    {RoundState.MARKING, RoundState.RENDERING, RoundState.ANALYZING, RoundState.FILLING}
)


class RoundInProgressError(Exception):
    """Raised when an action needs the controller to be idle or reviewing."""

    def __init__(self, state: RoundState) -> None:
        self.state = state
        super().__init__(f"A round is in progress (state: {state.value})")


class ReviewNotActiveError(Exception):
    """Raised when a review action is requested outside the Reviewing state."""


class FormAnalyzer(Protocol):
    """Anything that turns page images and knowledge text into records."""

    async def analyze(
        self,
        images: Sequence[bytes],
        knowledge_base: str,
    ) -> list[InferenceRecord]: ...


class KnowledgeWriter(Protocol):
    """Destination for accepted suggestions."""

    async def upsert_entry(self, label: str, value: str) -> None: ...


def _as_text(value: FieldValue) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return value


class ReviewController:
    """
    State machine for analysis rounds and their review.

    Only one round runs at a time: start_round is accepted from Idle or
    Reviewing and rejected in every in-flight state. While Reviewing, live
    field values reach the session through the surface's change
    notifications and through a read-only background poll.

    Example:
        controller = ReviewController(surface, VisionAnalysisClient(), writer)
        session = await controller.start_round(knowledge_base)
        await controller.highlight("idx_1")
        await controller.accept("idx_1")
        await controller.close()
    """

    def __init__(
        self,
        surface: DocumentSurface,
        analyzer: FormAnalyzer,
        knowledge_writer: KnowledgeWriter | None = None,
        render_width: int | None = None,
        poll_interval_ms: int | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            surface: Document surface under review.
            analyzer: Vision analysis client.
            knowledge_writer: Knowledge base for accepted suggestions, None
                when the user is not signed in.
            render_width: Page render width in pixels. Defaults to settings.
            poll_interval_ms: Live value poll interval, 0 to disable.
                Defaults to settings.
        """
        settings = get_settings()

        self._surface = surface
        self._analyzer = analyzer
        self._knowledge_writer = knowledge_writer
        self._render_width = render_width or settings.pdf.render_width
        self._poll_interval_ms = (
            poll_interval_ms if poll_interval_ms is not None else settings.review.poll_interval_ms
        )

        self._state = RoundState.IDLE
        self._session: ReviewSession | None = None
        self._last_result: ResolutionResult | None = None
        self._round_number = 0
        self._poll_task: asyncio.Task[None] | None = None
        self._unsubscribe = surface.add_change_listener(self._on_fields_changed)

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def session(self) -> ReviewSession | None:
        return self._session

    @property
    def last_result(self) -> ResolutionResult | None:
        return self._last_result

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def is_busy(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    def _set_state(self, state: RoundState) -> None:
        logger.debug(
            "round_state_changed",
            round_number=self._round_number,
            from_state=self._state.value,
            to_state=state.value,
        )
        self._state = state

    def _ensure_not_busy(self) -> None:
        if self.is_busy:
            raise RoundInProgressError(self._state)

    # ------------------------------------------------------------------
    # Round
    # ------------------------------------------------------------------

    async def start_round(self, knowledge_base: str) -> ReviewSession:
        """
        Run marking, rendering, analysis and filling for the document.

        Args:
            knowledge_base: Knowledge base text for the model.

        Returns:
            The review session of the new round.

        Raises:
            RoundInProgressError: If another round is in flight.
            DocumentUnavailable: If the document is not loaded.
            AnalysisFailed: If the model call fails; the form keeps its
                marked values and the controller returns to Idle.
        """
        self._ensure_not_busy()

        if self._state == RoundState.REVIEWING:
            self._set_state(RoundState.IDLE)
        self._round_number += 1
        self._set_state(RoundState.MARKING)
        self._session = None
        await self._stop_polling()

        logger.info("round_started", round_number=self._round_number)

        try:
            if not self._surface.is_ready:
                raise DocumentUnavailable("Document is not loaded yet")

            correlation = await mark_form_fields(self._surface)

            self._set_state(RoundState.RENDERING)
            images = [
                await self._surface.render_page(page_index, self._render_width)
                for page_index in range(self._surface.page_count)
            ]

            self._set_state(RoundState.ANALYZING)
            records = await self._analyzer.analyze(images, knowledge_base)

            self._set_state(RoundState.FILLING)
            result = await resolve_round(self._surface, correlation, records)
        except AnalysisFailed as e:
            self._set_state(RoundState.IDLE)
            logger.error("round_analysis_failed", round_number=self._round_number, error=str(e))
            raise
        except Exception as e:
            self._set_state(RoundState.IDLE)
            logger.error(
                "round_failed",
                round_number=self._round_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        session = ReviewSession(correlation, result.tracked_fields)
        session.apply_fields(await self._surface.list_fields())
        self._session = session
        self._last_result = result
        self._set_state(RoundState.REVIEWING)
        self._start_polling()

        logger.info(
            "round_complete",
            round_number=self._round_number,
            token_count=len(correlation),
            suggestion_count=len(session),
            filled=len(result.filled),
            cleared=len(result.cleared),
            orphans=result.orphan_count,
        )
        return session

    async def clear_markers(self) -> WriteReport:
        """
        Blank every token still visible in the form.

        Raises:
            RoundInProgressError: If a round is in flight.
        """
        self._ensure_not_busy()
        return await unmark_form_fields(self._surface)

    async def set_field_values(self, values: Mapping[str, FieldValue]) -> None:
        """
        Apply manual edits to the form.

        Raises:
            RoundInProgressError: If a round is in flight.
            FieldWriteFailed: If the surface rejects an entry.
        """
        self._ensure_not_busy()
        await self._surface.set_field_values(values)

    # ------------------------------------------------------------------
    # Live values
    # ------------------------------------------------------------------

    def _on_fields_changed(self, values: Mapping[str, FieldValue]) -> None:
        if self._session is not None:
            self._session.apply_values(values)

    async def refresh_current_values(self) -> int:
        """Re-read live values into the session. Returns the change count."""
        if self._session is None:
            return 0
        return self._session.apply_fields(await self._surface.list_fields())

    def _start_polling(self) -> None:
        if self._poll_interval_ms <= 0 or self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _poll_loop(self) -> None:
        interval = self._poll_interval_ms / 1000
        while self._state == RoundState.REVIEWING:
            await asyncio.sleep(interval)
            try:
                await self.refresh_current_values()
            except DocumentUnavailable:
                logger.warning("review_poll_stopped", reason="document_unavailable")
                return
            except Exception as e:
                logger.error(
                    "review_poll_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # ------------------------------------------------------------------
    # Review actions
    # ------------------------------------------------------------------

    def _require_session(self) -> ReviewSession:
        if self._state != RoundState.REVIEWING or self._session is None:
            raise ReviewNotActiveError(f"No review in progress (state: {self._state.value})")
        return self._session

    def hide(self, token: str) -> Suggestion:
        """
        Hide a suggestion from the review list. Field values are untouched.

        Raises:
            ReviewNotActiveError: If not reviewing.
            SuggestionNotFoundError: If the token is unknown.
        """
        suggestion = self._require_session().hide(token)
        logger.debug("suggestion_hidden", token=token)
        return suggestion

    async def _live_value(self, suggestion: Suggestion) -> str:
        if not suggestion.field.is_orphaned:
            await self.refresh_current_values()
            if suggestion.current_value is not None:
                return _as_text(suggestion.current_value)
        return suggestion.field.inferred_value

    async def accept(self, token: str) -> bool:
        """
        Promote a suggestion into the knowledge base and hide it.

        The live field value is stored under the suggestion's label. When
        the knowledge base cannot be written (no signed-in user or a
        persistence error) the failure is logged and the suggestion is
        hidden anyway.

        Returns:
            True if the entry was persisted.

        Raises:
            ReviewNotActiveError: If not reviewing.
            SuggestionNotFoundError: If the token is unknown.
        """
        session = self._require_session()
        suggestion = session.get(token)
        if suggestion.state == SuggestionState.ACCEPTED:
            return True

        label = suggestion.field.label
        value = await self._live_value(suggestion)

        persisted = False
        if self._knowledge_writer is None:
            logger.warning("suggestion_accept_not_persisted", token=token, reason="not_signed_in")
        else:
            try:
                await self._knowledge_writer.upsert_entry(label, value)
                persisted = True
            except PersistenceFailed as e:
                logger.error("suggestion_accept_not_persisted", token=token, error=str(e))

        if persisted:
            session.mark_accepted(token)
        else:
            session.hide(token)

        logger.info("suggestion_accepted", token=token, label=label, persisted=persisted)
        return persisted

    async def highlight(self, token: str) -> bool:
        """Highlight the widget of a suggestion's field."""
        return await self._apply_style(token, HIGHLIGHT_STYLE)

    async def unhighlight(self, token: str) -> bool:
        """Restore the default style of a suggestion's field widget."""
        return await self._apply_style(token, DEFAULT_STYLE)

    async def _apply_style(self, token: str, style: WidgetStyle) -> bool:
        suggestion = self._require_session().get(token)
        field_name = suggestion.field.original_field_name
        if not field_name:
            logger.debug("widget_style_skipped", token=token, reason="orphaned")
            return False

        handle = await self._surface.find_widget_for_field(field_name)
        if handle is None:
            logger.info("widget_style_skipped", token=token, field_name=field_name, reason="no_widget")
            return False

        await self._surface.set_widget_style(handle, style)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "round_number": self._round_number,
            "review": self._session.to_dict() if self._session is not None else None,
        }

    async def close(self) -> None:
        """Stop polling and detach from the surface."""
        await self._stop_polling()
        self._unsubscribe()
