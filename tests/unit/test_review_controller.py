"""
Unit tests for the ReviewController.

Tests cover:
- Round lifecycle and state transitions
- Failure handling (analysis failure, unavailable document)
- Reentrancy guard
- Idempotent re-rounds
- Live values via notifications and polling
- Hide, accept-and-promote, highlight
"""

import asyncio

import pytest

from formzilla.client import AnalysisFailed
from formzilla.document import DEFAULT_STYLE, HIGHLIGHT_STYLE, DocumentUnavailable
from formzilla.filling import is_token
from formzilla.knowledge import PersistenceFailed
from formzilla.review import (
    ReviewController,
    ReviewNotActiveError,
    RoundInProgressError,
    RoundState,
    SuggestionNotFoundError,
    SuggestionState,
)


RECORDS = [
    {"field_id": "idx_1", "value": "Jane", "name": "First Name"},
    {"field_id": "idx_2", "value": "", "name": "Last Name"},
    {"field_id": "idx_3", "value": "jane@example.com", "name": "Email"},
]

KNOWLEDGE_BASE = "First Name: Jane\nEmail: jane@example.com"


class BlockingAnalyzer:
    """Analyzer that waits until released, to observe in-flight states."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def analyze(self, images, knowledge_base):
        self.started.set()
        await self.release.wait()
        return []


@pytest.fixture
def make_controller(surface, stub_analyzer_cls, recording_writer_cls):
    def factory(records=RECORDS, error=None, writer=True, **kwargs):
        analyzer = stub_analyzer_cls(records, error=error)
        knowledge_writer = recording_writer_cls() if writer is True else writer
        kwargs.setdefault("poll_interval_ms", 0)
        controller = ReviewController(surface, analyzer, knowledge_writer, **kwargs)
        return controller, analyzer, knowledge_writer

    return factory


class TestStartRound:
    """Tests for ReviewController.start_round."""

    def test_happy_path(self, surface, make_controller) -> None:
        controller, analyzer, _ = make_controller()

        session = asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert controller.state == RoundState.REVIEWING
        assert controller.round_number == 1
        assert [s.token for s in session.suggestions] == ["idx_1", "idx_2", "idx_3"]
        assert surface.value("first_name") == "Jane"
        assert surface.value("last_name") == ""
        assert surface.value("email") == "jane@example.com"

    def test_renders_every_page_at_configured_width(self, surface, make_controller) -> None:
        controller, analyzer, _ = make_controller()

        asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert surface.rendered == [(0, 1240), (1, 1240)]
        images, knowledge_base = analyzer.calls[0]
        assert images == [b"page-0", b"page-1"]
        assert knowledge_base == KNOWLEDGE_BASE

    def test_render_width_override(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(render_width=800)

        asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert {width for _, width in surface.rendered} == {800}

    def test_live_values_loaded_after_round(self, make_controller) -> None:
        controller, _, _ = make_controller()

        session = asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert session.get("idx_1").current_value == "Jane"
        assert session.get("idx_2").current_value == ""

    def test_records_last_result(self, make_controller) -> None:
        controller, _, _ = make_controller(
            records=RECORDS + [{"field_id": "idx_77", "value": "x", "name": "Ghost"}]
        )

        asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert controller.last_result.orphan_count == 1
        assert sorted(controller.last_result.filled) == ["email", "first_name"]

    def test_analysis_failure_resets_to_idle(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(error=AnalysisFailed("schema"))

        with pytest.raises(AnalysisFailed):
            asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert controller.state == RoundState.IDLE
        assert controller.session is None

    def test_analysis_failure_leaves_marked_fields(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(error=AnalysisFailed("schema"))

        with pytest.raises(AnalysisFailed):
            asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert surface.value("first_name") == "idx_1"
        assert surface.value("last_name") == "idx_2"
        assert surface.value("email") == "idx_3"

    def test_clear_markers_after_failure(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(error=AnalysisFailed("timeout"))

        async def scenario():
            with pytest.raises(AnalysisFailed):
                await controller.start_round(KNOWLEDGE_BASE)
            return await controller.clear_markers()

        report = asyncio.run(scenario())

        assert sorted(report.applied) == ["email", "first_name", "last_name"]
        assert not any(is_token(v) for v in surface.values().values())

    def test_unavailable_document(self, surface, make_controller) -> None:
        controller, analyzer, _ = make_controller()
        surface.ready = False

        with pytest.raises(DocumentUnavailable):
            asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        assert controller.state == RoundState.IDLE
        assert analyzer.calls == []

    def test_rejected_while_in_flight(self, surface) -> None:
        analyzer = BlockingAnalyzer()
        controller = ReviewController(surface, analyzer, poll_interval_ms=0)

        async def scenario():
            task = asyncio.create_task(controller.start_round(KNOWLEDGE_BASE))
            await analyzer.started.wait()
            assert controller.state == RoundState.ANALYZING
            with pytest.raises(RoundInProgressError) as exc:
                await controller.start_round(KNOWLEDGE_BASE)
            assert exc.value.state == RoundState.ANALYZING
            with pytest.raises(RoundInProgressError):
                await controller.set_field_values({"first_name": "x"})
            with pytest.raises(RoundInProgressError):
                await controller.clear_markers()
            analyzer.release.set()
            await task

        asyncio.run(scenario())

        assert controller.state == RoundState.REVIEWING
        assert controller.round_number == 1

    def test_restart_from_reviewing(self, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            first = await controller.start_round(KNOWLEDGE_BASE)
            first.hide("idx_1")
            return await controller.start_round(KNOWLEDGE_BASE)

        second = asyncio.run(scenario())

        assert controller.round_number == 2
        assert controller.state == RoundState.REVIEWING
        assert second.get("idx_1").state == SuggestionState.PENDING

    def test_rerun_reaches_same_field_state(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            first = surface.values()
            await controller.start_round(KNOWLEDGE_BASE)
            return first, surface.values()

        first, second = asyncio.run(scenario())

        assert first == second

    def test_checkbox_left_checked(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()
        asyncio.run(controller.start_round(KNOWLEDGE_BASE))
        assert surface.value("subscribe") is True


class TestLiveValues:
    """Tests for live value tracking."""

    def test_notification_updates_session(self, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            session = await controller.start_round(KNOWLEDGE_BASE)
            await controller.set_field_values({"first_name": "Janet"})
            return session

        session = asyncio.run(scenario())

        assert session.get("idx_1").current_value == "Janet"

    def test_refresh_picks_up_silent_edits(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            session = await controller.start_round(KNOWLEDGE_BASE)
            surface.set_silently("email", "new@example.com")
            changed = await controller.refresh_current_values()
            return session, changed

        session, changed = asyncio.run(scenario())

        assert changed == 1
        assert session.get("idx_3").current_value == "new@example.com"

    def test_background_poll(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(poll_interval_ms=10)

        async def scenario():
            session = await controller.start_round(KNOWLEDGE_BASE)
            writes_before = len(surface.write_calls)
            surface.set_silently("last_name", "Doe")
            await asyncio.sleep(0.1)
            await controller.close()
            return session, writes_before

        session, writes_before = asyncio.run(scenario())

        assert session.get("idx_2").current_value == "Doe"
        assert len(surface.write_calls) == writes_before

    def test_background_poll_survives_read_error(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(poll_interval_ms=10)
        list_fields = surface.list_fields
        failures = []

        async def flaky_list_fields():
            if not failures:
                failures.append(1)
                raise RuntimeError("widget table busy")
            return await list_fields()

        async def scenario():
            session = await controller.start_round(KNOWLEDGE_BASE)
            surface.list_fields = flaky_list_fields
            surface.set_silently("last_name", "Doe")
            await asyncio.sleep(0.1)
            poll_task = controller._poll_task
            await controller.close()
            return session, poll_task

        session, poll_task = asyncio.run(scenario())

        assert failures == [1]
        assert session.get("idx_2").current_value == "Doe"
        assert poll_task.cancelled()

    def test_close_unsubscribes(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            session = await controller.start_round(KNOWLEDGE_BASE)
            await controller.close()
            await surface.set_field_values({"first_name": "Later"})
            return session

        session = asyncio.run(scenario())

        assert session.get("idx_1").current_value == "Jane"


class TestHide:
    """Tests for ReviewController.hide."""

    def test_hide_does_not_touch_values(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            before = (surface.values(), len(surface.write_calls))
            controller.hide("idx_1")
            controller.hide("idx_1")
            return before

        values_before, writes_before = asyncio.run(scenario())

        assert surface.values() == values_before
        assert len(surface.write_calls) == writes_before
        assert controller.session.get("idx_1").state == SuggestionState.HIDDEN

    def test_hide_unknown_token(self, make_controller) -> None:
        controller, _, _ = make_controller()
        asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        with pytest.raises(SuggestionNotFoundError):
            controller.hide("idx_404")

    def test_hide_without_review(self, make_controller) -> None:
        controller, _, _ = make_controller()

        with pytest.raises(ReviewNotActiveError):
            controller.hide("idx_1")


class TestAccept:
    """Tests for ReviewController.accept."""

    def test_promotes_exactly_one_entry(self, make_controller) -> None:
        controller, _, writer = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.accept("idx_3")

        persisted = asyncio.run(scenario())

        assert persisted is True
        assert writer.entries == {"Email": "jane@example.com"}
        suggestion = controller.session.get("idx_3")
        assert suggestion.state == SuggestionState.ACCEPTED
        assert suggestion not in controller.session.visible_suggestions()

    def test_uses_live_value(self, surface, make_controller) -> None:
        controller, _, writer = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            surface.set_silently("first_name", "Janet")
            await controller.accept("idx_1")

        asyncio.run(scenario())

        assert writer.entries == {"First Name": "Janet"}

    def test_orphan_uses_inferred_value(self, make_controller) -> None:
        controller, _, writer = make_controller(
            records=[{"field_id": "idx_50", "value": "Blue", "name": "Favourite Colour"}]
        )

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.accept("idx_50")

        assert asyncio.run(scenario()) is True
        assert writer.entries == {"Favourite Colour": "Blue"}

    def test_not_signed_in_hides_without_persisting(self, make_controller) -> None:
        controller, _, _ = make_controller(writer=None)

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.accept("idx_1")

        assert asyncio.run(scenario()) is False
        assert controller.session.get("idx_1").state == SuggestionState.HIDDEN

    def test_persistence_failure_hides(self, make_controller, recording_writer_cls) -> None:
        writer = recording_writer_cls(error=PersistenceFailed("disk full"))
        controller, _, _ = make_controller(writer=writer)

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.accept("idx_1")

        assert asyncio.run(scenario()) is False
        assert writer.entries == {}
        assert controller.session.get("idx_1").state == SuggestionState.HIDDEN

    def test_accept_does_not_modify_fields(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            before = surface.values()
            await controller.accept("idx_1")
            return before

        before = asyncio.run(scenario())

        assert surface.values() == before


class TestHighlight:
    """Tests for highlight and unhighlight."""

    def test_highlight_and_restore(self, surface, make_controller) -> None:
        controller, _, _ = make_controller()

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            values = surface.values()
            highlighted = await controller.highlight("idx_1")
            style_after_highlight = surface.styles["first_name"]
            restored = await controller.unhighlight("idx_1")
            return values, highlighted, style_after_highlight, restored

        values, highlighted, style, restored = asyncio.run(scenario())

        assert highlighted is True
        assert restored is True
        assert style == HIGHLIGHT_STYLE
        assert surface.styles["first_name"] == DEFAULT_STYLE
        assert surface.values() == values

    def test_orphan_is_noop(self, surface, make_controller) -> None:
        controller, _, _ = make_controller(
            records=[{"field_id": "idx_50", "value": "Blue", "name": "Colour"}]
        )

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.highlight("idx_50")

        assert asyncio.run(scenario()) is False
        assert surface.style_calls == []

    def test_missing_widget_is_noop(self, make_surface, stub_analyzer_cls) -> None:
        surface = make_surface(widgetless=["email"])
        controller = ReviewController(surface, stub_analyzer_cls(RECORDS), poll_interval_ms=0)

        async def scenario():
            await controller.start_round(KNOWLEDGE_BASE)
            return await controller.highlight("idx_3")

        assert asyncio.run(scenario()) is False
        assert surface.style_calls == []


class TestToDict:

    def test_idle(self, make_controller) -> None:
        controller, _, _ = make_controller()
        assert controller.to_dict() == {"state": "idle", "round_number": 0, "review": None}

    def test_reviewing(self, make_controller) -> None:
        controller, _, _ = make_controller()
        asyncio.run(controller.start_round(KNOWLEDGE_BASE))

        data = controller.to_dict()
        assert data["state"] == "reviewing"
        assert len(data["review"]["suggestions"]) == 3
