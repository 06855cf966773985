import asyncio

import pytest

from coverfit.models.models import Change, RewriteMode, Suggestions
from coverfit.services.editor import (
    CHANGE_OPEN, HIGHLIGHT_CLOSE, HIGHLIGHT_OPEN, EditSession, EditState,
    highlight_changes, locate_sentence, render_highlight, replace_sentence,
    strip_highlight, validate_span,
)
from coverfit.utils.exceptions import BusinessLogicError, ModelError, ValidationError

TEXT = "Hello world. How are you?"


def _change(frm, to):
    return Change(**{"from": frm, "to": to})


class TestLocateSentence:
    """Sentence boundaries around a caret"""

    def test_first_sentence(self):
        span = locate_sentence(TEXT, 3)
        assert (span.sentence, span.start, span.end) == ("Hello world.", 0, 12)

    def test_second_sentence(self):
        span = locate_sentence(TEXT, 15)
        assert (span.sentence, span.start, span.end) == ("How are you?", 13, 25)

    def test_no_trailing_delimiter_runs_to_end(self):
        span = locate_sentence("First: then the rest", 10)
        assert span.sentence == "then the rest"
        assert span.end == len("First: then the rest")

    def test_newline_is_a_delimiter(self):
        text = "Dear team\nI am applying"
        span = locate_sentence(text, 12)
        assert span.sentence == "I am applying"
        assert span.start == 10

    def test_caret_is_clamped(self):
        assert locate_sentence("Hello world. How are you", 500).sentence == "How are you"
        assert locate_sentence(TEXT, -4).sentence == "Hello world."

    def test_empty_text(self):
        span = locate_sentence("", 0)
        assert (span.sentence, span.start, span.end) == ("", 0, 0)


class TestReplaceSentence:
    def test_exact_splice(self):
        assert replace_sentence("Hi. Bye.", 4, 8, "See ya!") == "Hi. See ya!"

    def test_located_span_replaces_in_place(self):
        span = locate_sentence(TEXT, 15)
        assert replace_sentence(TEXT, span.start, span.end, "Nice to meet you.") == "Hello world. Nice to meet you."

    def test_validate_span_rejects_out_of_range(self):
        validate_span("abc", 0, 3)
        with pytest.raises(ValidationError):
            validate_span("abc", 2, 1)
        with pytest.raises(ValidationError):
            validate_span("abc", 0, 4)


class TestHighlight:
    """Cosmetic highlight overlay"""

    def test_render_wraps_span(self):
        html = render_highlight(TEXT, (0, 12))
        assert html == HIGHLIGHT_OPEN + "Hello world." + HIGHLIGHT_CLOSE + " How are you?"

    def test_render_escapes_markup(self):
        assert render_highlight("a < b & c", None) == "a &lt; b &amp; c"

    @pytest.mark.parametrize("text,span", [
        (TEXT, (13, 25)),
        ("Use <b>bold</b> & more.\nNext line!", (0, 23)),
        ("plain", None),
    ])
    def test_strip_restores_buffer(self, text, span):
        assert strip_highlight(render_highlight(text, span)) == text

    def test_changes_are_marked_case_insensitively(self):
        out = highlight_changes("I Led the team and led the launch", [_change("ran", "[led]")])
        assert out.count(CHANGE_OPEN) == 2
        assert CHANGE_OPEN + "Led" + HIGHLIGHT_CLOSE in out

    def test_changes_match_whole_words_only(self):
        out = highlight_changes("Scaled the scale service", [_change("size", "scale")])
        assert out == "Scaled the " + CHANGE_OPEN + "scale" + HIGHLIGHT_CLOSE + " service"

    def test_overlapping_and_duplicate_changes(self):
        out = highlight_changes(
            "Built fast APIs",
            [_change("a", "fast APIs"), _change("b", "APIs"), _change("c", "FAST apis")],
        )
        assert out == "Built " + CHANGE_OPEN + "fast APIs" + HIGHLIGHT_CLOSE

    def test_no_changes_is_escaped_text(self):
        assert highlight_changes("R&D <team>", []) == "R&amp;D &lt;team&gt;"


def _rewriter(result=None, error=None, gate=None):
    calls = []

    async def rewrite(sentence, mode):
        calls.append((sentence, mode))
        if gate is not None:
            await gate.wait()
        if error is not None:
            raise error
        return result

    rewrite.calls = calls
    return rewrite


SUGGESTIONS = Suggestions(
    suggestions=["How have you been?", "How are things?", "How do you do?"],
    changes=[[], [], []],
)


class TestEditSession:
    """Sentence edit focus state machine"""

    def test_select_highlights_sentence(self):
        session = EditSession(TEXT)
        span = session.select(15)
        assert session.state == EditState.SENTENCE_SELECTED
        assert span.sentence == "How are you?"
        assert session.render().startswith("Hello world. " + HIGHLIGHT_OPEN)

    def test_select_on_blank_stays_idle(self):
        session = EditSession("Done.   ")
        assert session.select(7) is None
        assert session.state == EditState.IDLE
        assert session.highlight is None

    def test_new_selection_replaces_previous(self):
        session = EditSession(TEXT)
        session.select(3)
        session.select(15)
        assert session.highlight == (13, 25)
        assert session.render().count(HIGHLIGHT_OPEN) == 1

    @pytest.mark.asyncio
    async def test_suggestions_then_apply(self):
        session = EditSession(TEXT)
        session.select(15)
        rewrite = _rewriter(result=SUGGESTIONS)

        result = await session.request_suggestions(rewrite, RewriteMode.SHORTEN)

        assert result is SUGGESTIONS
        assert rewrite.calls == [("How are you?", RewriteMode.SHORTEN)]
        assert session.state == EditState.SUGGESTIONS_READY
        assert session.apply_suggestion(1) == "Hello world. How are things?"
        assert session.state == EditState.IDLE
        assert session.highlight is None

    @pytest.mark.asyncio
    async def test_rewrite_failure_marks_unavailable(self):
        session = EditSession(TEXT)
        session.select(3)
        result = await session.request_suggestions(_rewriter(error=ModelError("bad json")))
        assert result is None
        assert session.state == EditState.SUGGESTIONS_UNAVAILABLE
        with pytest.raises(BusinessLogicError):
            session.apply_suggestion(0)

    @pytest.mark.asyncio
    async def test_buffer_change_while_waiting_drops_suggestions(self):
        session = EditSession(TEXT)
        session.select(15)
        gate = asyncio.Event()
        pending = asyncio.create_task(session.request_suggestions(_rewriter(result=SUGGESTIONS, gate=gate)))
        await asyncio.sleep(0)
        assert session.state == EditState.AWAITING_SUGGESTIONS

        session.set_text(TEXT + " Thanks!")
        gate.set()

        assert await pending is None
        assert session.state == EditState.IDLE
        assert session.highlight is None

    @pytest.mark.asyncio
    async def test_close_while_waiting(self):
        session = EditSession(TEXT)
        session.select(15)
        gate = asyncio.Event()
        pending = asyncio.create_task(session.request_suggestions(_rewriter(result=SUGGESTIONS, gate=gate)))
        await asyncio.sleep(0)
        session.close()
        gate.set()
        assert await pending is None
        assert session.suggestions is None

    @pytest.mark.asyncio
    async def test_suggestion_index_is_checked(self):
        session = EditSession(TEXT)
        session.select(3)
        await session.request_suggestions(_rewriter(result=SUGGESTIONS))
        with pytest.raises(ValidationError):
            session.apply_suggestion(3)

    @pytest.mark.asyncio
    async def test_request_without_selection(self):
        with pytest.raises(BusinessLogicError):
            await EditSession(TEXT).request_suggestions(_rewriter(result=SUGGESTIONS))

    def test_apply_uses_selected_offsets(self):
        session = EditSession("Hi. Bye.")
        session.select(5)
        assert session.apply("See ya!") == "Hi. See ya!"
