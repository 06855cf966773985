"""
Sentence location, exact-offset replacement and highlight rendering for the
cover letter editor.

All functions here are pure over a text buffer and offsets. ``EditSession``
tracks the one sentence currently in edit focus and throws its offsets away
whenever the buffer changes.
"""
import html
import re
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from coverfit.models.models import Change, RewriteMode, SentenceSpan, Suggestions
from coverfit.utils.exceptions import BusinessLogicError, CoverFitBaseException, ValidationError
from coverfit.utils.logging_config import get_logger

logger = get_logger(__name__)

DELIMITERS = frozenset(".!?:\n")
HIGHLIGHT_OPEN = '<mark class="sentence-highlight">'
HIGHLIGHT_CLOSE = "</mark>"
CHANGE_OPEN = '<mark class="suggestion-change">'

Highlight = Tuple[int, int]


def locate_sentence(text: str, caret: int) -> SentenceSpan:
    caret = max(0, min(len(text), caret))

    start = 0
    for i in range(caret - 1, -1, -1):
        if text[i] in DELIMITERS:
            start = i + 1
            break

    end = len(text)
    for i in range(caret, len(text)):
        if text[i] in DELIMITERS:
            end = i + 1
            break

    # the gap after the previous delimiter stays outside the span
    while start < end and text[start].isspace() and text[start] != "\n":
        start += 1

    return SentenceSpan(sentence=text[start:end].strip(), start=start, end=end)


def replace_sentence(text: str, start: int, end: int, replacement: str) -> str:
    # Offsets must belong to this exact buffer; nothing is re-checked here.
    return text[:start] + replacement + text[end:]


def validate_span(text: str, start: int, end: int) -> None:
    if not 0 <= start <= end <= len(text):
        raise ValidationError(
            f"Span ({start}, {end}) is outside a buffer of length {len(text)}",
            field="span",
            value=(start, end),
        )


def render_highlight(text: str, highlight: Optional[Highlight]) -> str:
    """HTML for the buffer with the highlighted span wrapped in a mark tag."""
    if highlight is None:
        return html.escape(text, quote=False)
    start, end = highlight
    return (
        html.escape(text[:start], quote=False)
        + HIGHLIGHT_OPEN
        + html.escape(text[start:end], quote=False)
        + HIGHLIGHT_CLOSE
        + html.escape(text[end:], quote=False)
    )


_TAG_RE = re.compile(r"</?mark[^>]*>")


def strip_highlight(markup: str) -> str:
    """Inverse of render_highlight."""
    return html.unescape(_TAG_RE.sub("", markup))


def _change_pattern(phrase: str) -> re.Pattern:
    # \b only makes sense next to word characters
    left = r"\b" if re.match(r"\w", phrase) else ""
    right = r"\b" if re.search(r"\w$", phrase) else ""
    return re.compile(left + re.escape(phrase) + right, re.IGNORECASE)


def highlight_changes(suggestion: str, changes: Sequence[Change]) -> str:
    """Mark every occurrence of each changed phrase in a suggestion."""
    spans: List[Highlight] = []
    seen = set()
    for change in changes or []:
        target = change.to.strip()
        if target.startswith("[") and target.endswith("]"):
            target = target[1:-1]
        if not target or target.lower() in seen:
            continue
        found = [(m.start(), m.end()) for m in _change_pattern(target).finditer(suggestion)]
        if not found:
            continue
        seen.add(target.lower())
        for span in found:
            if not any(span[0] < e and s < span[1] for s, e in spans):
                spans.append(span)

    out = []
    cursor = 0
    for start, end in sorted(spans):
        out.append(html.escape(suggestion[cursor:start], quote=False))
        out.append(CHANGE_OPEN + html.escape(suggestion[start:end], quote=False) + HIGHLIGHT_CLOSE)
        cursor = end
    out.append(html.escape(suggestion[cursor:], quote=False))
    return "".join(out)


class EditState(str, Enum):
    IDLE = "idle"
    SENTENCE_SELECTED = "sentence_selected"
    AWAITING_SUGGESTIONS = "awaiting_suggestions"
    SUGGESTIONS_READY = "suggestions_ready"
    SUGGESTIONS_UNAVAILABLE = "suggestions_unavailable"


Rewriter = Callable[[str, RewriteMode], Awaitable[Suggestions]]


class EditSession:
    """One cover letter buffer with at most one sentence in edit focus."""

    def __init__(self, text: str = ""):
        self._text = text
        self.state = EditState.IDLE
        self.selection: Optional[SentenceSpan] = None
        self.suggestions: Optional[Suggestions] = None

    @property
    def text(self) -> str:
        return self._text

    @property
    def highlight(self) -> Optional[Highlight]:
        if self.selection is None:
            return None
        return self.selection.start, self.selection.end

    def render(self) -> str:
        return render_highlight(self._text, self.highlight)

    def set_text(self, text: str) -> None:
        """Any write to the buffer drops the tracked offsets."""
        self._text = text
        self._clear()

    def select(self, caret: int) -> Optional[SentenceSpan]:
        self._clear()
        span = locate_sentence(self._text, caret)
        if not span.sentence:
            return None
        self.selection = span
        self.state = EditState.SENTENCE_SELECTED
        return span

    async def request_suggestions(self, rewriter: Rewriter, mode: RewriteMode = RewriteMode.IMPROVE) -> Optional[Suggestions]:
        if self.state != EditState.SENTENCE_SELECTED:
            raise BusinessLogicError("No sentence selected", rule="select_before_rewrite")
        self.state = EditState.AWAITING_SUGGESTIONS
        snapshot = self._text
        try:
            suggestions = await rewriter(self.selection.sentence, mode)
        except CoverFitBaseException as e:
            logger.error(f"Rewrite failed for sentence at {self.highlight}: {e.message}")
            suggestions = None

        if self._text != snapshot or self.state != EditState.AWAITING_SUGGESTIONS:
            # buffer changed or the menu was closed while waiting
            return None
        self.suggestions = suggestions
        self.state = EditState.SUGGESTIONS_READY if suggestions else EditState.SUGGESTIONS_UNAVAILABLE
        return suggestions

    def apply(self, replacement: str) -> str:
        if self.selection is None:
            raise BusinessLogicError("No sentence selected", rule="select_before_replace")
        start, end = self.selection.start, self.selection.end
        self._clear()
        self._text = replace_sentence(self._text, start, end, replacement)
        return self._text

    def apply_suggestion(self, index: int) -> str:
        if self.state != EditState.SUGGESTIONS_READY:
            raise BusinessLogicError("No suggestions to apply", rule="suggestions_ready")
        options = self.suggestions.suggestions
        if not 0 <= index < len(options):
            raise ValidationError(f"No suggestion at index {index}", field="index", value=index)
        return self.apply(options[index])

    def close(self) -> None:
        self._clear()

    def _clear(self) -> None:
        self.selection = None
        self.suggestions = None
        self.state = EditState.IDLE
