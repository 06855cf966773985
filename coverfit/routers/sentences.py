from fastapi import APIRouter, Request

from coverfit.models.models import RewriteMode, SentenceSpan
from coverfit.models.schemas import (
    HighlightRequest, HighlightResponse, LocateRequest, ReplaceRequest,
    ReplaceResponse, SentenceRequest, SuggestionResponse,
)
from coverfit.services import assistant
from coverfit.services.editor import (
    highlight_changes, locate_sentence, render_highlight, replace_sentence, validate_span,
)
from coverfit.utils.exceptions import ValidationError
from coverfit.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


async def _rewrite(payload: SentenceRequest, mode: RewriteMode, request: Request) -> SuggestionResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    if not payload.sentence.strip():
        raise ValidationError("Sentence is required", field="sentence")

    logger.info(f"Requesting {mode.value} suggestions", extra={"request_id": request_id})
    result = await assistant.rewrite_sentence_async(payload.sentence, mode)
    return SuggestionResponse(
        suggestions=result.suggestions,
        changes=result.changes,
        highlighted=[highlight_changes(s, c) for s, c in zip(result.suggestions, result.changes)],
        mode=mode,
    )


@router.post("/improve-sentence", response_model=SuggestionResponse)
async def improve_sentence(payload: SentenceRequest, request: Request):
    """Three lightly improved versions of a sentence"""
    return await _rewrite(payload, RewriteMode.IMPROVE, request)


@router.post("/cut-sentence", response_model=SuggestionResponse)
async def cut_sentence(payload: SentenceRequest, request: Request):
    """Three shorter versions of a sentence"""
    return await _rewrite(payload, RewriteMode.SHORTEN, request)


@router.post("/sentences/locate", response_model=SentenceSpan)
async def locate(payload: LocateRequest):
    """Sentence around a caret position, with raw offsets for replacement"""
    return locate_sentence(payload.text, payload.caret)


@router.post("/sentences/replace", response_model=ReplaceResponse)
async def replace(payload: ReplaceRequest):
    validate_span(payload.text, payload.start, payload.end)
    return ReplaceResponse(text=replace_sentence(payload.text, payload.start, payload.end, payload.replacement))


@router.post("/sentences/highlight", response_model=HighlightResponse)
async def highlight(payload: HighlightRequest):
    if payload.start is None and payload.end is None:
        return HighlightResponse(html=render_highlight(payload.text, None))
    if payload.start is None or payload.end is None:
        raise ValidationError("Both start and end are required for a highlight", field="span")
    validate_span(payload.text, payload.start, payload.end)
    return HighlightResponse(html=render_highlight(payload.text, (payload.start, payload.end)))
