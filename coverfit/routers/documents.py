import asyncio

from fastapi import APIRouter, Request

from coverfit.helpers.parsing import extract_text
from coverfit.models.schemas import DocumentPayload, ParsedDocumentResponse
from coverfit.utils.exceptions import ExceptionContext
from coverfit.utils.logging_config import PerformanceMonitor, get_logger
from coverfit.utils.utils import decode_base64

router = APIRouter()
logger = get_logger(__name__)


@router.post("/parse-document", response_model=ParsedDocumentResponse)
async def parse_document(payload: DocumentPayload, request: Request):
    """Extract plain text from a base64 encoded PDF, DOCX or TXT file"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    data = decode_base64(payload.base64_content, field="base64_content")

    logger.info(
        f"Extracting text from {payload.filename} ({len(data)} bytes)",
        extra={"request_id": request_id}
    )
    with PerformanceMonitor("parse_document", logger):
        with ExceptionContext("parse_document", logger, request_id=request_id, document=payload.filename):
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(None, extract_text, payload.filename, data)

    return ParsedDocumentResponse(filename=payload.filename, text=text, characters=len(text))
