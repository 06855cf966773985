import io
import re
from pathlib import PurePath

from docx import Document
from pdfminer.high_level import extract_text as pdf_extract

from coverfit.utils.exceptions import ExtractionError
from coverfit.utils.logging_config import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".txt", ".pdf", ".docx")


def read_txt(data: bytes) -> str:
    return data.decode("utf-8", errors="ignore")


def read_docx(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    return "\n".join([p.text for p in doc.paragraphs])


def read_pdf(data: bytes) -> str:
    return pdf_extract(io.BytesIO(data))


def clean_text(x: str) -> str:
    # collapse runs of spaces/tabs but keep line structure for sentence splitting
    x = re.sub(r"[ \t\r\f\v]+", " ", x)
    x = re.sub(r"\n\s*\n+", "\n\n", x)
    return x.strip()


_READERS = {
    ".txt": read_txt,
    ".pdf": read_pdf,
    ".docx": read_docx,
}


def extract_text(filename: str, data: bytes) -> str:
    """Plain text of an uploaded file. ``data`` is only read, never modified."""
    ext = PurePath(filename or "").suffix.lower()
    reader = _READERS.get(ext)
    if reader is None:
        raise ExtractionError(f"Unsupported file type: {ext or 'none'}", filename=filename)
    try:
        text = reader(bytes(data))
    except Exception as e:
        logger.error(f"Failed to extract text from {filename}: {e}")
        raise ExtractionError(f"Failed to parse {ext[1:].upper()} file", filename=filename, cause=e) from e
    return clean_text(text)
