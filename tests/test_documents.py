import base64
import io
import logging

import pytest
from docx import Document
from fastapi.testclient import TestClient
from unittest.mock import patch

from conftest import build_app
from coverfit.helpers.parsing import clean_text, extract_text
from coverfit.utils.exceptions import ExtractionError


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _docx_bytes(*paragraphs) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def client():
    from coverfit.routers import documents
    return TestClient(build_app(documents.router))


class TestExtractText:
    """Plain text extraction per file type"""

    def test_txt(self):
        assert extract_text("letter.TXT", "Dear   team,\n\n\n\nThanks".encode("utf-8")) == "Dear team,\n\nThanks"

    def test_docx(self):
        text = extract_text("resume.docx", _docx_bytes("Anna Smith", "Python developer"))
        assert "Anna Smith\nPython developer" in text

    def test_unsupported_extension(self):
        with pytest.raises(ExtractionError):
            extract_text("photo.png", b"\x89PNG")

    def test_corrupt_file_is_an_extraction_error(self):
        with pytest.raises(ExtractionError) as exc_info:
            extract_text("resume.docx", b"definitely not a zip")
        assert exc_info.value.details["filename"] == "resume.docx"

    def test_clean_text_keeps_lines(self):
        assert clean_text("  a\t\tb \n c  ") == "a b \n c"


class TestParseDocumentEndpoint:
    """POST /api/parse-document"""

    def test_parse_txt(self, client):
        response = client.post("/api/parse-document", json={
            "filename": "letter.txt",
            "base64_content": _b64(b"I am applying for the role."),
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["text"] == "I am applying for the role."
        assert data["characters"] == 27

    @patch('coverfit.routers.documents.extract_text')
    def test_pdf_goes_through_extractor(self, mock_extract, client):
        mock_extract.return_value = "PDF text"
        response = client.post("/api/parse-document", json={
            "filename": "resume.pdf",
            "base64_content": _b64(b"%PDF-1.4 ..."),
        })
        assert response.status_code == 200
        mock_extract.assert_called_once_with("resume.pdf", b"%PDF-1.4 ...")

    def test_invalid_base64(self, client):
        response = client.post("/api/parse-document", json={"filename": "a.txt", "base64_content": "%%%"})
        assert response.status_code == 400

    def test_unsupported_type(self, client):
        response = client.post("/api/parse-document", json={"filename": "a.png", "base64_content": _b64(b"x")})
        assert response.status_code == 422
        assert response.json()["error"]["error_type"] == "ExtractionError"

    def test_parse_with_debug_logging(self, client):
        app_logger = logging.getLogger("coverfit")
        previous = app_logger.level
        app_logger.setLevel(logging.DEBUG)
        try:
            ok = client.post("/api/parse-document", json={"filename": "a.txt", "base64_content": _b64(b"Hello.")})
            bad = client.post("/api/parse-document", json={"filename": "a.png", "base64_content": _b64(b"x")})
        finally:
            app_logger.setLevel(previous)

        assert ok.status_code == 200
        assert ok.json()["text"] == "Hello."
        assert bad.status_code == 422
