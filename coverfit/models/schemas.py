from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from coverfit.models.models import (
    AppState, BatchDocument, Category, Change, DocumentStatus,
    ParsedJobDescription, RewriteMode, ScoreResult, WeightValue,
)
from coverfit.services.scoring import score_band, score_hue


# -------- Job description & coverage --------
class ParseJobRequest(BaseModel):
    jobDescription: str


class CoverageBatchRequest(BaseModel):
    section: Category
    bulletPoints: List[str]
    coverLetter: str


class CoverageBatchResponse(BaseModel):
    results: List[ScoreResult]


class CoverageRequest(BaseModel):
    parsedData: ParsedJobDescription
    coverLetter: str
    weights: Dict[str, WeightValue] = Field(default_factory=dict)


class CoverageResponse(BaseModel):
    results: Dict[str, ScoreResult]
    summary: Optional[int] = None
    failed_sections: List[Category] = Field(default_factory=list)


# -------- Sentences --------
class SentenceRequest(BaseModel):
    sentence: str


class SuggestionResponse(BaseModel):
    suggestions: List[str]
    changes: List[List[Change]]
    highlighted: List[str] = Field(default_factory=list)
    mode: RewriteMode


class LocateRequest(BaseModel):
    text: str
    caret: int = Field(..., ge=0)


class ReplaceRequest(BaseModel):
    text: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    replacement: str


class ReplaceResponse(BaseModel):
    text: str


class HighlightRequest(BaseModel):
    text: str
    start: Optional[int] = None
    end: Optional[int] = None


class HighlightResponse(BaseModel):
    html: str


# -------- Documents --------
class DocumentPayload(BaseModel):
    """Uploaded file as base64, the same way CVs arrive from the portal."""
    filename: str
    base64_content: str


class ParsedDocumentResponse(BaseModel):
    success: bool = True
    filename: str
    text: str
    characters: int


# -------- Batch --------
class BatchDocumentsPayload(BaseModel):
    documents: List[DocumentPayload]


class DocumentView(BaseModel):
    id: str
    name: str
    status: DocumentStatus
    characters: int
    error: Optional[str] = None
    summary: Optional[int] = None
    band: Optional[str] = None
    hue: Optional[float] = None

    @classmethod
    def from_document(cls, doc: BatchDocument, summary: Optional[int] = None) -> "DocumentView":
        return cls(
            id=doc.id,
            name=doc.name,
            status=doc.status,
            characters=len(doc.content),
            error=doc.error,
            summary=summary,
            band=score_band(summary) if summary is not None else None,
            hue=score_hue(summary) if summary is not None else None,
        )


class BatchView(BaseModel):
    batch_id: str
    documents: List[DocumentView]
    eligible_count: int
    in_progress: bool
    parsed_data: Optional[ParsedJobDescription] = None
    weights: Dict[str, int] = Field(default_factory=dict)
    criteria_count: int = 0


class WeightAdjustment(BaseModel):
    delta: int


class WeightView(BaseModel):
    key: str
    weight: int


class GridRow(BaseModel):
    id: str
    label: str
    cells: Dict[str, Optional[int]]
    bands: Dict[str, Optional[str]] = Field(default_factory=dict)


class ResultsView(BaseModel):
    batch_id: str
    layout: str
    sort_by: str
    order: str
    in_progress: bool
    columns: List[str]
    column_labels: Dict[str, str]
    rows: List[GridRow]


# -------- Saved state --------
class RestoreResponse(BaseModel):
    session_id: str
    has_saved_state: bool
    last_saved: Optional[datetime] = None
    state: Optional[AppState] = None
