import math
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, conint, validator

DEFAULT_WEIGHT = 5
MIN_WEIGHT = 0
MAX_WEIGHT = 10

WeightValue = conint(ge=MIN_WEIGHT, le=MAX_WEIGHT)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class Category(str, Enum):
    """The three fixed sections a job description is split into"""
    RESPONSIBILITIES = "responsibilities"
    COMPANY_CULTURE = "companyCulture"
    TECHNICAL_SKILLS = "technicalSkills"

    @property
    def key_prefix(self) -> str:
        return _KEY_PREFIXES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_KEY_PREFIXES = {
    Category.RESPONSIBILITIES: "resp",
    Category.COMPANY_CULTURE: "culture",
    Category.TECHNICAL_SKILLS: "skill",
}

_LABELS = {
    Category.RESPONSIBILITIES: "job responsibilities and duties",
    Category.COMPANY_CULTURE: "company culture and work environment aspects",
    Category.TECHNICAL_SKILLS: "technical skills and qualifications",
}


def criterion_key(category: Category, index: int) -> str:
    return f"{category.key_prefix}-{index}"


# -------- Job description --------
class Criterion(BaseModel):
    summary: str
    description: str


class ParsedJobDescription(BaseModel):
    responsibilities: List[Criterion] = Field(default_factory=list)
    companyCulture: List[Criterion] = Field(default_factory=list)
    technicalSkills: List[Criterion] = Field(default_factory=list)

    def criteria_for(self, category: Category) -> List[Criterion]:
        return getattr(self, category.value)

    def iter_criteria(self) -> Iterator[Tuple[str, Category, Criterion]]:
        """Yield (key, category, criterion) in display order."""
        for category in Category:
            for index, criterion in enumerate(self.criteria_for(category)):
                yield criterion_key(category, index), category, criterion

    def criterion_keys(self) -> List[str]:
        return [key for key, _, _ in self.iter_criteria()]

    @property
    def total_criteria(self) -> int:
        return sum(len(self.criteria_for(c)) for c in Category)


# -------- Scoring --------
class ScoreResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    feedback: str = ""

    @validator("score", pre=True)
    def clamp_score(cls, v):
        return max(0, min(100, round_half_up(float(v))))


ScoreMap = Dict[str, ScoreResult]
ScoreMatrix = Dict[str, ScoreMap]
Weights = Dict[str, int]


# -------- Batch documents --------
class UploadedFile(BaseModel):
    name: str
    data: bytes


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class BatchDocument(BaseModel):
    id: str
    name: str
    content: str = ""
    status: DocumentStatus = DocumentStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_eligible(self) -> bool:
        return self.status == DocumentStatus.COMPLETED and len(self.content) > 0


# -------- Sentence editing --------
class SentenceSpan(BaseModel):
    sentence: str
    start: int
    end: int


class RewriteMode(str, Enum):
    IMPROVE = "improve"
    SHORTEN = "shorten"


class Change(BaseModel):
    from_: str = Field("", alias="from")
    to: str = ""


class Suggestions(BaseModel):
    suggestions: List[str]
    changes: List[List[Change]] = Field(default_factory=list)


# -------- Saved state --------
class AppState(BaseModel):
    job_description: str = ""
    cover_letter: str = ""
    parsed_data: Optional[ParsedJobDescription] = None
    coverage_results: ScoreMap = Field(default_factory=dict)
    last_saved: Optional[datetime] = None
