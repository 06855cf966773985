"""
Batch review: concurrent document ingestion and concurrent coverage scoring
into a shared score matrix.
"""
import asyncio
import os
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import pandas as pd

from coverfit.helpers.parsing import extract_text
from coverfit.models.models import (
    BatchDocument, Category, DocumentStatus, ParsedJobDescription,
    ScoreMatrix, ScoreResult, UploadedFile, Weights, criterion_key,
)
from coverfit.services import scoring
from coverfit.services.assistant import check_coverage_async
from coverfit.utils.exceptions import BusinessLogicError, NotFoundError, ValidationError
from coverfit.utils.logging_config import get_logger

logger = get_logger(__name__)

BATCH_IDLE_MINUTES = int(os.getenv("BATCH_IDLE_MINUTES", "120"))

Extractor = Callable[[str, bytes], str]
CoverageChecker = Callable[[Category, List[str], str], Awaitable[List[ScoreResult]]]

_ALLOWED_TRANSITIONS = {
    DocumentStatus.PENDING: {DocumentStatus.PROCESSING, DocumentStatus.ERROR},
    DocumentStatus.PROCESSING: {DocumentStatus.COMPLETED, DocumentStatus.ERROR},
    DocumentStatus.COMPLETED: set(),
    DocumentStatus.ERROR: set(),
}


class BatchSession:
    """Documents, criteria, weights and scores for one batch review."""

    def __init__(
        self,
        batch_id: str = None,
        extractor: Extractor = extract_text,
        coverage_checker: CoverageChecker = check_coverage_async,
    ):
        self.batch_id = batch_id or str(uuid.uuid4())
        self.extractor = extractor
        self.coverage_checker = coverage_checker
        self.documents: Dict[str, BatchDocument] = {}
        self.parsed: Optional[ParsedJobDescription] = None
        self.weights: Weights = {}
        self.matrix: ScoreMatrix = {}
        self.in_progress = False
        self._ingest_tasks = set()
        self._scoring_task: Optional[asyncio.Task] = None
        self.last_access = datetime.utcnow()

    # ---------- criteria & weights ----------

    def set_job(self, parsed: ParsedJobDescription) -> None:
        if self.in_progress:
            raise BusinessLogicError(
                "A scoring run is in progress; wait for it to finish before changing the job description",
                rule="single_scoring_run",
            )
        # old scores refer to the old criteria
        self.parsed = parsed
        self.matrix = {}
        self.weights = scoring.initialize_weights(parsed, self.weights)

    def adjust_weight(self, key: str, delta: int) -> int:
        if self.parsed is None or key not in self.parsed.criterion_keys():
            raise NotFoundError(f"Unknown criterion {key}", resource="criterion", resource_id=key)
        self.weights = scoring.adjust_weight(self.weights, key, delta)
        return self.weights[key]

    def reset_weights(self) -> Weights:
        if self.parsed is None:
            raise ValidationError("Parse a job description first", field="job_description")
        self.weights = scoring.reset_weights(self.parsed)
        return self.weights

    # ---------- ingestion ----------

    def ingest(self, files: Iterable[UploadedFile]) -> List[BatchDocument]:
        """Register files as pending and start extracting each one independently."""
        created = []
        for upload in files:
            doc = BatchDocument(id=uuid.uuid4().hex[:12], name=upload.name)
            self.documents[doc.id] = doc
            created.append(doc)
            task = asyncio.create_task(self._extract(doc.id, upload))
            self._ingest_tasks.add(task)
            task.add_done_callback(self._ingest_tasks.discard)
        logger.info(f"Batch {self.batch_id}: ingesting {len(created)} document(s)")
        return created

    async def wait_for_ingestion(self) -> None:
        while self._ingest_tasks:
            await asyncio.gather(*list(self._ingest_tasks))

    async def _extract(self, doc_id: str, upload: UploadedFile) -> None:
        if self._transition(doc_id, DocumentStatus.PROCESSING) is None:
            return
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self.extractor, upload.name, upload.data)
        except Exception as e:
            logger.error(f"Batch {self.batch_id}: extraction failed for {upload.name}: {e}")
            self._transition(doc_id, DocumentStatus.ERROR, error=str(e))
            return

        if not text or not text.strip():
            self._transition(doc_id, DocumentStatus.ERROR, error="No text could be extracted")
        else:
            self._transition(doc_id, DocumentStatus.COMPLETED, content=text)

    def _transition(self, doc_id: str, status: DocumentStatus, **changes) -> Optional[BatchDocument]:
        doc = self.documents.get(doc_id)
        if doc is None:
            logger.debug(f"Batch {self.batch_id}: dropping {status.value} for removed document {doc_id}")
            return None
        if status not in _ALLOWED_TRANSITIONS[doc.status]:
            raise BusinessLogicError(
                f"Document {doc_id} cannot move from {doc.status.value} to {status.value}",
                rule="document_lifecycle",
            )
        doc.status = status
        for field, value in changes.items():
            setattr(doc, field, value)
        logger.debug(f"Batch {self.batch_id}: document {doc_id} is now {status.value}")
        return doc

    def get_document(self, doc_id: str) -> BatchDocument:
        doc = self.documents.get(doc_id)
        if doc is None:
            raise NotFoundError(f"Document {doc_id} not found", resource="document", resource_id=doc_id)
        return doc

    def remove_document(self, doc_id: str) -> bool:
        removed = self.documents.pop(doc_id, None) is not None
        self.matrix.pop(doc_id, None)
        if removed:
            logger.info(f"Batch {self.batch_id}: removed document {doc_id}")
        return removed

    def eligible_documents(self) -> List[BatchDocument]:
        return [d for d in self.documents.values() if d.is_eligible]

    @property
    def eligible_count(self) -> int:
        return len(self.eligible_documents())

    # ---------- scoring ----------

    def apply_results(self, doc_id: str, category: Category, results: List[ScoreResult]) -> bool:
        if doc_id not in self.documents:
            logger.debug(f"Batch {self.batch_id}: discarding {category.value} scores for removed document {doc_id}")
            return False
        doc_scores = self.matrix.setdefault(doc_id, {})
        for index, result in enumerate(results):
            doc_scores[criterion_key(category, index)] = result
        return True

    async def _score_one(self, doc: BatchDocument, category: Category, requirements: List[str]) -> bool:
        try:
            results = await self.coverage_checker(category, requirements, doc.content)
        except Exception as e:
            logger.error(f"Batch {self.batch_id}: scoring {doc.name} for {category.value} failed: {e}")
            return False
        if len(results) != len(requirements):
            logger.error(
                f"Batch {self.batch_id}: {category.value} scorer returned {len(results)} results "
                f"for {len(requirements)} requirements on {doc.name}"
            )
            return False
        return self.apply_results(doc.id, category, results)

    def _prepare_run(self) -> List[BatchDocument]:
        if self.parsed is None:
            raise ValidationError("Parse a job description before scoring", field="job_description")
        if self.in_progress:
            raise BusinessLogicError("A scoring run is already in progress", rule="single_scoring_run")
        eligible = self.eligible_documents()
        if not eligible:
            raise BusinessLogicError(
                "No files are ready for processing. Wait for files to finish parsing or check for errors.",
                rule="eligible_documents_required",
            )
        self.in_progress = True
        self.matrix = {}
        return eligible

    async def _run(self, eligible: List[BatchDocument]) -> Dict[str, int]:
        calls = []
        try:
            for doc in eligible:
                for category in Category:
                    criteria = self.parsed.criteria_for(category)
                    if criteria:
                        calls.append(self._score_one(doc, category, [c.description for c in criteria]))
            logger.info(f"Batch {self.batch_id}: dispatching {len(calls)} scoring request(s) for {len(eligible)} document(s)")
            outcomes = await asyncio.gather(*calls)
        finally:
            self.in_progress = False
        stats = {"dispatched": len(calls), "applied": sum(1 for o in outcomes if o)}
        logger.info(f"Batch {self.batch_id}: scoring finished, {stats['applied']}/{stats['dispatched']} applied")
        return stats

    async def score_all(self) -> Dict[str, int]:
        return await self._run(self._prepare_run())

    def start_scoring(self) -> asyncio.Task:
        """Validate synchronously, then score in the background."""
        eligible = self._prepare_run()
        self._scoring_task = asyncio.create_task(self._run(eligible))
        return self._scoring_task

    async def wait_for_scoring(self) -> None:
        if self._scoring_task is not None:
            await self._scoring_task

    # ---------- views ----------

    def summary(self, doc_id: str) -> Optional[int]:
        return scoring.compute_summary(self.matrix.get(doc_id, {}), self.weights)

    def sorted_documents(self, sort_by: str = "name", order: str = "asc") -> List[BatchDocument]:
        return scoring.sort_documents(self.documents.values(), self.matrix, self.weights, sort_by, order)

    def results_grid(self, layout: str = scoring.LAYOUT_CANDIDATES_AS_ROWS, sort_by: str = "name", order: str = "asc") -> pd.DataFrame:
        return scoring.build_results_grid(
            self.documents.values(), self.parsed, self.matrix, self.weights, layout, sort_by, order
        )


class BatchRegistry:
    """In-process registry of batch sessions.

    Sessions untouched for longer than ``max_idle`` are dropped on the next
    ``create`` or ``get``, unless they are still ingesting or scoring.
    """

    def __init__(
        self,
        max_idle: timedelta = timedelta(minutes=BATCH_IDLE_MINUTES),
        clock: Callable[[], datetime] = datetime.utcnow,
        **session_kwargs,
    ):
        self._sessions: Dict[str, BatchSession] = {}
        self._session_kwargs = session_kwargs
        self.max_idle = max_idle
        self._clock = clock

    def create(self) -> BatchSession:
        self.sweep()
        session = BatchSession(**self._session_kwargs)
        session.last_access = self._clock()
        self._sessions[session.batch_id] = session
        logger.info(f"Created batch {session.batch_id}")
        return session

    def get(self, batch_id: str) -> BatchSession:
        self.sweep()
        session = self._sessions.get(batch_id)
        if session is None:
            raise NotFoundError(f"Batch {batch_id} not found", resource="batch", resource_id=batch_id)
        session.last_access = self._clock()
        return session

    def delete(self, batch_id: str) -> bool:
        return self._sessions.pop(batch_id, None) is not None

    def sweep(self) -> List[str]:
        """Drop idle sessions; returns the expired batch ids."""
        cutoff = self._clock() - self.max_idle
        expired = [
            batch_id for batch_id, session in self._sessions.items()
            if session.last_access < cutoff and not session.in_progress and not session._ingest_tasks
        ]
        for batch_id in expired:
            del self._sessions[batch_id]
        if expired:
            logger.info(f"Expired {len(expired)} idle batch(es)")
        return expired

    def __len__(self) -> int:
        return len(self._sessions)


registry = BatchRegistry()
