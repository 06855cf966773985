from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from coverfit.models.models import ParsedJobDescription, UploadedFile
from coverfit.models.schemas import (
    BatchDocumentsPayload, BatchView, DocumentView, GridRow, ParseJobRequest,
    ResultsView, WeightAdjustment, WeightView,
)
from coverfit.services import assistant, scoring
from coverfit.services.batch import BatchSession, registry
from coverfit.utils.exceptions import ValidationError
from coverfit.utils.logging_config import get_logger
from coverfit.utils.utils import decode_base64

router = APIRouter(prefix="/batch", tags=["batch"])
logger = get_logger(__name__)

LAYOUT_PATTERN = "^(candidates_as_rows|candidates_as_columns)$"
SORT_PATTERN = "^(name|score)$"
ORDER_PATTERN = "^(asc|desc)$"


def _view(session: BatchSession) -> BatchView:
    return BatchView(
        batch_id=session.batch_id,
        documents=[DocumentView.from_document(d, session.summary(d.id)) for d in session.documents.values()],
        eligible_count=session.eligible_count,
        in_progress=session.in_progress,
        parsed_data=session.parsed,
        weights=session.weights,
        criteria_count=session.parsed.total_criteria if session.parsed else 0,
    )


@router.post("", response_model=BatchView, status_code=201)
async def create_batch():
    """Start a new batch review"""
    return _view(registry.create())


@router.get("/{batch_id}", response_model=BatchView)
async def get_batch(batch_id: str):
    """Documents, statuses, eligibility and weights of a batch"""
    return _view(registry.get(batch_id))


@router.delete("/{batch_id}")
async def delete_batch(batch_id: str):
    registry.get(batch_id)
    registry.delete(batch_id)
    return {"batch_id": batch_id, "deleted": True}


@router.put("/{batch_id}/job", response_model=BatchView)
async def set_job(batch_id: str, parsed: ParsedJobDescription):
    """Use already parsed criteria for this batch (clears previous scores)"""
    session = registry.get(batch_id)
    session.set_job(parsed)
    return _view(session)


@router.post("/{batch_id}/job", response_model=BatchView)
async def parse_job(batch_id: str, payload: ParseJobRequest, request: Request):
    """Parse a job posting and use it as this batch's criteria"""
    session = registry.get(batch_id)
    if not payload.jobDescription.strip():
        raise ValidationError("Job description is required", field="jobDescription")
    session.set_job(await assistant.parse_job_description_async(payload.jobDescription))
    logger.info(
        f"Batch {batch_id} now has {session.parsed.total_criteria} criteria",
        extra={"request_id": getattr(request.state, 'request_id', 'unknown')}
    )
    return _view(session)


@router.post("/{batch_id}/documents", response_model=BatchView, status_code=202)
async def add_documents(batch_id: str, payload: BatchDocumentsPayload, wait: bool = Query(False, description="Wait until every new file is parsed")):
    """Upload files; each one is parsed independently in the background"""
    session = registry.get(batch_id)
    if not payload.documents:
        raise ValidationError("At least one document is required", field="documents")
    uploads = [UploadedFile(name=d.filename, data=decode_base64(d.base64_content, field="base64_content")) for d in payload.documents]
    session.ingest(uploads)
    if wait:
        await session.wait_for_ingestion()
    return _view(session)


@router.delete("/{batch_id}/documents/{doc_id}", response_model=BatchView)
async def remove_document(batch_id: str, doc_id: str):
    """Remove a document and its scores; removing twice is harmless"""
    session = registry.get(batch_id)
    session.remove_document(doc_id)
    return _view(session)


@router.put("/{batch_id}/weights/{key}", response_model=WeightView)
async def adjust_weight(batch_id: str, key: str, payload: WeightAdjustment):
    session = registry.get(batch_id)
    return WeightView(key=key, weight=session.adjust_weight(key, payload.delta))


@router.post("/{batch_id}/weights/reset", response_model=BatchView)
async def reset_weights(batch_id: str):
    session = registry.get(batch_id)
    session.reset_weights()
    return _view(session)


@router.post("/{batch_id}/score", response_model=BatchView, status_code=202)
async def score_batch(batch_id: str, wait: bool = Query(False, description="Wait until every scoring request settled")):
    """Score every ready document against every section"""
    session = registry.get(batch_id)
    session.start_scoring()
    if wait:
        await session.wait_for_scoring()
    return _view(session)


@router.get("/{batch_id}/results", response_model=ResultsView)
async def get_results(
    batch_id: str,
    layout: str = Query(scoring.LAYOUT_CANDIDATES_AS_ROWS, pattern=LAYOUT_PATTERN),
    sort_by: str = Query("name", pattern=SORT_PATTERN),
    order: str = Query("asc", pattern=ORDER_PATTERN),
):
    """Results grid; cells without a score are null"""
    session = registry.get(batch_id)
    df = session.results_grid(layout, sort_by, order)
    labels = df.attrs["labels"]
    names = df.attrs["names"]

    rows = []
    for record in scoring.grid_to_records(df):
        rows.append(GridRow(
            id=record["id"],
            label=names.get(record["id"], labels.get(record["id"], record["id"])),
            cells=record["cells"],
            bands={k: scoring.score_band(v) if v is not None else None for k, v in record["cells"].items()},
        ))
    columns = [str(c) for c in df.columns]
    return ResultsView(
        batch_id=batch_id,
        layout=layout,
        sort_by=sort_by,
        order=order,
        in_progress=session.in_progress,
        columns=columns,
        column_labels={c: names.get(c, labels.get(c, c)) for c in columns},
        rows=rows,
    )


@router.get("/{batch_id}/results.csv")
async def export_results(
    batch_id: str,
    layout: str = Query(scoring.LAYOUT_CANDIDATES_AS_ROWS, pattern=LAYOUT_PATTERN),
    sort_by: str = Query("name", pattern=SORT_PATTERN),
    order: str = Query("asc", pattern=ORDER_PATTERN),
):
    session = registry.get(batch_id)
    csv = scoring.grid_to_csv(session.results_grid(layout, sort_by, order))
    return Response(
        content=csv,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{batch_id}_results.csv"'},
    )
