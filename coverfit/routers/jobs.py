import asyncio
from typing import Dict, List

from fastapi import APIRouter, Request

from coverfit.models.models import Category, ParsedJobDescription, ScoreResult, criterion_key
from coverfit.models.schemas import (
    CoverageBatchRequest, CoverageBatchResponse, CoverageRequest,
    CoverageResponse, ParseJobRequest,
)
from coverfit.services import assistant
from coverfit.services.scoring import compute_summary
from coverfit.utils.exceptions import CoverFitBaseException, ValidationError
from coverfit.utils.logging_config import PerformanceMonitor, get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/parse-job-description", response_model=ParsedJobDescription)
async def parse_job_description(payload: ParseJobRequest, request: Request):
    """Split a job posting into responsibilities, culture points and skills"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    if not payload.jobDescription.strip():
        raise ValidationError("Job description is required", field="jobDescription")

    logger.info(
        f"Parsing job description ({len(payload.jobDescription)} chars)",
        extra={"request_id": request_id}
    )
    with PerformanceMonitor("parse_job_description", logger, threshold_ms=10000):
        return await assistant.parse_job_description_async(payload.jobDescription)


@router.post("/check-coverage-batch", response_model=CoverageBatchResponse)
async def check_coverage_batch(payload: CoverageBatchRequest, request: Request):
    """Score how well a cover letter covers one section's requirements"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    if not payload.bulletPoints or not payload.coverLetter.strip():
        raise ValidationError("Section, bulletPoints array, and coverLetter are required", field="bulletPoints")

    logger.info(
        f"Checking {payload.section.value} coverage for {len(payload.bulletPoints)} requirements",
        extra={"request_id": request_id, "section": payload.section.value}
    )
    with PerformanceMonitor("check_coverage_batch", logger, threshold_ms=10000):
        results = await assistant.check_coverage_async(payload.section, payload.bulletPoints, payload.coverLetter)
    return CoverageBatchResponse(results=results)


@router.post("/check-coverage", response_model=CoverageResponse)
async def check_coverage(payload: CoverageRequest, request: Request):
    """Score one cover letter against every section and return the weighted summary.

    Sections are scored concurrently; a failing section is reported in
    ``failed_sections`` and its criteria are simply absent from ``results``.
    """
    request_id = getattr(request.state, 'request_id', 'unknown')

    if not payload.coverLetter.strip():
        raise ValidationError("Please write a cover letter first", field="coverLetter")
    if payload.parsedData.total_criteria == 0:
        raise ValidationError("Please parse a job description first", field="parsedData")

    sections: List[Category] = [c for c in Category if payload.parsedData.criteria_for(c)]

    async def score(category: Category):
        requirements = [c.description for c in payload.parsedData.criteria_for(category)]
        try:
            return category, await assistant.check_coverage_async(category, requirements, payload.coverLetter)
        except CoverFitBaseException as e:
            logger.error(
                f"Coverage check failed for {category.value}: {e.message}",
                extra={"request_id": request_id, "section": category.value}
            )
            return category, None

    with PerformanceMonitor("check_coverage", logger, threshold_ms=15000):
        outcomes = await asyncio.gather(*(score(c) for c in sections))

    results: Dict[str, ScoreResult] = {}
    failed = []
    for category, section_results in outcomes:
        if section_results is None:
            failed.append(category)
            continue
        for index, result in enumerate(section_results):
            results[criterion_key(category, index)] = result

    return CoverageResponse(
        results=results,
        summary=compute_summary(results, payload.weights),
        failed_sections=failed,
    )
