"""
Language model collaborators: job description parsing, coverage scoring and
sentence rewriting. Each call is blocking (requests); async wrappers push it
onto the default executor so batch fan-out does not stall the event loop.
"""
import asyncio
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from coverfit.helpers.prompts import COVERAGE_PROMPT, IMPROVE_PROMPT, PARSE_JD_PROMPT, SHORTEN_PROMPT
from coverfit.models.models import (
    Category, Change, ParsedJobDescription, RewriteMode, ScoreResult, Suggestions,
)
from coverfit.utils.exceptions import ModelError, ValidationError
from coverfit.utils.logging_config import get_logger
from coverfit.utils.utils import LLM_MODEL, ollama_generate, safe_json

logger = get_logger(__name__)

SUGGESTION_COUNT = 3


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value


def parse_job_description(job_description: str) -> ParsedJobDescription:
    _require_text(job_description, "job_description")
    resp = ollama_generate(PARSE_JD_PROMPT.format(job_description=job_description))
    data = safe_json(resp, fallback=None)
    if not isinstance(data, dict):
        raise ModelError("Failed to parse AI response", model_name=LLM_MODEL, operation="parse_job_description")

    for category in Category:
        items = data.get(category.value)
        if not isinstance(items, list):
            raise ModelError(f"Invalid {category.value} structure", model_name=LLM_MODEL, operation="parse_job_description")
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not item.get("summary") or not item.get("description"):
                raise ModelError(
                    f"Invalid {category.value} item at index {index}: missing summary or description",
                    model_name=LLM_MODEL,
                    operation="parse_job_description",
                )

    parsed = ParsedJobDescription(**{c.value: data[c.value] for c in Category})
    logger.info(
        f"Parsed job description into {len(parsed.responsibilities)} responsibilities, "
        f"{len(parsed.companyCulture)} culture points, {len(parsed.technicalSkills)} skills"
    )
    return parsed


def check_coverage(category: Category, requirements: List[str], cover_letter: str) -> List[ScoreResult]:
    """Score one category's requirements against a letter; result[i] matches requirements[i]."""
    if not requirements:
        raise ValidationError("At least one requirement is needed", field="requirements")
    _require_text(cover_letter, "cover_letter")

    numbered = "\n".join(f"{i + 1}. {r}" for i, r in enumerate(requirements))
    resp = ollama_generate(COVERAGE_PROMPT.format(
        section=category.value,
        section_label=category.label,
        requirements=numbered,
        cover_letter=cover_letter,
    ))
    data = safe_json(resp, fallback=None)
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list):
        raise ModelError("Invalid response structure from AI", model_name=LLM_MODEL, operation="check_coverage")
    if len(results) != len(requirements):
        raise ModelError(
            f"Expected {len(requirements)} results, got {len(results)}",
            model_name=LLM_MODEL,
            operation="check_coverage",
        )
    try:
        return [ScoreResult(**item) for item in results]
    except (PydanticValidationError, TypeError) as e:
        raise ModelError("Malformed score in AI response", model_name=LLM_MODEL, operation="check_coverage", cause=e) from e


def rewrite_sentence(sentence: str, mode: RewriteMode = RewriteMode.IMPROVE) -> Suggestions:
    _require_text(sentence, "sentence")
    template = SHORTEN_PROMPT if mode == RewriteMode.SHORTEN else IMPROVE_PROMPT
    resp = ollama_generate(template.format(sentence=sentence), temperature=0.7)
    data = safe_json(resp, fallback=None)
    if not isinstance(data, dict) or not isinstance(data.get("suggestions"), list) or not isinstance(data.get("changes", []), list):
        raise ModelError("Invalid response structure from AI", model_name=LLM_MODEL, operation=f"rewrite_{mode.value}")

    suggestions = [s for s in data["suggestions"] if isinstance(s, str) and s.strip()]
    if len(suggestions) < SUGGESTION_COUNT:
        raise ModelError(
            f"Expected {SUGGESTION_COUNT} suggestions, got {len(suggestions)}",
            model_name=LLM_MODEL,
            operation=f"rewrite_{mode.value}",
        )
    suggestions = suggestions[:SUGGESTION_COUNT]

    changes = []
    raw_changes = data.get("changes") or []
    for i in range(SUGGESTION_COUNT):
        group = raw_changes[i] if i < len(raw_changes) and isinstance(raw_changes[i], list) else []
        changes.append([
            Change(**{"from": str(c.get("from", "")), "to": str(c.get("to", ""))})
            for c in group if isinstance(c, dict)
        ])
    return Suggestions(suggestions=suggestions, changes=changes)


async def check_coverage_async(category: Category, requirements: List[str], cover_letter: str) -> List[ScoreResult]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, check_coverage, category, requirements, cover_letter)


async def rewrite_sentence_async(sentence: str, mode: RewriteMode = RewriteMode.IMPROVE) -> Suggestions:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, rewrite_sentence, sentence, mode)


async def parse_job_description_async(job_description: str) -> ParsedJobDescription:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, parse_job_description, job_description)
