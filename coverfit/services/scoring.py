"""
Weighted coverage aggregation and the batch results grid.
"""
import math
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from coverfit.models.models import (
    DEFAULT_WEIGHT, MAX_WEIGHT, MIN_WEIGHT,
    BatchDocument, ParsedJobDescription, ScoreMatrix, ScoreResult, Weights,
    round_half_up,
)

SORT_KEYS = ("name", "score")
SORT_ORDERS = ("asc", "desc")
LAYOUT_CANDIDATES_AS_ROWS = "candidates_as_rows"
LAYOUT_CANDIDATES_AS_COLUMNS = "candidates_as_columns"
LAYOUTS = (LAYOUT_CANDIDATES_AS_ROWS, LAYOUT_CANDIDATES_AS_COLUMNS)
SUMMARY_LABEL = "Summary"


def compute_summary(scores: Mapping[str, ScoreResult], weights: Mapping[str, int]) -> Optional[int]:
    """Weighted average over whichever criteria currently have a score.

    Returns None when nothing has been scored yet, 0 when every contributing
    weight is zero.
    """
    if not scores:
        return None
    total = 0.0
    total_weight = 0
    for key, result in scores.items():
        w = weights.get(key, DEFAULT_WEIGHT)
        total += result.score * w
        total_weight += w
    if total_weight == 0:
        return 0
    return round_half_up(total / total_weight)


def clamp_weight(value: int) -> int:
    return max(MIN_WEIGHT, min(MAX_WEIGHT, value))


def adjust_weight(weights: Mapping[str, int], key: str, delta: int) -> Weights:
    updated = dict(weights)
    updated[key] = clamp_weight(weights.get(key, DEFAULT_WEIGHT) + delta)
    return updated


def initialize_weights(parsed: ParsedJobDescription, weights: Mapping[str, int] = None) -> Weights:
    """Give every criterion without a weight the default one."""
    updated = dict(weights or {})
    for key in parsed.criterion_keys():
        updated.setdefault(key, DEFAULT_WEIGHT)
    return updated


def reset_weights(parsed: ParsedJobDescription) -> Weights:
    return {key: DEFAULT_WEIGHT for key in parsed.criterion_keys()}


def summaries_for(documents: Iterable[BatchDocument], matrix: ScoreMatrix, weights: Mapping[str, int]) -> Dict[str, Optional[int]]:
    return {doc.id: compute_summary(matrix.get(doc.id, {}), weights) for doc in documents}


def sort_documents(
    documents: Iterable[BatchDocument],
    matrix: ScoreMatrix,
    weights: Mapping[str, int],
    sort_by: str = "name",
    order: str = "asc",
) -> List[BatchDocument]:
    if sort_by not in SORT_KEYS:
        raise ValueError(f"sort_by must be one of {SORT_KEYS}")
    if order not in SORT_ORDERS:
        raise ValueError(f"order must be one of {SORT_ORDERS}")

    documents = list(documents)
    if sort_by == "name":
        key = lambda d: d.name  # noqa: E731
    else:
        summaries = summaries_for(documents, matrix, weights)
        key = lambda d: summaries[d.id] or 0  # noqa: E731
    # sorted() stays stable with reverse=True
    return sorted(documents, key=key, reverse=(order == "desc"))


def score_band(score: int) -> str:
    if score >= 80:
        return "strong"
    if score >= 60:
        return "good"
    if score >= 40:
        return "partial"
    return "weak"


def score_hue(score: int) -> float:
    """0 (red) .. 120 (green)"""
    clamped = max(0, min(100, score))
    return clamped / 100 * 120


def build_results_grid(
    documents: Iterable[BatchDocument],
    parsed: Optional[ParsedJobDescription],
    matrix: ScoreMatrix,
    weights: Mapping[str, int],
    layout: str = LAYOUT_CANDIDATES_AS_ROWS,
    sort_by: str = "name",
    order: str = "asc",
) -> pd.DataFrame:
    """One row per document (Summary, then every criterion) or its transpose.

    Criteria are addressed by key; the summary labels are attached as
    ``df.attrs["labels"]`` since the model may repeat a label.
    """
    if layout not in LAYOUTS:
        raise ValueError(f"layout must be one of {LAYOUTS}")

    ordered = sort_documents(documents, matrix, weights, sort_by, order)
    keys = parsed.criterion_keys() if parsed else []
    labels = {key: c.summary for key, _, c in parsed.iter_criteria()} if parsed else {}

    rows = []
    for doc in ordered:
        doc_scores = matrix.get(doc.id, {})
        row = {SUMMARY_LABEL: compute_summary(doc_scores, weights)}
        for key in keys:
            result = doc_scores.get(key)
            row[key] = result.score if result is not None else None
        rows.append(row)

    df = pd.DataFrame(rows, columns=[SUMMARY_LABEL] + keys, index=[d.id for d in ordered], dtype=object)
    df.index.name = "document_id"
    if layout == LAYOUT_CANDIDATES_AS_COLUMNS:
        df = df.T
        df.index.name = "criterion"
    df.attrs["labels"] = {SUMMARY_LABEL: "Weighted Average", **labels}
    df.attrs["names"] = {d.id: d.name for d in ordered}
    return df


def grid_to_records(df: pd.DataFrame) -> List[dict]:
    """Serialize a grid with NaN/None cells reported as None ("no data")."""
    out = []
    for index, row in df.iterrows():
        cells = {}
        for column, value in row.items():
            cells[str(column)] = None if value is None or (isinstance(value, float) and math.isnan(value)) else int(value)
        out.append({"id": str(index), "cells": cells})
    return out


def grid_to_csv(df: pd.DataFrame) -> str:
    """CSV export with human-readable headers; empty cells mean no data."""
    labels = df.attrs.get("labels", {})
    names = df.attrs.get("names", {})
    renamed = df.rename(index=lambda i: names.get(i, labels.get(i, i)),
                        columns=lambda c: names.get(c, labels.get(c, c)))
    return renamed.to_csv()
