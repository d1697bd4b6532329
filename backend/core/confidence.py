"""Confidence aggregation over the scored classifier fields."""
from __future__ import annotations

import math
from typing import Any, Iterable

from backend.core.schema import ClassificationResult
from backend.domain import OVERRIDE_KEYS, SCORED_FIELDS, ConfidencePolicy


def _as_score(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    result = float(value)
    if math.isnan(result):
        return None
    return result


def _conf_overrides(record: dict[str, Any]) -> dict[str, Any]:
    corrections = record.get("corrections")
    if not isinstance(corrections, dict):
        return {}
    overrides = corrections.get("conf_overrides")
    return overrides if isinstance(overrides, dict) else {}


def effective_confidence(record: dict[str, Any], field: str) -> float | None:
    """Override for ``field`` when set, otherwise the classifier score."""

    override = _as_score(_conf_overrides(record).get(OVERRIDE_KEYS[field]))
    if override is not None:
        return override
    result = ClassificationResult.from_record(record)
    if result is None:
        return None
    scored = result.fields.get(field)
    return scored.score if scored is not None else None


def effective_value(record: dict[str, Any], field: str) -> Any:
    """Human correction for ``field`` when set, otherwise the classifier value."""

    corrections = record.get("corrections")
    if isinstance(corrections, dict) and corrections.get(field) is not None:
        return corrections[field]
    result = ClassificationResult.from_record(record)
    if result is None:
        return None
    if field in SCORED_FIELDS:
        scored = result.fields.get(field)
        return scored.value if scored is not None else None
    return getattr(result, field, None)


def effective_fields(record: dict[str, Any]) -> dict[str, dict[str, Any]]:
    corrections = record.get("corrections") if isinstance(record.get("corrections"), dict) else {}
    overrides = _conf_overrides(record)
    view: dict[str, dict[str, Any]] = {}
    for field in SCORED_FIELDS:
        view[field] = {
            "value": effective_value(record, field),
            "score": effective_confidence(record, field),
            "corrected": corrections.get(field) is not None,
            "overridden": _as_score(overrides.get(OVERRIDE_KEYS[field])) is not None,
        }
    return view


def collect_scores(record: dict[str, Any]) -> list[float]:
    scores: list[float] = []
    for field in SCORED_FIELDS:
        score = effective_confidence(record, field)
        if score is not None:
            scores.append(score)
    return scores


def aggregate(scores: Iterable[float], policy: ConfidencePolicy | str = ConfidencePolicy.MIN) -> float | None:
    """Reduce scores to one value; ``None`` when there is nothing to reduce."""

    values = list(scores)
    if not values:
        return None
    policy = ConfidencePolicy(policy)
    if policy is ConfidencePolicy.AVG:
        return sum(values) / len(values)
    if policy is ConfidencePolicy.MAX:
        return max(values)
    return min(values)


def aggregate_record(record: dict[str, Any], policy: ConfidencePolicy | str = ConfidencePolicy.MIN) -> float | None:
    return aggregate(collect_scores(record), policy)
