from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.confidence import aggregate, aggregate_record, effective_confidence, effective_fields, effective_value
from backend.domain import ConfidencePolicy

from conftest import classifier_payload


def _record(payload: dict | None = None, corrections: dict | None = None) -> dict:
    record: dict = {"docId": "doc-1", "state": "inbox", "history": []}
    if payload is not None:
        record["classification"] = {
            "fetchedAt": "2024-03-01T00:00:00+00:00",
            "apiBase": "http://classifier.test",
            "requestUuid": "x",
            "result": payload,
        }
    if corrections is not None:
        record["corrections"] = corrections
    return record


@pytest.mark.parametrize(
    ("policy", "expected"),
    [(ConfidencePolicy.MIN, 0.6), (ConfidencePolicy.AVG, 0.7667), (ConfidencePolicy.MAX, 0.9), ("avg", 0.7667)],
)
def test_aggregate_policies(policy, expected):
    assert aggregate([0.9, 0.6, 0.8], policy) == pytest.approx(expected, abs=1e-3)


def test_aggregate_without_scores_is_absent():
    assert aggregate([], ConfidencePolicy.MIN) is None
    assert aggregate_record(_record()) is None


def test_aggregate_rejects_unknown_policy():
    with pytest.raises(ValueError):
        aggregate([0.5], "median")


def test_override_replaces_raw_score_before_aggregation():
    record = _record(
        classifier_payload(0.4, 0.9, 0.92),
        corrections={"conf_overrides": {"doc_id_score": 0.95}},
    )

    assert effective_confidence(record, "doc_id") == 0.95
    assert aggregate_record(record, ConfidencePolicy.MIN) == 0.9
    # raw classifier output is untouched
    assert record["classification"]["result"]["doc_id"]["score"] == 0.4


def test_nested_result_wrapper_is_unwrapped():
    record = _record(classifier_payload(0.9, 0.6, 0.8, nested=True))

    assert aggregate_record(record, "min") == 0.6
    assert effective_value(record, "doc_subject") == "Office supplies"
    assert effective_value(record, "kind") == "invoice"


def test_partial_scores_use_available_fields_only():
    payload = {"kind": "letter", "doc_id": {"value": "A-1", "score": 0.8}, "doc_subject": {"value": "Hi"}}
    record = _record(payload)

    assert aggregate_record(record, "avg") == 0.8


def test_effective_value_prefers_corrections():
    record = _record(classifier_payload(0.9, 0.9, 0.9), corrections={"doc_id": "INV-43"})

    fields = effective_fields(record)
    assert fields["doc_id"] == {"value": "INV-43", "score": 0.9, "corrected": True, "overridden": False}
    assert fields["doc_subject"]["corrected"] is False
    assert record["classification"]["result"]["doc_id"]["value"] == "INV-42"
