"""Classification adapter: one upstream call folded back into a record."""
from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from backend.core.audit import append_history, utc_now
from backend.core.errors import FileMissingError
from backend.core.settings import TriageSettings
from backend.core.storage import abs_from_root
from backend.domain import ClassifyResult
from backend.infrastructure import ClassifierClient, ClassifierError

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def extract_correlation_id(record: dict[str, Any]) -> str | None:
    """Find the upstream correlation UUID in the original or current filename."""

    candidates = [record.get("originalFilename"), Path(str(record.get("filePath") or "")).name]
    for name in candidates:
        if not name:
            continue
        match = UUID_PATTERN.search(str(name))
        if match:
            return match.group(0)
    return None


def has_classification(record: dict[str, Any]) -> bool:
    """True once a classification attempt, successful or not, was stored."""

    return isinstance(record.get("classification"), dict)


def is_classified(record: dict[str, Any]) -> bool:
    """True when the stored classification carries a result."""

    return has_classification(record) and bool(record["classification"].get("result"))


def resolve_document_file(record: dict[str, Any], settings: TriageSettings) -> Path:
    """Absolute path of the record's PDF; :class:`FileMissingError` when absent."""

    rel_path = record.get("filePath")
    if not rel_path:
        raise FileMissingError("filePath not set in meta")
    path = abs_from_root(str(rel_path), settings)
    if not path.is_file():
        raise FileMissingError(f"PDF not found: {rel_path}")
    return path


class ClassificationAdapter:
    """Requests classification and writes the outcome into the record.

    Upstream failures are stored as ``classification.error`` and reported in
    the returned :class:`ClassifyResult`; they never raise. The caller owns
    persistence of the mutated record.
    """

    def __init__(self, client: ClassifierClient, settings: TriageSettings) -> None:
        self._client = client
        self._settings = settings

    async def classify(self, record: dict[str, Any], *, actor: str) -> ClassifyResult:
        doc_id = str(record.get("docId"))
        path = resolve_document_file(record, self._settings)
        correlation_id = extract_correlation_id(record)

        classification: dict[str, Any] = {
            "fetchedAt": utc_now(),
            "apiBase": self._client.api_base,
            "requestUuid": correlation_id,
        }

        error: dict[str, Any] | None = None
        if correlation_id is None:
            error = {"code": "invalid_filename", "message": "no UUID found in filename"}
        else:
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except FileNotFoundError as exc:
                raise FileMissingError(f"PDF not found: {record.get('filePath')}") from exc
            try:
                result = await self._client.classify(correlation_id, content)
            except ClassifierError as exc:
                error = exc.to_dict()
            else:
                classification["result"] = result.to_record()

        if error is not None:
            classification["error"] = error
            record["classification"] = classification
            append_history(record, "classification_failed", actor, note=error["code"])
            logger.warning("classification of %s failed: %s", doc_id, error["code"])
            return ClassifyResult(docId=doc_id, ok=False, error=error["code"])

        record["classification"] = classification
        append_history(record, "classified", actor)
        logger.info("classified %s (uuid=%s)", doc_id, correlation_id)
        return ClassifyResult(docId=doc_id, ok=True)
