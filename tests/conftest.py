from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.application import DocumentService, reset_document_service
from backend.core.settings import get_settings, reset_settings
from backend.core.storage import ensure_storage_layout
from backend.infrastructure import FileMetaStore, HttpClassifierClient, configure_classifier_client

API_BASE = "http://classifier.test/api/v1"

UUID_A = "0b6f3c9e-6f5d-4c1e-9a52-1d2f3e4a5b6c"
UUID_B = "1c7a4d0f-7a6e-4d2f-8b63-2e3f4a5b6c7d"
UUID_C = "2d8b5e1a-8b7f-4e3a-9c74-3f4a5b6c7d8e"

PDF_BYTES = b"%PDF-1.4\n% test document\n"


def classifier_payload(doc_id: float, date: float, subject: float, *, nested: bool = False) -> dict[str, Any]:
    inner = {
        "kind": "invoice",
        "doc_date_parsed": "2024-03-01",
        "doc_id": {"value": "INV-42", "score": doc_id},
        "doc_date_sic": {"value": "01.03.2024", "score": date},
        "doc_subject": {"value": "Office supplies", "score": subject},
    }
    if nested:
        return {"class_id": 7, "custom_id": "abc", "result": inner}
    return inner


def build_classifier(handler: Callable[[httpx.Request], httpx.Response]) -> HttpClassifierClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpClassifierClient(API_BASE, http_client=http_client)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture()
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("TRIAGE_ROOT", str(tmp_path))
    monkeypatch.setenv("TRIAGE_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("STABILITY_MS", "0")
    monkeypatch.setenv("CLASSIFIER_API_BASE", API_BASE)
    for name in ("SCANNER_DIR", "CONF_POLICY", "CONF_THRESHOLD", "USER_NAME", "ACTION_LOG", "TRIAGE_STORAGE_DIR"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    reset_document_service()
    configure_classifier_client(None)

    current = get_settings()
    ensure_storage_layout(current)
    yield current

    reset_settings()
    reset_document_service()
    configure_classifier_client(None)


@pytest.fixture()
def scores_by_uuid() -> dict[str, dict[str, Any]]:
    """Classifier answers keyed by correlation id; tests fill it in."""

    return {}


@pytest.fixture()
def classifier(scores_by_uuid):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        correlation_id = request.url.path.rsplit("/", 1)[-1]
        payload = scores_by_uuid.get(correlation_id)
        if payload is None:
            return httpx.Response(404, text="unknown document")
        return httpx.Response(200, json=payload)

    client = build_classifier(handler)
    client.calls = calls  # type: ignore[attr-defined]
    return client


@pytest.fixture()
def service(settings, classifier) -> DocumentService:
    return DocumentService(FileMetaStore(settings), settings, classifier=classifier)


@pytest.fixture()
def add_document(service):
    """Upload a PDF into the inbox and return its record."""

    def _add(name: str = f"{UUID_A}.pdf", data: bytes = PDF_BYTES) -> dict[str, Any]:
        return run(service.ingest_upload(name, data, content_type="application/pdf"))

    return _add
