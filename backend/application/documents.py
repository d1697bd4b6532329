"""Application service layer for the document lifecycle."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from pydantic import ValidationError

from backend.application.classification import (
    ClassificationAdapter,
    has_classification,
    is_classified,
    resolve_document_file,
)
from backend.application.ingest import IngestAdapter
from backend.application.routing import RoutingEngine, parse_target_state, parse_threshold
from backend.core.audit import append_history, utc_now
from backend.core.confidence import effective_fields
from backend.core.errors import BadRequestError, TriageError
from backend.core.schema import CorrectionsPatch
from backend.core.settings import TriageSettings, get_settings
from backend.core.storage import action_log_path, ensure_storage_layout
from backend.domain import (
    AutoRouteResult,
    BulkAutoRouteSummary,
    BulkClassifySummary,
    ClassifyResult,
    DocumentState,
    DocumentSummary,
)
from backend.infrastructure import ActionLog, ClassifierClient, FileMetaStore, MetaStore, get_classifier_client

logger = logging.getLogger(__name__)


class DocumentService:
    """Coordinates the document lifecycle use cases.

    Each operation that changes a record runs read-modify-write under an
    in-process lock keyed by ``docId``. The lock does not protect against
    other processes writing the same store.
    """

    def __init__(
        self,
        store: MetaStore,
        settings: TriageSettings,
        *,
        classifier: ClassifierClient | None = None,
        action_log: ActionLog | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._classifier = classifier
        self._action_log = action_log or ActionLog(
            action_log_path(settings), enabled=settings.action_log_enabled
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self.routing = RoutingEngine(store, settings, self._action_log)
        self.ingest = IngestAdapter(store, settings, self._action_log)

    @property
    def settings(self) -> TriageSettings:
        return self._settings

    @property
    def action_log(self) -> ActionLog:
        return self._action_log

    def _classification(self) -> ClassificationAdapter:
        client = self._classifier or get_classifier_client(self._settings)
        return ClassificationAdapter(client, self._settings)

    def _actor(self, actor: str | None) -> str:
        return actor or self._settings.user_name

    @asynccontextmanager
    async def _document_lock(self, doc_id: str) -> AsyncIterator[None]:
        """Serialise work on one ``docId``; the lock is dropped once nobody holds or waits for it."""

        lock = self._locks.get(doc_id)
        if lock is None:
            lock = self._locks[doc_id] = asyncio.Lock()
        self._lock_users[doc_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[doc_id] -= 1
            if self._lock_users[doc_id] <= 0:
                del self._lock_users[doc_id]
                self._locks.pop(doc_id, None)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    async def list_documents(self, state: DocumentState | str = DocumentState.INBOX) -> list[DocumentSummary]:
        try:
            wanted = DocumentState.parse(state)
        except ValueError as exc:
            raise BadRequestError(f"unknown state {state!r}") from exc
        return await self._store.list_by_state(wanted)

    async def get_document(self, doc_id: str) -> dict[str, Any]:
        return await self._store.get(doc_id)

    async def get_effective_fields(self, doc_id: str) -> dict[str, dict[str, Any]]:
        return effective_fields(await self._store.get(doc_id))

    async def preview_path(self, doc_id: str) -> Path:
        record = await self._store.get(doc_id)
        return resolve_document_file(record, self._settings)

    # ------------------------------------------------------------------
    # human corrections
    # ------------------------------------------------------------------
    async def apply_corrections(self, doc_id: str, payload: dict[str, Any], *, actor: str | None = None) -> dict[str, Any]:
        try:
            patch = CorrectionsPatch.model_validate(payload)
        except ValidationError as exc:
            raise BadRequestError(f"invalid corrections: {exc.errors()[0]['msg']}") from exc

        actor = self._actor(actor)
        async with self._document_lock(doc_id):
            record = await self._store.get(doc_id)
            corrections = dict(record.get("corrections") or {})
            corrections.update(patch.field_updates())

            if patch.conf_overrides is not None:
                overrides = dict(corrections.get("conf_overrides") or {})
                for key, value in patch.conf_overrides.items():
                    if value is None:
                        overrides.pop(key, None)
                    else:
                        overrides[key] = value
                if overrides:
                    corrections["conf_overrides"] = overrides
                else:
                    corrections.pop("conf_overrides", None)

            record["corrections"] = corrections
            record["correctedAt"] = utc_now()
            record["correctedBy"] = actor
            append_history(record, "corrections_saved", actor)
            await self._store.put(doc_id, record)

        await self._action_log.record(doc_id, "corrections", actor)
        return record

    # ------------------------------------------------------------------
    # routing
    # ------------------------------------------------------------------
    async def route_document(self, doc_id: str, to: object, *, actor: str | None = None) -> dict[str, Any]:
        target = parse_target_state(to)
        actor = self._actor(actor)
        async with self._document_lock(doc_id):
            record = await self._store.get(doc_id)
            return await self.routing.move(record, target, actor=actor)

    async def auto_route_document(
        self,
        doc_id: str,
        threshold: object = None,
        *,
        actor: str | None = None,
    ) -> AutoRouteResult:
        value = parse_threshold(threshold, self._settings.confidence_threshold)
        actor = self._actor(actor)
        async with self._document_lock(doc_id):
            record = await self._store.get(doc_id)
            return await self._auto_route(record, value, actor)

    async def _auto_route(self, record: dict[str, Any], threshold: float, actor: str) -> AutoRouteResult:
        plan = self.routing.plan_auto_route(record, threshold)
        await self.routing.move(record, plan.target, actor=actor, plan=plan)
        return AutoRouteResult(
            docId=str(record["docId"]),
            newState=plan.target.value,
            aggregated_confidence=plan.aggregate,
        )

    async def bulk_auto_route(self, threshold: object = None, *, actor: str | None = None) -> BulkAutoRouteSummary:
        value = parse_threshold(threshold, self._settings.confidence_threshold)
        actor = self._actor(actor)
        summary = BulkAutoRouteSummary()
        inbox = await self._store.list_by_state(DocumentState.INBOX)
        summary.scanned = len(inbox)

        for item in inbox:
            async with self._document_lock(item.docId):
                try:
                    record = await self._store.get(item.docId)
                    if record.get("state") != DocumentState.INBOX.value or not has_classification(record):
                        summary.skipped += 1
                        continue
                    result = await self._auto_route(record, value, actor)
                except TriageError as exc:
                    logger.warning("auto-route of %s failed: %s", item.docId, exc.code)
                    summary.failed += 1
                    continue
                except Exception:
                    logger.exception("auto-route of %s failed", item.docId)
                    summary.failed += 1
                    continue
            if result.newState == DocumentState.PROCESSED.value:
                summary.processed += 1
            else:
                summary.reviewed += 1

        logger.info("bulk auto-route finished: %s", summary)
        return summary

    # ------------------------------------------------------------------
    # classification
    # ------------------------------------------------------------------
    async def classify_document(self, doc_id: str, *, actor: str | None = None) -> ClassifyResult:
        actor = self._actor(actor)
        async with self._document_lock(doc_id):
            record = await self._store.get(doc_id)
            result = await self._classify(record, actor)
        return result

    async def _classify(self, record: dict[str, Any], actor: str) -> ClassifyResult:
        result = await self._classification().classify(record, actor=actor)
        await self._store.put(str(record["docId"]), record)
        await self._action_log.record(
            str(record["docId"]),
            "classify",
            actor,
            ok=result.ok,
            **({"error": result.error} if result.error else {}),
        )
        return result

    async def bulk_classify(self, reclassify: bool = False, *, actor: str | None = None) -> BulkClassifySummary:
        actor = self._actor(actor)
        summary = BulkClassifySummary()
        inbox = await self._store.list_by_state(DocumentState.INBOX)
        summary.scanned = len(inbox)

        for item in inbox:
            async with self._document_lock(item.docId):
                try:
                    record = await self._store.get(item.docId)
                    if record.get("state") != DocumentState.INBOX.value or (not reclassify and is_classified(record)):
                        summary.skipped += 1
                        continue
                    result = await self._classify(record, actor)
                except TriageError as exc:
                    logger.warning("classification of %s skipped: %s", item.docId, exc.code)
                    summary.fail += 1
                    continue
                except Exception:
                    logger.exception("classification of %s failed", item.docId)
                    summary.fail += 1
                    continue
            if result.ok:
                summary.ok += 1
            else:
                summary.fail += 1

        logger.info("bulk classify finished: %s", summary)
        return summary

    # ------------------------------------------------------------------
    # ingestion
    # ------------------------------------------------------------------
    async def ingest_upload(
        self,
        filename: str | None,
        data: bytes,
        *,
        content_type: str | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        return await self.ingest.ingest_bytes(filename, data, content_type=content_type, actor=self._actor(actor))


_service: DocumentService | None = None


def get_document_service() -> DocumentService:
    """Return the singleton document service for the process."""

    global _service
    if _service is None:
        settings = get_settings()
        ensure_storage_layout(settings)
        _service = DocumentService(FileMetaStore(settings), settings)
    return _service


def reset_document_service() -> None:
    """Forget the singleton (used in tests after changing settings)."""

    global _service
    _service = None
