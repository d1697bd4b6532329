"""Infrastructure layer for document record persistence.

The store only offers whole-record operations: callers read a record, modify
it and ``put`` it back. Nothing here locks; two writers racing on the same
``docId`` resolve as last-writer-wins.
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

from backend.core.errors import CorruptRecordError, DocumentNotFoundError
from backend.core.settings import TriageSettings
from backend.core.storage import meta_dir, write_json_atomic
from backend.domain import DocumentState, DocumentSummary

logger = logging.getLogger(__name__)

_DOC_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class MetaStore(Protocol):
    """Persistence contract for document records."""

    async def create(self, record: dict[str, Any]) -> None: ...

    async def get(self, doc_id: str) -> dict[str, Any]: ...

    async def put(self, doc_id: str, record: dict[str, Any]) -> None: ...

    async def list_all(self) -> list[dict[str, Any]]: ...

    async def list_by_state(self, state: DocumentState | str) -> list[DocumentSummary]: ...


def summarise(records: list[dict[str, Any]], state: DocumentState | str) -> list[DocumentSummary]:
    """Summaries of ``records`` in ``state``, newest first."""

    wanted = DocumentState.parse(state).value
    selected = [
        DocumentSummary.from_record(record)
        for record in records
        if str(record.get("state") or "").lower() == wanted
    ]
    selected.sort(key=lambda item: str(item.createdAt or ""), reverse=True)
    return selected


def _require_doc_id(record: dict[str, Any]) -> str:
    doc_id = record.get("docId")
    if not isinstance(doc_id, str) or not _DOC_ID_PATTERN.match(doc_id):
        raise ValueError("record must carry a valid docId")
    return doc_id


class FileMetaStore:
    """One ``<docId>.json`` file per record under ``storage/meta``."""

    def __init__(self, settings: TriageSettings) -> None:
        self._settings = settings

    @property
    def directory(self) -> Path:
        return meta_dir(self._settings)

    def _path(self, doc_id: str) -> Path:
        if not _DOC_ID_PATTERN.match(doc_id or ""):
            raise DocumentNotFoundError(f"meta for docId {doc_id} not found")
        return self.directory / f"{doc_id}.json"

    # ------------------------------------------------------------------
    # blocking helpers, run in a worker thread
    # ------------------------------------------------------------------
    def _read(self, path: Path, doc_id: str) -> dict[str, Any]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"meta for docId {doc_id} not found") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptRecordError(f"meta for docId {doc_id} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise CorruptRecordError(f"meta for docId {doc_id} is not an object")
        return data

    def _create(self, path: Path, record: dict[str, Any]) -> None:
        if path.exists():
            raise FileExistsError(f"record {path.stem} already exists")
        write_json_atomic(path, record)

    def _read_all(self) -> list[dict[str, Any]]:
        directory = self.directory
        directory.mkdir(parents=True, exist_ok=True)
        records: list[dict[str, Any]] = []
        for path in sorted(directory.glob("*.json")):
            try:
                records.append(self._read(path, path.stem))
            except (CorruptRecordError, DocumentNotFoundError, OSError) as exc:
                logger.warning("skipping unreadable record %s: %s", path.name, exc)
        return records

    # ------------------------------------------------------------------
    # MetaStore
    # ------------------------------------------------------------------
    async def create(self, record: dict[str, Any]) -> None:
        path = self._path(_require_doc_id(record))
        await asyncio.to_thread(self._create, path, record)

    async def get(self, doc_id: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._read, self._path(doc_id), doc_id)

    async def put(self, doc_id: str, record: dict[str, Any]) -> None:
        await asyncio.to_thread(write_json_atomic, self._path(doc_id), record)

    async def list_all(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_all)

    async def list_by_state(self, state: DocumentState | str) -> list[DocumentSummary]:
        return summarise(await self.list_all(), state)


class InMemoryMetaStore:
    """Dictionary-backed store for fast iteration and tests."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def create(self, record: dict[str, Any]) -> None:
        doc_id = _require_doc_id(record)
        if doc_id in self._records:
            raise FileExistsError(f"record {doc_id} already exists")
        self._records[doc_id] = copy.deepcopy(record)

    async def get(self, doc_id: str) -> dict[str, Any]:
        record = self._records.get(doc_id)
        if record is None:
            raise DocumentNotFoundError(f"meta for docId {doc_id} not found")
        return copy.deepcopy(record)

    async def put(self, doc_id: str, record: dict[str, Any]) -> None:
        self._records[doc_id] = copy.deepcopy(record)

    async def list_all(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._records.values()]

    async def list_by_state(self, state: DocumentState | str) -> list[DocumentSummary]:
        return summarise(await self.list_all(), state)

    def reset(self) -> None:
        self._records.clear()
