"""Ingest adapter: new source files become inbox records."""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any

from backend.core.audit import append_history, utc_now
from backend.core.errors import BadRequestError, UnsupportedUploadError, UploadTooLargeError
from backend.core.settings import TriageSettings
from backend.core.storage import (
    rel_from_root,
    relocate_file,
    state_dir,
    write_bytes_unique,
    write_sidecar,
)
from backend.domain import DocumentState
from backend.infrastructure import ActionLog, MetaStore

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF-"


def is_pdf_name(name: str) -> bool:
    return name.lower().endswith(".pdf")


class IngestAdapter:
    def __init__(self, store: MetaStore, settings: TriageSettings, action_log: ActionLog) -> None:
        self._store = store
        self._settings = settings
        self._action_log = action_log

    @property
    def inbox_dir(self) -> Path:
        return state_dir(DocumentState.INBOX, self._settings)

    async def is_stable(self, path: Path, delay: float | None = None) -> bool:
        """True when the size of ``path`` is unchanged across a short delay."""

        delay = self._settings.stability_delay if delay is None else delay
        try:
            before = (await asyncio.to_thread(path.stat)).st_size
            await asyncio.sleep(delay)
            after = (await asyncio.to_thread(path.stat)).st_size
        except FileNotFoundError:
            return False
        return before == after

    def _new_record(self, path: Path, original_filename: str, origin: str, actor: str) -> dict[str, Any]:
        now = utc_now()
        record: dict[str, Any] = {
            "docId": str(uuid.uuid4()),
            "state": DocumentState.INBOX.value,
            "originalFilename": original_filename,
            "filePath": rel_from_root(path, self._settings),
            "createdAt": now,
            "createdBy": actor,
            "history": [],
        }
        append_history(record, "moved", actor, from_=origin, to=DocumentState.INBOX.value, at=now)
        return record

    async def _register(self, path: Path, original_filename: str, origin: str, actor: str) -> dict[str, Any]:
        record = self._new_record(path, original_filename, origin, actor)
        await self._store.create(record)
        await write_sidecar(path.parent, record)
        await self._action_log.record(record["docId"], "ingest", actor, **{"from": origin, "to": DocumentState.INBOX.value})
        logger.info("ingested %s -> %s (docId=%s)", original_filename, record["filePath"], record["docId"])
        return record

    async def ingest_file(self, source: Path, *, origin: str = "scanner", actor: str | None = None) -> dict[str, Any]:
        """Move ``source`` into the inbox and create its record.

        The move and the registration run as one shielded unit: cancelling the
        caller does not interrupt them, so a file never sits in the inbox
        without a record.
        """

        actor = actor or self._settings.user_name
        return await asyncio.shield(self._ingest_file(source, origin, actor))

    async def _ingest_file(self, source: Path, origin: str, actor: str) -> dict[str, Any]:
        moved = await asyncio.to_thread(relocate_file, source, self.inbox_dir)
        try:
            return await self._register(moved, source.name, origin, actor)
        except Exception:
            # put the file back so the next poll can pick it up again
            await asyncio.to_thread(relocate_file, moved, source.parent)
            raise

    def validate_upload(self, filename: str | None, content_type: str | None, data: bytes) -> str:
        if not filename:
            raise BadRequestError("uploaded file must have a filename")
        safe_name = Path(filename).name
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime != "application/pdf" and not is_pdf_name(safe_name):
            raise UnsupportedUploadError(f"Not a PDF: {safe_name}")
        if len(data) > self._settings.max_upload_bytes:
            raise UploadTooLargeError(f"{safe_name} exceeds {self._settings.max_upload_bytes} bytes")
        if not data.startswith(PDF_SIGNATURE):
            raise UnsupportedUploadError(f"{safe_name} has no %PDF- signature", code="invalid_pdf")
        return safe_name

    async def ingest_bytes(
        self,
        filename: str | None,
        data: bytes,
        *,
        content_type: str | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """Store an uploaded PDF in the inbox and create its record."""

        actor = actor or self._settings.user_name
        safe_name = self.validate_upload(filename, content_type, data)
        target = await asyncio.to_thread(write_bytes_unique, self.inbox_dir, safe_name, data)
        try:
            return await self._register(target, target.name, "upload", actor)
        except Exception:
            await asyncio.to_thread(target.unlink, missing_ok=True)
            raise
