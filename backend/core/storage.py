"""Canonical storage layout and the file relocation primitive.

Layout below ``<root>/storage``::

    inbox/ review/ hold/ processed/   PDFs plus side-car ``<docId>.json`` copies
    meta/<docId>.json                 canonical records
    logs/actions.log                  process-wide action log

Record paths (``filePath``) are stored relative to ``root_dir`` with forward
slashes, e.g. ``storage/inbox/scan.pdf``.
"""
from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from backend.core.settings import TriageSettings, get_settings
from backend.domain import DocumentState

logger = logging.getLogger(__name__)

META_DIRNAME = "meta"
LOGS_DIRNAME = "logs"

# rename(2) failures that mean "different filesystem", recovered by copy + unlink
_CROSS_DEVICE_ERRNOS = {errno.EXDEV, errno.EPERM}


def ensure_storage_layout(settings: TriageSettings | None = None) -> Path:
    """Ensure every canonical folder exists and return the storage root."""

    settings = settings or get_settings()
    root = settings.storage_root
    for state in DocumentState:
        (root / state.value).mkdir(parents=True, exist_ok=True)
    (root / META_DIRNAME).mkdir(parents=True, exist_ok=True)
    (root / LOGS_DIRNAME).mkdir(parents=True, exist_ok=True)
    return root


def state_dir(state: DocumentState | str, settings: TriageSettings | None = None) -> Path:
    settings = settings or get_settings()
    return settings.storage_root / DocumentState.parse(state).value


def meta_dir(settings: TriageSettings | None = None) -> Path:
    settings = settings or get_settings()
    return settings.storage_root / META_DIRNAME


def action_log_path(settings: TriageSettings | None = None) -> Path:
    settings = settings or get_settings()
    return settings.storage_root / LOGS_DIRNAME / "actions.log"


def rel_from_root(path: Path, settings: TriageSettings | None = None) -> str:
    settings = settings or get_settings()
    return Path(os.path.relpath(path, settings.root_dir)).as_posix()


def abs_from_root(rel_path: str, settings: TriageSettings | None = None) -> Path:
    settings = settings or get_settings()
    return (settings.root_dir / rel_path).resolve()


def state_of_path(rel_path: str) -> str | None:
    """Return the state whose canonical directory holds ``rel_path``."""

    parent = Path(rel_path).parent.name
    try:
        return DocumentState(parent).value
    except ValueError:
        return None


def unique_destination(directory: Path, name: str) -> Path:
    """Return a free path in ``directory``, appending `` (n)`` before the suffix."""

    candidate = directory / name
    suffix = Path(name).suffix
    stem = name[: -len(suffix)] if suffix else name
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def relocate_file(source: Path, directory: Path) -> Path:
    """Move ``source`` into ``directory`` without overwriting anything.

    An atomic ``os.rename`` is tried first. When the destination sits on a
    different filesystem the file is copied and the source unlinked; that
    fallback is not crash-atomic and may leave the file in both places.
    A file already inside ``directory`` stays where it is.
    """

    directory.mkdir(parents=True, exist_ok=True)
    if source.parent.resolve() == directory.resolve():
        return source

    destination = unique_destination(directory, source.name)
    try:
        os.rename(source, destination)
    except OSError as exc:
        if exc.errno not in _CROSS_DEVICE_ERRNOS:
            raise
        logger.warning("rename %s -> %s failed (%s), copying instead", source, destination, exc.strerror)
        shutil.copy2(source, destination)
        source.unlink()
    return destination


def write_bytes_unique(directory: Path, name: str, data: bytes) -> Path:
    """Store ``data`` under a collision-free name in ``directory``."""

    directory.mkdir(parents=True, exist_ok=True)
    target = unique_destination(directory, Path(name).name)
    with target.open("xb") as buffer:
        buffer.write(data)
    return target


def write_json_atomic(path: Path, payload: dict[str, Any]) -> Path:
    """Write JSON through a temporary sibling and ``os.replace``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp, path)
    return path


async def write_sidecar(directory: Path, record: dict[str, Any]) -> Path | None:
    """Drop a convenience copy of ``record`` beside its PDF.

    The canonical record lives in ``meta/``; a failed side-car write is logged
    and otherwise ignored.
    """

    target = directory / f"{record['docId']}.json"
    try:
        return await asyncio.to_thread(write_json_atomic, target, record)
    except OSError as exc:
        logger.warning("side-car write %s failed: %s", target, exc)
        return None


async def remove_sidecar(directory: Path, doc_id: str) -> None:
    target = directory / f"{doc_id}.json"
    try:
        await asyncio.to_thread(target.unlink, missing_ok=True)
    except OSError as exc:
        logger.warning("stale side-car %s not removed: %s", target, exc)
