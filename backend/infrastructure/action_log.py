"""Process-wide append-only action log (one JSON object per line)."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from backend.core.audit import utc_now

logger = logging.getLogger(__name__)


class ActionLog:
    """Best-effort operational log; write failures never reach the caller."""

    def __init__(self, path: Path, *, enabled: bool = True) -> None:
        self.path = path
        self.enabled = enabled

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fp:
            fp.write(line)

    async def record(self, doc_id: str, action: str, by: str, **extra: Any) -> None:
        if not self.enabled:
            return
        entry = {"at": utc_now(), "docId": doc_id, "action": action, "by": by, **extra}
        line = json.dumps(entry, ensure_ascii=False) + "\n"
        try:
            await asyncio.to_thread(self._append, line)
        except OSError as exc:
            logger.warning("action log append failed for %s: %s", doc_id, exc)

    def read(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if line:
                    entries.append(json.loads(line))
        return entries
