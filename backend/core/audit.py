from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from backend.domain import HistoryEntry


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def append_history(
    record: dict[str, Any],
    event: str,
    by: str,
    *,
    from_: str | None = None,
    to: str | None = None,
    note: str | None = None,
    at: str | None = None,
) -> dict[str, Any]:
    """Append one event to ``record["history"]`` and return the entry."""

    entry = HistoryEntry(at=at or utc_now(), by=by, event=event, from_=from_, to=to, note=note).to_dict()
    history = record.get("history")
    if not isinstance(history, list):
        history = []
        record["history"] = history
    history.append(entry)
    return entry
