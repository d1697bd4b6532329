"""Domain entities for the document triage lifecycle."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class DocumentState(str, Enum):
    """Lifecycle states; each maps to one canonical storage directory."""

    INBOX = "inbox"
    REVIEW = "review"
    HOLD = "hold"
    PROCESSED = "processed"

    @classmethod
    def parse(cls, value: object) -> "DocumentState":
        if isinstance(value, cls):
            return value
        return cls(str(value or "").strip().lower())


class ConfidencePolicy(str, Enum):
    MIN = "min"
    AVG = "avg"
    MAX = "max"


class ClassificationMode(str, Enum):
    CORRECTED = "corrected"
    AUTO = "auto"
    MANUAL = "manual"


SCORED_FIELDS: tuple[str, ...] = ("doc_id", "doc_date_sic", "doc_subject")
CORRECTABLE_FIELDS: tuple[str, ...] = ("kind", "doc_id", "doc_date_sic", "doc_date_parsed", "doc_subject")
OVERRIDE_KEYS: dict[str, str] = {name: f"{name}_score" for name in SCORED_FIELDS}


@dataclass(slots=True)
class HistoryEntry:
    """One immutable audit event in a record's history."""

    at: str
    by: str
    event: str
    from_: str | None = None
    to: str | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"at": self.at, "by": self.by, "event": self.event}
        if self.from_ is not None:
            payload["from"] = self.from_
        if self.to is not None:
            payload["to"] = self.to
        if self.note is not None:
            payload["note"] = self.note
        return payload


@dataclass(slots=True)
class RoutingDecision:
    """Stamped onto a record by the auto-route path only."""

    policy: str
    threshold: float
    aggregated_confidence: float
    auto_processed: bool
    decided_at: str
    decided_by: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DocumentSummary:
    docId: str
    state: str
    originalFilename: str | None
    filePath: str | None
    createdAt: str | None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DocumentSummary":
        return cls(
            docId=str(record.get("docId")),
            state=str(record.get("state")),
            originalFilename=record.get("originalFilename"),
            filePath=record.get("filePath"),
            createdAt=record.get("createdAt"),
        )


@dataclass(slots=True)
class BulkClassifySummary:
    ok: int = 0
    fail: int = 0
    skipped: int = 0
    scanned: int = 0


@dataclass(slots=True)
class BulkAutoRouteSummary:
    processed: int = 0
    reviewed: int = 0
    skipped: int = 0
    failed: int = 0
    scanned: int = 0


@dataclass(slots=True)
class AutoRouteResult:
    docId: str
    newState: str
    aggregated_confidence: float
    ok: bool = True


@dataclass(slots=True)
class ClassifyResult:
    docId: str
    ok: bool
    error: str | None = None
