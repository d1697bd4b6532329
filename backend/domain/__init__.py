"""Domain layer definitions."""

from .documents import (
    CORRECTABLE_FIELDS,
    OVERRIDE_KEYS,
    SCORED_FIELDS,
    AutoRouteResult,
    BulkAutoRouteSummary,
    BulkClassifySummary,
    ClassificationMode,
    ClassifyResult,
    ConfidencePolicy,
    DocumentState,
    DocumentSummary,
    HistoryEntry,
    RoutingDecision,
)

__all__ = [
    "AutoRouteResult",
    "BulkAutoRouteSummary",
    "BulkClassifySummary",
    "CORRECTABLE_FIELDS",
    "ClassificationMode",
    "ClassifyResult",
    "ConfidencePolicy",
    "DocumentState",
    "DocumentSummary",
    "HistoryEntry",
    "OVERRIDE_KEYS",
    "RoutingDecision",
    "SCORED_FIELDS",
]
