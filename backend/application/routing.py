"""Routing engine: state transitions that move a document between directories.

Every transition relocates the PDF into the destination state's canonical
directory, rewrites ``state``/``filePath``, appends one ``moved`` history
entry and persists the record. Arrival in ``processed`` additionally stamps
``classification_mode``. A side-car copy of the record is written beside the
moved file.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from backend.application.classification import has_classification, resolve_document_file
from backend.core.audit import append_history, utc_now
from backend.core.confidence import aggregate_record
from backend.core.errors import BadRequestError, NoScoresError, NotClassifiedError
from backend.core.settings import TriageSettings
from backend.core.storage import rel_from_root, relocate_file, remove_sidecar, state_dir, write_sidecar
from backend.domain import (
    CORRECTABLE_FIELDS,
    ClassificationMode,
    ConfidencePolicy,
    DocumentState,
    RoutingDecision,
)
from backend.infrastructure import ActionLog, MetaStore

logger = logging.getLogger(__name__)


def parse_target_state(value: object) -> DocumentState:
    try:
        return DocumentState.parse(value)
    except ValueError as exc:
        allowed = ", ".join(f"'{state.value}'" for state in DocumentState)
        raise BadRequestError(f"to must be one of {allowed}") from exc


def parse_threshold(value: object, default: float) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise BadRequestError("threshold must be a number")
    try:
        threshold = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise BadRequestError("threshold must be a number") from exc
    if not 0.0 <= threshold <= 1.0:
        raise BadRequestError("threshold must be within [0, 1]")
    return threshold


def has_corrections(record: dict[str, Any]) -> bool:
    corrections = record.get("corrections")
    if not isinstance(corrections, dict):
        return False
    return any(str(corrections.get(field) or "").strip() for field in CORRECTABLE_FIELDS)


def classification_mode(
    record: dict[str, Any],
    *,
    auto_route: bool,
    aggregate: float | None = None,
    threshold: float | None = None,
) -> ClassificationMode:
    if has_corrections(record):
        return ClassificationMode.CORRECTED
    if auto_route and aggregate is not None and threshold is not None and aggregate >= threshold:
        return ClassificationMode.AUTO
    return ClassificationMode.MANUAL


def decide_target(aggregate: float, threshold: float) -> DocumentState:
    """Inclusive boundary: an aggregate equal to the threshold is processed."""

    return DocumentState.PROCESSED if aggregate >= threshold else DocumentState.REVIEW


@dataclass(slots=True)
class AutoRoutePlan:
    target: DocumentState
    aggregate: float
    threshold: float
    policy: ConfidencePolicy


class RoutingEngine:
    def __init__(self, store: MetaStore, settings: TriageSettings, action_log: ActionLog) -> None:
        self._store = store
        self._settings = settings
        self._action_log = action_log

    @property
    def policy(self) -> ConfidencePolicy:
        return ConfidencePolicy(self._settings.confidence_policy)

    def plan_auto_route(self, record: dict[str, Any], threshold: float) -> AutoRoutePlan:
        if not has_classification(record):
            raise NotClassifiedError("document not classified")
        aggregate = aggregate_record(record, self.policy)
        if aggregate is None:
            raise NoScoresError("no confidence scores available")
        return AutoRoutePlan(
            target=decide_target(aggregate, threshold),
            aggregate=aggregate,
            threshold=threshold,
            policy=self.policy,
        )

    async def move(
        self,
        record: dict[str, Any],
        target: DocumentState,
        *,
        actor: str,
        plan: AutoRoutePlan | None = None,
    ) -> dict[str, Any]:
        """Relocate the record's file into ``target`` and persist the record.

        ``record`` is mutated in place. If persisting fails the file is moved
        back before the error propagates.
        """

        doc_id = str(record["docId"])
        source = resolve_document_file(record, self._settings)
        from_state = record.get("state")
        destination_dir = state_dir(target, self._settings)

        moved = await asyncio.to_thread(relocate_file, source, destination_dir)

        record["state"] = target.value
        record["filePath"] = rel_from_root(moved, self._settings)
        if plan is not None:
            record["routing"] = RoutingDecision(
                policy=plan.policy.value,
                threshold=plan.threshold,
                aggregated_confidence=plan.aggregate,
                auto_processed=plan.target is DocumentState.PROCESSED,
                decided_at=utc_now(),
                decided_by=actor,
            ).to_dict()
        if target is DocumentState.PROCESSED:
            record["classification_mode"] = classification_mode(
                record,
                auto_route=plan is not None,
                aggregate=plan.aggregate if plan else None,
                threshold=plan.threshold if plan else None,
            ).value
        append_history(
            record,
            "moved",
            actor,
            from_=from_state,
            to=target.value,
            note=f"agg={plan.aggregate}" if plan else None,
        )

        try:
            await self._store.put(doc_id, record)
        except Exception:
            await asyncio.to_thread(relocate_file, moved, source.parent)
            raise

        await write_sidecar(moved.parent, record)
        if source.parent != moved.parent:
            await remove_sidecar(source.parent, doc_id)

        extra: dict[str, Any] = {"from": from_state, "to": target.value}
        if plan is not None:
            extra["threshold"] = plan.threshold
            extra["aggregated_confidence"] = plan.aggregate
        await self._action_log.record(doc_id, "auto_route" if plan else "route", actor, **extra)
        logger.info("moved %s: %s -> %s", doc_id, from_state, target.value)
        return record
