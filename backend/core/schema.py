from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from backend.domain import OVERRIDE_KEYS, SCORED_FIELDS


class ScoredField(BaseModel):
    value: Any = None
    score: float | None = Field(default=None, ge=0.0, le=1.0)


class ClassificationResult(BaseModel):
    """Normalised classifier output.

    Upstream deployments answer either with the fields at the top level or
    wrapped once more under ``result``; :meth:`from_payload` unwraps that
    single optional layer so nothing downstream has to care.
    """

    model_config = ConfigDict(extra="ignore")

    kind: str | None = None
    doc_date_parsed: Any = None
    doc_id: ScoredField | None = None
    doc_date_sic: ScoredField | None = None
    doc_subject: ScoredField | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ClassificationResult":
        if isinstance(payload, dict) and isinstance(payload.get("result"), dict):
            payload = payload["result"]
        if not isinstance(payload, dict):
            raise ValueError("classifier response must be a JSON object")
        return cls.model_validate(payload)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ClassificationResult | None":
        """Read the stored result of a record, or ``None`` when unclassified."""

        classification = record.get("classification")
        if not isinstance(classification, dict) or not classification.get("result"):
            return None
        try:
            return cls.from_payload(classification["result"])
        except (ValueError, ValidationError):
            return None

    @property
    def fields(self) -> dict[str, ScoredField]:
        return {
            name: item
            for name in SCORED_FIELDS
            if (item := getattr(self, name)) is not None
        }

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CorrectionsPatch(BaseModel):
    """Human overrides accepted by ``apply_corrections``.

    Field values are stored as strings. ``conf_overrides`` maps
    ``<field>_score`` keys to a confidence in [0, 1]; ``None`` (or an empty
    string) marks the override for removal.
    """

    model_config = ConfigDict(extra="ignore")

    kind: str | None = None
    doc_id: str | None = None
    doc_date_sic: str | None = None
    doc_date_parsed: str | None = None
    doc_subject: str | None = None
    conf_overrides: dict[str, float | None] | None = None

    @field_validator("kind", "doc_id", "doc_date_sic", "doc_date_parsed", "doc_subject", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float, bool)):
            return str(value)
        raise ValueError("correction values must be scalars")

    @field_validator("conf_overrides", mode="before")
    @classmethod
    def _check_overrides(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, dict):
            raise ValueError("conf_overrides must be an object")
        allowed = set(OVERRIDE_KEYS.values())
        cleaned: dict[str, float | None] = {}
        for key, raw in value.items():
            if key not in allowed:
                raise ValueError(f"unknown override {key!r}")
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                cleaned[key] = None
                continue
            if isinstance(raw, bool):
                raise ValueError(f"{key} must be a number")
            try:
                number = float(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{key} must be a number") from exc
            if not 0.0 <= number <= 1.0:
                raise ValueError(f"{key} must be within [0, 1]")
            cleaned[key] = number
        return cleaned

    def field_updates(self) -> dict[str, str]:
        data = self.model_dump(exclude={"conf_overrides"}, exclude_none=True)
        return {key: str(value) for key, value in data.items()}
