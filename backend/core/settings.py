"""Runtime configuration for the triage engine.

Defaults can be overridden by an optional YAML file and then by environment
variables, so a deployment can pin paths in the file and tweak thresholds per
host without editing it.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from backend.domain import ConfidencePolicy

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class TriageSettings:
    root_dir: Path = PROJECT_ROOT
    storage_dirname: str = "storage"
    scanner_dir: Path | None = None
    poll_interval: float = 3.0
    stability_delay: float = 0.3
    classifier_api_base: str = "http://localhost:8080/api/v1"
    classifier_timeout: float = 30.0
    confidence_policy: str = ConfidencePolicy.MIN.value
    confidence_threshold: float = 0.7
    user_name: str = "system"
    action_log_enabled: bool = True
    max_upload_bytes: int = 25 * 1024 * 1024
    cors_origins: tuple[str, ...] = field(
        default=("http://localhost:3000", "http://127.0.0.1:3000")
    )

    @property
    def storage_root(self) -> Path:
        return self.root_dir / self.storage_dirname


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp)
    return data if isinstance(data, dict) else {}


def _env_float(name: str, scale: float = 1.0) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw) * scale


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    known = {item.name for item in fields(TriageSettings)}
    coerced: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known or value is None:
            continue
        if key in {"root_dir", "scanner_dir"}:
            value = Path(str(value)).expanduser().resolve()
        elif key == "cors_origins":
            if isinstance(value, str):
                value = value.split(",")
            value = tuple(str(item).strip() for item in value if str(item).strip())
        elif key in {"poll_interval", "stability_delay", "classifier_timeout", "confidence_threshold"}:
            value = float(value)
        elif key == "max_upload_bytes":
            value = int(value)
        elif key == "classifier_api_base":
            value = str(value).rstrip("/")
        elif key == "confidence_policy":
            value = str(value).strip().lower()
        coerced[key] = value
    return coerced


def load_settings(config_path: Path | None = None) -> TriageSettings:
    """Build settings from defaults, the YAML file and the environment."""

    path = config_path or Path(os.getenv("TRIAGE_CONFIG") or CONFIG_DIR / "triage.yaml")
    values: dict[str, Any] = _load_yaml(path)

    max_upload_mb = _env_float("MAX_UPLOAD_MB")
    env_values: dict[str, Any] = {
        "root_dir": os.getenv("TRIAGE_ROOT"),
        "storage_dirname": os.getenv("TRIAGE_STORAGE_DIR"),
        "scanner_dir": os.getenv("SCANNER_DIR"),
        "poll_interval": _env_float("POLL_MS", 0.001),
        "stability_delay": _env_float("STABILITY_MS", 0.001),
        "classifier_api_base": os.getenv("CLASSIFIER_API_BASE"),
        "classifier_timeout": _env_float("CLASSIFIER_TIMEOUT"),
        "confidence_policy": os.getenv("CONF_POLICY"),
        "confidence_threshold": _env_float("CONF_THRESHOLD"),
        "user_name": os.getenv("USER_NAME"),
        "action_log_enabled": _env_bool("ACTION_LOG"),
        "max_upload_bytes": int(max_upload_mb * 1024 * 1024) if max_upload_mb is not None else None,
        "cors_origins": os.getenv("API_CORS_ORIGINS") or None,
    }
    values.update({key: value for key, value in env_values.items() if value is not None})

    settings = replace(TriageSettings(), **_coerce(values))
    try:
        ConfidencePolicy(settings.confidence_policy)
    except ValueError as exc:
        raise ValueError(f"unknown confidence policy: {settings.confidence_policy!r}") from exc
    if not 0.0 <= settings.confidence_threshold <= 1.0:
        raise ValueError("confidence_threshold must be within [0, 1]")
    return settings


_settings: TriageSettings | None = None


def get_settings() -> TriageSettings:
    """Return the process-wide settings, loading them on first use."""

    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (used in tests after changing the environment)."""

    global _settings
    _settings = None
