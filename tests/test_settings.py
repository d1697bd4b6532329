from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.settings import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TRIAGE_ROOT",
        "TRIAGE_CONFIG",
        "SCANNER_DIR",
        "POLL_MS",
        "STABILITY_MS",
        "CONF_POLICY",
        "CONF_THRESHOLD",
        "MAX_UPLOAD_MB",
        "ACTION_LOG",
        "API_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_yaml_values_are_overridden_by_environment(tmp_path, monkeypatch):
    config = tmp_path / "triage.yaml"
    config.write_text(
        "root_dir: {root}\nconfidence_policy: AVG\nconfidence_threshold: 0.8\npoll_interval: 10\n".format(root=tmp_path),
        encoding="utf-8",
    )
    monkeypatch.setenv("CONF_THRESHOLD", "0.65")
    monkeypatch.setenv("POLL_MS", "1500")
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    monkeypatch.setenv("ACTION_LOG", "off")
    monkeypatch.setenv("API_CORS_ORIGINS", "http://a.test, http://b.test")

    settings = load_settings(config)

    assert settings.root_dir == tmp_path.resolve()
    assert settings.storage_root == tmp_path.resolve() / "storage"
    assert settings.confidence_policy == "avg"
    assert settings.confidence_threshold == 0.65
    assert settings.poll_interval == 1.5
    assert settings.max_upload_bytes == 1024 * 1024
    assert settings.action_log_enabled is False
    assert settings.cors_origins == ("http://a.test", "http://b.test")


@pytest.mark.parametrize(("name", "value"), [("CONF_POLICY", "median"), ("CONF_THRESHOLD", "1.2")])
def test_invalid_routing_settings_are_rejected(tmp_path, monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        load_settings(tmp_path / "absent.yaml")
