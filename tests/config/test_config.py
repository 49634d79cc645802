"""
Tests for Config priority handling (ENV > config.json > defaults).
"""

import json

import pytest

from backend.app.config import DEFAULT_CORS_ORIGINS, DEFAULT_DEBOUNCE_MS, Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ANALYSIS_DEBOUNCE_MS",
        "ENABLE_LIVE_VALIDATION",
        "ENABLE_PERFORMANCE_METRICS",
        "ENABLE_BEST_PRACTICES",
        "RULES_DIR",
        "LOG_LEVEL",
        "CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)


def _config(tmp_path, data=None):
    path = tmp_path / "config.json"
    if data is not None:
        path.write_text(json.dumps(data), encoding="utf-8")
    return Config(path)


def test_defaults_without_config_file(tmp_path):
    config = _config(tmp_path)
    realtime = config.get_realtime_config()

    assert realtime.debounce_ms == DEFAULT_DEBOUNCE_MS
    assert realtime.enable_live_validation is True
    assert config.get_rules_dir() is None
    assert config.get_log_level() == "INFO"
    assert config.get_cors_origins() == DEFAULT_CORS_ORIGINS


def test_config_file_values(tmp_path):
    config = _config(tmp_path, {
        "analysis": {"debounce_ms": 120, "enable_best_practices": False},
        "paths": {"rules_dir": "/srv/rules"},
        "logging": {"level": "debug"},
    })
    assert config.get_debounce_ms() == 120
    assert config.get_enable_best_practices() is False
    assert config.get_enable_performance_metrics() is True
    assert config.get_rules_dir() == "/srv/rules"
    assert config.get_log_level() == "DEBUG"


def test_env_overrides_config_file(tmp_path, monkeypatch):
    config = _config(tmp_path, {"analysis": {"debounce_ms": 120, "enable_live_validation": True}})
    monkeypatch.setenv("ANALYSIS_DEBOUNCE_MS", "40")
    monkeypatch.setenv("ENABLE_LIVE_VALIDATION", "off")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    assert config.get_debounce_ms() == 40
    assert config.get_enable_live_validation() is False
    assert config.get_cors_origins() == ["https://a.example", "https://b.example"]


def test_invalid_values_fall_back(tmp_path, monkeypatch):
    config = _config(tmp_path, {"analysis": {"debounce_ms": -5}})
    assert config.get_debounce_ms() == DEFAULT_DEBOUNCE_MS

    monkeypatch.setenv("ANALYSIS_DEBOUNCE_MS", "soon")
    monkeypatch.setenv("ENABLE_BEST_PRACTICES", "maybe")
    assert config.get_debounce_ms() == DEFAULT_DEBOUNCE_MS
    assert config.get_enable_best_practices() is True


def test_unreadable_config_file_uses_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert Config(path).get_debounce_ms() == DEFAULT_DEBOUNCE_MS


def test_set_analysis_config_persists(tmp_path):
    config = _config(tmp_path)
    realtime = config.get_realtime_config().model_copy(update={"debounce_ms": 75})
    config.set_analysis_config(realtime)

    assert Config(tmp_path / "config.json").get_debounce_ms() == 75
