"""Tests for the smartalt config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from smartalt.config import (
    DEFAULT_REQUEST_TEMPLATE,
    ConfigError,
    SmartAltConfig,
    config_from_dict,
    ensure_global_config,
    load_config,
    parse_headers,
    write_project_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SMARTALT_AI_KEY", "SMARTALT_AI_ENDPOINT", "SMARTALT_ALT_SOURCE"):
        monkeypatch.delenv(name, raising=False)


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_defaults_without_files(tmp_path: Path) -> None:
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing" / "config.yaml")

    assert cfg == SmartAltConfig()
    assert cfg.enabled is True
    assert cfg.alt_source == "heuristic"
    assert cfg.injection_method == "server_buffer"
    assert cfg.max_alt_length == 125
    assert cfg.cache.ai_ttl_days == 90
    assert cfg.bulk.batch_size == 50
    assert cfg.bulk.scope == "attached_only"
    assert cfg.logging.level == "info"
    assert cfg.logging.retention_days == 30
    assert cfg.ai.endpoint == ""
    assert cfg.ai.request_template == DEFAULT_REQUEST_TEMPLATE


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    _write_yaml(global_path, {"max_alt_length": 90, "logging": {"level": "error", "retention_days": 60}})
    _write_yaml(tmp_path / "smartalt.yaml", {"logging": {"level": "debug"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)

    assert cfg.max_alt_length == 90
    assert cfg.logging.level == "debug"
    assert cfg.logging.retention_days == 60


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "smartalt.yaml", {"alt_source": "heuristic", "ai": {"endpoint": "https://a.test"}})
    monkeypatch.setenv("SMARTALT_AI_KEY", "secret")
    monkeypatch.setenv("SMARTALT_AI_ENDPOINT", "https://b.test/alt")
    monkeypatch.setenv("SMARTALT_ALT_SOURCE", "ai")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")

    assert cfg.ai.key == "secret"
    assert cfg.ai.endpoint == "https://b.test/alt"
    assert cfg.alt_source == "ai"
    assert "secret" not in repr(cfg.ai)


def test_global_config_rejects_api_keys(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    _write_yaml(global_path, {"ai": {"api_key": "sk-123"}})
    with pytest.raises(ConfigError, match="ai.api_key"):
        load_config(project_dir=tmp_path, global_config_path=global_path)


def test_unknown_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "smartalt.yaml", {"colour": "blue"})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert any("colour" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_numbers_are_clamped() -> None:
    cfg = config_from_dict({
        "max_alt_length": 10,
        "bulk": {"batch_size": 5000},
        "cache": {"ai_ttl_days": 0},
        "logging": {"retention_days": 1},
    })
    assert cfg.max_alt_length == 50
    assert cfg.bulk.batch_size == 500
    assert cfg.cache.ai_ttl_days == 1
    assert cfg.logging.retention_days == 7


@pytest.mark.parametrize(
    "data",
    [
        {"alt_source": "magic"},
        {"injection_method": "inline"},
        {"bulk": {"scope": "everything"}},
        {"logging": {"level": "verbose"}},
        {"max_alt_length": "long"},
        {"ai": {"endpoint": "ftp://x.test"}},
        {"ai": {"response_path": "data; rm"}},
        {"ai": {"headers": "{not json"}},
    ],
)
def test_invalid_values_raise(data: dict) -> None:
    with pytest.raises(ConfigError):
        config_from_dict(data)


def test_legacy_source_alias_and_method() -> None:
    cfg = config_from_dict({"alt_source": "post_title", "ai": {"method": "get"}})
    assert cfg.alt_source == "heuristic"
    assert cfg.ai.method == "GET"
    assert config_from_dict({"ai": {"method": "PATCH"}}).ai.method == "POST"


def test_bool_strings() -> None:
    cfg = config_from_dict({"enabled": "no", "force_update": "yes"})
    assert cfg.enabled is False
    assert cfg.force_update is True


def test_parse_headers() -> None:
    assert parse_headers('{"X-Team": "web"}') == {"X-Team": "web"}
    assert parse_headers({"X-Team": "web"}) == {"X-Team": "web"}
    assert parse_headers("") == {}
    with pytest.raises(ConfigError):
        parse_headers('["a"]')
    with pytest.raises(ConfigError):
        parse_headers({"X-Retries": 3})


# ---------------------------------------------------------------------------
# Files written by init
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path: Path) -> None:
    target = tmp_path / "home" / ".smartalt" / "config.yaml"
    assert ensure_global_config(target) == target
    assert stat.S_IMODE(target.stat().st_mode) == 0o600

    target.write_text("max_alt_length: 80\n", encoding="utf-8")
    ensure_global_config(target)
    assert target.read_text(encoding="utf-8") == "max_alt_length: 80\n"


def test_written_files_load_cleanly(tmp_path: Path) -> None:
    global_path = ensure_global_config(tmp_path / "g" / "config.yaml")
    write_project_config(tmp_path)
    assert load_config(project_dir=tmp_path, global_config_path=global_path) == SmartAltConfig()
