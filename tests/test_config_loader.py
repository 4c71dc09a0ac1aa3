"""Tests for config loading, validation, and env overrides."""

import os
import tempfile

import pytest
import yaml

from ebaston import config_loader
from ebaston.config_loader import (
    _apply_env_overrides,
    _deep_merge,
    _expand_paths,
    load_config,
    validate_config,
)


def _valid_config(**overrides):
    config = {
        "provider": "groq",
        "user_id": "u1",
        "groq": {"api_key": "gsk-test"},
        "completion": {"timeout": 30},
        "assistant": {"auto_close": {"navigate": 1.5, "unknown": 3}},
        "database": {"path": "/tmp/test.db"},
    }
    config.update(overrides)
    return config


def test_deep_merge_basic():
    base = {"a": 1, "b": {"c": 2}}
    override = {"b": {"d": 3}, "e": 4}
    result = _deep_merge(base, override)
    assert result == {"a": 1, "b": {"c": 2, "d": 3}, "e": 4}


def test_deep_merge_override_value():
    assert _deep_merge({"a": 1}, {"a": 2}) == {"a": 2}


def test_expand_paths():
    config = {"path": "~/data", "nested": {"path": "~/more"}, "num": 42}
    result = _expand_paths(config)
    assert "~" not in result["path"]
    assert "~" not in result["nested"]["path"]
    assert result["num"] == 42


def test_apply_env_overrides(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-123")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-456")
    monkeypatch.setenv("EBASTON_PROVIDER", "anthropic")
    monkeypatch.setenv("EBASTON_USER_ID", "user-42")
    result = _apply_env_overrides({})
    assert result["groq"]["api_key"] == "gsk-123"
    assert result["anthropic"]["api_key"] == "sk-ant-456"
    assert result["provider"] == "anthropic"
    assert result["user_id"] == "user-42"


def test_apply_env_overrides_no_env(monkeypatch):
    for name in ("GROQ_API_KEY", "OPENROUTER_API_KEY", "ANTHROPIC_API_KEY", "EBASTON_PROVIDER", "EBASTON_USER_ID"):
        monkeypatch.delenv(name, raising=False)
    result = _apply_env_overrides({"provider": "ollama"})
    assert result == {"provider": "ollama"}


def test_load_config_from_file(monkeypatch):
    monkeypatch.setattr(config_loader, "USER_CONFIG_PATH", "/nonexistent/user.yaml")
    monkeypatch.delenv("EBASTON_PROVIDER", raising=False)
    config_data = {
        "provider": "ollama",
        "ollama": {"model": "gemma3"},
        "database": {"path": "~/ebaston-test.db"},
    }
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config_data, f)
        path = f.name

    try:
        config = load_config(path)
        assert config["provider"] == "ollama"
        assert config["ollama"]["model"] == "gemma3"
        assert not config["database"]["path"].startswith("~")
    finally:
        os.unlink(path)


def test_load_config_merges_user_file(monkeypatch, tmp_path):
    monkeypatch.delenv("EBASTON_USER_ID", raising=False)
    base = tmp_path / "default.yaml"
    base.write_text(yaml.dump({"user_id": "local", "assistant": {"speech_rate": 0.9}}), encoding="utf-8")
    user = tmp_path / "user.yaml"
    user.write_text(yaml.dump({"user_id": "ayse"}), encoding="utf-8")
    monkeypatch.setattr(config_loader, "USER_CONFIG_PATH", str(user))

    config = load_config(str(base))
    assert config["user_id"] == "ayse"
    assert config["assistant"]["speech_rate"] == 0.9


def test_default_config_is_valid_once_keyed(monkeypatch):
    monkeypatch.setattr(config_loader, "USER_CONFIG_PATH", "/nonexistent/user.yaml")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    monkeypatch.delenv("EBASTON_PROVIDER", raising=False)
    config = load_config()
    assert validate_config(config) == []
    assert config["assistant"]["auto_close"]["unknown"] == 3.0


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/config.yaml")


# -- Validation --

def test_validate_config_valid():
    assert validate_config(_valid_config()) == []


def test_validate_config_ollama_needs_no_key():
    assert validate_config(_valid_config(provider="ollama")) == []


def test_validate_config_invalid_provider():
    errors = validate_config(_valid_config(provider="invalid"))
    assert any("provider" in e.lower() for e in errors)


def test_validate_config_missing_key():
    errors = validate_config(_valid_config(provider="openrouter"))
    assert any("api key" in e.lower() for e in errors)


def test_validate_config_empty_db_path():
    errors = validate_config(_valid_config(database={"path": ""}))
    assert any("database" in e.lower() for e in errors)


def test_validate_config_negative_auto_close():
    errors = validate_config(_valid_config(assistant={"auto_close": {"navigate": -1}}))
    assert any("auto_close.navigate" in e for e in errors)


def test_validate_config_bad_timeout():
    errors = validate_config(_valid_config(completion={"timeout": 0}))
    assert any("timeout" in e for e in errors)


def test_validate_config_empty_user():
    errors = validate_config(_valid_config(user_id=" "))
    assert any("user_id" in e for e in errors)
