"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from cv_assistant.config import (
    AppConfig,
    Severity,
    apply_env_overrides,
    has_errors,
    load_config,
    load_raw_config,
    validate_config,
)


class TestValidateConfig:
    """Tests for validate_config()."""

    def _valid_config(self) -> dict:
        return {
            "provider": "gemini",
            "api_key": "test-key-123",
            "model": "gemini-2.0-flash",
            "temperature": 0.7,
            "max_tokens": 4096,
            "chat": {"timeout_seconds": 30},
        }

    def test_valid_config_no_issues(self):
        assert validate_config(self._valid_config()) == []

    def test_missing_api_key_is_only_a_warning(self):
        config = self._valid_config()
        config["api_key"] = ""
        issues = validate_config(config)
        assert not has_errors(issues)
        assert [(i.field, i.severity) for i in issues] == [("api_key", Severity.WARNING)]

    def test_placeholder_resolved_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MY_KEY", "from-env")
        config = self._valid_config()
        config["api_key"] = "${MY_KEY}"
        assert validate_config(config) == []

    def test_provider_env_var_counts(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "k")
        config = self._valid_config()
        config.update(provider="deepseek", api_key="")
        assert validate_config(config) == []

    def test_unknown_provider(self):
        config = self._valid_config()
        config["provider"] = "acme"
        issues = validate_config(config)
        assert has_errors(issues)
        assert issues[0].field == "provider"

    @pytest.mark.parametrize(
        "field,value",
        [("temperature", 3), ("temperature", "hot"), ("max_tokens", 0), ("max_tokens", True), ("model", "")],
    )
    def test_bad_values(self, field, value):
        config = self._valid_config()
        config[field] = value
        issues = validate_config(config)
        assert has_errors(issues)
        assert any(i.field == field for i in issues)

    def test_bad_timeout(self):
        config = self._valid_config()
        config["chat"] = {"timeout_seconds": -1}
        assert [i.field for i in validate_config(config)] == ["chat.timeout_seconds"]


class TestLoadConfig:
    def test_local_file_overrides_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text(
            "provider: gemini\nmodel: base-model\nchat:\n  timeout_seconds: 60\n", encoding="utf-8"
        )
        (tmp_path / "config" / "config.local.yaml").write_text(
            "model: local-model\napi_key: abc\nchat:\n  timeout_seconds: 5\n", encoding="utf-8"
        )
        monkeypatch.chdir(tmp_path)

        raw = load_raw_config("config/config.local.yaml")
        assert raw["provider"] == "gemini"
        assert raw["model"] == "local-model"
        assert raw["chat"] == {"timeout_seconds": 5}

        config = load_config("config/config.local.yaml")
        assert config.model == "local-model"
        assert config.api_key == "abc"
        assert config.chat_timeout_seconds == 5

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        config = load_config(str(tmp_path / "absent.yaml"))
        assert config == AppConfig()

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CV_ASSISTANT_MODEL", "env-model")
        monkeypatch.setenv("CV_ASSISTANT_API_KEY", "env-key")
        monkeypatch.setenv("CV_ASSISTANT_DB_PATH", str(tmp_path / "store.db"))

        config = load_config(str(tmp_path / "absent.yaml"))

        assert config.model == "env-model"
        assert config.api_key == "env-key"
        assert config.resolved_db_path == tmp_path / "store.db"
        assert apply_env_overrides({})["model"] == "env-model"

    def test_provider_key_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gem-key")
        assert load_config(str(tmp_path / "absent.yaml")).api_key == "gem-key"
