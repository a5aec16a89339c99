"""Configuration loading and startup checks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .providers import PROVIDER_DEFAULTS, resolve_api_key

DEFAULT_CONFIG_PATH = "config/config.local.yaml"

ENV_OVERRIDES = {
    "CV_ASSISTANT_PROVIDER": "provider",
    "CV_ASSISTANT_MODEL": "model",
    "CV_ASSISTANT_API_KEY": "api_key",
    "CV_ASSISTANT_API_BASE": "api_base",
    "CV_ASSISTANT_DB_PATH": "db_path",
}


@dataclass
class AppConfig:
    """Runtime configuration for the assistant."""

    api_key: str = ""
    provider: str = "gemini"
    model: str = "gemini-2.0-flash"
    api_base: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7
    db_path: str = "~/.cv_assistant/store.db"
    chat_timeout_seconds: Optional[float] = 60.0
    verbose: bool = False

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()


def load_raw_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load raw configuration dictionary from YAML files.

    Priority order:
    1. config.local.yaml (user's local config with secrets)
    2. config.yaml (template/defaults)

    Missing files are not an error; the dataclass defaults apply.
    """
    repo_root = Path(__file__).resolve().parents[1]

    def _resolve(candidate: str) -> Path:
        path = Path(candidate)
        if path.exists():
            return path
        alt = repo_root / candidate
        if alt.exists():
            return alt
        return path

    def _load_yaml(path: Path) -> dict:
        if not path.exists():
            return {}
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file must be a mapping: {path}")
            return data

    def _deep_merge(base: dict, override: dict) -> dict:
        merged = dict(base)
        for key, value in override.items():
            base_value = merged.get(key)
            if isinstance(base_value, dict) and isinstance(value, dict):
                merged[key] = _deep_merge(base_value, value)
            else:
                merged[key] = value
        return merged

    target = _resolve(config_path)
    if Path(config_path).name == "config.local.yaml":
        base = _load_yaml(_resolve("config/config.yaml"))
        return _deep_merge(base, _load_yaml(target))
    return _load_yaml(target)


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(raw)
    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name, "")
        if value:
            merged[field_name] = value
    return merged


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load :class:`AppConfig` from YAML plus ``CV_ASSISTANT_*`` env overrides."""
    data = apply_env_overrides(load_raw_config(config_path))
    chat = data.get("chat", {}) or {}
    provider = data.get("provider", "gemini")
    return AppConfig(
        api_key=resolve_api_key(provider, data.get("api_key", "")),
        provider=provider,
        model=data.get("model", "gemini-2.0-flash"),
        api_base=data.get("api_base", ""),
        max_tokens=data.get("max_tokens", 4096),
        temperature=data.get("temperature", 0.7),
        db_path=data.get("db_path", "~/.cv_assistant/store.db"),
        chat_timeout_seconds=chat.get("timeout_seconds", 60.0),
        verbose=bool(data.get("verbose", False)),
    )


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ConfigError:
    """A single configuration issue."""

    field: str
    message: str
    severity: Severity


def validate_config(raw_config: Dict[str, Any]) -> List[ConfigError]:
    """Validate raw configuration and return a list of issues (empty = valid)."""
    errors: List[ConfigError] = []

    provider = str(raw_config.get("provider", "gemini")).lower()
    if provider not in PROVIDER_DEFAULTS:
        errors.append(ConfigError(
            field="provider",
            message=f"provider must be one of {', '.join(sorted(PROVIDER_DEFAULTS))}, got {provider!r}",
            severity=Severity.ERROR,
        ))

    # Chat still works for local commands without a key; each turn reports it.
    if not resolve_api_key(provider, raw_config.get("api_key", "")):
        env_key = PROVIDER_DEFAULTS.get(provider, {}).get("env_key", "CV_ASSISTANT_API_KEY")
        errors.append(ConfigError(
            field="api_key",
            message=f"{env_key} not set. Set the env var or add api_key to config/config.local.yaml",
            severity=Severity.WARNING,
        ))

    model = raw_config.get("model", "gemini-2.0-flash")
    if not model or not isinstance(model, str):
        errors.append(ConfigError(
            field="model",
            message="model must be a non-empty string",
            severity=Severity.ERROR,
        ))

    temperature = raw_config.get("temperature", 0.7)
    if not isinstance(temperature, (int, float)) or temperature < 0 or temperature > 2:
        errors.append(ConfigError(
            field="temperature",
            message=f"temperature must be a number between 0 and 2, got {temperature}",
            severity=Severity.ERROR,
        ))

    max_tokens = raw_config.get("max_tokens", 4096)
    if not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens <= 0:
        errors.append(ConfigError(
            field="max_tokens",
            message=f"max_tokens must be a positive integer, got {max_tokens}",
            severity=Severity.ERROR,
        ))

    timeout = (raw_config.get("chat", {}) or {}).get("timeout_seconds", 60.0)
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append(ConfigError(
            field="chat.timeout_seconds",
            message=f"chat.timeout_seconds must be a positive number or null, got {timeout!r}",
            severity=Severity.ERROR,
        ))

    return errors


def has_errors(issues: List[ConfigError]) -> bool:
    """Check if any issues are errors (not just warnings)."""
    return any(e.severity == Severity.ERROR for e in issues)
