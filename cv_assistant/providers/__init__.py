"""Provider factory and defaults."""

from __future__ import annotations

import os
from typing import Dict, Optional

from ..errors import CredentialMissingError
from .base import ChatProvider
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider
from .types import GenerationConfig, LLMResponse, Message

PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "gemini": {"api_base": "", "env_key": "GEMINI_API_KEY"},
    "openai": {"api_base": "", "env_key": "OPENAI_API_KEY"},
    "deepseek": {"api_base": "https://api.deepseek.com", "env_key": "DEEPSEEK_API_KEY"},
    "kimi": {"api_base": "https://api.moonshot.cn/v1", "env_key": "KIMI_API_KEY"},
    "glm": {"api_base": "https://open.bigmodel.cn/api/paas/v4", "env_key": "GLM_API_KEY"},
}


def create_provider(
    provider: str,
    api_key: str,
    model: str,
    api_base: str = "",
) -> ChatProvider:
    provider_name = (provider or "gemini").lower()
    if not api_key:
        raise CredentialMissingError("API key is missing. Please provide it to continue.")

    if provider_name == "gemini":
        return GeminiProvider(api_key=api_key, model=model, api_base=api_base)

    defaults = PROVIDER_DEFAULTS.get(provider_name, {})
    base = api_base or defaults.get("api_base", "")
    return OpenAICompatibleProvider(api_key=api_key, model=model, api_base=base)


def resolve_api_key(provider: str, api_key: Optional[str]) -> str:
    """Resolve a credential from an explicit value, a ``${VAR}`` placeholder, or the provider env var.

    Returns an empty string when nothing is configured; callers decide
    whether that is fatal.
    """
    api_key = api_key or ""
    if api_key.startswith("${") and api_key.endswith("}"):
        return os.environ.get(api_key[2:-1], "")
    if api_key:
        return api_key

    env_key = PROVIDER_DEFAULTS.get((provider or "gemini").lower(), {}).get("env_key", "")
    if env_key:
        return os.environ.get(env_key, "")
    return ""


__all__ = [
    "ChatProvider",
    "GeminiProvider",
    "GenerationConfig",
    "LLMResponse",
    "Message",
    "OpenAICompatibleProvider",
    "PROVIDER_DEFAULTS",
    "create_provider",
    "resolve_api_key",
]
