"""Provider adapter normalization tests."""

from types import SimpleNamespace

import pytest

from cv_assistant.errors import CredentialMissingError
from cv_assistant.providers import (
    GeminiProvider,
    GenerationConfig,
    Message,
    OpenAICompatibleProvider,
    create_provider,
    resolve_api_key,
)


def _openai_provider() -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(api_key="test-key", model="deepseek-chat", api_base="https://api.deepseek.com")


def test_openai_completion_normalizes_list_content_and_usage():
    completion = SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content=[{"type": "text", "text": '{"patches": [], '}, {"type": "text", "text": '"message": "hi"}'}]
                )
            )
        ],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30),
    )

    response = _openai_provider()._from_openai_completion(completion)

    assert response.text == '{"patches": [], "message": "hi"}'
    assert response.usage == {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}


def test_openai_empty_choices_raise():
    with pytest.raises(RuntimeError):
        _openai_provider()._from_openai_completion(SimpleNamespace(choices=[], usage=None))


def test_openai_kwargs_request_json_object():
    provider = _openai_provider()
    messages = provider._to_openai_messages([Message.user("Add Go")], "system text")
    kwargs = provider._build_chat_kwargs(messages, GenerationConfig(system_prompt="system text", temperature=0.2))

    assert kwargs["messages"][0] == {"role": "system", "content": "system text"}
    assert kwargs["messages"][1] == {"role": "user", "content": "Add Go"}
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.2


def test_openai_extracts_allowed_temperature():
    provider = _openai_provider()
    error = RuntimeError("Invalid temperature: only 1 is allowed for this model")
    assert provider._extract_allowed_temperature(error) == 1.0
    assert provider._extract_allowed_temperature(RuntimeError("rate limited")) is None


def test_gemini_response_joins_parts():
    provider = GeminiProvider(api_key="test-key", model="gemini-2.0-flash")
    response = SimpleNamespace(
        candidates=[
            SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text='{"a":'), SimpleNamespace(text=" 1}")]))
        ],
        usage_metadata=SimpleNamespace(prompt_token_count=3, candidates_token_count=4, total_token_count=7),
    )

    normalized = provider._from_gemini_response(response)

    assert normalized.text == '{"a": 1}'
    assert normalized.usage["total_tokens"] == 7


def test_create_provider_selects_adapter():
    assert isinstance(create_provider("gemini", "k", "gemini-2.0-flash"), GeminiProvider)
    kimi = create_provider("kimi", "k", "moonshot-v1-8k")
    assert isinstance(kimi, OpenAICompatibleProvider)
    assert kimi.api_base == "https://api.moonshot.cn/v1"


def test_create_provider_requires_credential():
    with pytest.raises(CredentialMissingError):
        create_provider("openai", "", "gpt-4o")


def test_resolve_api_key(monkeypatch: pytest.MonkeyPatch):
    assert resolve_api_key("openai", "explicit") == "explicit"
    assert resolve_api_key("openai", "") == ""
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    assert resolve_api_key("openai", None) == "env-key"
    monkeypatch.setenv("CUSTOM", "placeholder-key")
    assert resolve_api_key("openai", "${CUSTOM}") == "placeholder-key"
