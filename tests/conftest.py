"""Global pytest fixtures for deterministic test environment."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest
import pytest_asyncio

from cv_assistant.providers import GenerationConfig, LLMResponse, Message
from cv_assistant.storage import InMemoryKeyValueStore, ProjectStore


@pytest.fixture(autouse=True)
def _isolate_runtime_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear local runtime env that can leak into tests on developer machines."""
    for key in (
        "CV_ASSISTANT_PROVIDER",
        "CV_ASSISTANT_MODEL",
        "CV_ASSISTANT_API_KEY",
        "CV_ASSISTANT_API_BASE",
        "CV_ASSISTANT_DB_PATH",
        "GEMINI_API_KEY",
        "OPENAI_API_KEY",
        "DEEPSEEK_API_KEY",
        "KIMI_API_KEY",
        "GLM_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class ScriptedProvider:
    """Chat provider returning canned replies in order.

    A reply may be a string, a dict (JSON-encoded), or an exception to raise.
    """

    def __init__(self, replies: Optional[List[Any]] = None, delay: float = 0.0) -> None:
        self.model = "scripted-model"
        self.replies = list(replies or [])
        self.delay = delay
        self.calls: List[dict] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def generate(self, messages: List[Message], config: GenerationConfig) -> LLMResponse:
        self.calls.append({"messages": messages, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else {"patches": [], "message": "Nothing to do."}
        if isinstance(reply, BaseException):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return LLMResponse(text=text, usage={"total_tokens": 42})


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def store(storage: InMemoryKeyValueStore, clock: StepClock) -> ProjectStore:
    return ProjectStore(storage, clock=clock)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def provider_factory(provider: ScriptedProvider):
    """Factory recording the (model, credential) pairs it was called with."""
    created: List[tuple] = []

    def factory(model: str, credential: str) -> ScriptedProvider:
        created.append((model, credential))
        provider.model = model
        return provider

    factory.created = created  # type: ignore[attr-defined]
    return factory


@pytest_asyncio.fixture
async def project(store: ProjectStore):
    """A freshly created (and therefore active) project."""
    return await store.create("Backend CV")
