"""Provider protocol definition."""

from __future__ import annotations

from typing import List

from typing_extensions import Protocol

from .types import GenerationConfig, LLMResponse, Message


class ChatProvider(Protocol):
    """Protocol for completion service adapters."""

    model: str

    async def generate(
        self,
        messages: List[Message],
        config: GenerationConfig,
    ) -> LLMResponse: ...
