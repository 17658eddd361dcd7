"""Model invocation as a pipeline stage."""

from __future__ import annotations

from contextlib import aclosing
from typing import Any, AsyncIterator

from ..core.stage import Stage
from .protocols import ChatModel
from .state import Message

PromptValue = str | list[Message]


def to_provider_messages(prompt: PromptValue) -> list[dict[str, Any]]:
    """Convert a rendered prompt into provider message dicts.

    A plain string becomes a single user message.
    """
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]
    return [msg.to_dict() for msg in prompt]


class ModelStage(Stage[PromptValue, str]):
    """Calls a chat model with a rendered prompt and returns its text.

    ``arun()`` waits for the complete reply; ``astream()`` yields text
    fragments as the provider produces them. Provider errors propagate.

    Args:
        provider: ChatModel implementation
        name: Optional stage name (defaults to the provider class name)
        **llm_kwargs: Extra provider arguments (temperature, max_tokens, ...)
    """

    input_type = PromptValue
    output_type = str

    def __init__(self, provider: ChatModel, name: str | None = None, **llm_kwargs: Any):
        super().__init__(name or provider.__class__.__name__)
        self.provider = provider
        self.llm_kwargs = llm_kwargs

    async def arun(self, prompt: PromptValue) -> str:
        response = await self.provider.complete(
            to_provider_messages(prompt), **dict(self.llm_kwargs)
        )
        return response.get("content") or ""

    async def astream(self, prompt: PromptValue) -> AsyncIterator[str]:
        chunks = self.provider.stream(to_provider_messages(prompt), **dict(self.llm_kwargs))
        async with aclosing(chunks) as stream:
            async for chunk in stream:
                text = chunk.get("content")
                if text:
                    yield text
