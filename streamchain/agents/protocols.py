"""LLM provider interface types."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class ChatModel(Protocol):
    """Interface for chat-style models.

    Messages and tool schemas are plain dicts. A response is
    ``{"role": "assistant", "content": str, "tool_calls": [...]}`` where each
    tool call is ``{"id", "name", "arguments"}``; arguments the model sent as
    malformed JSON stay a raw string. Stream chunks carry a ``"content"``
    fragment, a ``"tool_call_started"`` marker as soon as a tool call opens,
    or the final ``"tool_calls"`` list.
    """

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Return a message dict with optional tool calls."""
        ...

    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield response chunks as the provider produces them."""
        ...
