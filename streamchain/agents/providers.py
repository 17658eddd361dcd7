"""LLM provider implementations."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator

from ..core.errors import UpstreamModelError
from .state import KNOWN_ROLES


def _openai_format_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert tool schemas to OpenAI format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


def _parse_arguments(raw: str | None) -> dict[str, Any] | str:
    """Decode tool-call arguments; malformed JSON is kept as the raw string."""
    try:
        return json.loads(raw or "{}")
    except json.JSONDecodeError:
        return raw or ""


def _dump_arguments(arguments: dict[str, Any] | str) -> str:
    return arguments if isinstance(arguments, str) else json.dumps(arguments)


def _is_orphan_tool_message(msg: dict[str, Any]) -> bool:
    return msg["role"] == "tool" and not msg.get("tool_call_id")


def _openai_format_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert internal message dicts to the chat completions wire format."""
    formatted = []
    for msg in messages:
        role = msg["role"]
        if role not in KNOWN_ROLES or _is_orphan_tool_message(msg):
            formatted.append({"role": "user", "content": f"{role}: {msg['content']}"})
            continue

        data: dict[str, Any] = {"role": role, "content": msg["content"]}
        if msg.get("tool_calls"):
            data["tool_calls"] = [
                {
                    "id": tc["id"],
                    "type": "function",
                    "function": {
                        "name": tc["name"],
                        "arguments": _dump_arguments(tc["arguments"]),
                    },
                }
                for tc in msg["tool_calls"]
            ]
        if msg.get("tool_call_id"):
            data["tool_call_id"] = msg["tool_call_id"]
        formatted.append(data)
    return formatted


def _anthropic_format_messages(
    messages: list[dict[str, Any]],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Split out the system prompt and convert messages to content blocks."""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    formatted: list[dict[str, Any]] = []

    for msg in messages:
        role = msg["role"]
        if role == "system":
            continue
        if role == "tool" and msg.get("tool_call_id"):
            block = {
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": msg["content"],
            }
            # Consecutive tool results belong to one user turn
            if formatted and formatted[-1]["role"] == "user" and isinstance(
                formatted[-1]["content"], list
            ):
                formatted[-1]["content"].append(block)
            else:
                formatted.append({"role": "user", "content": [block]})
        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if msg["content"]:
                blocks.append({"type": "text", "text": msg["content"]})
            blocks.extend(
                {
                    "type": "tool_use",
                    "id": tc["id"],
                    "name": tc["name"],
                    "input": tc["arguments"] if isinstance(tc["arguments"], dict) else {},
                }
                for tc in msg["tool_calls"]
            )
            formatted.append({"role": "assistant", "content": blocks})
        elif role == "assistant":
            formatted.append({"role": "assistant", "content": msg["content"]})
        elif role == "user":
            formatted.append({"role": "user", "content": msg["content"]})
        else:
            formatted.append({"role": "user", "content": f"{role}: {msg['content']}"})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, formatted


def _upstream_error(exc: Exception) -> UpstreamModelError:
    return UpstreamModelError(
        f"{exc.__class__.__name__}: {exc}",
        status_code=getattr(exc, "status_code", None),
    )


@dataclass
class OpenAI:
    """OpenAI model provider."""

    model: str = "gpt-3.5-turbo-1106"
    api_key: str | None = None
    base_url: str | None = None

    def _client(self):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError(
                "openai package required. Install with: pip install openai"
            )

        return AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    def _request_params(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        request_params = {
            "model": self.model,
            "messages": _openai_format_messages(messages),
            "temperature": kwargs.pop("temperature", 0.7),
            "max_tokens": kwargs.pop("max_tokens", 2048),
            **kwargs,
        }

        if tools:
            request_params["tools"] = _openai_format_tools(tools)
        return request_params

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate completion using OpenAI API."""
        client = self._client()
        from openai import APIError

        request_params = self._request_params(messages, tools, kwargs)

        try:
            response = await client.chat.completions.create(**request_params)
        except APIError as e:
            raise _upstream_error(e) from e
        message = response.choices[0].message

        result = {"role": "assistant", "content": message.content or ""}

        if message.tool_calls:
            result["tool_calls"] = [
                {
                    "id": tc.id,
                    "name": tc.function.name,
                    "arguments": _parse_arguments(tc.function.arguments),
                }
                for tc in message.tool_calls
            ]

        return result

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream completion chunks.

        Text arrives as ``{"content": ...}``. The first delta of each tool call
        yields ``{"tool_call_started": index}``; the assembled calls are sent
        last as ``{"tool_calls": [...]}``.
        """
        client = self._client()
        from openai import APIError

        request_params = self._request_params(messages, tools, kwargs)
        request_params["stream"] = True

        pending: dict[int, dict[str, str]] = {}
        try:
            response = await client.chat.completions.create(**request_params)
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield {"content": delta.content}
                for tc in delta.tool_calls or []:
                    if tc.index not in pending:
                        yield {"tool_call_started": tc.index}
                    entry = pending.setdefault(
                        tc.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if tc.id:
                        entry["id"] = tc.id
                    if tc.function and tc.function.name:
                        entry["name"] += tc.function.name
                    if tc.function and tc.function.arguments:
                        entry["arguments"] += tc.function.arguments
        except APIError as e:
            raise _upstream_error(e) from e

        if pending:
            yield {
                "tool_calls": [
                    {
                        "id": entry["id"],
                        "name": entry["name"],
                        "arguments": _parse_arguments(entry["arguments"]),
                    }
                    for _, entry in sorted(pending.items())
                ]
            }


@dataclass
class Moonshot(OpenAI):
    """Moonshot (Kimi) models through their OpenAI-compatible endpoint."""

    model: str = "moonshot-v1-32k"
    base_url: str | None = "https://api.moonshot.cn/v1"


@dataclass
class Anthropic:
    """Anthropic Claude model provider."""

    model: str = "claude-sonnet-4"
    api_key: str | None = None

    def _client(self):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install anthropic"
            )

        return AsyncAnthropic(api_key=self.api_key)

    def _request_params(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        system, conversation = _anthropic_format_messages(messages)

        request_params = {
            "model": self.model,
            "messages": conversation,
            "max_tokens": kwargs.pop("max_tokens", 2048),
            "temperature": kwargs.pop("temperature", 0.7),
            **kwargs,
        }

        if system:
            request_params["system"] = system

        if tools:
            request_params["tools"] = [
                {
                    "name": t["name"],
                    "description": t["description"],
                    "input_schema": t["parameters"],
                }
                for t in tools
            ]
        return request_params

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate completion using Anthropic API."""
        client = self._client()
        from anthropic import APIError

        request_params = self._request_params(messages, tools, kwargs)

        try:
            response = await client.messages.create(**request_params)
        except APIError as e:
            raise _upstream_error(e) from e

        result = {"role": "assistant", "content": ""}
        tool_calls = []

        for block in response.content:
            if block.type == "text":
                result["content"] += block.text
            elif block.type == "tool_use":
                tool_calls.append(
                    {"id": block.id, "name": block.name, "arguments": block.input}
                )

        if tool_calls:
            result["tool_calls"] = tool_calls

        return result

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream text deltas, marking each tool_use block as it opens.

        Chunk shapes match ``OpenAI.stream``.
        """
        client = self._client()
        from anthropic import APIError

        request_params = self._request_params(messages, tools, kwargs)
        request_params["stream"] = True

        pending: dict[int, dict[str, str]] = {}
        try:
            response = await client.messages.create(**request_params)
            async for event in response:
                if event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        pending[event.index] = {
                            "id": block.id,
                            "name": block.name,
                            "arguments": "",
                        }
                        yield {"tool_call_started": event.index}
                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta" and delta.text:
                        yield {"content": delta.text}
                    elif delta.type == "input_json_delta":
                        pending[event.index]["arguments"] += delta.partial_json
        except APIError as e:
            raise _upstream_error(e) from e

        if pending:
            yield {
                "tool_calls": [
                    {
                        "id": entry["id"],
                        "name": entry["name"],
                        "arguments": _parse_arguments(entry["arguments"]),
                    }
                    for _, entry in sorted(pending.items())
                ]
            }


PROVIDERS = {
    "openai": OpenAI,
    "moonshot": Moonshot,
    "anthropic": Anthropic,
}


def get_provider(name: str, model: str | None = None, **kwargs: Any):
    """Instantiate a provider by name, optionally overriding its model."""
    try:
        provider_cls = PROVIDERS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown provider '{name}'. Available: {', '.join(PROVIDERS)}"
        ) from None
    if model:
        kwargs["model"] = model
    return provider_cls(**kwargs)
