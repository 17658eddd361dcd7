"""Core conversation and agent state types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..core.errors import MalformedRequestError

KNOWN_ROLES = ("user", "assistant", "system", "tool")


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation request.

    Args:
        id: Unique identifier for this tool call
        name: Name of the tool to invoke
        arguments: Dictionary of arguments to pass to the tool, or the raw
            text when the model sent arguments that are not valid JSON
    """

    id: str
    name: str
    arguments: dict[str, Any] | str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "tool": self.name, "tool_input": self.arguments}


@dataclass(frozen=True)
class Message:
    """A single chat message.

    Args:
        role: The role of the message sender. One of user, assistant, tool or
            system, or any other tag a client uses.
        content: The message text
        tool_calls: Optional tool calls requested by an assistant message
        tool_call_id: Optional ID linking this message to a tool call (for tool role)
    """

    role: str
    content: str
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the provider message dict."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


@dataclass(frozen=True)
class Observation:
    """Result of one tool invocation.

    Args:
        content: Tool output, or the error description for a failed call
        kind: ``"result"`` on success, ``"tool_error"`` when the call failed
    """

    content: str
    kind: Literal["result", "tool_error"] = "result"

    @property
    def is_error(self) -> bool:
        return self.kind == "tool_error"


@dataclass(frozen=True)
class AgentStep:
    """One action/observation pair of the agent loop."""

    action: ToolCall
    observation: Observation

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "observation": self.observation.content,
            "kind": self.observation.kind,
        }


@dataclass
class AgentResult:
    """Outcome of a buffered agent run.

    Args:
        output: Final answer text
        intermediate_steps: Ordered tool actions and observations
        stop_reason: ``"complete"`` or ``"max_iterations"``
        iterations: Number of THINKING turns taken
    """

    output: str
    intermediate_steps: list[AgentStep] = field(default_factory=list)
    stop_reason: str = "complete"
    iterations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "intermediate_steps": [step.to_dict() for step in self.intermediate_steps],
        }


def split_conversation(messages: list[Message]) -> tuple[list[Message], Message]:
    """Split a conversation into (history, current turn)."""
    if not messages:
        raise MalformedRequestError("A conversation needs at least one message")
    return list(messages[:-1]), messages[-1]
