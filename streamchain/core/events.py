"""Structured events emitted while an agent run executes.

Each variant is its own type, so consumers select events with
``isinstance`` checks instead of matching on log paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterable, AsyncIterator, Union

if TYPE_CHECKING:
    from ..agents.state import AgentStep, ToolCall


@dataclass(frozen=True)
class StepStarted:
    """A THINKING turn began."""

    step: int


@dataclass(frozen=True)
class IntermediateToken:
    """Text produced by a turn that ended in tool calls."""

    step: int
    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    """The model asked for a tool invocation."""

    step: int
    call: "ToolCall"


@dataclass(frozen=True)
class ToolObserved:
    """A tool invocation finished, successfully or with a tool error."""

    step: int
    agent_step: "AgentStep"


@dataclass(frozen=True)
class FinalAnswerToken:
    """A fragment of the final answer, exactly as the model produced it."""

    step: int
    text: str


@dataclass(frozen=True)
class AgentFinished:
    """The loop ended."""

    step: int
    output: str
    stop_reason: str


AgentEvent = Union[
    StepStarted,
    IntermediateToken,
    ToolCallRequested,
    ToolObserved,
    FinalAnswerToken,
    AgentFinished,
]


async def final_answer_tokens(events: AsyncIterable[Any]) -> AsyncIterator[str]:
    """Forward only non-empty final-answer fragments, in order.

    Every other event is dropped.
    """
    async for event in events:
        if isinstance(event, FinalAnswerToken) and event.text:
            yield event.text
