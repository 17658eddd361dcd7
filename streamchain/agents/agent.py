"""Bounded tool-calling agent loop."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

from ..core.errors import ToolExecutionError
from ..core.events import (
    AgentEvent,
    AgentFinished,
    FinalAnswerToken,
    IntermediateToken,
    StepStarted,
    ToolCallRequested,
    ToolObserved,
    final_answer_tokens,
)
from ..core.stage import Stage
from .protocols import ChatModel
from .state import AgentResult, AgentStep, Message, Observation, ToolCall
from .tools import Tool, build_tool_map

logger = logging.getLogger(__name__)

MAX_ITERATIONS_OUTPUT = "Agent stopped due to max iterations."


def _parse_tool_calls(payload: list[dict[str, Any]] | None) -> list[ToolCall]:
    """Parse provider tool calls into ToolCall objects."""
    return [
        ToolCall(id=tc["id"], name=tc["name"], arguments=tc.get("arguments") or {})
        for tc in payload or []
    ]


@dataclass
class _Turn:
    """Text and tool calls collected during one THINKING turn."""

    chunks: list[str] = field(default_factory=list)
    calls: list[ToolCall] = field(default_factory=list)
    tool_started: bool = False

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class AgentExecutor(Stage[Any, str]):
    """Runs THINKING -> (ACTING -> OBSERVING)* -> FINISHED against a chat model.

    Each THINKING turn sends the system prompt, the chat history, the current
    input and the scratchpad of earlier tool calls and results, together
    with the tool schemas. A reply with tool calls is executed (calls of one
    turn run concurrently) and fed back; a reply without tool calls is the
    final answer. Failed or unknown tools become ``tool_error`` observations
    and the loop continues. After ``max_iterations`` turns that all asked for
    tools, the run stops with ``stop_reason="max_iterations"``.

    Args:
        model: ChatModel implementation
        tools: Tools or plain functions the model may call
        system_prompt: Optional system message prepended to every turn
        max_iterations: Upper bound on THINKING turns (default: 10)
        **llm_kwargs: Extra provider arguments (temperature, max_tokens, ...)

    Example:
        agent = AgentExecutor(OpenAI(), tools=[Calculator()], max_iterations=5)

        result = await agent.ainvoke({"input": "What is 15 * 234?"})
        print(result.output, result.intermediate_steps)

        async for token in agent.astream({"input": "What is 15 * 234?"}):
            print(token, end="")
    """

    input_type = Any
    output_type = str

    def __init__(
        self,
        model: ChatModel,
        tools: list[Tool | Callable] | None = None,
        system_prompt: str | None = None,
        max_iterations: int = 10,
        name: str | None = None,
        **llm_kwargs: Any,
    ):
        super().__init__(name or "AgentExecutor")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.provider = model
        self.tool_map = build_tool_map(tools)
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.llm_kwargs = llm_kwargs

    @property
    def tool_schemas(self) -> list[dict[str, Any]] | None:
        return [t.schema for t in self.tool_map.values()] or None

    def _init_messages(self, inputs: str | dict[str, Any]) -> list[Message]:
        """Build the THINKING prompt from ``input`` and ``chat_history``."""
        if isinstance(inputs, str):
            inputs = {"input": inputs}
        if "input" not in inputs:
            raise ValueError("Agent input requires an 'input' field")

        messages = []
        if self.system_prompt:
            messages.append(Message(role="system", content=self.system_prompt))
        messages.extend(inputs.get("chat_history") or [])
        messages.append(Message(role="user", content=inputs["input"]))
        return messages

    async def _think(
        self, messages: list[Message], step: int, turn: _Turn, streaming: bool
    ) -> AsyncIterator[AgentEvent]:
        """Run one model turn, recording its text and tool calls in ``turn``.

        In streaming mode text is yielded as it arrives: as FinalAnswerTokens
        until the provider signals a tool call, as IntermediateTokens after.
        Buffered mode yields nothing; the caller tags the collected text.
        """
        payload = [msg.to_dict() for msg in messages]
        kwargs = dict(self.llm_kwargs)

        if not streaming:
            response = await self.provider.complete(payload, tools=self.tool_schemas, **kwargs)
            if response.get("content"):
                turn.chunks.append(response["content"])
            turn.calls.extend(_parse_tool_calls(response.get("tool_calls")))
            return

        chunk_stream = self.provider.stream(payload, tools=self.tool_schemas, **kwargs)
        async with aclosing(chunk_stream) as response:
            async for chunk in response:
                if "tool_call_started" in chunk:
                    turn.tool_started = True
                text = chunk.get("content")
                if text:
                    turn.chunks.append(text)
                    token = IntermediateToken if turn.tool_started else FinalAnswerToken
                    yield token(step, text)
                turn.calls.extend(_parse_tool_calls(chunk.get("tool_calls")))
                # Providers without a start marker still stop final tagging here
                turn.tool_started = turn.tool_started or bool(turn.calls)

    async def _invoke_tool(self, call: ToolCall) -> AgentStep:
        tool = self.tool_map.get(call.name)
        if tool is None:
            content = (
                f"Error: Tool '{call.name}' not found. "
                f"Available tools: {list(self.tool_map)}"
            )
            logger.warning("[%s] %s", self.name, content)
            return AgentStep(call, Observation(content, kind="tool_error"))

        if not isinstance(call.arguments, dict):
            error = ToolExecutionError(call.name, f"invalid arguments: {call.arguments!r}")
            logger.warning("[%s] %s", self.name, error)
            return AgentStep(call, Observation(f"Error: {error}", kind="tool_error"))

        try:
            result = await tool.ainvoke(call.arguments)
        except Exception as e:
            error = e if isinstance(e, ToolExecutionError) else ToolExecutionError(
                call.name, f"{e.__class__.__name__}: {e}"
            )
            logger.warning("[%s] %s", self.name, error)
            return AgentStep(call, Observation(f"Error: {error}", kind="tool_error"))
        return AgentStep(call, Observation(result))

    async def _execute_tools(self, calls: list[ToolCall]) -> list[AgentStep]:
        return list(await asyncio.gather(*(self._invoke_tool(call) for call in calls)))

    async def astream_events(
        self, inputs: str | dict[str, Any], *, streaming: bool = True
    ) -> AsyncIterator[AgentEvent]:
        """Run the loop and yield its events as they happen.

        Streaming mode forwards each text chunk the moment the provider sends
        it. Buffered mode tags a turn's text once the turn ends: intermediate
        when it requested tools, final otherwise.
        """
        messages = self._init_messages(inputs)

        for iteration in range(1, self.max_iterations + 1):
            logger.debug("[%s] Iteration %d/%d", self.name, iteration, self.max_iterations)
            yield StepStarted(iteration)

            turn = _Turn()
            async with aclosing(self._think(messages, iteration, turn, streaming)) as thinking:
                async for event in thinking:
                    yield event
            if not streaming:
                token = IntermediateToken if turn.calls else FinalAnswerToken
                for text in turn.chunks:
                    yield token(iteration, text)

            if not turn.calls:
                yield AgentFinished(iteration, turn.text, "complete")
                return

            messages.append(
                Message(role="assistant", content=turn.text, tool_calls=tuple(turn.calls))
            )
            for call in turn.calls:
                yield ToolCallRequested(iteration, call)

            for step in await self._execute_tools(turn.calls):
                messages.append(
                    Message(
                        role="tool",
                        content=step.observation.content,
                        tool_call_id=step.action.id,
                    )
                )
                yield ToolObserved(iteration, step)

        logger.warning("[%s] Stopped after %d iterations", self.name, self.max_iterations)
        yield FinalAnswerToken(self.max_iterations, MAX_ITERATIONS_OUTPUT)
        yield AgentFinished(self.max_iterations, MAX_ITERATIONS_OUTPUT, "max_iterations")

    async def ainvoke(self, inputs: str | dict[str, Any]) -> AgentResult:
        """Run to completion; return the answer and every tool step in order."""
        result = AgentResult(output="")
        async for event in self.astream_events(inputs, streaming=False):
            if isinstance(event, ToolObserved):
                result.intermediate_steps.append(event.agent_step)
            elif isinstance(event, AgentFinished):
                result.output = event.output
                result.stop_reason = event.stop_reason
                result.iterations = event.step
        return result

    async def arun(self, inputs: str | dict[str, Any]) -> str:
        return (await self.ainvoke(inputs)).output

    async def astream(self, inputs: str | dict[str, Any]) -> AsyncIterator[str]:
        """Yield only final-answer text."""
        events = self.astream_events(inputs)
        async with aclosing(events) as stream:
            async for token in final_answer_tokens(stream):
                yield token
