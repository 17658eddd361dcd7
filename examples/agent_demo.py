"""
Example: Tool-Calling Agent
===========================

Shows the structured events of one agent run, then the same run in
buffered mode with its intermediate steps.
"""

import asyncio

from streamchain.agents import AgentExecutor, Calculator
from streamchain.core import FinalAnswerToken, IntermediateToken, ToolCallRequested, ToolObserved


class MockToolModel:
    """Asks for the calculator once, then answers with its result."""

    async def complete(self, messages, tools=None, **kwargs):
        chunks = [chunk async for chunk in self.stream(messages, tools, **kwargs)]
        content = "".join(c.get("content", "") for c in chunks)
        tool_calls = [tc for c in chunks for tc in c.get("tool_calls", [])]
        return {"role": "assistant", "content": content, "tool_calls": tool_calls}

    async def stream(self, messages, tools=None, **kwargs):
        if messages[-1]["role"] != "tool":
            yield {"tool_call_started": 0}
            yield {"content": "Let me work that out."}
            yield {
                "tool_calls": [
                    {"id": "call_1", "name": "calculator", "arguments": {"input": "15 * 234"}}
                ]
            }
            return
        for word in f"Squawk! The answer is {messages[-1]['content']}!".split(" "):
            await asyncio.sleep(0.05)
            yield {"content": word + " "}


async def main():
    agent = AgentExecutor(
        MockToolModel(),
        tools=[Calculator()],
        system_prompt="You are a talking parrot named Polly.",
        max_iterations=5,
    )

    print("=" * 60)
    print("Event stream:")
    print("-" * 60)
    async for event in agent.astream_events("What is 15 * 234?"):
        if isinstance(event, IntermediateToken):
            print(f"[thinking] {event.text}")
        elif isinstance(event, ToolCallRequested):
            print(f"[tool] {event.call.name}({event.call.arguments})")
        elif isinstance(event, ToolObserved):
            print(f"[observation] {event.agent_step.observation.content}")
        elif isinstance(event, FinalAnswerToken):
            print(event.text, end="", flush=True)
    print()

    print("-" * 60)
    result = await agent.ainvoke("What is 15 * 234?")
    print(f"Output: {result.output}")
    print(f"Stop reason: {result.stop_reason} after {result.iterations} iterations")
    for step in result.intermediate_steps:
        print(f"Step: {step.to_dict()}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
