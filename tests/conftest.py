"""Shared test fixtures."""

import pytest

from streamchain.retrieval import Document


def turn(*chunks, tool_calls=None):
    """One scripted model reply: text chunks plus optional tool calls."""
    return {"chunks": list(chunks), "tool_calls": tool_calls}


def tool_call(name, arguments=None, call_id=None):
    return {"id": call_id or f"call_{name}", "name": name, "arguments": arguments or {}}


class ScriptedModel:
    """ChatModel stub that replays scripted turns in order.

    Calls past the end of the script repeat the last turn. Every call's
    messages are recorded in ``calls``. A streamed turn with tool calls
    opens with a ``tool_call_started`` marker, as OpenAI tool turns do.
    """

    def __init__(self, *turns):
        self.turns = list(turns) or [turn("")]
        self.calls = []
        self.tools = []
        self.kwargs = []

    def _next(self, messages, tools, kwargs):
        self.calls.append(messages)
        self.tools.append(tools)
        self.kwargs.append(kwargs)
        return self.turns[min(len(self.calls), len(self.turns)) - 1]

    async def complete(self, messages, tools=None, **kwargs):
        scripted = self._next(messages, tools, kwargs)
        response = {"role": "assistant", "content": "".join(scripted["chunks"])}
        if scripted["tool_calls"]:
            response["tool_calls"] = scripted["tool_calls"]
        return response

    async def stream(self, messages, tools=None, **kwargs):
        scripted = self._next(messages, tools, kwargs)
        if scripted["tool_calls"]:
            yield {"tool_call_started": 0}
        for chunk in scripted["chunks"]:
            yield {"content": chunk}
        if scripted["tool_calls"]:
            yield {"tool_calls": scripted["tool_calls"]}


class StubStore:
    """DocumentStore returning fixed documents."""

    def __init__(self, documents):
        self.documents = list(documents)
        self.queries = []

    async def retrieve(self, query):
        self.queries.append(query)
        return list(self.documents)


class FailingStore:
    async def retrieve(self, query):
        raise ConnectionError("vector store unreachable")


class RecordingListener:
    """StageListener that records start/end events in order."""

    def __init__(self):
        self.events = []

    def on_stage_start(self, name):
        self.events.append(("start", name))

    def on_stage_end(self, name):
        self.events.append(("end", name))


@pytest.fixture
def two_documents():
    return [
        Document(
            page_content="Two plus two equals four, a fact every clever puppy knows by heart.",
            metadata={"source": "math.txt", "loc": {"lines": {"from": 1, "to": 2}}},
        ),
        Document(
            page_content="Dogs can count treats up to four before they start begging.",
            metadata={"source": "dogs.txt"},
        ),
    ]


@pytest.fixture
def listener():
    return RecordingListener()
