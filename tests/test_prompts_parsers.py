"""Tests for prompt templates, history formatting and output parsers."""

from typing import Literal

import pytest
from pydantic import BaseModel

from streamchain import (
    BytesOutputParser,
    ChatPromptTemplate,
    CompositionError,
    MessagesPlaceholder,
    PromptTemplate,
    StrOutputParser,
    StructuredOutputParser,
)
from streamchain.agents import Message
from streamchain.core.errors import OutputParserError
from streamchain.parsers import extract_json
from streamchain.prompts import format_chat_history, format_message, template_variables


class Reply(BaseModel):
    tone: Literal["positive", "negative", "neutral"]
    chat_response: str


def test_template_variables_in_order():
    assert template_variables("{b} and {a} then {b}") == ["b", "a"]
    assert template_variables("no fields") == []


@pytest.mark.asyncio
async def test_prompt_template_renders():
    prompt = PromptTemplate("Question: {question}\nContext: {context}")
    assert prompt.input_variables == ["question", "context"]
    assert await prompt.arun({"question": "Why?", "context": "Because."}) == (
        "Question: Why?\nContext: Because."
    )


def test_prompt_template_partial():
    prompt = PromptTemplate("{persona} says {text}").partial(persona="Polly")
    assert prompt.input_variables == ["text"]
    assert prompt.format(text="squawk") == "Polly says squawk"


def test_missing_prompt_variable_raises():
    with pytest.raises(CompositionError, match="question"):
        PromptTemplate("Question: {question}").format(context="x")


def test_format_chat_history():
    history = [
        Message(role="user", content="Hi"),
        Message(role="assistant", content="Woof"),
        Message(role="critic", content="Too many puns"),
    ]
    assert format_chat_history(history) == (
        "Human: Hi\nAssistant: Woof\ncritic: Too many puns"
    )
    assert format_chat_history([]) == ""
    assert format_message(history[1]) == "assistant: Woof"


def test_chat_prompt_template_with_placeholder():
    prompt = ChatPromptTemplate(
        [
            ("system", "You are {persona}."),
            MessagesPlaceholder("chat_history"),
            ("user", "{input}"),
        ]
    ).partial(persona="Polly")

    history = [Message("user", "Hi"), Message("assistant", "Squawk")]
    messages = prompt.format_messages(chat_history=history, input="Again?")

    assert messages == [
        Message("system", "You are Polly."),
        Message("user", "Hi"),
        Message("assistant", "Squawk"),
        Message("user", "Again?"),
    ]


def test_chat_prompt_placeholder_required_unless_optional():
    required = ChatPromptTemplate([MessagesPlaceholder("chat_history"), ("user", "{input}")])
    with pytest.raises(CompositionError):
        required.format_messages(input="x")

    optional = ChatPromptTemplate(
        [MessagesPlaceholder("chat_history", optional=True), ("user", "{input}")]
    )
    assert optional.format_messages(input="x") == [Message("user", "x")]


@pytest.mark.asyncio
async def test_str_and_bytes_parsers():
    assert await StrOutputParser().arun("hi") == "hi"
    assert await BytesOutputParser().arun("héllo") == "héllo".encode("utf-8")

    async def fragments():
        for part in ["hé", "llo"]:
            yield part

    encoded = [chunk async for chunk in BytesOutputParser().atransform(fragments())]
    assert encoded == ["hé".encode("utf-8"), b"llo"]


@pytest.mark.parametrize(
    "text",
    [
        '```json\n{"tone": "neutral", "chat_response": "ok"}\n```',
        '<json>{"tone": "neutral", "chat_response": "ok"}</json>',
        'Sure! {"tone": "neutral", "chat_response": "ok"} Hope that helps.',
    ],
)
def test_extract_json_formats(text):
    assert extract_json(text) == {"tone": "neutral", "chat_response": "ok"}


def test_extract_json_without_object():
    with pytest.raises(OutputParserError) as exc_info:
        extract_json("no json here")
    assert exc_info.value.llm_output == "no json here"


@pytest.mark.asyncio
async def test_structured_output_parser():
    parser = StructuredOutputParser(Reply)

    instructions = parser.get_format_instructions()
    assert '"chat_response"' in instructions
    assert "```json" in instructions

    reply = await parser.arun('```json\n{"tone": "positive", "chat_response": "Yay"}\n```')
    assert reply == Reply(tone="positive", chat_response="Yay")

    with pytest.raises(OutputParserError):
        await parser.arun('{"tone": "ecstatic", "chat_response": "Yay"}')
