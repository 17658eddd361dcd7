"""Concrete pipelines built from stages.

- ``ConversationalRetrievalChain``: condense -> retrieve -> combine -> answer
  -> encode, with retrieved documents handed out through a side channel.
- ``build_chat_chain``: persona chat over the running conversation.
- ``build_tool_prompt_chain``: persona chat with tools listed in the prompt.
- ``build_structured_output_chain``: persona reply parsed into a pydantic model.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Literal, Optional

from pydantic import BaseModel, Field

from .agents.llm import ModelStage
from .agents.protocols import ChatModel
from .agents.state import Message
from .agents.tools import Tool, render_text_description_and_args
from .config import Prompts
from .core.parallel import Parallel
from .core.sequence import Sequence
from .core.side_channel import SideChannel, create_side_channel
from .parsers import BytesOutputParser, StrOutputParser, StructuredOutputParser
from .prompts import ChatPromptTemplate, PromptTemplate, format_chat_history, format_message
from .retrieval import (
    Document,
    DocumentStore,
    Retriever,
    combine_documents,
    serialize_sources,
    source_previews,
)

logger = logging.getLogger(__name__)


def _history_text(history: list[Message] | str, formatter: Callable[[list[Message]], str]) -> str:
    return history if isinstance(history, str) else formatter(history)


def _format_lines(messages: list[Message]) -> str:
    return "\n".join(format_message(m) for m in messages)


class RetrievalRun:
    """One streaming invocation of the retrieval chain.

    Iterate to receive answer bytes. ``sources`` resolves with the retrieved
    documents; it is closed with an empty list when the stream ends, so
    awaiting it never blocks after the stream is finished.
    """

    def __init__(
        self,
        fragments: AsyncIterator[bytes],
        sources: SideChannel[list[Document]],
        preview_length: int = 50,
    ):
        self._fragments = fragments
        self.sources = sources
        self.preview_length = preview_length

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async with aclosing(self._fragments) as stream:
                async for fragment in stream:
                    yield fragment
        finally:
            self.sources.close([])

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def documents(self) -> list[Document]:
        return await self.sources

    async def source_previews(self) -> list[dict[str, Any]]:
        return source_previews(await self.sources, self.preview_length)

    async def sources_header(self) -> str:
        """Base64 JSON of the document previews, for ``x-sources``."""
        return serialize_sources(await self.sources, self.preview_length)


class ConversationalRetrievalChain:
    """Answers a follow-up question grounded in retrieved documents.

    A fresh pipeline is built for every invocation; the invocation owns the
    side channel that carries the documents.

    Args:
        model: ChatModel used for both condensing and answering
        store: DocumentStore queried with the standalone question
        prompts: Prompt text (``condense_question`` and ``answer``)
        preview_length: Characters kept per document in source previews
        strict: Raise on double resolution of the sources channel
        **llm_kwargs: Extra provider arguments

    Example:
        chain = ConversationalRetrievalChain(OpenAI(), store)
        run = chain.stream("What is 2+2?", chat_history=[])
        async for chunk in run:
            ...
        sources = await run.source_previews()
    """

    def __init__(
        self,
        model: ChatModel,
        store: DocumentStore,
        prompts: Prompts | None = None,
        *,
        preview_length: int = 50,
        strict: bool | None = None,
        **llm_kwargs: Any,
    ):
        self.model = model
        self.store = store
        self.prompts = prompts or Prompts()
        self.preview_length = preview_length
        self.strict = strict
        self.llm_kwargs = llm_kwargs

    def build(
        self,
        on_retrieved: list[Callable[[list[Document]], Any]] | None = None,
        *,
        encode: bool = True,
    ) -> Sequence:
        """Assemble the pipeline. Output is bytes when ``encode`` is set."""
        llm = ModelStage(self.model, **self.llm_kwargs)

        standalone_question = Sequence(
            PromptTemplate(self.prompts.condense_question, name="condense_prompt"),
            llm,
            StrOutputParser(),
            name="standalone_question",
        )
        retrieval = Sequence(
            lambda inputs: inputs["question"],
            Retriever(self.store, on_retrieved=on_retrieved),
            combine_documents,
            name="retrieval",
        )
        return Sequence(
            Parallel(
                {
                    "question": standalone_question,
                    "chat_history": lambda inputs: inputs["chat_history"],
                },
                name="condense",
            ),
            Parallel(
                {
                    "context": retrieval,
                    "chat_history": lambda inputs: inputs["chat_history"],
                    "question": lambda inputs: inputs["question"],
                },
                name="gather_context",
            ),
            PromptTemplate(self.prompts.answer, name="answer_prompt"),
            llm,
            BytesOutputParser() if encode else StrOutputParser(),
            name="conversational_retrieval_qa",
        )

    @staticmethod
    def inputs(question: str, chat_history: list[Message] | str) -> dict[str, str]:
        return {
            "question": question,
            "chat_history": _history_text(chat_history, format_chat_history),
        }

    async def arun(self, question: str, chat_history: list[Message] | str = "") -> str:
        """Buffered answer text."""
        answer, _ = await self.arun_with_sources(question, chat_history)
        return answer

    async def arun_with_sources(
        self, question: str, chat_history: list[Message] | str = ""
    ) -> tuple[str, list[Document]]:
        """Buffered answer text plus the retrieved documents."""
        channel, resolve = create_side_channel("sources", strict=self.strict)
        pipeline = self.build(on_retrieved=[resolve], encode=False)
        answer = await pipeline.arun(self.inputs(question, chat_history))
        return answer, channel.close([])

    def stream(self, question: str, chat_history: list[Message] | str = "") -> RetrievalRun:
        """Start a streaming invocation; nothing runs until iteration begins."""
        channel, resolve = create_side_channel("sources", strict=self.strict)
        pipeline = self.build(on_retrieved=[resolve])
        logger.debug("Streaming %r with %d stages", pipeline.name, len(pipeline))
        fragments = pipeline.astream(self.inputs(question, chat_history))
        return RetrievalRun(fragments, channel, self.preview_length)


def build_chat_chain(
    model: ChatModel, prompts: Prompts | None = None, *, encode: bool = True, **llm_kwargs: Any
) -> Sequence:
    """Persona chat. Input: ``{"history": str | list[Message], "input": str}``."""
    prompts = prompts or Prompts()
    prompt = ChatPromptTemplate(
        [("system", prompts.persona), ("user", "{input}")],
        name="persona_prompt",
    )
    return Sequence(
        _render_history,
        prompt,
        ModelStage(model, **llm_kwargs),
        BytesOutputParser() if encode else StrOutputParser(),
        name="persona_chat",
    )


def build_tool_prompt_chain(
    model: ChatModel,
    tools: list[Tool | Callable],
    prompts: Prompts | None = None,
    *,
    encode: bool = True,
    **llm_kwargs: Any,
) -> Sequence:
    """Persona chat whose system prompt lists the available tools."""
    prompts = prompts or Prompts()
    prompt = ChatPromptTemplate(
        [
            ("system", prompts.persona + "You now have access to tools, tool list: {tools}\n"),
            ("user", "User input: {input}"),
        ],
        name="tool_prompt",
    ).partial(tools=render_text_description_and_args(tools))
    return Sequence(
        _render_history,
        prompt,
        ModelStage(model, **llm_kwargs),
        BytesOutputParser() if encode else StrOutputParser(),
        name="tool_prompt_chat",
    )


class ConversationAnalysis(BaseModel):
    """Structured reply: a short analysis of the user input plus an answer."""

    tone: Literal["positive", "negative", "neutral"] = Field(
        description="The overall tone of the input"
    )
    entity: str = Field(description="The entity mentioned in the input")
    word_count: int = Field(description="The number of words in the input")
    chat_response: str = Field(description="A response to the human's input")
    final_punctuation: Optional[str] = Field(
        default=None, description="The final punctuation mark in the input, if any."
    )


def build_structured_output_chain(
    model: ChatModel,
    schema: type[BaseModel] = ConversationAnalysis,
    prompts: Prompts | None = None,
    **llm_kwargs: Any,
) -> Sequence:
    """Persona reply parsed into ``schema``."""
    prompts = prompts or Prompts()
    parser = StructuredOutputParser(schema)
    prompt = ChatPromptTemplate(
        [
            (
                "system",
                prompts.persona
                + "Answer the user input, wrapping the output in 'json' tags\n"
                "{format_instructions}",
            ),
            ("user", "User input: {input}"),
        ],
        name="structured_prompt",
    ).partial(format_instructions=parser.get_format_instructions())
    return Sequence(
        _render_history,
        prompt,
        ModelStage(model, **llm_kwargs),
        parser,
        name="structured_output",
    )


def _render_history(inputs: dict) -> dict:
    """Turn a message-list ``history`` into ``role: content`` lines."""
    return {**inputs, "history": _history_text(inputs.get("history", ""), _format_lines)}
