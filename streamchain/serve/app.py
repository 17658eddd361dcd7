"""
Streamchain HTTP Server
=======================

FastAPI routes that turn a chat request into one pipeline invocation and
stream the result back as plain UTF-8 bytes.

Routes:
    POST /api/chat                    persona chat stream
    POST /api/chat/retrieval          retrieval-augmented answer stream
                                      (headers: x-sources, x-message-index)
    POST /api/chat/agents             agent answer stream, or JSON with
                                      intermediate steps
    POST /api/chat/tools              persona chat stream with the tools listed
                                      in the prompt (no tool loop)
    POST /api/chat/structured_output  JSON object parsed from the model reply
    GET  /health

Example:
    from streamchain.config import Settings
    from streamchain.retrieval import Document, InMemoryDocumentStore
    from streamchain.serve import create_app

    store = InMemoryDocumentStore([Document("Dogs love walks.")])
    app = create_app(Settings.from_env(), store=store)

    # Run with: uvicorn my_module:app
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional, Union

try:
    from fastapi import FastAPI, Request
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse, StreamingResponse
    from pydantic import BaseModel, Field
except ImportError:
    raise ImportError(
        "FastAPI and pydantic are required for the server. "
        "Install them with: pip install fastapi pydantic uvicorn"
    )

from ..agents import (
    AgentExecutor,
    Calculator,
    ChatModel,
    Message,
    SerpAPISearch,
    Tool,
    get_provider,
    split_conversation,
)
from ..chains import (
    ConversationalRetrievalChain,
    build_chat_chain,
    build_structured_output_chain,
    build_tool_prompt_chain,
)
from ..config import Settings
from ..core.errors import StageExecutionError, StreamchainError
from ..core.sequence import Sequence
from ..parsers import BytesOutputParser
from ..retrieval import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"

AGENT_HISTORY_ROLES = ("user", "assistant")


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------


class MessageIn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[MessageIn] = Field(min_length=1)
    show_intermediate_steps: bool = False


def to_conversation(request: ChatRequest) -> tuple[list[Message], Message]:
    """Split a request into (history, current turn)."""
    messages = [Message(role=m.role, content=m.content) for m in request.messages]
    return split_conversation(messages)


# -----------------------------------------------------------------------------
# Streaming and error helpers
# -----------------------------------------------------------------------------


async def prime_stream(fragments: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Pull the first fragment before the response starts.

    Failures up to and including the first fragment raise here, so they are
    reported as JSON errors. A failure after that is logged and propagated,
    which aborts the chunked response.
    """
    iterator = fragments.__aiter__()
    try:
        first = await anext(iterator)
    except StopAsyncIteration:
        first = None

    async def body() -> AsyncIterator[bytes]:
        try:
            if first is None:
                return
            yield first
            async for fragment in iterator:
                yield fragment
        except Exception:
            logger.exception("Stream failed after the response started")
            raise
        finally:
            await iterator.aclose()

    return body()


def error_response(exc: Exception) -> JSONResponse:
    """Map an exception to ``{"error": ...}`` with its declared status."""
    cause = exc.root_cause if isinstance(exc, StageExecutionError) else exc
    status_code = getattr(exc, "status_code", None) or getattr(cause, "status_code", None)
    if status_code is None or status_code >= 500:
        logger.error("Request failed: %s", exc, exc_info=exc)
    return JSONResponse(status_code=status_code or 500, content={"error": str(cause)})


def default_tools(settings: Settings) -> list[Tool]:
    return [Calculator(), SerpAPISearch(api_key=settings.serpapi_api_key)]


# -----------------------------------------------------------------------------
# FastAPI Application Factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    chat_model: Optional[ChatModel] = None,
    retrieval_model: Optional[ChatModel] = None,
    agent_model: Optional[ChatModel] = None,
    store: Optional[DocumentStore] = None,
    tools: Optional[List[Union[Tool, Callable]]] = None,
) -> FastAPI:
    """
    Create a FastAPI application serving the chat pipelines.

    Models default to the configured provider; the document store defaults
    to an empty in-memory store; tools default to calculator and search.

    Args:
        settings: Application settings (defaults to ``Settings()``)
        chat_model: Model for persona chat and structured output
        retrieval_model: Model for the retrieval chain
        agent_model: Model for the agent loop
        store: Document store queried by the retrieval chain
        tools: Tools available to the agent

    Returns:
        FastAPI application ready to run
    """
    settings = settings or Settings()
    chat_model = chat_model or get_provider(settings.provider, settings.chat_model)
    retrieval_model = retrieval_model or get_provider(settings.provider, settings.retrieval_model)
    agent_model = agent_model or get_provider(settings.provider, settings.agent_model)
    store = store if store is not None else InMemoryDocumentStore(k=settings.retrieval_k)
    tools = list(tools) if tools is not None else default_tools(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Streamchain server ready (provider=%s, tools=%s)",
            settings.provider,
            [getattr(t, "name", getattr(t, "__name__", "tool")) for t in tools],
        )
        yield

    app = FastAPI(
        title="Streamchain API",
        description="Streaming chat, retrieval and agent pipelines",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(StreamchainError)
    async def streamchain_error(request: Request, exc: StreamchainError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        return error_response(exc)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post("/api/chat")
    async def chat(request: ChatRequest):
        """Persona chat over the running conversation."""
        history, current = to_conversation(request)
        chain = build_chat_chain(
            chat_model, settings.prompts, temperature=settings.chat_temperature
        )
        body = await prime_stream(chain.astream({"history": history, "input": current.content}))
        return StreamingResponse(body, media_type=STREAM_MEDIA_TYPE)

    @app.post("/api/chat/retrieval")
    async def chat_retrieval(request: ChatRequest):
        """Answer from retrieved documents; previews go in ``x-sources``."""
        history, current = to_conversation(request)
        chain = ConversationalRetrievalChain(
            retrieval_model,
            store,
            settings.prompts,
            preview_length=settings.source_preview_length,
            strict=settings.debug,
            temperature=settings.retrieval_temperature,
        )
        run = chain.stream(current.content, history)
        body = await prime_stream(run)
        headers = {
            "x-message-index": str(len(history) + 1),
            "x-sources": await run.sources_header(),
        }
        return StreamingResponse(body, media_type=STREAM_MEDIA_TYPE, headers=headers)

    @app.post("/api/chat/agents")
    async def chat_agents(request: ChatRequest):
        """Agent answer stream, or ``{output, intermediate_steps}``."""
        history, current = to_conversation(request)
        # Tool turns from the client carry no ids the provider can match
        history = [m for m in history if m.role in AGENT_HISTORY_ROLES]
        agent = AgentExecutor(
            agent_model,
            tools=tools,
            system_prompt=settings.prompts.agent_system,
            max_iterations=settings.max_iterations,
            temperature=settings.agent_temperature,
        )
        inputs = {"input": current.content, "chat_history": history}

        if request.show_intermediate_steps:
            result = await agent.ainvoke(inputs)
            return JSONResponse(result.to_dict())

        pipeline = Sequence(agent, BytesOutputParser(), name="agent_stream")
        body = await prime_stream(pipeline.astream(inputs))
        return StreamingResponse(body, media_type=STREAM_MEDIA_TYPE)

    @app.post("/api/chat/tools")
    async def chat_tools(request: ChatRequest):
        """Persona chat whose system prompt lists the available tools."""
        history, current = to_conversation(request)
        chain = build_tool_prompt_chain(
            chat_model, tools, settings.prompts, temperature=settings.chat_temperature
        )
        body = await prime_stream(chain.astream({"history": history, "input": current.content}))
        return StreamingResponse(body, media_type=STREAM_MEDIA_TYPE)

    @app.post("/api/chat/structured_output")
    async def chat_structured_output(request: ChatRequest):
        """Reply parsed into a structured object."""
        history, current = to_conversation(request)
        chain = build_structured_output_chain(
            chat_model, prompts=settings.prompts, temperature=settings.agent_temperature
        )
        result = await chain.arun({"history": history, "input": current.content})
        return JSONResponse(result.model_dump())

    return app
