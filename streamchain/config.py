"""Runtime configuration: prompts, model settings and server options."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

CONDENSE_QUESTION_TEMPLATE = """Given the following conversation and a follow up question, rephrase the follow up question to be a standalone question, in its original language.

<chat_history>
  {chat_history}
</chat_history>

Follow Up Input: {question}
Standalone question:"""

ANSWER_TEMPLATE = """You are an energetic talking puppy named Dana, and must answer all questions like a happy, talking dog would.
Use lots of puns!

Answer the question based only on the following context and chat history:
<context>
  {context}
</context>

<chat_history>
  {chat_history}
</chat_history>

Question: {question}
"""

AGENT_SYSTEM_TEMPLATE = (
    "You are a talking parrot named Polly. All final responses must be how a "
    "talking parrot would respond. Squawk often!"
)

PERSONA_TEMPLATE = """You are Ikaros, a strategic android angel with great strength and many combat skills, who is also good at housework and knows a little about everything. You love watermelons.
Current conversation:
{history}
"""


@dataclass(frozen=True)
class Prompts:
    """Prompt text passed into pipeline construction."""

    condense_question: str = CONDENSE_QUESTION_TEMPLATE
    answer: str = ANSWER_TEMPLATE
    agent_system: str = AGENT_SYSTEM_TEMPLATE
    persona: str = PERSONA_TEMPLATE


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', using default %d.", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', using default %s.", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Args:
        provider: ``"openai"``, ``"moonshot"`` or ``"anthropic"``
        chat_model: Model used by the persona and structured-output chains
        retrieval_model: Model used by the retrieval chain
        agent_model: Model used by the agent loop
        chat_temperature: Temperature for persona chat
        retrieval_temperature: Temperature for the retrieval chain
        agent_temperature: Temperature for the agent loop
        max_iterations: Upper bound on agent THINKING turns
        source_preview_length: Characters kept per document in ``x-sources``
        retrieval_k: Documents returned by the in-memory store
        serpapi_api_key: Key for the web search tool
        debug: Enables strict side channels
        log_level: Root logging level for the server
        host: Bind address for the server
        port: Bind port for the server
        prompts: Prompt text for every chain
    """

    provider: str = "openai"
    chat_model: str = "gpt-3.5-turbo-1106"
    retrieval_model: str = "gpt-3.5-turbo-1106"
    agent_model: str = "gpt-3.5-turbo-1106"
    chat_temperature: float = 0.8
    retrieval_temperature: float = 0.2
    agent_temperature: float = 0.0
    max_iterations: int = 10
    source_preview_length: int = 50
    retrieval_k: int = 4
    serpapi_api_key: str | None = None
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    prompts: Prompts = field(default_factory=Prompts)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``STREAMCHAIN_*`` and server environment variables."""
        defaults = cls()
        return cls(
            provider=os.getenv("STREAMCHAIN_PROVIDER", defaults.provider),
            chat_model=os.getenv("STREAMCHAIN_CHAT_MODEL", defaults.chat_model),
            retrieval_model=os.getenv("STREAMCHAIN_RETRIEVAL_MODEL", defaults.retrieval_model),
            agent_model=os.getenv("STREAMCHAIN_AGENT_MODEL", defaults.agent_model),
            chat_temperature=_env_float("STREAMCHAIN_CHAT_TEMPERATURE", defaults.chat_temperature),
            retrieval_temperature=_env_float(
                "STREAMCHAIN_RETRIEVAL_TEMPERATURE", defaults.retrieval_temperature
            ),
            agent_temperature=_env_float("STREAMCHAIN_AGENT_TEMPERATURE", defaults.agent_temperature),
            max_iterations=_env_int("STREAMCHAIN_MAX_ITERATIONS", defaults.max_iterations),
            source_preview_length=_env_int(
                "STREAMCHAIN_SOURCE_PREVIEW_LENGTH", defaults.source_preview_length
            ),
            retrieval_k=_env_int("STREAMCHAIN_RETRIEVAL_K", defaults.retrieval_k),
            serpapi_api_key=os.getenv("SERPAPI_API_KEY"),
            debug=_env_bool("STREAMCHAIN_DEBUG", defaults.debug),
            log_level=os.getenv("STREAMCHAIN_LOG_LEVEL", defaults.log_level).upper(),
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
