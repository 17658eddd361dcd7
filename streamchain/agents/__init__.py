"""Agent loop, model providers and tools."""

from .agent import MAX_ITERATIONS_OUTPUT, AgentExecutor
from .llm import ModelStage, PromptValue, to_provider_messages
from .protocols import ChatModel
from .providers import Anthropic, Moonshot, OpenAI, get_provider
from .state import (
    AgentResult,
    AgentStep,
    Message,
    Observation,
    ToolCall,
    split_conversation,
)
from .toolkit import Calculator, SerpAPISearch
from .tools import (
    FunctionTool,
    Tool,
    as_tool,
    build_tool_map,
    function_to_schema,
    render_text_description_and_args,
    tool,
)

__all__ = [
    # High-level API
    "AgentExecutor",
    "MAX_ITERATIONS_OUTPUT",
    "ModelStage",
    # State types
    "AgentResult",
    "AgentStep",
    "Message",
    "Observation",
    "ToolCall",
    "split_conversation",
    # Tools
    "Calculator",
    "FunctionTool",
    "SerpAPISearch",
    "Tool",
    "as_tool",
    "build_tool_map",
    "function_to_schema",
    "render_text_description_and_args",
    "tool",
    # Providers
    "Anthropic",
    "ChatModel",
    "Moonshot",
    "OpenAI",
    "PromptValue",
    "get_provider",
    "to_provider_messages",
]
