"""streamchain - Streaming LLM pipelines: retrieval chains and tool-calling agents."""

from .chains import (
    ConversationalRetrievalChain,
    RetrievalRun,
    build_chat_chain,
    build_structured_output_chain,
    build_tool_prompt_chain,
)
from .config import Prompts, Settings
from .core.errors import (
    CompositionError,
    StageExecutionError,
    StreamchainError,
)
from .core.parallel import Parallel
from .core.sequence import Sequence
from .core.side_channel import SideChannel, create_side_channel
from .core.stage import FunctionStage, Stage, stage
from .parsers import BytesOutputParser, StrOutputParser, StructuredOutputParser
from .prompts import ChatPromptTemplate, MessagesPlaceholder, PromptTemplate
from .retrieval import Document, InMemoryDocumentStore, Retriever

__version__ = "0.1.0"

__all__ = [
    # Core
    "FunctionStage",
    "Parallel",
    "Sequence",
    "SideChannel",
    "Stage",
    "create_side_channel",
    "stage",
    "CompositionError",
    "StageExecutionError",
    "StreamchainError",
    # Prompts and parsers
    "BytesOutputParser",
    "ChatPromptTemplate",
    "MessagesPlaceholder",
    "PromptTemplate",
    "StrOutputParser",
    "StructuredOutputParser",
    # Retrieval
    "Document",
    "InMemoryDocumentStore",
    "Retriever",
    # Chains
    "ConversationalRetrievalChain",
    "RetrievalRun",
    "build_chat_chain",
    "build_structured_output_chain",
    "build_tool_prompt_chain",
    # Config
    "Prompts",
    "Settings",
]
