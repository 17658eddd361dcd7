"""Core pipeline runtime: stages, composition, side channels and events."""

from .errors import (
    CompositionError,
    MalformedRequestError,
    OutputParserError,
    RetrievalError,
    SideChannelError,
    StageExecutionError,
    StreamchainError,
    ToolExecutionError,
    UpstreamModelError,
)
from .events import (
    AgentEvent,
    AgentFinished,
    FinalAnswerToken,
    IntermediateToken,
    StepStarted,
    ToolCallRequested,
    ToolObserved,
    final_answer_tokens,
)
from .parallel import Parallel
from .sequence import Sequence, StageListener
from .side_channel import SideChannel, create_side_channel
from .stage import FunctionStage, Stage, coerce_stage, concat_fragments, stage

__all__ = [
    # Stages
    "FunctionStage",
    "Parallel",
    "Sequence",
    "Stage",
    "StageListener",
    "coerce_stage",
    "concat_fragments",
    "stage",
    # Side channel
    "SideChannel",
    "create_side_channel",
    # Events
    "AgentEvent",
    "AgentFinished",
    "FinalAnswerToken",
    "IntermediateToken",
    "StepStarted",
    "ToolCallRequested",
    "ToolObserved",
    "final_answer_tokens",
    # Errors
    "CompositionError",
    "MalformedRequestError",
    "OutputParserError",
    "RetrievalError",
    "SideChannelError",
    "StageExecutionError",
    "StreamchainError",
    "ToolExecutionError",
    "UpstreamModelError",
]
