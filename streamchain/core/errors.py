"""Core error types for streamchain."""

from __future__ import annotations


class StreamchainError(Exception):
    """Base exception for all streamchain errors."""

    status_code: int | None = None


class CompositionError(StreamchainError, TypeError):
    """Raised when a stage's output cannot feed the next stage's input."""

    def __init__(self, upstream: str, downstream: str, reason: str):
        self.upstream = upstream
        self.downstream = downstream
        super().__init__(
            f"Cannot compose '{upstream}' into '{downstream}'. {reason}"
        )


class StageExecutionError(StreamchainError):
    """Raised when a stage in a pipeline fails during execution.

    Attributes:
        stage_name: Name of the stage where the error occurred.
        executed: Names of stages that completed successfully before the failure.
        cause: The original exception raised by the failing stage.
    """

    def __init__(self, stage_name: str, executed: list[str], cause: Exception):
        self.stage_name = stage_name
        self.executed: tuple[str, ...] = tuple(executed)
        self.cause = cause
        executed_display = ", ".join(self.executed) if self.executed else "none"
        super().__init__(
            f"Stage '{stage_name}' failed after executing: {executed_display}.\n"
            f"Cause: {cause.__class__.__name__}: {cause}"
        )

    @property
    def status_code(self) -> int | None:  # type: ignore[override]
        return getattr(self.cause, "status_code", None)

    @property
    def root_cause(self) -> Exception:
        """Innermost non-wrapper exception."""
        cause: Exception = self.cause
        while isinstance(cause, StageExecutionError):
            cause = cause.cause
        return cause


class UpstreamModelError(StreamchainError):
    """Raised when the model provider rejects or fails a call."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ToolExecutionError(StreamchainError):
    """Raised by a tool when its invocation fails.

    The agent loop records it as an observation instead of aborting.
    """

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class RetrievalError(StreamchainError):
    """Raised when the document store is unreachable or errors."""

    status_code = 502


class MalformedRequestError(StreamchainError):
    """Raised when an inbound request cannot be mapped to an invocation."""

    status_code = 400


class SideChannelError(StreamchainError):
    """Raised in strict mode when a side channel is resolved twice."""


class OutputParserError(StreamchainError):
    """Raised when model output cannot be parsed into the expected shape."""

    def __init__(self, message: str, llm_output: str = ""):
        self.llm_output = llm_output
        super().__init__(message)
