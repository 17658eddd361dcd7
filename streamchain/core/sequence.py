"""Sequential container for composing stages into pipelines."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Iterator, Protocol

from .errors import CompositionError, StageExecutionError
from .stage import Stage, coerce_stage, types_compatible

logger = logging.getLogger(__name__)


class StageListener(Protocol):
    """Receives notifications as a Sequence starts and finishes each stage."""

    def on_stage_start(self, name: str) -> None: ...

    def on_stage_end(self, name: str) -> None: ...


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def _check_chain(steps: tuple[Stage, ...]) -> None:
    """Verify each stage's output satisfies the next stage's input."""
    for upstream, downstream in zip(steps, steps[1:]):
        if not types_compatible(upstream.output_type, downstream.input_type):
            raise CompositionError(
                upstream.name,
                downstream.name,
                f"Output type {_type_name(upstream.output_type)} does not satisfy "
                f"input type {_type_name(downstream.input_type)}.",
            )


class Sequence(Stage[Any, Any]):
    """Sequential container for composing stages into a pipeline.

    Each stage receives the full output of the previous stage. When
    streaming, every stage up to the generating stage is fully materialized
    first; the generating stage streams, and trailing fragment-wise stages
    (output parsers) transform its fragments as they arrive.

    Example:
        pipeline = Sequence(
            prompt,
            model,
            StrOutputParser(),
        )

        answer = await pipeline.arun({"question": "Why?"})

        async for token in pipeline.astream({"question": "Why?"}):
            print(token, end="")

        # Compose pipelines
        full_pipeline = Sequence(condense_pipeline, answer_pipeline)
    """

    def __init__(
        self,
        *steps: Any,
        name: str | None = None,
        listener: StageListener | None = None,
    ):
        """Initialize with stages, callables, mappings or nested Sequences.

        Args:
            *steps: Stages to chain together. Callables become FunctionStages
                and dicts become Parallel fan-outs.
            name: Optional pipeline name.
            listener: Optional observer notified on stage start/end.

        Raises:
            CompositionError: If adjacent stages have incompatible types.
        """
        super().__init__(name or "Sequence")
        if not steps:
            raise ValueError("Sequence requires at least one stage")

        # Flatten nested Sequence containers
        flattened: list[Stage] = []
        for step in steps:
            step = coerce_stage(step)
            if isinstance(step, Sequence):
                flattened.extend(step.steps)
            else:
                flattened.append(step)
        self.steps: tuple[Stage, ...] = tuple(flattened)
        _check_chain(self.steps)

        self.listener = listener
        self.input_type = self.steps[0].input_type
        self.output_type = self.steps[-1].output_type

    def _notify(self, event: str, name: str) -> None:
        if self.listener is not None:
            getattr(self.listener, event)(name)

    async def _run_step(self, step: Stage, value: Any, executed: list[str]) -> Any:
        self._notify("on_stage_start", step.name)
        logger.debug("[%s] Running stage: %s", self.name, step.name)
        try:
            result = await step.arun(value)
        except StageExecutionError:
            raise
        except Exception as e:
            raise StageExecutionError(step.name, executed, e) from e
        executed.append(step.name)
        self._notify("on_stage_end", step.name)
        return result

    async def _guard(
        self, step: Stage, fragments: AsyncIterator[Any], executed: list[str]
    ) -> AsyncIterator[Any]:
        self._notify("on_stage_start", step.name)
        logger.debug("[%s] Streaming stage: %s", self.name, step.name)
        try:
            async with aclosing(fragments) as stream:
                async for fragment in stream:
                    yield fragment
        except StageExecutionError:
            raise
        except Exception as e:
            raise StageExecutionError(step.name, executed, e) from e
        executed.append(step.name)
        self._notify("on_stage_end", step.name)

    @property
    def generating_index(self) -> int:
        """Index of the last stage that is not fragment-wise."""
        for index in range(len(self.steps) - 1, -1, -1):
            if not self.steps[index].fragment_wise:
                return index
        return 0

    async def arun(self, value: Any) -> Any:
        """Execute all stages in order and return the last stage's output."""
        executed: list[str] = []
        for step in self.steps:
            value = await self._run_step(step, value, executed)
        return value

    async def astream(self, value: Any) -> AsyncIterator[Any]:
        """Materialize the prefix, then stream the generating stage's output."""
        executed: list[str] = []
        split = self.generating_index

        for step in self.steps[:split]:
            value = await self._run_step(step, value, executed)

        generating = self.steps[split]
        stream = self._guard(generating, generating.astream(value), executed)
        for step in self.steps[split + 1 :]:
            stream = self._guard(step, step.atransform(stream), executed)

        async with aclosing(stream) as fragments:
            async for fragment in fragments:
                yield fragment

    def __repr__(self) -> str:
        """Return string representation showing pipeline structure."""
        step_names = self.stage_names
        if len(step_names) <= 3:
            return f"Sequence({', '.join(step_names)})"
        return f"Sequence({step_names[0]}, ..., {step_names[-1]}) [{len(step_names)} steps]"

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, idx: int) -> Stage:
        return self.steps[idx]

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.steps)

    @property
    def stage_names(self) -> list[str]:
        """Get names of all stages in the pipeline."""
        return [step.name for step in self.steps]
