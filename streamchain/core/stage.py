"""Stage abstraction: the uniform unit of work in a pipeline.

Stages transform one input into one output. Every stage supports buffered
execution via ``arun()`` and incremental execution via ``astream()``; stages
without native streaming fall back to yielding their full result once.
"""

from __future__ import annotations

import asyncio
import inspect
import types
import typing
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Generic, TypeVar

In = TypeVar("In")
Out = TypeVar("Out")

_UNION_ORIGINS = (typing.Union, types.UnionType)


_EMPTY_VALUES = {str: "", bytes: b"", list: []}


def empty_value(tp: Any) -> Any:
    """The buffered value of an empty stream of ``tp`` fragments."""
    empty = _EMPTY_VALUES.get(typing.get_origin(tp) or tp)
    return type(empty)() if empty is not None else None


def concat_fragments(fragments: list[Any], empty: Any = None) -> Any:
    """Combine stream fragments into the equivalent buffered value.

    ``empty`` is returned when there are no fragments.
    """
    if not fragments:
        return empty
    if len(fragments) == 1:
        return fragments[0]
    first = fragments[0]
    if isinstance(first, str):
        return "".join(fragments)
    if isinstance(first, bytes):
        return b"".join(fragments)
    if isinstance(first, list):
        return [item for fragment in fragments for item in fragment]
    raise TypeError(
        f"Cannot combine {len(fragments)} fragments of type {type(first).__name__}"
    )


def _origin(tp: Any) -> Any:
    return typing.get_origin(tp) or tp


def types_compatible(produced: Any, expected: Any) -> bool:
    """Return True when a value of type ``produced`` satisfies ``expected``.

    ``Any`` matches everything. Unions match member-wise and generic aliases
    compare by origin; forms that cannot be checked statically are accepted.
    """
    if produced is Any or expected is Any:
        return True

    if _origin(expected) in _UNION_ORIGINS:
        return any(types_compatible(produced, arg) for arg in typing.get_args(expected))
    if _origin(produced) in _UNION_ORIGINS:
        return all(types_compatible(arg, expected) for arg in typing.get_args(produced))

    produced_cls, expected_cls = _origin(produced), _origin(expected)
    if isinstance(produced_cls, type) and isinstance(expected_cls, type):
        return issubclass(produced_cls, expected_cls)
    return True


class Stage(ABC, Generic[In, Out]):
    """Base class for composable units of work.

    Subclass and implement ``arun()``. Override ``astream()`` for incremental
    output, and set ``fragment_wise = True`` together with ``atransform()``
    when each fragment of an upstream stream can be processed on its own.

    Example:
        class Upper(Stage[str, str]):
            input_type = str
            output_type = str

            async def arun(self, value: str) -> str:
                return value.upper()

        pipeline = Upper() >> Reverse()
        result = await pipeline.arun("abc")
    """

    input_type: Any = Any
    output_type: Any = Any
    fragment_wise: bool = False

    def __init__(self, name: str | None = None):
        self.name = name if name is not None else self.__class__.__name__

    @abstractmethod
    async def arun(self, value: In) -> Out:
        """Execute and return the full output."""
        ...

    async def astream(self, value: In) -> AsyncIterator[Out]:
        """Stream output fragments. Override for incremental output."""
        yield await self.arun(value)

    async def atransform(self, fragments: AsyncIterator[Any]) -> AsyncIterator[Out]:
        """Consume an upstream stream and stream this stage's output.

        The default gathers every fragment first, then streams the result.
        """
        collected = [fragment async for fragment in fragments]
        value = concat_fragments(collected, empty=empty_value(self.input_type))
        async for chunk in self.astream(value):
            yield chunk

    def run(self, value: In) -> Out:
        """Run synchronously. Not usable from inside a running event loop."""
        return asyncio.run(self.arun(value))

    def __rshift__(self, other: Any) -> "Stage":
        from .sequence import Sequence

        return Sequence(self, other)

    def __rrshift__(self, other: Any) -> "Stage":
        from .sequence import Sequence

        return Sequence(other, self)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


def _callable_types(fn: Callable) -> tuple[Any, Any]:
    """Read declared input/output types from a callable's annotations."""
    try:
        hints = typing.get_type_hints(fn)
    except (NameError, TypeError):
        return Any, Any

    try:
        params = list(inspect.signature(fn).parameters)
    except (TypeError, ValueError):
        params = []

    input_type = hints.get(params[0], Any) if params else Any
    return input_type, hints.get("return", Any)


class FunctionStage(Stage[Any, Any]):
    """Wraps a plain sync or async function as a stage.

    Example:
        @stage
        async def shout(text: str) -> str:
            return text.upper()

        await shout.arun("hi")  # "HI"
    """

    def __init__(self, fn: Callable, name: str | None = None):
        super().__init__(name or getattr(fn, "__name__", "stage"))
        self.fn = fn
        self.input_type, self.output_type = _callable_types(fn)

    async def arun(self, value: Any) -> Any:
        result = self.fn(value)
        if inspect.isawaitable(result):
            result = await result
        return result


def stage(_fn: Callable | None = None, *, name: str | None = None):
    """Decorator that wraps a function in a FunctionStage.

    Example:
        @stage
        def strip(text: str) -> str:
            return text.strip()

        @stage(name="lookup")
        async def fetch(key: str) -> dict:
            ...
    """

    if _fn is None:

        def wrapper(fn: Callable) -> FunctionStage:
            return FunctionStage(fn, name=name)

        return wrapper

    return FunctionStage(_fn, name=name)


def coerce_stage(obj: Any) -> Stage:
    """Turn a Stage, a mapping (fan-out) or a callable into a Stage."""
    if isinstance(obj, Stage):
        return obj
    if isinstance(obj, dict):
        from .parallel import Parallel

        return Parallel(obj)
    if callable(obj):
        return FunctionStage(obj)
    raise TypeError(f"Cannot use {obj!r} as a pipeline stage")
