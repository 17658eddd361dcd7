"""Tests for the stage abstraction and composition checks."""

from typing import Any

import pytest

from streamchain import CompositionError, FunctionStage, Parallel, Sequence, Stage, stage
from streamchain.core import coerce_stage, concat_fragments
from streamchain.core.stage import types_compatible
from streamchain.retrieval import Document


class Upper(Stage[str, str]):
    input_type = str
    output_type = str

    async def arun(self, value: str) -> str:
        return value.upper()


class Length(Stage[str, int]):
    input_type = str
    output_type = int

    async def arun(self, value: str) -> int:
        return len(value)


@stage
async def shout(text: str) -> str:
    return text + "!"


@stage(name="strip")
def strip_text(text: str) -> str:
    return text.strip()


@pytest.mark.asyncio
async def test_function_stage_sync_and_async():
    assert await shout.arun("hi") == "hi!"
    assert await strip_text.arun("  hi ") == "hi"
    assert strip_text.name == "strip"
    assert shout.name == "shout"


def test_function_stage_reads_annotations():
    assert shout.input_type is str
    assert shout.output_type is str

    untyped = FunctionStage(lambda value: value)
    assert untyped.input_type is Any
    assert untyped.output_type is Any


@pytest.mark.asyncio
async def test_astream_falls_back_to_single_result():
    fragments = [fragment async for fragment in Upper().astream("abc")]
    assert fragments == ["ABC"]


@pytest.mark.asyncio
async def test_default_atransform_collects_fragments():
    async def upstream():
        for part in ["ab", "c"]:
            yield part

    fragments = [fragment async for fragment in Upper().atransform(upstream())]
    assert fragments == ["ABC"]


@pytest.mark.asyncio
async def test_empty_upstream_gives_empty_string():
    async def upstream():
        return
        yield

    fragments = [fragment async for fragment in Length().atransform(upstream())]
    assert fragments == [0]


def test_run_sync_helper():
    assert (Upper() >> shout).run("hey") == "HEY!"


def test_rshift_builds_sequence():
    pipeline = Upper() >> shout >> strip_text
    assert isinstance(pipeline, Sequence)
    assert pipeline.stage_names == ["Upper", "shout", "strip"]


def test_rrshift_accepts_plain_function():
    pipeline = (lambda value: value) >> Upper()
    assert isinstance(pipeline, Sequence)
    assert len(pipeline) == 2


def test_coerce_stage():
    upper = Upper()
    assert coerce_stage(upper) is upper
    assert isinstance(coerce_stage({"a": lambda x: x}), Parallel)
    assert isinstance(coerce_stage(len), FunctionStage)
    with pytest.raises(TypeError):
        coerce_stage(42)


def test_types_compatible():
    assert types_compatible(str, str)
    assert types_compatible(Any, int)
    assert types_compatible(int, Any)
    assert types_compatible(bool, int)
    assert types_compatible(list, list[Document])
    assert types_compatible(list, str | list)
    assert types_compatible(str | bytes, str | bytes)
    assert not types_compatible(int, str)
    assert not types_compatible(str | int, str)


def test_composition_type_mismatch_raises():
    with pytest.raises(CompositionError) as exc_info:
        Sequence(Length(), Upper())

    assert exc_info.value.upstream == "Length"
    assert exc_info.value.downstream == "Upper"
    assert "int" in str(exc_info.value)


def test_composition_mismatch_is_type_error():
    with pytest.raises(TypeError):
        Length() >> Upper()


def test_concat_fragments():
    assert concat_fragments([]) is None
    assert concat_fragments([], empty="") == ""
    assert concat_fragments(["only"]) == "only"
    assert concat_fragments(["a", "b"]) == "ab"
    assert concat_fragments([b"a", b"b"]) == b"ab"
    assert concat_fragments([[1], [2, 3]]) == [1, 2, 3]
    with pytest.raises(TypeError):
        concat_fragments([1, 2])
