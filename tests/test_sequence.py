"""Tests for Sequence and Parallel composition."""

import asyncio

import pytest

from streamchain import Parallel, Sequence, Stage, StageExecutionError, StrOutputParser
from streamchain.core.errors import UpstreamModelError
from streamchain.parsers import BytesOutputParser


class Append(Stage[str, str]):
    input_type = str
    output_type = str

    def __init__(self, suffix: str):
        super().__init__(name=f"append_{suffix}")
        self.suffix = suffix

    async def arun(self, value: str) -> str:
        await asyncio.sleep(0)
        return value + self.suffix


class Words(Stage[str, str]):
    """Streams its input back word by word."""

    input_type = str
    output_type = str

    async def arun(self, value: str) -> str:
        return value

    async def astream(self, value: str):
        words = value.split(" ")
        for index, word in enumerate(words):
            await asyncio.sleep(0)
            yield word if index == len(words) - 1 else word + " "


class Boom(Stage[str, str]):
    input_type = str
    output_type = str

    async def arun(self, value: str) -> str:
        raise UpstreamModelError("rate limited", status_code=429)


@pytest.mark.asyncio
async def test_sequence_runs_in_order(listener):
    pipeline = Sequence(Append("a"), Append("b"), Append("c"), listener=listener)

    assert await pipeline.arun("") == "abc"
    assert listener.events == [
        ("start", "append_a"),
        ("end", "append_a"),
        ("start", "append_b"),
        ("end", "append_b"),
        ("start", "append_c"),
        ("end", "append_c"),
    ]


@pytest.mark.asyncio
async def test_streaming_materializes_stages_before_generating_stage(listener):
    pipeline = Sequence(Append("x"), Append(" y"), Words(), listener=listener)

    fragments = []
    async for fragment in pipeline.astream("w"):
        fragments.append(fragment)
        # Both earlier stages finished before the first fragment arrived
        assert ("end", "append_ y") in listener.events

    assert fragments == ["wx ", "y"]
    starts = [name for kind, name in listener.events if kind == "start"]
    assert starts == ["append_x", "append_ y", "Words"]


@pytest.mark.asyncio
async def test_streaming_and_buffered_outputs_match():
    pipeline = Sequence(Append(" one"), Words(), StrOutputParser())

    buffered = await pipeline.arun("zero")
    streamed = [fragment async for fragment in pipeline.astream("zero")]

    assert len(streamed) == 2
    assert "".join(streamed) == buffered == "zero one"


@pytest.mark.asyncio
async def test_fragment_wise_parser_maps_each_fragment():
    pipeline = Sequence(Words(), BytesOutputParser())
    assert pipeline.generating_index == 0

    fragments = [fragment async for fragment in pipeline.astream("a b c")]
    assert fragments == [b"a ", b"b ", b"c"]
    assert b"".join(fragments) == await pipeline.arun("a b c")


@pytest.mark.asyncio
async def test_non_fragment_wise_stage_after_stream_becomes_generating():
    pipeline = Sequence(Words(), Append("!"))
    assert pipeline.generating_index == 1

    fragments = [fragment async for fragment in pipeline.astream("a b")]
    assert fragments == ["a b!"]


def test_nested_sequences_flatten():
    inner = Sequence(Append("a"), Append("b"))
    outer = Sequence(inner, Append("c"), name="outer")
    assert outer.stage_names == ["append_a", "append_b", "append_c"]
    assert outer[0].name == "append_a"
    assert repr(outer) == "Sequence(append_a, append_b, append_c)"


def test_empty_sequence_rejected():
    with pytest.raises(ValueError):
        Sequence()


@pytest.mark.asyncio
async def test_failure_wrapped_with_executed_stages():
    pipeline = Sequence(Append("a"), Boom(), Append("c"))

    with pytest.raises(StageExecutionError) as exc_info:
        await pipeline.arun("")

    error = exc_info.value
    assert error.stage_name == "Boom"
    assert error.executed == ("append_a",)
    assert error.status_code == 429
    assert isinstance(error.root_cause, UpstreamModelError)


@pytest.mark.asyncio
async def test_stream_failure_wrapped():
    pipeline = Sequence(Append("a"), Boom(), Words())

    with pytest.raises(StageExecutionError) as exc_info:
        async for _ in pipeline.astream(""):
            pass

    assert exc_info.value.stage_name == "Boom"


@pytest.mark.asyncio
async def test_parallel_collects_results_in_mapping_order():
    fan_out = Parallel(
        {
            "upper": lambda text: text.upper(),
            "suffixed": Append("!"),
            "same": lambda text: text,
        }
    )

    result = await fan_out.arun("hi")
    assert list(result) == ["upper", "suffixed", "same"]
    assert result == {"upper": "HI", "suffixed": "hi!", "same": "hi"}


@pytest.mark.asyncio
async def test_parallel_branches_run_concurrently():
    started = asyncio.Event()

    async def waiter(value):
        await asyncio.wait_for(started.wait(), timeout=1)
        return "waited"

    async def setter(value):
        started.set()
        return "set"

    result = await Parallel({"waiter": waiter, "setter": setter}).arun(None)
    assert result == {"waiter": "waited", "setter": "set"}


@pytest.mark.asyncio
async def test_parallel_failure_cancels_siblings():
    cancelled = asyncio.Event()

    async def slow(value):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "never"

    async def failing(value):
        await asyncio.sleep(0)
        raise RuntimeError("branch failed")

    fan_out = Parallel({"slow": slow, "failing": failing})

    with pytest.raises(RuntimeError, match="branch failed"):
        await fan_out.arun(None)
    assert cancelled.is_set()


def test_parallel_requires_branches():
    with pytest.raises(ValueError):
        Parallel({})
