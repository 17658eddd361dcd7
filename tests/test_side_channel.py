"""Tests for the one-shot side channel."""

import asyncio
import logging

import pytest

from streamchain import SideChannel, create_side_channel
from streamchain.core.errors import SideChannelError


@pytest.mark.asyncio
async def test_resolver_only_first_call_wins(caplog):
    channel, resolve = create_side_channel("sources", strict=False)

    with caplog.at_level(logging.WARNING):
        assert resolve(["first"]) is True
        assert resolve(["second"]) is False

    assert await channel == ["first"]
    assert "sources" in caplog.text


@pytest.mark.asyncio
async def test_waiters_before_and_after_resolution_see_same_value():
    channel, resolve = create_side_channel(strict=False)
    value = object()

    early = asyncio.create_task(channel.wait())
    await asyncio.sleep(0)
    assert not early.done()

    resolve(value)
    late = await channel

    assert await early is value
    assert late is value


@pytest.mark.asyncio
async def test_many_waiters():
    channel: SideChannel[int] = SideChannel(strict=False)
    waiters = [asyncio.create_task(channel.wait()) for _ in range(5)]
    await asyncio.sleep(0)

    channel.resolve(7)
    assert await asyncio.gather(*waiters) == [7] * 5


def test_strict_mode_raises_on_second_resolution():
    channel, resolve = create_side_channel("sources", strict=True)
    resolve(1)
    with pytest.raises(SideChannelError):
        resolve(2)
    assert channel.get() == 1


def test_strict_mode_from_debug_env(monkeypatch):
    monkeypatch.setenv("STREAMCHAIN_DEBUG", "1")
    assert SideChannel().strict is True

    monkeypatch.setenv("STREAMCHAIN_DEBUG", "0")
    assert SideChannel().strict is False


@pytest.mark.asyncio
async def test_close_resolves_empty_channel_with_default():
    channel, _ = create_side_channel(strict=False)
    assert not channel.done
    assert channel.get("missing") == "missing"

    assert channel.close([]) == []
    assert channel.done
    assert await channel == []


@pytest.mark.asyncio
async def test_close_keeps_existing_value():
    channel, resolve = create_side_channel(strict=True)
    resolve(["doc"])

    assert channel.close([]) == ["doc"]
    assert await channel.wait() == ["doc"]


def test_repr_shows_state():
    channel = SideChannel("sources", strict=False)
    assert repr(channel) == "SideChannel(name='sources', pending)"
    channel.resolve(None)
    assert repr(channel) == "SideChannel(name='sources', resolved)"
