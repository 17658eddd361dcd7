"""One-shot asynchronous handoff of auxiliary pipeline data."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Generic, TypeVar

from .errors import SideChannelError

T = TypeVar("T")

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _debug_enabled() -> bool:
    return os.getenv("STREAMCHAIN_DEBUG", "").lower() in {"1", "true", "yes"}


class SideChannel(Generic[T]):
    """Single-assignment value that any number of coroutines can await.

    Exactly one producer resolves the channel; later resolutions are ignored
    (logged), or raise ``SideChannelError`` when ``strict`` is set. Awaiting
    before resolution suspends until a value arrives; every waiter observes
    the same value.

    Example:
        channel, resolve = create_side_channel()
        retriever = Retriever(store, on_retrieved=[resolve])
        ...
        documents = await channel
    """

    def __init__(self, name: str = "side_channel", *, strict: bool | None = None):
        self.name = name
        self.strict = _debug_enabled() if strict is None else strict
        self._event = asyncio.Event()
        self._value: Any = _UNSET

    @property
    def done(self) -> bool:
        """True once a value has been set."""
        return self._value is not _UNSET

    def resolve(self, value: T) -> bool:
        """Set the value. Returns False if the channel was already resolved."""
        if self.done:
            if self.strict:
                raise SideChannelError(f"Side channel '{self.name}' resolved twice")
            logger.warning("Ignoring second resolution of side channel '%s'", self.name)
            return False
        self._value = value
        self._event.set()
        return True

    def close(self, default: T) -> T:
        """Resolve with ``default`` if still empty; return the final value.

        Called by the owning invocation when its stream ends so waiters never
        block on a producer that did not run.
        """
        if not self.done:
            logger.debug("Closing unresolved side channel '%s' with default", self.name)
            self._value = default
            self._event.set()
        return self._value

    async def wait(self) -> T:
        """Suspend until the channel is resolved and return its value."""
        await self._event.wait()
        return self._value

    def get(self, default: T | None = None) -> T | None:
        """Return the value without waiting, or ``default`` if unresolved."""
        return self._value if self.done else default

    def __await__(self):
        return self.wait().__await__()

    def __repr__(self) -> str:
        state = "resolved" if self.done else "pending"
        return f"SideChannel(name='{self.name}', {state})"


def create_side_channel(
    name: str = "side_channel", *, strict: bool | None = None
) -> tuple[SideChannel[Any], Callable[[Any], bool]]:
    """Create a channel and the resolver callback a producer should call."""
    channel: SideChannel[Any] = SideChannel(name, strict=strict)
    return channel, channel.resolve
