"""Single-slot async channel that coalesces unread values."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")

_EMPTY = object()


class LatestChannel(Generic[T]):
    """Async iterator over the most recent value pushed into it.

    A value pushed while the previous one is still unread replaces it, so
    a slow consumer only ever sees the latest state.  Must be used from
    the event loop thread; other threads go through
    ``loop.call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._value: object = _EMPTY
        self._error: BaseException | None = None
        self._closed = False
        self._ready = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, value: T) -> None:
        if self._closed:
            return
        self._value = value
        self._ready.set()

    def fail(self, error: BaseException) -> None:
        """End the stream with ``error`` once any unread value is consumed."""
        if self._closed:
            return
        self._error = error
        self._closed = True
        self._ready.set()

    def close(self) -> None:
        self._closed = True
        self._ready.set()

    def __aiter__(self) -> "LatestChannel[T]":
        return self

    async def __anext__(self) -> T:
        while True:
            if self._value is not _EMPTY:
                value, self._value = self._value, _EMPTY
                return value  # type: ignore[return-value]
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()
