"""Combine-latest fan-in over live snapshot streams.

Each source runs in its own producer task and only ever writes its newest
value into its own slot.  The consuming generator is the single writer of
the merged state: it wakes when any slot changes, folds every pending
update in at once and emits one merged list.  Updates that pile up while
the consumer is busy are coalesced, never queued.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _FanIn(Generic[T]):
    """Latest value per source slot, plus what changed since the last merge."""

    def __init__(self, size: int):
        self._latest: list[list[T] | None] = [None] * size
        self._pending: dict[int, list[T]] = {}
        self._finished: set[int] = set()
        self._error: BaseException | None = None
        self._dirty = False
        self._changed = asyncio.Event()

    # -- producer side --------------------------------------------------

    def _notify(self) -> None:
        self._dirty = True
        self._changed.set()

    def push(self, slot: int, value: list[T]) -> None:
        self._pending[slot] = value
        self._notify()

    def fail(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
        self._notify()

    def finish(self, slot: int) -> None:
        self._finished.add(slot)
        self._notify()

    # -- consumer side --------------------------------------------------

    async def wait(self) -> None:
        if not self._dirty:
            self._changed.clear()
            await self._changed.wait()
        self._dirty = False

    def raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    def apply_pending(self) -> bool:
        if not self._pending:
            return False
        for slot, value in self._pending.items():
            self._latest[slot] = value
        self._pending.clear()
        return True

    @property
    def ready(self) -> bool:
        """Every source has emitted at least once."""
        return all(value is not None for value in self._latest)

    @property
    def exhausted(self) -> bool:
        """No further merged output is possible."""
        if self._pending:
            return False
        if len(self._finished) == len(self._latest):
            return True
        return any(self._latest[slot] is None for slot in self._finished)

    def merged(self) -> list[T]:
        return [item for value in self._latest if value is not None for item in value]


async def _pump(slot: int, source: AsyncIterable[list[T]], fan_in: _FanIn[T]) -> None:
    try:
        async for value in source:
            fan_in.push(slot, value)
    except Exception as exc:
        logger.warning("Source %d failed: %s", slot, exc)
        fan_in.fail(exc)
    else:
        fan_in.finish(slot)
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


async def combine_latest(sources: Sequence[AsyncIterable[list[T]]]) -> AsyncIterator[list[T]]:
    """Concatenate the latest list of every source whenever any of them changes.

    Nothing is emitted until every source has produced a value.  The first
    source error is raised to the consumer and stops all other sources.
    Completes once every source has completed.  Closing the iterator
    cancels every source.
    """
    if not sources:
        return

    fan_in: _FanIn[T] = _FanIn(len(sources))
    tasks = [
        asyncio.create_task(_pump(slot, source, fan_in))
        for slot, source in enumerate(sources)
    ]
    try:
        while True:
            await fan_in.wait()
            fan_in.raise_if_failed()
            if fan_in.apply_pending() and fan_in.ready:
                merged = fan_in.merged()
                logger.debug("Merged %d candidates from %d sources", len(merged), len(sources))
                yield merged
            if fan_in.exhausted:
                return
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
