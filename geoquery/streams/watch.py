"""Bridge Firestore snapshot listeners into async iterators.

``Query.on_snapshot`` invokes its callback on a background thread owned
by the Firestore client.  Each delivery is handed to the event loop and
coalesced in a ``LatestChannel``.

The callback never hears about a listener that dies: the client's
``Watch`` handle closes itself on a side thread when the stream RPC ends
(permission denied, missing index, ...).  Those closes are caught by
wrapping the handle's ``close`` and, for handles without one, by polling
its ``_closed`` flag.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable

from geoquery.config import LISTENER_POLL_INTERVAL
from geoquery.persistence.errors import ListenerClosedError
from geoquery.streams.channel import LatestChannel

logger = logging.getLogger(__name__)


def _termination_error(reason: Any) -> BaseException:
    if isinstance(reason, Exception):
        return reason
    if reason:
        return ListenerClosedError(f"Snapshot listener closed: {reason}")
    return ListenerClosedError("Snapshot listener closed")


def _is_closed(watch: Any) -> bool:
    return bool(getattr(watch, "_closed", False))


def _intercept_close(
    watch: Any, unsubscribing: threading.Event, on_termination: Callable[[Any], None]
) -> None:
    """Report closes not requested through ``unsubscribe``."""
    close = getattr(watch, "close", None)
    if close is None:
        return

    def _close(reason: Any = None) -> Any:
        if not unsubscribing.is_set() and not _is_closed(watch):
            on_termination(reason)
        return close(reason=reason)

    watch.close = _close


async def _monitor(
    watch: Any,
    channel: LatestChannel[Any],
    unsubscribing: threading.Event,
    interval: float,
) -> None:
    while not channel.closed:
        await asyncio.sleep(interval)
        if _is_closed(watch) and not unsubscribing.is_set():
            logger.warning("Snapshot listener closed without unsubscribe")
            channel.fail(_termination_error(None))
            return


async def watch_query(
    query: Any, *, poll_interval: float = LISTENER_POLL_INTERVAL
) -> AsyncIterator[list[Any]]:
    """Yield the full document list of ``query`` on every change.

    Never completes on its own.  A listener that terminates without being
    unsubscribed raises its reason (or ``ListenerClosedError``).  Closing
    the iterator (or cancelling the task iterating it) unsubscribes the
    listener.
    """
    loop = asyncio.get_running_loop()
    channel: LatestChannel[list[Any]] = LatestChannel()
    unsubscribing = threading.Event()

    def deliver(callback: Callable[..., None], *args: Any) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(callback, *args)

    def on_snapshot(docs: list[Any], changes: list[Any], read_time: Any) -> None:
        deliver(channel.push, list(docs))

    def on_termination(reason: Any) -> None:
        logger.warning("Snapshot listener terminated: %s", reason)
        deliver(channel.fail, _termination_error(reason))

    watch = query.on_snapshot(on_snapshot)
    _intercept_close(watch, unsubscribing, on_termination)
    monitor = asyncio.create_task(_monitor(watch, channel, unsubscribing, poll_interval))
    logger.debug("Listener opened")
    try:
        async for docs in channel:
            yield docs
    finally:
        unsubscribing.set()
        monitor.cancel()
        watch.unsubscribe()
        channel.close()
        logger.debug("Listener closed")
