"""Tests for the coalescing LatestChannel."""

from __future__ import annotations

import asyncio

import pytest

from geoquery.streams.channel import LatestChannel


async def test_delivers_pushed_value():
    channel: LatestChannel[int] = LatestChannel()
    channel.push(1)
    assert await channel.__anext__() == 1


async def test_unread_values_are_coalesced():
    channel: LatestChannel[int] = LatestChannel()
    for value in range(5):
        channel.push(value)
    assert await channel.__anext__() == 4
    channel.close()
    with pytest.raises(StopAsyncIteration):
        await channel.__anext__()


async def test_waits_for_next_value():
    channel: LatestChannel[str] = LatestChannel()
    reader = asyncio.create_task(channel.__anext__())
    await asyncio.sleep(0)
    assert not reader.done()
    channel.push("a")
    assert await asyncio.wait_for(reader, 1) == "a"


async def test_pending_value_delivered_before_error():
    channel: LatestChannel[int] = LatestChannel()
    channel.push(1)
    channel.fail(RuntimeError("boom"))
    assert await channel.__anext__() == 1
    with pytest.raises(RuntimeError, match="boom"):
        await channel.__anext__()
    with pytest.raises(StopAsyncIteration):
        await channel.__anext__()


async def test_push_after_close_ignored():
    channel: LatestChannel[int] = LatestChannel()
    channel.close()
    channel.push(1)
    assert channel.closed
    assert [value async for value in channel] == []


async def test_close_wakes_waiting_reader():
    channel: LatestChannel[int] = LatestChannel()
    reader = asyncio.create_task(channel.__anext__())
    await asyncio.sleep(0)
    channel.close()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(reader, 1)
