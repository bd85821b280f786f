"""Tests for per-key leases."""

import asyncio

import pytest

from stream_reconciler.domain.services.stream_leases import StreamLeaseManager


@pytest.mark.asyncio
async def test_same_stream_is_serialized():
    leases = StreamLeaseManager()
    order = []

    async def worker(name):
        async with leases.stream("s1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_different_streams_do_not_block():
    leases = StreamLeaseManager()
    entered = asyncio.Event()

    async def holder():
        async with leases.stream("s1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other():
        async with leases.stream("s2"):
            entered.set()

    await asyncio.gather(holder(), other())

    assert entered.is_set()


@pytest.mark.asyncio
async def test_stream_and_memorial_keys_are_separate():
    leases = StreamLeaseManager()

    async with leases.stream("m1"):
        assert leases.is_held("stream:m1")
        async with leases.memorial("m1"):
            assert leases.is_held("memorial:m1")


@pytest.mark.asyncio
async def test_entries_are_released():
    leases = StreamLeaseManager()

    async with leases.stream("s1"):
        assert leases.active_keys == 1

    assert leases.active_keys == 0
    assert not leases.is_held("stream:s1")


@pytest.mark.asyncio
async def test_released_after_error():
    leases = StreamLeaseManager()

    with pytest.raises(RuntimeError):
        async with leases.stream("s1"):
            raise RuntimeError("boom")

    assert leases.active_keys == 0
