"""Tests for room state and the room registry."""
from __future__ import annotations

import asyncio

import pytest

from coordinator.services.media_engine import LoopbackMediaEngine, MediaEngineError
from coordinator.services.rooms import RoomRegistry

OPUS = {"mimeType": "audio/opus", "clockRate": 48000, "channels": 2}


class SlowEngine(LoopbackMediaEngine):
    """Yield to the loop while creating routers so first accesses interleave."""

    async def create_router(self, room_id: str):
        await asyncio.sleep(0.01)
        return await super().create_router(room_id)


class FlakyEngine(LoopbackMediaEngine):
    def __init__(self) -> None:
        super().__init__()
        self.failures = 1

    async def create_router(self, room_id: str):
        if self.failures:
            self.failures -= 1
            raise MediaEngineError("worker unavailable")
        return await super().create_router(room_id)


class BrokenHandle:
    async def close(self) -> None:
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_concurrent_get_or_create_creates_one_router():
    engine = SlowEngine()
    registry = RoomRegistry(engine)

    rooms = await asyncio.gather(*(registry.get_or_create("room-1") for _ in range(10)))

    assert len(engine.routers) == 1
    assert all(room is rooms[0] for room in rooms)
    assert registry.get("room-1") is rooms[0]


@pytest.mark.asyncio
async def test_get_does_not_create():
    engine = LoopbackMediaEngine()
    registry = RoomRegistry(engine)

    assert registry.get("room-1") is None
    assert engine.routers == []
    assert registry.rooms() == []


@pytest.mark.asyncio
async def test_close_is_idempotent():
    registry = RoomRegistry(LoopbackMediaEngine())

    assert await registry.close("missing") is False

    await registry.get_or_create("room-1")
    assert await registry.close("room-1") is True
    assert await registry.close("room-1") is False
    assert registry.get("room-1") is None


@pytest.mark.asyncio
async def test_close_tears_down_media_and_next_access_is_fresh():
    engine = LoopbackMediaEngine()
    registry = RoomRegistry(engine)
    room = await registry.get_or_create("room-1")

    transport, _ = await room.router.create_webrtc_transport()
    room.transports[transport.id] = transport
    producer = await transport.produce("audio", {"codecs": [OPUS]})
    room.producers[producer.id] = producer
    consumer = await transport.consume(producer.id, {"codecs": [OPUS]})
    room.consumers[consumer.id] = consumer

    await registry.close("room-1")

    assert room.closed
    assert transport.closed and producer.closed and consumer.closed
    assert room.router.closed
    assert room.transports == {} and room.producers == {} and room.consumers == {}

    fresh = await registry.get_or_create("room-1")
    assert fresh is not room
    assert fresh.router is not room.router
    assert fresh.producers == {}
    assert engine.routers == [fresh.router]


@pytest.mark.asyncio
async def test_failed_creation_is_not_cached():
    engine = FlakyEngine()
    registry = RoomRegistry(engine)

    with pytest.raises(MediaEngineError):
        await registry.get_or_create("room-1")
    assert registry.get("room-1") is None

    room = await registry.get_or_create("room-1")
    assert registry.get("room-1") is room


@pytest.mark.asyncio
async def test_room_close_continues_past_failing_handles():
    registry = RoomRegistry(LoopbackMediaEngine())
    room = await registry.get_or_create("room-1")
    transport, _ = await room.router.create_webrtc_transport()
    room.transports[transport.id] = transport
    room.producers["broken"] = BrokenHandle()

    await registry.close("room-1")

    assert transport.closed
    assert room.router.closed


@pytest.mark.asyncio
async def test_close_all_empties_registry():
    registry = RoomRegistry(LoopbackMediaEngine())
    first = await registry.get_or_create("room-1")
    second = await registry.get_or_create("room-2")

    await registry.close_all()

    assert registry.rooms() == []
    assert first.closed and second.closed
