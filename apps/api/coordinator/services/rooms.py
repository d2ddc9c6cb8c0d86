"""Room state and the process-wide room registry."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .media_engine import Consumer, MediaEngine, Producer, Router, Transport

logger = logging.getLogger(__name__)


@dataclass(eq=False, slots=True)
class Room:
    """Media bookkeeping for one room, keyed by engine-issued identifiers.

    Mutations of the collections must happen while holding ``lock``.
    """

    room_id: str
    router: Router
    transports: Dict[str, Transport] = field(default_factory=dict)
    producers: Dict[str, Producer] = field(default_factory=dict)
    consumers: Dict[str, Consumer] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False

    async def close(self) -> None:
        """Tear down consumers, producers, transports and finally the router."""

        if self.closed:
            return
        self.closed = True

        handles = [*self.consumers.values(), *self.producers.values(), *self.transports.values(), self.router]
        self.consumers.clear()
        self.producers.clear()
        self.transports.clear()

        for handle in handles:
            try:
                await handle.close()
            except Exception:  # noqa: BLE001 - keep tearing down the rest
                logger.exception("Failed closing %s in room %s", type(handle).__name__, self.room_id)


class RoomRegistry:
    """Own the mapping of room identifiers to rooms.

    Rooms are created lazily by :meth:`get_or_create` and only removed by :meth:`close`.
    Concurrent first calls for the same room share a single in-flight creation so the
    engine never mints two routers for one room.
    """

    def __init__(self, engine: MediaEngine) -> None:
        self._engine = engine
        self._rooms: Dict[str, Room] = {}
        self._pending: Dict[str, asyncio.Task[Room]] = {}

    async def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is not None:
            return room

        task = self._pending.get(room_id)
        if task is None:
            task = asyncio.create_task(self._create(room_id))
            self._pending[room_id] = task
            task.add_done_callback(lambda done: self._forget(room_id, done))
        return await asyncio.shield(task)

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    async def close(self, room_id: str) -> bool:
        """Close and forget the room. Returns ``False`` when it was already gone."""

        room = self._rooms.pop(room_id, None)
        if room is None:
            return False

        async with room.lock:
            await room.close()
        logger.info("Closed room %s", room_id)
        return True

    async def close_all(self) -> None:
        for room_id in list(self._rooms):
            await self.close(room_id)

    async def _create(self, room_id: str) -> Room:
        router = await self._engine.create_router(room_id)
        room = Room(room_id=room_id, router=router)
        self._rooms[room_id] = room
        logger.info("Created room %s", room_id)
        return room

    def _forget(self, room_id: str, task: asyncio.Task[Room]) -> None:
        if self._pending.get(room_id) is task:
            del self._pending[room_id]
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Creating room %s failed: %s", room_id, task.exception())
