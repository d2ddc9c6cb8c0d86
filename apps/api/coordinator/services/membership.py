"""Bidirectional room/connection membership index."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Set

if TYPE_CHECKING:
    from .signaling import SignalingConnection

logger = logging.getLogger(__name__)


class MembershipIndex:
    """Track which connections belong to which rooms, in both directions.

    Both views are only ever updated together, so ``members(room)`` and
    ``rooms_of(connection)`` always agree. Rooms with no members have no entry.
    Removing membership never touches a room's media resources.
    """

    def __init__(self) -> None:
        self._by_room: Dict[str, Set[SignalingConnection]] = {}
        self._by_connection: Dict[SignalingConnection, Set[str]] = {}

    def add(self, room_id: str, connection: SignalingConnection) -> bool:
        """Register ``connection`` in ``room_id``. Returns ``False`` if it was already a member."""

        members = self._by_room.setdefault(room_id, set())
        if connection in members:
            return False
        members.add(connection)
        self._by_connection.setdefault(connection, set()).add(room_id)
        return True

    def members(self, room_id: str) -> list[SignalingConnection]:
        return list(self._by_room.get(room_id, ()))

    def rooms_of(self, connection: SignalingConnection) -> set[str]:
        return set(self._by_connection.get(connection, ()))

    def room_ids(self) -> list[str]:
        return list(self._by_room)

    def discard_room(self, room_id: str) -> None:
        """Drop every membership record for ``room_id``."""

        for connection in self._by_room.pop(room_id, set()):
            rooms = self._by_connection.get(connection)
            if rooms is None:
                continue
            rooms.discard(room_id)
            if not rooms:
                del self._by_connection[connection]

    def remove_connection(self, connection: SignalingConnection) -> list[str]:
        """Remove ``connection`` from all rooms and return the rooms left without members."""

        emptied: list[str] = []
        for room_id in self._by_connection.pop(connection, set()):
            members = self._by_room.get(room_id)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._by_room[room_id]
                emptied.append(room_id)
        if emptied:
            logger.debug("Rooms without members after disconnect: %s", ", ".join(sorted(emptied)))
        return emptied
