"""Read-only room inspection endpoints."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..schemas import rooms as rooms_schema
from ..schemas.signaling import ROOM_NOT_FOUND
from ..services.rooms import Room
from ..services.signaling import manager as signaling_manager

router = APIRouter()


def _summarize(room: Room) -> rooms_schema.RoomSummary:
    return rooms_schema.RoomSummary(
        room_id=room.room_id,
        members=len(signaling_manager.membership.members(room.room_id)),
        transports=len(room.transports),
        producers=len(room.producers),
        consumers=len(room.consumers),
    )


@router.get("", response_model=rooms_schema.RoomListResponse)
async def list_rooms() -> rooms_schema.RoomListResponse:
    """Return every open room with its resource counts."""

    rooms = sorted(signaling_manager.registry.rooms(), key=lambda room: room.room_id)
    return rooms_schema.RoomListResponse(items=[_summarize(room) for room in rooms])


@router.get("/{room_id}", response_model=rooms_schema.RoomSummary)
async def get_room(room_id: str) -> rooms_schema.RoomSummary:
    room = signaling_manager.registry.get(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail=ROOM_NOT_FOUND)
    return _summarize(room)
