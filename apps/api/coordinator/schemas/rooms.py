"""Schemas for the room inspection API."""
from __future__ import annotations

from pydantic import BaseModel, Field


class RoomSummary(BaseModel):
    room_id: str
    members: int = Field(..., ge=0, description="Connections currently associated with the room")
    transports: int = Field(..., ge=0)
    producers: int = Field(..., ge=0)
    consumers: int = Field(..., ge=0)


class RoomListResponse(BaseModel):
    items: list[RoomSummary]
