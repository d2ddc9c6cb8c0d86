"""Signaling WebSocket endpoint."""
from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket

from ..services.signaling import SignalingConnection, manager as signaling_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Feed frames to the signaling manager one at a time, in arrival order."""

    connection_id = websocket.query_params.get("connection_id") or str(uuid4())
    await websocket.accept()

    connection = SignalingConnection(connection_id=connection_id, send=websocket.send_json)
    logger.info("Connection %s opened", connection_id)

    try:
        while True:
            event = await websocket.receive()
            if event["type"] == "websocket.disconnect":
                break
            payload = event.get("text")
            if payload is None:
                payload = event.get("bytes") or b""
            await signaling_manager.handle_message(connection, payload)
    finally:
        await signaling_manager.disconnect(connection)
