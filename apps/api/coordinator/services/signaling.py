"""Room signaling dispatcher for media sessions."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from ..core.config import settings
from ..schemas import signaling as schemas
from .media_engine import LoopbackMediaEngine, MediaEngine, Transport
from .membership import MembershipIndex
from .rooms import Room, RoomRegistry

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


@dataclass(eq=False, slots=True)
class SignalingConnection:
    """Connection wrapper for signaling participants.

    Identity is the object itself; ``connection_id`` only labels log lines.
    """

    connection_id: str
    send: SendCallable
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SignalingManager:
    """Parse inbound signaling messages and drive rooms through the media engine."""

    def __init__(self, engine: MediaEngine | None = None) -> None:
        self.engine: MediaEngine = engine if engine is not None else LoopbackMediaEngine.from_settings(settings)
        self.registry = RoomRegistry(self.engine)
        self.membership = MembershipIndex()
        self._handlers: dict[type[schemas.SignalMessage], Callable[[SignalingConnection, Any], Awaitable[None]]] = {
            schemas.GetRtpCapabilities: self._get_rtp_capabilities,
            schemas.CreateTransport: self._create_transport,
            schemas.ConnectTransport: self._connect_transport,
            schemas.Produce: self._produce,
            schemas.Consume: self._consume,
            schemas.CloseRoom: self._close_room,
        }

    async def handle_message(self, connection: SignalingConnection, payload: str | bytes) -> None:
        """Process one inbound frame; messages from one connection never overlap."""

        async with connection.lock:
            await self._handle(connection, payload)

    async def disconnect(self, connection: SignalingConnection) -> list[str]:
        """Remove the connection from every room it joined.

        Rooms left without members keep their media resources until ``close-room``.
        """

        async with connection.lock:
            emptied = self.membership.remove_connection(connection)
        logger.info("Connection %s disconnected", connection.connection_id)
        return emptied

    async def broadcast(self, room_id: str, sender: SignalingConnection, message: dict) -> None:
        """Send a message to all members of the room except the sender."""

        recipients = [member for member in self.membership.members(room_id) if member is not sender]
        if not recipients:
            return

        results = await asyncio.gather(*(member.send(message) for member in recipients), return_exceptions=True)
        for member, result in zip(recipients, results):
            if isinstance(result, Exception):
                logger.warning("Broadcast to %s in room %s failed: %s", member.connection_id, room_id, result)

    async def close(self) -> None:
        await self.registry.close_all()
        await self.engine.close()

    async def _handle(self, connection: SignalingConnection, payload: str | bytes) -> None:
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping unparsable message from %s: %s", connection.connection_id, exc)
            return

        try:
            await self._dispatch(connection, data)
        except Exception:  # noqa: BLE001 - failures are scoped to this message
            logger.exception("Handling message from %s failed", connection.connection_id)

    async def _dispatch(self, connection: SignalingConnection, data: Any) -> None:
        room_id = data.get("roomId") if isinstance(data, dict) else None
        if not room_id or not isinstance(room_id, str):
            logger.warning("Message from %s has no roomId", connection.connection_id)
            await self._send_error(connection, schemas.NO_ROOM_ID)
            return

        if self.membership.add(room_id, connection):
            logger.info("Connection %s joined room %s", connection.connection_id, room_id)

        message_type = data.get("type")
        if not isinstance(message_type, str) or message_type not in schemas.MESSAGE_TYPES:
            logger.warning("Unknown message type from %s: %r", connection.connection_id, message_type)
            return

        try:
            message = schemas.inbound_message_adapter.validate_python(data)
        except ValidationError as exc:
            logger.warning("Invalid %s message from %s: %s", message_type, connection.connection_id, exc)
            return

        await self._handlers[type(message)](connection, message)

    async def _get_rtp_capabilities(self, connection: SignalingConnection, message: schemas.GetRtpCapabilities) -> None:
        room = await self.registry.get_or_create(message.room_id)
        reply = schemas.RtpCapabilitiesMessage(rtp_capabilities=room.router.rtp_capabilities)
        await connection.send(reply.to_wire())

    async def _create_transport(self, connection: SignalingConnection, message: schemas.CreateTransport) -> None:
        room = await self.registry.get_or_create(message.room_id)
        transport, params = await room.router.create_webrtc_transport()
        if not await self._register(room, room.transports, transport):
            return
        logger.info("Created transport %s in room %s", transport.id, room.room_id)
        await connection.send(schemas.TransportCreatedMessage(params=params).to_wire())

    async def _connect_transport(self, connection: SignalingConnection, message: schemas.ConnectTransport) -> None:
        room = await self._require_room(connection, message.room_id)
        if room is None:
            return
        transport = await self._require_transport(connection, room, message.transport_id)
        if transport is None:
            return
        # No reply on success.
        await transport.connect(message.dtls_parameters)

    async def _produce(self, connection: SignalingConnection, message: schemas.Produce) -> None:
        room = await self._require_room(connection, message.room_id)
        if room is None:
            return
        transport = await self._require_transport(connection, room, message.transport_id)
        if transport is None:
            return

        producer = await transport.produce(message.kind, message.rtp_parameters)
        if not await self._register(room, room.producers, producer):
            return
        logger.info("Producer %s (%s) added to room %s", producer.id, producer.kind, room.room_id)
        await connection.send(schemas.ProducedMessage(id=producer.id).to_wire())

    async def _consume(self, connection: SignalingConnection, message: schemas.Consume) -> None:
        room = await self._require_room(connection, message.room_id)
        if room is None:
            return
        transport = await self._require_transport(connection, room, message.transport_id)
        if transport is None:
            return

        async with room.lock:
            producers = list(room.producers.values())

        for producer in producers:
            if not room.router.can_consume(producer.id, message.rtp_capabilities):
                logger.warning("Cannot consume producer %s in room %s", producer.id, room.room_id)
                continue

            consumer = await transport.consume(producer.id, message.rtp_capabilities, paused=False)
            if not await self._register(room, room.consumers, consumer):
                return
            reply = schemas.ConsumerCreatedMessage(
                id=consumer.id,
                producer_id=producer.id,
                kind=consumer.kind,
                rtp_parameters=consumer.rtp_parameters,
            )
            await connection.send(reply.to_wire())

    async def _close_room(self, connection: SignalingConnection, message: schemas.CloseRoom) -> None:
        await self.broadcast(message.room_id, connection, schemas.StreamStoppedMessage().to_wire())
        await self.registry.close(message.room_id)
        self.membership.discard_room(message.room_id)

    async def _register(self, room: Room, collection: dict, handle: Any) -> bool:
        """Store a freshly minted engine handle unless the room closed during the engine call."""

        async with room.lock:
            if not room.closed:
                collection[handle.id] = handle
                return True
        logger.info("Room %s closed before %s %s was registered", room.room_id, type(handle).__name__, handle.id)
        await handle.close()
        return False

    async def _require_room(self, connection: SignalingConnection, room_id: str) -> Room | None:
        room = self.registry.get(room_id)
        if room is None:
            await self._send_error(connection, schemas.ROOM_NOT_FOUND)
        return room

    async def _require_transport(
        self,
        connection: SignalingConnection,
        room: Room,
        transport_id: str | None,
    ) -> Transport | None:
        transport = room.transports.get(transport_id) if transport_id else None
        if transport is None:
            await self._send_error(connection, schemas.TRANSPORT_NOT_FOUND)
        return transport

    async def _send_error(self, connection: SignalingConnection, error: str) -> None:
        await connection.send(schemas.ErrorMessage(error=error).to_wire())


manager = SignalingManager()
