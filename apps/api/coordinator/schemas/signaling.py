"""Wire contracts for the signaling WebSocket protocol."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SignalMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    room_id: str = Field(..., alias="roomId", min_length=1)


class GetRtpCapabilities(SignalMessage):
    type: Literal["get-rtp-capabilities"]


class CreateTransport(SignalMessage):
    type: Literal["create-transport"]


class ConnectTransport(SignalMessage):
    type: Literal["connect-transport"]
    transport_id: str | None = Field(default=None, alias="transportId")
    dtls_parameters: dict[str, Any] | None = Field(default=None, alias="dtlsParameters")


class Produce(SignalMessage):
    type: Literal["produce"]
    transport_id: str | None = Field(default=None, alias="transportId")
    kind: str | None = None
    rtp_parameters: dict[str, Any] | None = Field(default=None, alias="rtpParameters")


class Consume(SignalMessage):
    type: Literal["consume"]
    transport_id: str | None = Field(default=None, alias="transportId")
    rtp_capabilities: dict[str, Any] | None = Field(default=None, alias="rtpCapabilities")


class CloseRoom(SignalMessage):
    type: Literal["close-room"]


InboundMessage = Annotated[
    Union[GetRtpCapabilities, CreateTransport, ConnectTransport, Produce, Consume, CloseRoom],
    Field(discriminator="type"),
]

inbound_message_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)

MESSAGE_TYPES = frozenset(
    {"get-rtp-capabilities", "create-transport", "connect-transport", "produce", "consume", "close-room"}
)


class OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ErrorMessage(OutboundMessage):
    type: Literal["error"] = "error"
    error: str


class RtpCapabilitiesMessage(OutboundMessage):
    type: Literal["rtp-capabilities"] = "rtp-capabilities"
    rtp_capabilities: dict[str, Any] = Field(..., alias="rtpCapabilities")


class TransportCreatedMessage(OutboundMessage):
    type: Literal["transport-created"] = "transport-created"
    params: dict[str, Any]


class ProducedMessage(OutboundMessage):
    type: Literal["produced"] = "produced"
    id: str


class ConsumerCreatedMessage(OutboundMessage):
    type: Literal["consumer-created"] = "consumer-created"
    id: str
    producer_id: str = Field(..., alias="producerId")
    kind: str
    rtp_parameters: dict[str, Any] = Field(..., alias="rtpParameters")


class StreamStoppedMessage(OutboundMessage):
    type: Literal["stream-stopped"] = "stream-stopped"


NO_ROOM_ID = "No room ID provided"
ROOM_NOT_FOUND = "Room not found"
TRANSPORT_NOT_FOUND = "Transport not found"
