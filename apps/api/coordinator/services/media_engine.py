"""Media engine adapter.

The coordinator never routes media itself. It talks to an SFU through the small
capability surface declared here: a per-room router, WebRTC transports, and the
producers and consumers minted on them. Any engine satisfying these protocols can
be plugged into :class:`~coordinator.services.rooms.RoomRegistry`.

:class:`LoopbackMediaEngine` is the in-process implementation used by default and in
tests. It enforces the same contracts a real engine does (codec compatibility, a
single DTLS connect per transport, audio/video kinds only) without moving packets.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4

from ..core.config import Settings, default_media_codecs

logger = logging.getLogger(__name__)

MEDIA_KINDS = frozenset({"audio", "video"})


class MediaEngineError(RuntimeError):
    """Raised when the media engine rejects an operation."""


class Producer(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def kind(self) -> str: ...

    async def close(self) -> None: ...


class Consumer(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def producer_id(self) -> str: ...

    @property
    def kind(self) -> str: ...

    @property
    def rtp_parameters(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class Transport(Protocol):
    @property
    def id(self) -> str: ...

    async def connect(self, dtls_parameters: dict[str, Any] | None) -> None: ...

    async def produce(self, kind: str | None, rtp_parameters: dict[str, Any] | None) -> Producer: ...

    async def consume(
        self,
        producer_id: str,
        rtp_capabilities: dict[str, Any] | None,
        paused: bool = False,
    ) -> Consumer: ...

    async def close(self) -> None: ...


class Router(Protocol):
    """Per-room routing context."""

    @property
    def rtp_capabilities(self) -> dict[str, Any]: ...

    def can_consume(self, producer_id: str, rtp_capabilities: dict[str, Any] | None) -> bool: ...

    async def create_webrtc_transport(self) -> tuple[Transport, dict[str, Any]]:
        """Return the new transport and the connection parameters the peer needs."""
        ...

    async def close(self) -> None: ...


class MediaEngine(Protocol):
    async def create_router(self, room_id: str) -> Router: ...

    async def close(self) -> None: ...


def _mime_types(codecs: object) -> set[str]:
    if not isinstance(codecs, list):
        return set()
    return {
        str(codec["mimeType"]).lower()
        for codec in codecs
        if isinstance(codec, dict) and codec.get("mimeType")
    }


@dataclass(eq=False, slots=True)
class LoopbackProducer:
    id: str
    kind: str
    rtp_parameters: dict[str, Any]
    router: "LoopbackRouter"
    closed: bool = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.router._producers.pop(self.id, None)


@dataclass(eq=False, slots=True)
class LoopbackConsumer:
    id: str
    producer_id: str
    kind: str
    rtp_parameters: dict[str, Any]
    paused: bool = False
    closed: bool = False

    async def close(self) -> None:
        self.closed = True


@dataclass(eq=False, slots=True)
class LoopbackTransport:
    id: str
    router: "LoopbackRouter"
    dtls_parameters: dict[str, Any] | None = None
    closed: bool = False

    async def connect(self, dtls_parameters: dict[str, Any] | None) -> None:
        """Complete the DTLS handshake parameters exchange."""

        self._ensure_open()
        if self.dtls_parameters is not None:
            raise MediaEngineError("connect() already called")
        if not isinstance(dtls_parameters, dict) or not dtls_parameters.get("fingerprints"):
            raise MediaEngineError("missing dtlsParameters.fingerprints")
        self.dtls_parameters = dtls_parameters

    async def produce(self, kind: str | None, rtp_parameters: dict[str, Any] | None) -> LoopbackProducer:
        self._ensure_open()
        if kind not in MEDIA_KINDS:
            raise MediaEngineError(f"invalid kind {kind!r}")
        if not isinstance(rtp_parameters, dict):
            raise MediaEngineError("missing rtpParameters")

        offered = _mime_types(rtp_parameters.get("codecs"))
        if offered and not offered & self.router.supported_mime_types(kind):
            raise MediaEngineError(f"unsupported codecs {sorted(offered)}")

        producer = LoopbackProducer(
            id=str(uuid4()),
            kind=kind,
            rtp_parameters=rtp_parameters,
            router=self.router,
        )
        self.router._producers[producer.id] = producer
        return producer

    async def consume(
        self,
        producer_id: str,
        rtp_capabilities: dict[str, Any] | None,
        paused: bool = False,
    ) -> LoopbackConsumer:
        self._ensure_open()
        if not self.router.can_consume(producer_id, rtp_capabilities):
            raise MediaEngineError(f"cannot consume producer {producer_id}")

        producer = self.router._producers[producer_id]
        accepted = _mime_types(rtp_capabilities.get("codecs") if rtp_capabilities else None)
        codecs = [
            codec
            for codec in producer.rtp_parameters.get("codecs", [])
            if isinstance(codec, dict) and str(codec.get("mimeType", "")).lower() in accepted
        ]
        rtp_parameters = {
            "codecs": codecs,
            "headerExtensions": [],
            "encodings": [{"ssrc": secrets.randbelow(2**32 - 1) + 1}],
            "mid": str(self.router.next_mid()),
        }
        return LoopbackConsumer(
            id=str(uuid4()),
            producer_id=producer_id,
            kind=producer.kind,
            rtp_parameters=rtp_parameters,
            paused=paused,
        )

    async def close(self) -> None:
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise MediaEngineError(f"transport {self.id} is closed")


@dataclass(eq=False)
class LoopbackRouter:
    room_id: str
    media_codecs: list[dict[str, Any]]
    listen_ip: str
    announced_ip: str | None
    port_range: tuple[int, int]
    id: str = field(default_factory=lambda: str(uuid4()))
    closed: bool = False
    _producers: dict[str, LoopbackProducer] = field(default_factory=dict)
    _transports: dict[str, LoopbackTransport] = field(default_factory=dict)
    _mid: int = 0

    @property
    def rtp_capabilities(self) -> dict[str, Any]:
        codecs = []
        for payload_type, codec in enumerate(self.media_codecs, start=100):
            codecs.append({**codec, "preferredPayloadType": payload_type})
        return {"codecs": codecs, "headerExtensions": []}

    def supported_mime_types(self, kind: str) -> set[str]:
        return _mime_types([codec for codec in self.media_codecs if codec.get("kind") == kind])

    def next_mid(self) -> int:
        mid = self._mid
        self._mid += 1
        return mid

    def can_consume(self, producer_id: str, rtp_capabilities: dict[str, Any] | None) -> bool:
        """Return whether a peer with ``rtp_capabilities`` can receive the producer."""

        producer = self._producers.get(producer_id)
        if producer is None or producer.closed or not isinstance(rtp_capabilities, dict):
            return False
        accepted = _mime_types(rtp_capabilities.get("codecs"))
        produced = _mime_types(producer.rtp_parameters.get("codecs"))
        if not produced:
            produced = self.supported_mime_types(producer.kind)
        return bool(accepted & produced)

    async def create_webrtc_transport(self) -> tuple[LoopbackTransport, dict[str, Any]]:
        if self.closed:
            raise MediaEngineError(f"router for room {self.room_id} is closed")

        transport = LoopbackTransport(id=str(uuid4()), router=self)
        self._transports[transport.id] = transport

        low, high = self.port_range
        params = {
            "id": transport.id,
            "iceParameters": {
                "usernameFragment": secrets.token_hex(8),
                "password": secrets.token_hex(16),
                "iceLite": True,
            },
            "iceCandidates": [
                {
                    "foundation": "udpcandidate",
                    "priority": 1076302079,
                    "ip": self.announced_ip or self.listen_ip,
                    "protocol": "udp",
                    "port": low + secrets.randbelow(high - low + 1),
                    "type": "host",
                }
            ],
            "dtlsParameters": {
                "role": "auto",
                "fingerprints": [
                    {
                        "algorithm": "sha-256",
                        "value": ":".join(secrets.token_hex(1).upper() for _ in range(32)),
                    }
                ],
            },
        }
        return transport, params

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for transport in list(self._transports.values()):
            await transport.close()
        self._transports.clear()
        self._producers.clear()


class LoopbackMediaEngine:
    """In-process media engine that negotiates but never forwards packets."""

    def __init__(
        self,
        media_codecs: list[dict[str, Any]] | None = None,
        *,
        listen_ip: str = "127.0.0.1",
        announced_ip: str | None = None,
        port_range: tuple[int, int] = (40000, 49999),
    ) -> None:
        if port_range[0] > port_range[1]:
            raise ValueError("port_range lower bound exceeds upper bound")
        self._media_codecs = media_codecs if media_codecs is not None else default_media_codecs()
        self._listen_ip = listen_ip
        self._announced_ip = announced_ip
        self._port_range = port_range
        self.routers: list[LoopbackRouter] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoopbackMediaEngine":
        return cls(
            settings.media_codecs,
            listen_ip=settings.rtc_listen_ip,
            announced_ip=settings.rtc_announced_ip,
            port_range=(settings.rtc_min_port, settings.rtc_max_port),
        )

    async def create_router(self, room_id: str) -> LoopbackRouter:
        router = LoopbackRouter(
            room_id=room_id,
            media_codecs=[dict(codec) for codec in self._media_codecs],
            listen_ip=self._listen_ip,
            announced_ip=self._announced_ip,
            port_range=self._port_range,
        )
        self.routers = [existing for existing in self.routers if not existing.closed]
        self.routers.append(router)
        logger.debug("Created loopback router %s for room %s", router.id, room_id)
        return router

    async def close(self) -> None:
        for router in self.routers:
            await router.close()
