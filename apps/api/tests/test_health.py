import pytest
from httpx import ASGITransport, AsyncClient

from coordinator.main import app
from coordinator.services.signaling import SignalingConnection, manager as signaling_manager


@pytest.mark.asyncio
async def test_health_endpoint() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/health")
        head = await client.head("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert head.status_code == 200


@pytest.mark.asyncio
async def test_room_inspection_endpoints() -> None:
    async def _discard(message: dict) -> None:
        return None

    room = await signaling_manager.registry.get_or_create("inspect-room")
    transport_handle, _ = await room.router.create_webrtc_transport()
    room.transports[transport_handle.id] = transport_handle
    viewer = SignalingConnection("viewer", _discard)
    signaling_manager.membership.add("inspect-room", viewer)

    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            listing = await client.get("/api/rooms")
            detail = await client.get("/api/rooms/inspect-room")
            missing = await client.get("/api/rooms/nope")
    finally:
        await signaling_manager.registry.close("inspect-room")
        signaling_manager.membership.discard_room("inspect-room")

    assert listing.status_code == 200
    assert "inspect-room" in [item["room_id"] for item in listing.json()["items"]]
    assert detail.json() == {
        "room_id": "inspect-room",
        "members": 1,
        "transports": 1,
        "producers": 0,
        "consumers": 0,
    }
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Room not found"}
