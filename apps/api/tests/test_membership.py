"""Tests for the room/connection membership index."""
from __future__ import annotations

from coordinator.services.membership import MembershipIndex
from coordinator.services.signaling import SignalingConnection


async def _noop_send(message: dict) -> None:
    return None


def test_add_keeps_both_views_in_sync():
    index = MembershipIndex()
    conn_a = SignalingConnection("a", _noop_send)
    conn_b = SignalingConnection("b", _noop_send)

    assert index.add("room-1", conn_a) is True
    assert index.add("room-1", conn_a) is False
    index.add("room-1", conn_b)
    index.add("room-2", conn_a)

    assert set(index.members("room-1")) == {conn_a, conn_b}
    assert index.rooms_of(conn_a) == {"room-1", "room-2"}
    assert index.rooms_of(conn_b) == {"room-1"}


def test_connections_with_same_label_are_distinct():
    index = MembershipIndex()
    first = SignalingConnection("same", _noop_send)
    second = SignalingConnection("same", _noop_send)

    index.add("room-1", first)
    index.add("room-1", second)

    assert len(index.members("room-1")) == 2


def test_remove_connection_reports_emptied_rooms():
    index = MembershipIndex()
    conn_a = SignalingConnection("a", _noop_send)
    conn_b = SignalingConnection("b", _noop_send)
    index.add("room-1", conn_a)
    index.add("room-2", conn_a)
    index.add("room-2", conn_b)

    emptied = index.remove_connection(conn_a)

    assert emptied == ["room-1"]
    assert index.room_ids() == ["room-2"]
    assert index.members("room-2") == [conn_b]
    assert index.rooms_of(conn_a) == set()
    assert index.remove_connection(conn_a) == []


def test_discard_room_updates_connection_view():
    index = MembershipIndex()
    conn_a = SignalingConnection("a", _noop_send)
    index.add("room-1", conn_a)
    index.add("room-2", conn_a)

    index.discard_room("room-1")
    index.discard_room("missing")

    assert index.members("room-1") == []
    assert index.rooms_of(conn_a) == {"room-2"}
