"""
Tests for the process-wide room registry: create on first use, evict when empty.
"""

import asyncio

import pytest

from room_registry import RoomRegistry
from tests.conftest import FakeConnection


class TestRoomRegistry:
    def test_get_unknown_room_does_not_create_it(self, registry):
        assert registry.get("nope") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_get_or_create_returns_same_instance(self, registry):
        first = registry.get_or_create("r1")
        second = registry.get_or_create("r1")

        assert first is second
        assert registry.get("r1") is first
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_rooms_are_independent(self, registry):
        r1 = registry.get_or_create("r1")
        r2 = registry.get_or_create("r2")
        await r1.connect(FakeConnection(), "a", "r1")

        assert r1 is not r2
        assert r2.is_empty()
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_room_is_evicted_when_last_session_closes(self, registry):
        room = registry.get_or_create("r1")
        a = await room.connect(FakeConnection(), "a", "r1")
        b = await room.connect(FakeConnection(), "b", "r1")

        await room.disconnect(a)
        assert registry.get("r1") is room

        await room.disconnect(b)
        assert registry.get("r1") is None
        assert room.closed

    @pytest.mark.asyncio
    async def test_new_instance_after_eviction(self, registry):
        room = registry.get_or_create("r1")
        session = await room.connect(FakeConnection(), "a", "r1")
        await room.disconnect(session)

        fresh = registry.get_or_create("r1")
        reconnected = await fresh.connect(FakeConnection(), "a", "r1")

        assert fresh is not room
        assert fresh.get_session("a") is reconnected
        assert fresh.room_id == "r1"

    @pytest.mark.asyncio
    async def test_evict_refuses_non_empty_room(self, registry):
        room = registry.get_or_create("r1")
        await room.connect(FakeConnection(), "a", "r1")

        assert registry.evict(room) is False
        assert registry.get("r1") is room
        assert not room.closed

    @pytest.mark.asyncio
    async def test_close_all_stops_every_room(self):
        registry = RoomRegistry(sweep_interval=60)
        rooms = [registry.get_or_create(key) for key in ("r1", "r2")]

        registry.close_all()
        await asyncio.sleep(0)

        assert len(registry) == 0
        assert all(room.closed for room in rooms)

    def test_registry_settings_flow_into_rooms(self):
        registry = RoomRegistry(idle_timeout=42, sweep_interval=0, admin_prefix="staff-", send_timeout=2.5)
        room = registry.get_or_create("r1")

        assert room.idle_timeout == 42
        assert room.admin_prefix == "staff-"
        assert room.send_timeout == 2.5

    @pytest.mark.asyncio
    async def test_failed_acknowledgement_of_only_participant_evicts_room(self, registry):
        room = registry.get_or_create("r1")

        await room.connect(FakeConnection(fail_sends=True), "a", "r1")

        assert room.is_empty()
        assert room.closed
        assert registry.get("r1") is None

    @pytest.mark.asyncio
    async def test_failed_acknowledgement_keeps_occupied_room(self, registry):
        room = registry.get_or_create("r1")
        await room.connect(FakeConnection(), "a", "r1")

        await room.connect(FakeConnection(fail_sends=True), "b", "r1")

        assert not room.closed
        assert registry.get("r1") is room
        assert room.participant_ids() == ["a"]
