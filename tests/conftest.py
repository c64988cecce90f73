"""
Pytest configuration and fixtures for signaling tests.
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

import backend
from app import app
from backend import BanListBackend, get_ban_list
from room import Room
from room_registry import RoomRegistry, get_room_registry


class FakeRedis:
    """In-memory stand-in for the handful of Redis commands the ban list uses."""

    def __init__(self):
        self.sets = {}
        self.values = {}

    def ping(self):
        return True

    def sadd(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        added = len(set(members) - bucket)
        bucket.update(members)
        return added

    def srem(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        removed = len(bucket & set(members))
        bucket.difference_update(members)
        return removed

    def sismember(self, key, member):
        return member in self.sets.get(key, set())

    def scard(self, key):
        return len(self.sets.get(key, set()))

    def set(self, key, value):
        self.values[key] = value
        return True

    def get(self, key):
        return self.values.get(key)


class FakeConnection:
    """Records frames a room sends; optionally fails or stalls every send."""

    def __init__(self, fail_sends=False, hang_sends=False):
        self.fail_sends = fail_sends
        self.hang_sends = hang_sends
        self.sent = []
        self.closed = False
        self.close_code = None

    async def send_text(self, data):
        if self.fail_sends:
            raise ConnectionError("socket is closed")
        if self.hang_sends:
            # A peer that stopped reading: the write never completes
            await asyncio.Event().wait()
        self.sent.append(json.loads(data))

    async def close(self, code=1000, reason=None):
        self.closed = True
        self.close_code = code

    def frames(self, frame_type=None):
        if frame_type is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def ban_list(fake_redis):
    return BanListBackend(client=fake_redis)


@pytest.fixture
def registry():
    # No background sweep task: tests drive sweeps explicitly
    return RoomRegistry(sweep_interval=0)


@pytest.fixture
def room():
    return Room("r1", sweep_interval=0)


@pytest.fixture
def client(monkeypatch, fake_redis, ban_list, registry):
    """
    Test client wired to a fresh registry and an in-memory ban list.
    Used as a context manager so every websocket shares one event loop.
    """
    monkeypatch.setattr(backend.ban_list_backend, "redis_client", fake_redis)
    app.dependency_overrides[get_ban_list] = lambda: ban_list
    app.dependency_overrides[get_room_registry] = lambda: registry

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
