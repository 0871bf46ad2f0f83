"""
Unit tests for ephemeral_store.py

Tests the in-memory store contract and TTL expiry with a controllable clock.
"""

import asyncio

import pytest

from ephemeral_store import InMemoryStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestBasicOperations:
    """Test put/get/list/delete."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        store = InMemoryStore("test")
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = InMemoryStore("test")
        await store.put("a", {"value": 1})

        assert await store.get("a") == {"value": 1}
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_put_overwrites(self):
        store = InMemoryStore("test")
        await store.put("a", 1)
        await store.put("a", 2)

        assert await store.get("a") == 2
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_list_preserves_insertion_order(self):
        store = InMemoryStore("test")
        for key in ("x", "y", "z"):
            await store.put(key, key.upper())

        assert await store.list() == ["X", "Y", "Z"]

    @pytest.mark.asyncio
    async def test_delete(self):
        store = InMemoryStore("test")
        await store.put("a", 1)

        assert await store.delete("a") is True
        assert await store.get("a") is None
        assert await store.delete("a") is False


class TestExpiry:
    """Test TTL handling."""

    @pytest.mark.asyncio
    async def test_entry_visible_before_deadline(self):
        clock = FakeClock()
        store = InMemoryStore("test", clock=clock)
        await store.put("share", "data", ttl_seconds=60)

        clock.advance(59)
        assert await store.get("share") == "data"

    @pytest.mark.asyncio
    async def test_entry_gone_after_deadline(self):
        clock = FakeClock()
        store = InMemoryStore("test", clock=clock)
        await store.put("share", "data", ttl_seconds=60)

        clock.advance(60)
        assert await store.get("share") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_list_skips_expired(self):
        clock = FakeClock()
        store = InMemoryStore("test", clock=clock)
        await store.put("short", "s", ttl_seconds=10)
        await store.put("forever", "f")

        clock.advance(11)
        assert await store.list() == ["f"]

    @pytest.mark.asyncio
    async def test_overwrite_without_ttl_cancels_expiry(self):
        clock = FakeClock()
        store = InMemoryStore("test", clock=clock)
        await store.put("a", 1, ttl_seconds=10)
        await store.put("a", 2)

        clock.advance(3600)
        assert await store.get("a") == 2

    @pytest.mark.asyncio
    async def test_scheduled_expiry_removes_entry(self):
        """The event-loop timer drops the entry without any read."""
        store = InMemoryStore("test")
        await store.put("a", 1, ttl_seconds=0.01)

        await asyncio.sleep(0.05)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_delete_cancels_timer(self):
        store = InMemoryStore("test")
        await store.put("a", 1, ttl_seconds=0.01)
        await store.delete("a")
        await store.put("a", 2)

        await asyncio.sleep(0.05)
        assert await store.get("a") == 2
