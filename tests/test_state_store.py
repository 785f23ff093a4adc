import asyncio
from dataclasses import dataclass

import pytest

from hostel_assistant.services.state_store import TTLStore, is_expired


@dataclass
class Entry:
    last_active_at: float
    value: str = ""


@pytest.fixture
def store(clock):
    return TTLStore(ttl_seconds=60, sweep_interval_seconds=0.01, name="test", clock=clock)


class TestIsExpired:
    def test_boundary_is_expired(self):
        assert is_expired(Entry(last_active_at=0), now=60, ttl_seconds=60)

    def test_inside_ttl_is_live(self):
        assert not is_expired(Entry(last_active_at=0), now=59.9, ttl_seconds=60)


class TestTTLStore:
    def test_get_or_create_builds_once(self, store, clock):
        first = store.get_or_create("a", lambda now: Entry(last_active_at=now, value="first"))
        second = store.get_or_create("a", lambda now: Entry(last_active_at=now, value="second"))

        assert first is second
        assert second.value == "first"

    def test_get_or_create_replaces_expired(self, store, clock):
        store.get_or_create("a", lambda now: Entry(last_active_at=now, value="old"))
        clock.advance(60)

        entry = store.get_or_create("a", lambda now: Entry(last_active_at=now, value="new"))

        assert entry.value == "new"

    def test_get_drops_expired_entry(self, store, clock):
        store.get_or_create("a", lambda now: Entry(last_active_at=now))
        clock.advance(61)

        assert store.get("a") is None
        assert store.size() == 0

    def test_get_touch_extends_lifetime(self, store, clock):
        store.get_or_create("a", lambda now: Entry(last_active_at=now))
        clock.advance(50)
        store.get("a", touch=True)
        clock.advance(50)

        assert store.get("a") is not None

    def test_plain_get_does_not_touch(self, store, clock):
        store.get_or_create("a", lambda now: Entry(last_active_at=now))
        clock.advance(50)
        store.get("a")
        clock.advance(10)

        assert store.get("a") is None

    def test_sweep_removes_only_expired(self, store, clock):
        store.get_or_create("old", lambda now: Entry(last_active_at=now))
        clock.advance(30)
        store.get_or_create("fresh", lambda now: Entry(last_active_at=now))
        clock.advance(30)

        assert store.sweep() == 1
        assert store.keys() == ["fresh"]

    def test_pop_and_clear(self, store):
        store.get_or_create("a", lambda now: Entry(last_active_at=now))
        store.get_or_create("b", lambda now: Entry(last_active_at=now))

        assert store.pop("a") is not None
        assert store.pop("a") is None
        store.clear()
        assert store.size() == 0


class TestSweeper:
    @pytest.mark.asyncio
    async def test_background_sweep_removes_idle_entries(self, store, clock):
        store.get_or_create("a", lambda now: Entry(last_active_at=now))
        store.start()
        assert store.running

        clock.advance(120)
        await asyncio.sleep(0.1)

        assert store.size() == 0
        await store.stop()
        assert not store.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store):
        store.start()
        task = store._sweep_task
        store.start()

        assert store._sweep_task is task
        await store.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store):
        await store.stop()
        assert not store.running
