"""
Tests for the in-memory session store.
"""

import asyncio

import pytest

from ..models import NO_SESSION_STEP, SessionMetadata
from ..session_store import SessionStore
from .conftest import FakeClock

CHAT = 42


class TestSessionLifecycle:
    """Create, read, mutate and delete"""

    def test_create_starts_at_step_zero(self, store):
        store.create(CHAT, "dns")
        session = store.get(CHAT)
        assert session.service_type == "dns"
        assert session.current_step == 0
        assert session.collected_data == {}

    def test_create_replaces_previous_session(self, store):
        store.create(CHAT, "dns")
        store.merge_data(CHAT, {"name": "svc"})
        store.advance_step(CHAT)

        store.create(CHAT, "dashboard")
        session = store.get(CHAT)
        assert session.service_type == "dashboard"
        assert session.current_step == 0
        assert session.collected_data == {}

    def test_get_returns_detached_copy(self, store):
        store.create(CHAT, "dns")
        session = store.get(CHAT)
        session.collected_data["name"] = "leak"
        session.current_step = 5
        fresh = store.get(CHAT)
        assert fresh.collected_data == {}
        assert fresh.current_step == 0

    def test_merge_data_is_shallow_merge(self, store):
        store.create(CHAT, "dns")
        store.merge_data(CHAT, {"name": "svc"})
        store.merge_data(CHAT, {"host": "test", "name": "svc2"})
        assert store.get(CHAT).collected_data == {"name": "svc2", "host": "test"}

    def test_advance_step_is_monotonic(self, store):
        store.create(CHAT, "dns")
        steps = []
        for _ in range(3):
            store.advance_step(CHAT)
            steps.append(store.current_step_of(CHAT))
        assert steps == [1, 2, 3]

    def test_mutations_without_session_are_noops(self, store):
        store.merge_data(CHAT, {"name": "svc"})
        store.advance_step(CHAT)
        assert store.get(CHAT) is None
        assert len(store) == 0

    def test_current_step_sentinel(self, store):
        assert store.current_step_of(CHAT) == NO_SESSION_STEP

    def test_delete_is_idempotent(self, store):
        store.create(CHAT, "dns", SessionMetadata(chat_id=CHAT, user_id=7, username="alice"))
        store.delete(CHAT)
        store.delete(CHAT)
        assert store.get(CHAT) is None
        assert store.get_metadata(CHAT) is None

    def test_metadata_captured_and_replaced(self, store):
        store.create(CHAT, "dns", SessionMetadata(chat_id=CHAT, user_id=7, username="alice"))
        assert store.get_metadata(CHAT).username == "alice"

        store.create(CHAT, "dns")
        assert store.get_metadata(CHAT) is None

    def test_chats_are_independent(self, store):
        store.create(1, "dns")
        store.create(2, "dashboard")
        store.advance_step(1)
        assert store.current_step_of(1) == 1
        assert store.current_step_of(2) == 0

    def test_clear(self, store):
        store.create(1, "dns")
        store.create(2, "dns")
        assert store.clear() == 2
        assert len(store) == 0


class TestExpiry:
    """Idle TTL behaviour"""

    def test_session_expires_after_ttl(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1800)
        assert store.is_active(CHAT) == False
        assert store.get(CHAT) is None
        assert len(store) == 0

    def test_session_alive_just_before_ttl(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1799)
        assert store.is_active(CHAT) == True

    def test_get_extends_life(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1000)
        assert store.get(CHAT) is not None
        clock.advance(1000)
        assert store.get(CHAT) is not None

    def test_mutation_extends_life(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1000)
        store.advance_step(CHAT)
        clock.advance(1000)
        assert store.current_step_of(CHAT) == 1

    def test_expired_session_not_mutated(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1800)
        store.advance_step(CHAT)
        assert store.current_step_of(CHAT) == NO_SESSION_STEP

    def test_sweep_evicts_unread_sessions(self, store, clock):
        store.create(1, "dns")
        clock.advance(1000)
        store.create(2, "dns")
        clock.advance(800)

        assert store.sweep_expired() == 1
        assert len(store) == 1
        assert store.is_active(2)

    def test_default_sweep_interval(self):
        assert SessionStore(ttl=1800).sweep_interval == 300

    def test_sweep_interval_must_be_shorter_than_ttl(self):
        with pytest.raises(ValueError):
            SessionStore(ttl=60, sweep_interval=60)

    @pytest.mark.asyncio
    async def test_sweep_skips_chat_inside_turn(self, store, clock):
        store.create(CHAT, "dns")
        clock.advance(1800)

        async with store.chat_lock(CHAT):
            assert store.sweep_expired() == 0
            assert len(store) == 1

        assert store.sweep_expired() == 1

    @pytest.mark.asyncio
    async def test_background_sweep_runs(self):
        clock = FakeClock()
        store = SessionStore(ttl=10, sweep_interval=0.01, clock=clock)
        store.create(CHAT, "dns")
        clock.advance(10)

        await store.start()
        try:
            assert store.running
            await asyncio.sleep(0.1)
            assert len(store) == 0
        finally:
            await store.stop()
        assert not store.running


class TestChatLock:
    """Per-chat serialization"""

    @pytest.mark.asyncio
    async def test_same_chat_is_serialized(self, store):
        order = []

        async def turn(name):
            async with store.chat_lock(CHAT):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(turn("a"), turn("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_chats_interleave(self, store):
        order = []

        async def turn(chat_id):
            async with store.chat_lock(chat_id):
                order.append(f"{chat_id}-start")
                await asyncio.sleep(0.01)
                order.append(f"{chat_id}-end")

        await asyncio.gather(turn(1), turn(2))
        assert order[:2] == ["1-start", "2-start"]

    @pytest.mark.asyncio
    async def test_lock_released_and_forgotten(self, store):
        async with store.chat_lock(CHAT):
            assert store.is_locked(CHAT)
        assert not store.is_locked(CHAT)
        assert store._locks == {}
