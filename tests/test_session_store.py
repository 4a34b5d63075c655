"""Tests for the in-memory session store and per-session locking."""

import asyncio

import pytest

from carinsight.conversation.session_store import SessionStore
from carinsight.schemas.conversation_schema import ConversationSession, DialogueNode


class TestSessionStore:
    def setup_method(self):
        self.store = SessionStore()

    def test_get_unknown_is_none(self):
        assert self.store.get("sess-missing") is None

    def test_get_or_create_creates_in_greeting(self):
        session = self.store.get_or_create("sess-1", user_id="user-9")
        assert session.node == DialogueNode.GREETING
        assert session.user_id == "user-9"
        assert "sess-1" in self.store

    def test_get_or_create_returns_existing(self):
        first = self.store.get_or_create("sess-1")
        assert self.store.get_or_create("sess-1") is first
        assert self.store.count() == 1

    def test_set_replaces_session(self):
        replacement = ConversationSession(session_id="sess-1")
        self.store.get_or_create("sess-1")
        self.store.set("sess-1", replacement)
        assert self.store.get("sess-1") is replacement

    def test_clear_is_idempotent(self):
        self.store.get_or_create("sess-1")
        assert self.store.clear("sess-1") is True
        assert self.store.clear("sess-1") is False
        assert self.store.get("sess-1") is None
        assert self.store.count() == 0

    def test_clear_unknown_key(self):
        assert self.store.clear("never-existed") is False

    def test_lock_is_stable_per_key(self):
        assert self.store.lock("sess-1") is self.store.lock("sess-1")
        assert self.store.lock("sess-1") is not self.store.lock("sess-2")


class TestSessionLocking:
    @pytest.mark.asyncio
    async def test_same_session_turns_do_not_interleave(self):
        store = SessionStore()
        events: list[str] = []

        async def turn(name: str) -> None:
            async with store.lock("sess-1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(turn("a"), turn("b"))

        assert events == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_sessions_run_concurrently(self):
        store = SessionStore()
        events: list[str] = []

        async def turn(key: str) -> None:
            async with store.lock(key):
                events.append(f"{key}-start")
                await asyncio.sleep(0.01)
                events.append(f"{key}-end")

        await asyncio.gather(turn("sess-1"), turn("sess-2"))

        assert events[:2] == ["sess-1-start", "sess-2-start"]

    @pytest.mark.asyncio
    async def test_clear_keeps_lock_held_by_running_turn(self):
        store = SessionStore()
        store.get_or_create("sess-1")
        held = store.lock("sess-1")

        async with held:
            assert store.clear("sess-1") is True
            assert store.clear("sess-1") is False
            assert store.lock("sess-1") is held
            assert held.locked()

    @pytest.mark.asyncio
    async def test_recreated_session_waits_for_running_turn(self):
        store = SessionStore()
        events: list[str] = []

        async def running_turn() -> None:
            async with store.lock("sess-1"):
                events.append("old-start")
                store.clear("sess-1")
                await asyncio.sleep(0.01)
                events.append("old-end")

        async def new_turn() -> None:
            await asyncio.sleep(0)
            async with store.lock("sess-1"):
                store.get_or_create("sess-1")
                events.append("new-start")

        await asyncio.gather(running_turn(), new_turn())

        assert events == ["old-start", "old-end", "new-start"]
