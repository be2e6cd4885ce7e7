"""Tests for the in-memory decision store and store selection."""

import asyncio

import pytest

from agent_host.governance import (
    AutoApprovedTool,
    InMemoryDecisionStore,
    RedisDecisionStore,
    create_decision_store,
)


class TestInMemoryDecisionStore:
    """Tests for scoped decision bookkeeping."""

    @pytest.mark.asyncio
    async def test_global_decision_applies_to_every_session(self, store):
        await store.add_auto_approved_tool("read_file")

        assert await store.is_globally_approved("read_file") is True
        assert await store.is_tool_auto_approved("read_file") is True
        assert await store.is_tool_auto_approved("read_file", "any-session") is True

    @pytest.mark.asyncio
    async def test_session_decision_is_isolated(self, store):
        await store.add_auto_approved_tool("write_file", "s1")

        assert await store.is_session_approved("write_file", "s1") is True
        assert await store.is_tool_auto_approved("write_file", "s2") is False
        assert await store.is_tool_auto_approved("write_file") is False

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, store):
        first = await store.add_auto_approved_tool("read_file", "s1")
        second = await store.add_auto_approved_tool("read_file", "s1")

        assert first == second
        assert first.startswith("session_tool_")
        assert len(await store.get_auto_approved_tools("s1")) == 1

    @pytest.mark.asyncio
    async def test_record_ids_reflect_scope(self, store):
        assert (await store.add_auto_approved_tool("a")).startswith("global_tool_")

    @pytest.mark.asyncio
    async def test_listing_newest_first(self, store):
        await store.add_auto_approved_tool("first")
        await asyncio.sleep(0.001)
        await store.add_auto_approved_tool("second")

        names = [record.tool_name for record in await store.get_auto_approved_tools()]
        assert names == ["second", "first"]

    @pytest.mark.asyncio
    async def test_remove_is_scoped_and_idempotent(self, store):
        await store.add_auto_approved_tool("bash")
        await store.add_auto_approved_tool("bash", "s1")

        await store.remove_auto_approved_tool("bash", "s1")
        await store.remove_auto_approved_tool("bash", "s1")

        assert await store.is_globally_approved("bash") is True
        assert await store.is_session_approved("bash", "s1") is False

    @pytest.mark.asyncio
    async def test_remove_unknown_is_noop(self, store):
        await store.remove_auto_approved_tool("never-added", "nobody")


class TestAutoApprovedTool:
    """Tests for the persisted record model."""

    def test_round_trip_and_scope(self):
        record = AutoApprovedTool(id="session_tool_abc", tool_name="bash", session_id="s1")
        restored = AutoApprovedTool.from_dict(record.to_dict())

        assert restored == record
        assert restored.scope == "session"
        assert AutoApprovedTool(id="g", tool_name="bash").scope == "global"


class TestCreateDecisionStore:
    """Tests for backend selection."""

    def test_memory(self):
        assert isinstance(create_decision_store("memory"), InMemoryDecisionStore)

    def test_redis_is_lazy(self):
        assert isinstance(create_decision_store(" Redis "), RedisDecisionStore)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_decision_store("sqlite")
