"""Tests for the Redis decision store."""

import json
from unittest.mock import AsyncMock

import pytest
from redis import asyncio as aioredis

from agent_host.errors import PersistenceWarning
from agent_host.governance import RedisDecisionStore


@pytest.mark.requires_redis
class TestRedisDecisionStore:
    """Tests against a live Redis server."""

    @pytest.mark.asyncio
    async def test_global_and_session_keys(self, redis_client):
        store = RedisDecisionStore(redis_client=redis_client, key_prefix="test_approvals")

        await store.add_auto_approved_tool("read_file")
        await store.add_auto_approved_tool("write_file", "s1")

        assert await redis_client.hexists("test_approvals:global", "read_file")
        assert await redis_client.hexists("test_approvals:session:s1", "write_file")
        assert await store.is_tool_auto_approved("read_file", "s9") is True
        assert await store.is_tool_auto_approved("write_file", "s2") is False

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, redis_client):
        store = RedisDecisionStore(redis_client=redis_client, key_prefix="test_approvals")

        first = await store.add_auto_approved_tool("bash", "s1")
        second = await store.add_auto_approved_tool("bash", "s1")

        assert first == second
        records = await store.get_auto_approved_tools("s1")
        assert [r.id for r in records] == [first]

    @pytest.mark.asyncio
    async def test_remove_scoped(self, redis_client):
        store = RedisDecisionStore(redis_client=redis_client, key_prefix="test_approvals")
        await store.add_auto_approved_tool("bash")
        await store.add_auto_approved_tool("bash", "s1")

        await store.remove_auto_approved_tool("bash")

        assert await store.is_globally_approved("bash") is False
        assert await store.is_session_approved("bash", "s1") is True

    @pytest.mark.asyncio
    async def test_corrupt_record_skipped(self, redis_client):
        store = RedisDecisionStore(redis_client=redis_client, key_prefix="test_approvals")
        await store.add_auto_approved_tool("good")
        await redis_client.hset("test_approvals:global", "bad", "{not json")

        records = await store.get_auto_approved_tools()

        assert [r.tool_name for r in records] == ["good"]


class TestRedisFailures:
    """Backend errors surface as PersistenceWarning."""

    @pytest.mark.asyncio
    async def test_read_failure(self):
        client = AsyncMock()
        client.hexists.side_effect = aioredis.ConnectionError("down")
        store = RedisDecisionStore(redis_client=client)

        with pytest.raises(PersistenceWarning):
            await store.is_globally_approved("bash")

    @pytest.mark.asyncio
    async def test_write_failure(self):
        client = AsyncMock()
        client.hsetnx.side_effect = aioredis.TimeoutError("slow")
        store = RedisDecisionStore(redis_client=client)

        with pytest.raises(PersistenceWarning):
            await store.add_auto_approved_tool("bash", "s1")

    @pytest.mark.asyncio
    async def test_existing_record_id_returned(self):
        client = AsyncMock()
        client.hsetnx.return_value = 0
        client.hget.return_value = json.dumps({"id": "global_tool_existing"})
        store = RedisDecisionStore(redis_client=client, key_prefix="p")

        assert await store.add_auto_approved_tool("bash") == "global_tool_existing"
        client.hsetnx.assert_awaited_once()
        assert client.hsetnx.await_args.args[:2] == ("p:global", "bash")
