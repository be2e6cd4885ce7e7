"""Pytest fixtures and test utilities for the agent host test suite."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
import redis
from redis import asyncio as aioredis

from agent_host.audit import AuditLogger
from agent_host.config import Config
from agent_host.extensions import Extension, ExtensionDependencies, ExtensionManager
from agent_host.governance import InMemoryDecisionStore

HOST_VERSION = "1.4.0"


# ============================================================================
# REDIS FIXTURES
# ============================================================================


def _redis_available() -> bool:
    client = redis.Redis.from_url(Config.REDIS_URL, socket_connect_timeout=1)
    try:
        return bool(client.ping())
    except (redis.ConnectionError, redis.TimeoutError):
        return False
    finally:
        client.close()


def pytest_collection_modifyitems(config, items):
    """Skip requires_redis tests when no Redis server answers."""
    if not any(item.get_closest_marker("requires_redis") for item in items):
        return
    if _redis_available():
        return

    skip_redis = pytest.mark.skip(reason=f"Redis not reachable at {Config.REDIS_URL}")
    for item in items:
        if item.get_closest_marker("requires_redis"):
            item.add_marker(skip_redis)


@pytest.fixture
async def redis_client():
    """
    Provide clean Redis connection with flush before and after test.

    Yields:
        Redis client instance with clean database
    """
    client = aioredis.from_url(
        Config.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )

    try:
        await client.flushdb()
        yield client
    finally:
        await client.flushdb()
        await client.aclose()


# ============================================================================
# EXTENSION FIXTURES
# ============================================================================


@pytest.fixture
def manager(tmp_path):
    """Extension manager with a fixed host version and temporary workspace."""
    return ExtensionManager(host_version=HOST_VERSION, workspace_root=tmp_path)


@pytest.fixture
def make_extension():
    """
    Factory for minimal extensions.

    Returns:
        Callable: make(name, version="1.0.0", deps=None, host=None, **fields)
    """

    def _make(
        name: str,
        version: str = "1.0.0",
        deps: Optional[Dict[str, str]] = None,
        host: Optional[str] = None,
        **fields: Any,
    ) -> Extension:
        return Extension(
            name=name,
            version=version,
            description=f"{name} test extension",
            dependencies=ExtensionDependencies(host=host, extensions=dict(deps or {})),
            **fields,
        )

    return _make


# ============================================================================
# GOVERNANCE FIXTURES
# ============================================================================


@pytest.fixture
def store():
    return InMemoryDecisionStore()


@pytest.fixture
def audit_log_path(tmp_path):
    """
    Provide temporary audit log file for test isolation.

    Returns:
        Path to temporary audit.jsonl file
    """
    return tmp_path / "audit.jsonl"


@pytest.fixture
def audit_logger(audit_log_path):
    return AuditLogger(str(audit_log_path))


def read_audit_log(log_path: Path) -> list[Dict[str, Any]]:
    """
    Read and parse JSON Lines audit log.

    Args:
        log_path: Path to audit log file

    Returns:
        List of parsed audit records, oldest first
    """
    if not log_path.exists():
        return []

    records = []
    with open(log_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records
