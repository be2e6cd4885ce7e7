"""Decision stores: durable keyed lookup for persisted approval scopes.

A decision with no session id is global; otherwise it belongs to exactly
one session. Lookups check the global decision before the session one.
"""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger
from redis import asyncio as aioredis

from ..config import Config
from ..errors import PersistenceWarning
from ..redis_client import get_redis_client


def _new_record_id(session_id: Optional[str]) -> str:
    prefix = "session_tool" if session_id else "global_tool"
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class AutoApprovedTool:
    """A persisted auto-approval for a tool, global or session-scoped."""

    id: str
    tool_name: str
    session_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def scope(self) -> str:
        return "session" if self.session_id else "global"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutoApprovedTool":
        return cls(
            id=data["id"],
            tool_name=data["tool_name"],
            session_id=data.get("session_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class DecisionStore(ABC):
    """Abstract persistence for scoped approval decisions.

    Implementations raise PersistenceWarning when the backend fails.
    """

    @abstractmethod
    async def is_globally_approved(self, tool_name: str) -> bool:
        """Check for a global decision."""

    @abstractmethod
    async def is_session_approved(self, tool_name: str, session_id: str) -> bool:
        """Check for a decision scoped to one session."""

    @abstractmethod
    async def add_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> str:
        """
        Persist a decision (global when session_id is None).

        Adding an existing decision is a no-op returning the existing id.

        Returns:
            Record id
        """

    @abstractmethod
    async def get_auto_approved_tools(
        self, session_id: Optional[str] = None
    ) -> list[AutoApprovedTool]:
        """Global decisions, or one session's decisions, newest first."""

    @abstractmethod
    async def remove_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> None:
        """Remove a decision. Removing an absent decision is a no-op."""

    async def is_tool_auto_approved(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> bool:
        """Global decision first, then the session decision if a session is given."""
        if await self.is_globally_approved(tool_name):
            return True
        if session_id:
            return await self.is_session_approved(tool_name, session_id)
        return False


class InMemoryDecisionStore(DecisionStore):
    """Process-local store. Decisions are lost when the process exits."""

    def __init__(self):
        # session key None holds global decisions
        self._records: dict[Optional[str], dict[str, AutoApprovedTool]] = {}

    async def is_globally_approved(self, tool_name: str) -> bool:
        return tool_name in self._records.get(None, {})

    async def is_session_approved(self, tool_name: str, session_id: str) -> bool:
        return tool_name in self._records.get(session_id, {})

    async def add_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> str:
        bucket = self._records.setdefault(session_id or None, {})
        existing = bucket.get(tool_name)
        if existing is not None:
            return existing.id

        record = AutoApprovedTool(
            id=_new_record_id(session_id), tool_name=tool_name, session_id=session_id or None
        )
        bucket[tool_name] = record
        return record.id

    async def get_auto_approved_tools(
        self, session_id: Optional[str] = None
    ) -> list[AutoApprovedTool]:
        records = list(self._records.get(session_id or None, {}).values())
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def remove_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> None:
        bucket = self._records.get(session_id or None)
        if bucket is not None:
            bucket.pop(tool_name, None)


class RedisDecisionStore(DecisionStore):
    """
    Redis-backed store.

    Layout: one hash per scope, field = tool name, value = JSON record.
    - `<prefix>:global`
    - `<prefix>:session:<session_id>`

    Connection and timeout errors surface as PersistenceWarning.
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        key_prefix: Optional[str] = None,
    ):
        self._redis_client = redis_client
        self._prefix = key_prefix or Config.REDIS_KEY_PREFIX

    async def _get_redis(self) -> aioredis.Redis:
        """Get the injected client or the shared pooled client (lazy)."""
        if self._redis_client is None:
            self._redis_client = await get_redis_client()
        return self._redis_client

    def _key(self, session_id: Optional[str]) -> str:
        if session_id:
            return f"{self._prefix}:session:{session_id}"
        return f"{self._prefix}:global"

    async def _hexists(self, key: str, tool_name: str) -> bool:
        try:
            redis = await self._get_redis()
            return bool(await redis.hexists(key, tool_name))
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            raise PersistenceWarning(f"Redis read failed for {key}: {e}") from e

    async def is_globally_approved(self, tool_name: str) -> bool:
        return await self._hexists(self._key(None), tool_name)

    async def is_session_approved(self, tool_name: str, session_id: str) -> bool:
        return await self._hexists(self._key(session_id), tool_name)

    async def add_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> str:
        key = self._key(session_id)
        record = AutoApprovedTool(
            id=_new_record_id(session_id), tool_name=tool_name, session_id=session_id or None
        )
        try:
            redis = await self._get_redis()
            created = await redis.hsetnx(key, tool_name, json.dumps(record.to_dict()))
            if created:
                return record.id
            existing = await redis.hget(key, tool_name)
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            raise PersistenceWarning(f"Redis write failed for {key}: {e}") from e

        if existing is None:
            # Removed between HSETNX and HGET; the caller's decision stands.
            return record.id
        return json.loads(existing)["id"]

    async def get_auto_approved_tools(
        self, session_id: Optional[str] = None
    ) -> list[AutoApprovedTool]:
        key = self._key(session_id)
        try:
            redis = await self._get_redis()
            raw = await redis.hgetall(key)
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            raise PersistenceWarning(f"Redis read failed for {key}: {e}") from e

        records = []
        for tool_name, value in raw.items():
            try:
                records.append(AutoApprovedTool.from_dict(json.loads(value)))
            except (ValueError, KeyError) as e:
                logger.error(f"Corrupt approval record {key}[{tool_name}]: {e}")
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def remove_auto_approved_tool(
        self, tool_name: str, session_id: Optional[str] = None
    ) -> None:
        key = self._key(session_id)
        try:
            redis = await self._get_redis()
            await redis.hdel(key, tool_name)
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            raise PersistenceWarning(f"Redis write failed for {key}: {e}") from e


def create_decision_store(kind: Optional[str] = None) -> DecisionStore:
    """Build the store named by `kind` (defaults to Config.DECISION_STORE)."""
    kind = (kind or Config.DECISION_STORE).strip().lower()
    if kind == "memory":
        return InMemoryDecisionStore()
    if kind == "redis":
        return RedisDecisionStore()
    raise ValueError(f"Unknown decision store: {kind}")
