"""Approval models and strategies.

A strategy turns an approval request into a decision. Supported mechanisms:
- Callback (any sync/async function, e.g. a UI prompt)
- Policy (fnmatch allow/deny lists, optional fallback strategy)
- Pending queue (requests parked by id until a UI responds)
- Deny-all (non-interactive hosts)
"""

import asyncio
import fnmatch
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from ..hooks import call_maybe_async


class ApprovalScope(str, Enum):
    """Breadth of an approval decision."""

    ONCE = "once"
    SESSION = "session"
    GLOBAL = "global"


class ApprovalState(str, Enum):
    """States an invocation passes through in the approval gate."""

    REQUESTED = "requested"
    CHECK_GLOBAL = "check_global"
    CHECK_SESSION = "check_session"
    PROMPT = "prompt"
    APPROVED_AUTO = "approved_auto"
    APPROVED_ONCE = "approved_once"
    APPROVED_SESSION = "approved_session"
    APPROVED_GLOBAL = "approved_global"
    DENIED = "denied"


APPROVED_STATES = frozenset(
    {
        ApprovalState.APPROVED_AUTO,
        ApprovalState.APPROVED_ONCE,
        ApprovalState.APPROVED_SESSION,
        ApprovalState.APPROVED_GLOBAL,
    }
)


@dataclass
class ApprovalRequest:
    """Request for a decision on one tool invocation attempt.

    Attributes:
        tool_name: Name of the tool requiring approval
        params: Tool parameters as the agent supplied them
        context: Extra context for the decision maker
        session_id: Conversation the call belongs to
        request_id: Unique identifier for this request
        created_at: When the request was created
    """

    tool_name: str
    params: dict[str, Any]
    context: Optional[dict[str, Any]] = None
    session_id: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "request_id": self.request_id,
            "tool_name": self.tool_name,
            "params": self.params,
            "context": self.context,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ApprovalResponse:
    """Decision returned by a strategy.

    `scope` is only meaningful when approved; None means "once".
    """

    approved: bool
    scope: Optional[ApprovalScope] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.scope is not None and not isinstance(self.scope, ApprovalScope):
            self.scope = ApprovalScope(self.scope)

    @classmethod
    def deny(cls, reason: Optional[str] = None) -> "ApprovalResponse":
        return cls(approved=False, reason=reason)


@dataclass
class ApprovalOutcome:
    """Final state of one pass through the approval gate."""

    tool_name: str
    state: ApprovalState
    session_id: Optional[str] = None
    scope: Optional[ApprovalScope] = None
    request_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.state in APPROVED_STATES


class ApprovalStrategy(ABC):
    """Abstract base class for approval strategies."""

    @abstractmethod
    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        """Turn a request into a decision. May suspend indefinitely."""

    def get_name(self) -> str:
        return type(self).__name__


def _outer_task_cancelling() -> bool:
    """True when the running task itself was asked to cancel."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _coerce_response(value: Any) -> ApprovalResponse:
    """Accept ApprovalResponse, bool, a scope string, or "deny"."""
    if isinstance(value, ApprovalResponse):
        return value
    if isinstance(value, bool):
        return ApprovalResponse(approved=value)
    if isinstance(value, ApprovalScope):
        return ApprovalResponse(approved=True, scope=value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"deny", "denied", "no", "n"}:
            return ApprovalResponse.deny()
        return ApprovalResponse(approved=True, scope=ApprovalScope(normalized))
    raise TypeError(f"Unsupported approval response: {value!r}")


class CallbackApprovalStrategy(ApprovalStrategy):
    """Delegates to a sync or async callable (e.g. a UI prompt)."""

    def __init__(
        self,
        callback: Callable[[ApprovalRequest], Union[Any, Awaitable[Any]]],
    ):
        self._callback = callback

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        return _coerce_response(await call_maybe_async(self._callback, request))


class DenyAllStrategy(ApprovalStrategy):
    """Denies everything that is not already auto-approved."""

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        return ApprovalResponse.deny("No interactive approver configured")


class PolicyApprovalStrategy(ApprovalStrategy):
    """
    Static allow/deny policy over tool names (fnmatch patterns).

    Priority:
    1. If matches deny -> denied
    2. If matches allow -> approved with the configured scope
    3. Otherwise -> fallback strategy, or denied without one
    """

    def __init__(
        self,
        allow: Optional[list[str]] = None,
        deny: Optional[list[str]] = None,
        scope: Union[ApprovalScope, str] = ApprovalScope.ONCE,
        fallback: Optional[ApprovalStrategy] = None,
    ):
        self.allow = list(allow or [])
        self.deny = list(deny or [])
        self.scope = ApprovalScope(scope)
        self.fallback = fallback

    @staticmethod
    def _matches(tool_name: str, patterns: list[str]) -> Optional[str]:
        for pattern in patterns:
            if fnmatch.fnmatchcase(tool_name, pattern):
                return pattern
        return None

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        denied_by = self._matches(request.tool_name, self.deny)
        if denied_by:
            logger.info(f"Policy denied {request.tool_name} (pattern {denied_by})")
            return ApprovalResponse.deny(f"Matches deny pattern: {denied_by}")

        allowed_by = self._matches(request.tool_name, self.allow)
        if allowed_by:
            logger.debug(f"Policy allowed {request.tool_name} (pattern {allowed_by})")
            return ApprovalResponse(
                approved=True, scope=self.scope, reason=f"Matches allow pattern: {allowed_by}"
            )

        if self.fallback is not None:
            return await self.fallback.request_approval(request)
        return ApprovalResponse.deny("No policy rule matched")


class PendingApprovalStrategy(ApprovalStrategy):
    """
    Parks requests until a UI answers them by request id.

    Pending approvals live in an explicit map keyed by request id and
    grouped per session. A cancelled request resolves as a denial.
    """

    def __init__(self, on_request: Optional[Callable[[ApprovalRequest], Any]] = None):
        self._pending: dict[str, tuple[ApprovalRequest, asyncio.Future]] = {}
        self._on_request = on_request

    def set_request_callback(self, callback: Callable[[ApprovalRequest], Any]) -> None:
        self._on_request = callback

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = (request, future)

        try:
            if self._on_request is not None:
                await call_maybe_async(self._on_request, request)
            return await future
        except asyncio.CancelledError:
            if _outer_task_cancelling():
                raise
            logger.info(f"Approval request {request.request_id} cancelled")
            return ApprovalResponse.deny("Approval request cancelled")
        finally:
            self._pending.pop(request.request_id, None)

    def respond(self, request_id: str, response: Union[ApprovalResponse, bool, str]) -> bool:
        """Answer a pending request. Returns False if it is not pending."""
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        _, future = entry
        if future.done():
            return False
        future.set_result(_coerce_response(response))
        return True

    def cancel(self, request_id: str) -> bool:
        """Cancel a pending request; the waiting call is denied."""
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        _, future = entry
        return future.cancel()

    def pending(self, session_id: Optional[str] = None) -> list[ApprovalRequest]:
        """Pending requests, oldest first, optionally for one session."""
        requests = [
            request
            for request, _ in self._pending.values()
            if session_id is None or request.session_id == session_id
        ]
        return sorted(requests, key=lambda r: r.created_at)
