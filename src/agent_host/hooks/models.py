"""Hook system models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union


class HookName(str, Enum):
    """Lifecycle points raised by the host."""

    FRAMEWORK_BEFORE_INIT = "framework:before_init"
    FRAMEWORK_AFTER_INIT = "framework:after_init"
    FRAMEWORK_BEFORE_SHUTDOWN = "framework:before_shutdown"
    FRAMEWORK_AFTER_SHUTDOWN = "framework:after_shutdown"

    AGENT_BEFORE_GENERATE = "agent:before_generate"
    AGENT_AFTER_GENERATE = "agent:after_generate"
    AGENT_BEFORE_TOOL_CALL = "agent:before_tool_call"
    AGENT_AFTER_TOOL_CALL = "agent:after_tool_call"

    APPROVAL_BEFORE_REQUEST = "approval:before_request"
    APPROVAL_AFTER_REQUEST = "approval:after_request"


def hook_key(hook_name: Union[str, HookName]) -> str:
    """Normalize enum members and plain strings to one key."""
    if isinstance(hook_name, HookName):
        return hook_name.value
    return str(hook_name)


@dataclass(frozen=True)
class HookContext:
    """
    Context passed to a single hook handler.

    Each handler receives its own copy carrying the id of the extension
    that owns it. Event payload fields are readable with item access.
    """

    hook_name: str
    extension_id: str
    data: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


HookHandler = Callable[[HookContext], Optional[Awaitable[None]]]


@dataclass(frozen=True)
class HookRegistration:
    """A (hook name, owning extension, handler) entry."""

    hook_name: str
    extension_id: str
    handler: HookHandler
