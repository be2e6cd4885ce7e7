"""Tool models shared by extensions, the aggregator and the approval gate."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

ToolExecutor = Callable[[dict[str, Any], dict[str, Any]], Union[Any, Awaitable[Any]]]


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    """
    A capability the agent runtime may invoke.

    The body (`execute`) is opaque to the host: it receives the call
    parameters and a call context (session id, tool call id, ...) and
    returns any result. It may be sync or async.
    """

    name: str
    description: str
    execute: ToolExecutor
    parameters_schema: dict[str, Any] = field(default_factory=_empty_schema)
    requires_approval: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    def schema(self) -> dict[str, Any]:
        """Schema entry handed to the model layer."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema,
        }


@dataclass
class ToolResult:
    """Outcome of a tool invocation as seen by the agent runtime."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failure(cls, error: str, **metadata: Any) -> "ToolResult":
        return cls(success=False, error=error, metadata=metadata)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "metadata": self.metadata,
        }
