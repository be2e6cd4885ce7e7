"""Agent host - extension lifecycle management and tool-call approval gate."""

__version__ = "0.1.0"

from .errors import (
    AgentHostError,
    DependencyCycleError,
    DependencyUnsatisfiedError,
    ExecutionDenied,
    ExtensionNotFoundError,
    HookExecutionError,
    PersistenceWarning,
    ValidationError,
)
from .extensions import Extension, ExtensionManager, extension_registry
from .governance import ApprovalGate, ApprovalScope
from .hooks import HookDispatcher, HookName
from .host import AgentHost, build_host
from .tooling import Tool, ToolResult

__all__ = [
    "__version__",
    # Host
    "AgentHost",
    "build_host",
    # Extensions
    "Extension",
    "ExtensionManager",
    "extension_registry",
    # Hooks
    "HookDispatcher",
    "HookName",
    # Governance
    "ApprovalGate",
    "ApprovalScope",
    # Tools
    "Tool",
    "ToolResult",
    # Errors
    "AgentHostError",
    "ValidationError",
    "ExtensionNotFoundError",
    "DependencyUnsatisfiedError",
    "DependencyCycleError",
    "HookExecutionError",
    "ExecutionDenied",
    "PersistenceWarning",
]
