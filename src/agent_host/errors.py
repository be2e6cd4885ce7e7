"""Error taxonomy for the extension manager and approval gate."""

from dataclasses import dataclass
from typing import Optional


class AgentHostError(Exception):
    """Base class for all agent host errors."""


class ValidationError(AgentHostError):
    """Raised when extension metadata is malformed at registration."""


class ExtensionNotFoundError(AgentHostError):
    """Raised when an operation names an extension that is not registered."""

    def __init__(self, extension_id: str):
        self.extension_id = extension_id
        super().__init__(f"Extension not found: {extension_id}")


class DependencyError(AgentHostError):
    """Base class for dependency resolution failures."""


class DependencyUnsatisfiedError(DependencyError):
    """
    Raised when a host or inter-extension version constraint is unmet.

    Attributes:
        extension_id: Extension declaring the dependency
        dependency: Dependency id ("host" for the framework itself)
        required: Required version range
        actual: Resolved version, None when the dependency is missing
    """

    def __init__(
        self,
        extension_id: str,
        dependency: str,
        required: str,
        actual: Optional[str],
    ):
        self.extension_id = extension_id
        self.dependency = dependency
        self.required = required
        self.actual = actual
        if actual is None:
            message = (
                f"Extension {extension_id} requires {dependency} {required}, "
                f"but {dependency} is not registered"
            )
        else:
            message = (
                f"Extension {extension_id} requires {dependency} {required}, "
                f"but found version {actual}"
            )
        super().__init__(message)


class DependencyCycleError(DependencyError):
    """Raised when the activation graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


@dataclass
class HandlerFailure:
    """A single handler failure collected during fan-out dispatch."""

    extension_id: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.extension_id}: {type(self.error).__name__}: {self.error}"


class HookExecutionError(AgentHostError):
    """Raised after dispatch when one or more handlers failed."""

    def __init__(self, hook_name: str, failures: list[HandlerFailure]):
        self.hook_name = hook_name
        self.failures = list(failures)
        details = "; ".join(str(failure) for failure in self.failures)
        super().__init__(
            f"Hook {hook_name} failed in {len(self.failures)} handler(s): {details}"
        )

    @property
    def extension_ids(self) -> list[str]:
        """Owners of the failed handlers."""
        return [failure.extension_id for failure in self.failures]


class ExecutionDenied(AgentHostError):
    """Raised when the approval gate declines a tool invocation."""

    def __init__(self, tool_name: str, session_id: Optional[str] = None):
        self.tool_name = tool_name
        self.session_id = session_id
        super().__init__(f"Tool execution denied: {tool_name}")


class PersistenceWarning(AgentHostError, UserWarning):
    """Decision store read or write failure. Never fatal to an approval."""
