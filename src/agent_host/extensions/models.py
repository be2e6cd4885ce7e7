"""Extension data models and the per-extension context."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

if TYPE_CHECKING:
    from ..hooks import HookDispatcher
    from ..tooling import Tool
    from .events import EventBus, EventHandler

_ID_SANITIZER = re.compile(r"[^a-z0-9]")


def extension_id(name: str) -> str:
    """Derive the registry id for an extension name ("My Ext" -> "my-ext")."""
    return _ID_SANITIZER.sub("-", name.lower())


@dataclass
class ExtensionCapabilities:
    """Capability flags an extension declares about itself."""

    provides_tools: bool = False
    provides_middleware: bool = False
    modifies_config: bool = False
    accesses_storage: bool = False
    accesses_network: bool = False


@dataclass
class ExtensionDependencies:
    """
    Dependency constraints of an extension.

    Attributes:
        host: Version range the host framework must satisfy
        extensions: Map of extension id to required version range
    """

    host: Optional[str] = None
    extensions: dict[str, str] = field(default_factory=dict)


class ExtensionMiddleware:
    """
    Named middleware capabilities an extension may contribute.

    Every method is a no-op; extensions override the ones they need. Only
    overridden methods are wired into the aggregated middleware.
    """

    async def before_generate(self, request: dict[str, Any]) -> None:
        """Called before the model is invoked."""

    async def after_generate(self, request: dict[str, Any], response: Any) -> None:
        """Called after the model produced a response."""

    async def before_tool_call(self, tool_name: str, params: dict[str, Any]) -> None:
        """Called before a tool executes."""

    async def after_tool_call(
        self, tool_name: str, params: dict[str, Any], result: Any
    ) -> None:
        """Called after a tool executed."""


LifecycleCallback = Callable[["ExtensionContext"], Optional[Awaitable[None]]]
ToolProvider = Callable[["ExtensionContext"], Union[list["Tool"], Awaitable[list["Tool"]]]]
MiddlewareProvider = Callable[
    ["ExtensionContext"], Union[ExtensionMiddleware, Awaitable[ExtensionMiddleware]]
]


@dataclass
class Extension:
    """
    A self-contained unit contributing hooks, tools and lifecycle behavior.

    Identity is `extension_id(name)`. Callables may be sync or async.
    """

    name: str
    version: str
    description: str = ""
    author: Optional[str] = None
    capabilities: ExtensionCapabilities = field(default_factory=ExtensionCapabilities)
    dependencies: ExtensionDependencies = field(default_factory=ExtensionDependencies)
    hooks: dict[str, Callable[..., Any]] = field(default_factory=dict)
    activate: Optional[LifecycleCallback] = None
    deactivate: Optional[LifecycleCallback] = None
    get_tools: Optional[ToolProvider] = None
    get_middleware: Optional[MiddlewareProvider] = None
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return extension_id(self.name)


class ExtensionView:
    """Read-only accessors over the manager, handed to extensions."""

    def __init__(
        self,
        get: Callable[[str], Optional[Extension]],
        list_all: Callable[[], list[Extension]],
        is_active: Callable[[str], bool],
    ):
        self._get = get
        self._list = list_all
        self._is_active = is_active

    def get(self, extension_id: str) -> Optional[Extension]:
        return self._get(extension_id)

    def list(self) -> list[Extension]:
        return self._list()

    def is_active(self, extension_id: str) -> bool:
        return self._is_active(extension_id)


@dataclass
class ExtensionContext:
    """
    Everything an extension may touch, built once at registration.

    Attributes:
        extension_id: Owning extension
        workspace_root: Host workspace directory
        extension_path: `<workspace>/extensions/<id>`
        logger: loguru logger bound to the extension id
        config: Extension configuration
        host_version: Host framework version
        extensions: Read-only view of other extensions
        hooks: Hook dispatcher (for raising custom hooks)
        events: Shared event bus
    """

    extension_id: str
    workspace_root: Path
    extension_path: Path
    logger: Any
    config: dict[str, Any]
    host_version: str
    extensions: ExtensionView
    hooks: "HookDispatcher"
    events: "EventBus"

    async def emit(self, event: str, data: Any = None) -> None:
        """Emit an event on the shared bus."""
        await self.events.emit(event, data)

    def subscribe(self, event: str, handler: "EventHandler") -> Callable[[], None]:
        """Subscribe to an event. Returns an unsubscribe callable."""
        return self.events.subscribe(event, handler)

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a path relative to the workspace root."""
        return (self.workspace_root / path).resolve()
