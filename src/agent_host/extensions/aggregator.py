"""Capability aggregation across active extensions."""

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from ..hooks import call_maybe_async, fan_out
from ..tooling import Tool
from .manager import ExtensionManager
from .models import ExtensionMiddleware

MIDDLEWARE_METHODS = ("before_generate", "after_generate", "before_tool_call", "after_tool_call")


@dataclass(frozen=True)
class ToolCollision:
    """A tool name contributed by more than one extension."""

    name: str
    kept_by: str
    dropped_from: str


def _overrides(middleware: ExtensionMiddleware, method: str) -> bool:
    return getattr(type(middleware), method) is not getattr(ExtensionMiddleware, method)


class AggregatedMiddleware:
    """
    One callback per lifecycle point, fanning out to every contributor.

    Contributors run concurrently; failures are aggregated into a single
    HookExecutionError after all of them settled.
    """

    def __init__(self, contributions: list[tuple[str, ExtensionMiddleware]]):
        self._handlers: dict[str, list[tuple[str, Callable[..., Any]]]] = {
            method: [
                (ext_id, getattr(middleware, method))
                for ext_id, middleware in contributions
                if _overrides(middleware, method)
            ]
            for method in MIDDLEWARE_METHODS
        }

    def contributors(self, method: str) -> list[str]:
        """Extension ids contributing to a lifecycle point."""
        return [ext_id for ext_id, _ in self._handlers[method]]

    async def _run(self, method: str, *args: Any) -> None:
        calls = [
            (ext_id, lambda h=handler: h(*args))
            for ext_id, handler in self._handlers[method]
        ]
        await fan_out(f"middleware:{method}", calls)

    async def before_generate(self, request: dict[str, Any]) -> None:
        await self._run("before_generate", request)

    async def after_generate(self, request: dict[str, Any], response: Any) -> None:
        await self._run("after_generate", request, response)

    async def before_tool_call(self, tool_name: str, params: dict[str, Any]) -> None:
        await self._run("before_tool_call", tool_name, params)

    async def after_tool_call(self, tool_name: str, params: dict[str, Any], result: Any) -> None:
        await self._run("after_tool_call", tool_name, params, result)


class CapabilityAggregator:
    """
    Merges tool and middleware contributions of active extensions.

    Tool names form one flat namespace. The first extension (in activation
    order) to contribute a name keeps it; later contributions are dropped,
    logged and recorded in `collisions`.
    """

    def __init__(self, manager: ExtensionManager):
        self._manager = manager
        self.collisions: list[ToolCollision] = []

    async def collect_tools(self) -> dict[str, Tool]:
        """Flat name -> Tool namespace of every active extension's tools."""
        tools: dict[str, Tool] = {}
        owners: dict[str, str] = {}
        self.collisions = []

        for ext_id in self._manager.active_extensions():
            extension = self._manager.get(ext_id)
            context = self._manager.get_context(ext_id)
            if extension is None or context is None or extension.get_tools is None:
                continue

            try:
                provided = await call_maybe_async(extension.get_tools, context)
            except Exception as e:
                logger.error(f"Error getting tools from extension {ext_id}: {e}")
                continue

            for tool in provided or []:
                if tool.name in tools:
                    collision = ToolCollision(
                        name=tool.name, kept_by=owners[tool.name], dropped_from=ext_id
                    )
                    self.collisions.append(collision)
                    logger.warning(
                        f"Tool name collision for '{tool.name}': keeping "
                        f"{collision.kept_by}, dropping {collision.dropped_from}"
                    )
                    continue
                tools[tool.name] = tool
                owners[tool.name] = ext_id

        logger.debug(f"Aggregated {len(tools)} tools from active extensions")
        return tools

    async def collect_middleware(self) -> AggregatedMiddleware:
        """Unified middleware over every active extension's contribution."""
        contributions: list[tuple[str, ExtensionMiddleware]] = []

        for ext_id in self._manager.active_extensions():
            extension = self._manager.get(ext_id)
            context = self._manager.get_context(ext_id)
            if extension is None or context is None or extension.get_middleware is None:
                continue

            try:
                middleware = await call_maybe_async(extension.get_middleware, context)
            except Exception as e:
                logger.error(f"Error getting middleware from extension {ext_id}: {e}")
                continue

            if not isinstance(middleware, ExtensionMiddleware):
                logger.error(
                    f"Extension {ext_id} returned {type(middleware).__name__} "
                    "instead of ExtensionMiddleware"
                )
                continue
            contributions.append((ext_id, middleware))

        return AggregatedMiddleware(contributions)
