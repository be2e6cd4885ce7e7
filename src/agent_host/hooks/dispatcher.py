"""Hook dispatcher: named lifecycle events with per-extension handlers."""

import asyncio
import inspect
from typing import Any, Callable, Mapping, Optional, Union

from loguru import logger

from ..errors import HandlerFailure, HookExecutionError
from .models import HookContext, HookHandler, HookName, HookRegistration, hook_key


async def call_maybe_async(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a sync or async callable and return its (awaited) result."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


async def fan_out(label: str, calls: list[tuple[str, Callable[[], Any]]]) -> None:
    """
    Run every call concurrently and aggregate failures.

    Every call runs to completion before any failure is reported. Each
    failure is logged with its owner, then a single HookExecutionError
    listing all of them is raised.

    Args:
        label: Hook or lifecycle point name used in logs and the error
        calls: (owner extension id, zero-argument callable) pairs
    """
    if not calls:
        return

    results = await asyncio.gather(
        *(call_maybe_async(func) for _, func in calls),
        return_exceptions=True,
    )

    failures = []
    for (owner, _), result in zip(calls, results):
        if isinstance(result, BaseException):
            logger.error(f"Error in hook {label} from extension {owner}: {result}")
            failures.append(HandlerFailure(extension_id=owner, error=result))

    if failures:
        raise HookExecutionError(label, failures)


class HookDispatcher:
    """
    Registry and executor for hook handlers.

    Features:
    - One handler per (hook name, extension) pair; re-registering replaces it
    - Concurrent fan-out with all-run/aggregate-error semantics
    - Sync and async handlers
    """

    def __init__(self):
        self._hooks: dict[str, dict[str, HookHandler]] = {}

    def register(
        self,
        hook_name: Union[str, HookName],
        extension_id: str,
        handler: HookHandler,
    ) -> None:
        """Register (or replace) the handler an extension owns for a hook."""
        if not callable(handler):
            raise TypeError(f"Hook handler for {hook_key(hook_name)} must be callable")
        name = hook_key(hook_name)
        self._hooks.setdefault(name, {})[extension_id] = handler
        logger.debug(f"Registered hook {name} for extension {extension_id}")

    def unregister(self, hook_name: Union[str, HookName], extension_id: str) -> bool:
        """Remove one handler. Returns False when nothing was registered."""
        name = hook_key(hook_name)
        handlers = self._hooks.get(name)
        if not handlers or extension_id not in handlers:
            return False

        del handlers[extension_id]
        if not handlers:
            del self._hooks[name]
        logger.debug(f"Unregistered hook {name} for extension {extension_id}")
        return True

    def unregister_all(self, extension_id: str) -> int:
        """Remove every handler owned by an extension. Returns the count removed."""
        owned = [name for name, handlers in self._hooks.items() if extension_id in handlers]
        for name in owned:
            self.unregister(name, extension_id)
        return len(owned)

    def clear(self) -> None:
        """Remove all handlers."""
        self._hooks.clear()
        logger.debug("Cleared all hooks")

    async def execute(
        self,
        hook_name: Union[str, HookName],
        payload: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Run every handler registered for a hook.

        Args:
            hook_name: Hook to raise
            payload: Event data, copied into each handler's context

        Raises:
            HookExecutionError: After all handlers settled, if any failed
        """
        name = hook_key(hook_name)
        handlers = self._hooks.get(name)
        if not handlers:
            return

        payload = payload or {}
        logger.debug(f"Executing {len(handlers)} handlers for hook {name}")

        calls = []
        for extension_id, handler in list(handlers.items()):
            context = HookContext(hook_name=name, extension_id=extension_id, data=dict(payload))
            calls.append((extension_id, lambda h=handler, c=context: h(c)))

        await fan_out(name, calls)

    def registrations(self) -> list[HookRegistration]:
        """Flat view of every registration."""
        return [
            HookRegistration(hook_name=name, extension_id=owner, handler=handler)
            for name, handlers in self._hooks.items()
            for owner, handler in handlers.items()
        ]

    def list(self) -> dict[str, list[str]]:
        """Map of hook name to owning extension ids."""
        return {name: list(handlers) for name, handlers in self._hooks.items()}

    def get_handler_count(self, hook_name: Union[str, HookName]) -> int:
        return len(self._hooks.get(hook_key(hook_name), {}))

    def has_hook(self, hook_name: Union[str, HookName]) -> bool:
        return self.get_handler_count(hook_name) > 0
