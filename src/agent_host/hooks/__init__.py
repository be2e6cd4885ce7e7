"""Hook system for extension lifecycle events.

Extensions contribute handlers for named hooks; the host raises hooks at
lifecycle points (framework init/shutdown, generation, tool calls, approval
requests) and every handler runs even when others fail.

Usage:
    dispatcher = HookDispatcher()
    dispatcher.register(HookName.AGENT_BEFORE_TOOL_CALL, "audit", handler)

    try:
        await dispatcher.execute(
            HookName.AGENT_BEFORE_TOOL_CALL, {"tool_name": "bash", "params": {}}
        )
    except HookExecutionError as e:
        logger.warning(f"Disable extensions {e.extension_ids}")
"""

from .dispatcher import HookDispatcher, call_maybe_async, fan_out
from .models import HookContext, HookHandler, HookName, HookRegistration, hook_key

__all__ = [
    # Dispatcher
    "HookDispatcher",
    "fan_out",
    "call_maybe_async",
    # Models
    "HookContext",
    "HookHandler",
    "HookName",
    "HookRegistration",
    "hook_key",
]
