"""Agent host facade: wires extensions, hooks, middleware and the approval gate."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from loguru import logger

from .audit import AuditLogger
from .config import Config
from .errors import AgentHostError, ExecutionDenied, HookExecutionError
from .extensions import (
    CapabilityAggregator,
    ExtensionEntry,
    ExtensionManager,
    ExtensionRegistry,
    extension_registry,
)
from .governance import (
    ApprovalGate,
    ApprovalScope,
    ApprovalStrategy,
    DecisionStore,
    DenyAllStrategy,
    PolicyApprovalStrategy,
    RedisDecisionStore,
    create_decision_store,
)
from .hooks import HookName, call_maybe_async
from .redis_client import close_redis_client
from .tooling import Tool, ToolResult


@dataclass
class ApprovalPolicy:
    """Static approval rules from host configuration."""

    allow: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    scope: ApprovalScope = ApprovalScope.ONCE

    @property
    def configured(self) -> bool:
        return bool(self.allow or self.deny)


@dataclass
class HostConfig:
    """Parsed host YAML configuration."""

    extensions: list[ExtensionEntry] = field(default_factory=list)
    approval: ApprovalPolicy = field(default_factory=ApprovalPolicy)
    decision_store: Optional[str] = None
    audit_enabled: bool = field(default_factory=lambda: Config.AUDIT_ENABLED)
    audit_log_path: str = field(default_factory=lambda: Config.AUDIT_LOG_PATH)


def _parse_extension_entry(item: Any) -> ExtensionEntry:
    if isinstance(item, str):
        return ExtensionEntry(name=item)
    return ExtensionEntry(
        name=item["name"],
        enabled=item.get("enabled", True),
        config=dict(item.get("config") or {}),
    )


def load_host_config(path: Optional[Union[str, Path]] = None) -> HostConfig:
    """
    Load host configuration from YAML.

    Layout:
        extensions:
          - name: shell
            enabled: true
            config: {timeout: 30}
        approval:
          allow: ["read_*"]
          deny: ["rm_*"]
          scope: session
        decision_store: redis
        audit:
          enabled: true
          path: ./audit.jsonl

    A missing, empty or unparsable file yields an empty configuration.
    """
    config = HostConfig()
    config_path = Path(path or Config.HOST_CONFIG_PATH)

    if not config_path.exists():
        logger.debug(f"Host config not found at {config_path}, using defaults")
        return config

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse host config: {e}")
        return config
    except OSError as e:
        logger.error(f"Failed to load host config: {e}")
        return config

    if not data:
        logger.debug("Host config is empty, using defaults")
        return config
    if not isinstance(data, dict):
        logger.error(f"Host config must be a mapping, got {type(data).__name__}")
        return config

    for item in data.get("extensions") or []:
        try:
            config.extensions.append(_parse_extension_entry(item))
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"Invalid extension entry (missing {e}): {item}")

    approval = data.get("approval") or {}
    try:
        config.approval = ApprovalPolicy(
            allow=list(approval.get("allow") or []),
            deny=list(approval.get("deny") or []),
            scope=ApprovalScope(approval.get("scope", ApprovalScope.ONCE.value)),
        )
    except (ValueError, AttributeError) as e:
        logger.error(f"Invalid approval policy, ignoring: {e}")

    config.decision_store = data.get("decision_store")

    audit = data.get("audit") or {}
    if isinstance(audit, dict):
        config.audit_enabled = bool(audit.get("enabled", config.audit_enabled))
        config.audit_log_path = audit.get("path", config.audit_log_path)

    logger.info(
        f"Loaded host config from {config_path} "
        f"({len(config.extensions)} extension entries)"
    )
    return config


class AgentHost:
    """
    Runtime facade used by the agent loop.

    Every tool the host hands out that requires approval is wrapped by the
    approval gate, so no such tool body runs without a decision.
    """

    def __init__(
        self,
        manager: ExtensionManager,
        gate: ApprovalGate,
        aggregator: Optional[CapabilityAggregator] = None,
        registry: Optional[ExtensionRegistry] = None,
        config: Optional[HostConfig] = None,
    ):
        self.manager = manager
        self.gate = gate
        self.aggregator = aggregator or CapabilityAggregator(manager)
        self.registry = registry or extension_registry
        self.config = config or HostConfig()

    async def start(self) -> list[str]:
        """
        Load configured extensions, register them, then activate them.

        Failures of individual extensions are logged and skipped.

        Returns:
            Active extension ids in activation order
        """
        registered: list[str] = []
        for extension in self.registry.load_many(self.config.extensions):
            try:
                registered.append(await self.manager.register(extension))
            except AgentHostError as e:
                logger.error(f"Failed to register extension {extension.name}: {e}")

        for ext_id in registered:
            try:
                await self.manager.activate(ext_id)
            except AgentHostError as e:
                logger.error(f"Failed to activate extension {ext_id}: {e}")

        active = self.manager.active_extensions()
        logger.info(f"Agent host started with {len(active)} active extensions")
        return active

    async def get_tools(self) -> dict[str, Tool]:
        """Tools of all active extensions, approval-gated where required."""
        tools = await self.aggregator.collect_tools()
        return {
            name: self.gate.wrap_tool(tool) if tool.requires_approval else tool
            for name, tool in tools.items()
        }

    async def _fire(self, hook_name: HookName, payload: dict[str, Any]) -> None:
        try:
            await self.manager.execute_hook(hook_name, payload)
        except HookExecutionError as e:
            logger.error(f"Hook {hook_name.value} failed: {e}")

    async def execute_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        session_id: Optional[str] = None,
        call_context: Optional[dict[str, Any]] = None,
    ) -> ToolResult:
        """
        Run one tool call through hooks, middleware and the approval gate.

        Returns:
            ToolResult; denial and tool errors become failed results
        """
        tools = await self.get_tools()
        tool = tools.get(tool_name)
        if tool is None:
            return ToolResult.failure(f"Unknown tool: {tool_name}")

        if call_context is None:
            call_context = {"session_id": session_id}
        elif session_id is not None and call_context.get("session_id") != session_id:
            call_context = {**call_context, "session_id": session_id}

        middleware = await self.aggregator.collect_middleware()

        await self._fire(
            HookName.AGENT_BEFORE_TOOL_CALL,
            {"tool_name": tool_name, "params": params, "session_id": session_id},
        )
        try:
            await middleware.before_tool_call(tool_name, params)
        except HookExecutionError as e:
            logger.error(f"Middleware before_tool_call failed for {tool_name}: {e}")

        try:
            data = await call_maybe_async(tool.execute, params, call_context)
            result = data if isinstance(data, ToolResult) else ToolResult.ok(data)
        except ExecutionDenied as e:
            result = ToolResult.failure(str(e), denied=True)
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            result = ToolResult.failure(f"Tool {tool_name} failed: {e}")

        await self._fire(
            HookName.AGENT_AFTER_TOOL_CALL,
            {
                "tool_name": tool_name,
                "params": params,
                "session_id": session_id,
                "result": result,
            },
        )
        try:
            await middleware.after_tool_call(tool_name, params, result)
        except HookExecutionError as e:
            logger.error(f"Middleware after_tool_call failed for {tool_name}: {e}")

        return result

    async def before_generate(self, request: dict[str, Any]) -> None:
        await self._fire(HookName.AGENT_BEFORE_GENERATE, {"request": request})
        middleware = await self.aggregator.collect_middleware()
        try:
            await middleware.before_generate(request)
        except HookExecutionError as e:
            logger.error(f"Middleware before_generate failed: {e}")

    async def after_generate(self, request: dict[str, Any], response: Any) -> None:
        await self._fire(
            HookName.AGENT_AFTER_GENERATE, {"request": request, "response": response}
        )
        middleware = await self.aggregator.collect_middleware()
        try:
            await middleware.after_generate(request, response)
        except HookExecutionError as e:
            logger.error(f"Middleware after_generate failed: {e}")

    async def shutdown(self) -> list[tuple[str, Exception]]:
        """Deactivate every extension (dependents first) and release the store."""
        failures = await self.manager.shutdown()
        if isinstance(self.gate.store, RedisDecisionStore):
            await close_redis_client()
        logger.info("Agent host shut down")
        return failures


def _build_strategy(
    policy: ApprovalPolicy, strategy: Optional[ApprovalStrategy]
) -> ApprovalStrategy:
    if policy.configured:
        return PolicyApprovalStrategy(
            allow=policy.allow,
            deny=policy.deny,
            scope=policy.scope,
            fallback=strategy,
        )
    return strategy or DenyAllStrategy()


def build_host(
    config_path: Optional[Union[str, Path]] = None,
    store: Optional[DecisionStore] = None,
    strategy: Optional[ApprovalStrategy] = None,
    registry: Optional[ExtensionRegistry] = None,
    workspace_root: Optional[Union[str, Path]] = None,
) -> AgentHost:
    """
    Assemble an AgentHost from host configuration.

    Args:
        config_path: Host YAML (defaults to Config.HOST_CONFIG_PATH)
        store: Decision store (defaults to the configured backend)
        strategy: Interactive strategy; a configured policy falls back to it
        registry: Extension factory registry (defaults to the module registry)
        workspace_root: Workspace directory for extension contexts
    """
    config = load_host_config(config_path)

    manager = ExtensionManager(workspace_root=workspace_root)
    audit = AuditLogger(config.audit_log_path) if config.audit_enabled else None
    gate = ApprovalGate(
        store=store or create_decision_store(config.decision_store),
        strategy=_build_strategy(config.approval, strategy),
        hooks=manager.hooks,
        audit=audit,
    )
    return AgentHost(
        manager=manager,
        gate=gate,
        aggregator=CapabilityAggregator(manager),
        registry=registry,
        config=config,
    )
