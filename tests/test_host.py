"""Tests for host configuration loading and the AgentHost facade."""

from unittest.mock import AsyncMock, Mock

import pytest
import yaml

from agent_host import build_host
from agent_host.extensions import Extension, ExtensionDependencies, ExtensionMiddleware, ExtensionRegistry
from agent_host.governance import (
    ApprovalScope,
    CallbackApprovalStrategy,
    DenyAllStrategy,
    InMemoryDecisionStore,
    PolicyApprovalStrategy,
)
from agent_host.host import load_host_config
from agent_host.tooling import Tool, ToolResult
from tests.conftest import read_audit_log


def write_config(tmp_path, data) -> str:
    path = tmp_path / "agent_host.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(data, f)
    return str(path)


class CallLog(ExtensionMiddleware):
    def __init__(self, log):
        self.log = log

    async def before_tool_call(self, tool_name, params):
        self.log.append(("middleware:before", tool_name))

    async def after_tool_call(self, tool_name, params, result):
        self.log.append(("middleware:after", tool_name, result.success))

    async def before_generate(self, request):
        self.log.append(("middleware:before_generate", request["prompt"]))


def files_extension(log: list):
    """Factory for an extension providing one gated and one ungated tool."""

    def factory(config):
        tools = [
            Tool(
                name="delete_file",
                description="Delete a file",
                execute=lambda params, call_context: f"deleted {params['path']}",
            ),
            Tool(
                name="read_file",
                description="Read a file",
                execute=lambda params, call_context: "contents",
                requires_approval=False,
            ),
            Tool(
                name="explode",
                description="Always fails",
                execute=Mock(side_effect=RuntimeError("disk on fire")),
                requires_approval=False,
            ),
        ]

        return Extension(
            name="files",
            version="1.0.0",
            get_tools=lambda ctx: tools,
            get_middleware=lambda ctx: CallLog(log),
            hooks={
                "agent:before_tool_call": lambda ctx: log.append(("hook:before", ctx["tool_name"])),
                "agent:after_tool_call": lambda ctx: log.append(("hook:after", ctx["tool_name"])),
            },
            config=config,
        )

    return factory


def audit_extension(config):
    return Extension(
        name="audit",
        version="1.0.0",
        dependencies=ExtensionDependencies(extensions={"files": "^1.0.0"}),
    )


@pytest.fixture
def log():
    return []


@pytest.fixture
def registry(log):
    registry = ExtensionRegistry()
    registry.register("files", files_extension(log))
    registry.register("audit", audit_extension)
    return registry


@pytest.fixture
def host_config(tmp_path):
    return write_config(
        tmp_path,
        {
            "extensions": [{"name": "audit"}, {"name": "files", "config": {"root": "/tmp"}}],
            "audit": {"path": str(tmp_path / "audit.jsonl")},
        },
    )


class TestLoadHostConfig:
    """Tests for YAML host configuration."""

    def test_missing_file(self, tmp_path):
        config = load_host_config(tmp_path / "absent.yaml")
        assert config.extensions == []
        assert config.approval.configured is False

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_host_config(path).extensions == []

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("extensions: [unclosed")
        assert load_host_config(path).extensions == []

    def test_full_config(self, tmp_path):
        path = write_config(
            tmp_path,
            {
                "extensions": [
                    "plain",
                    {"name": "files", "enabled": False, "config": {"root": "/srv"}},
                    {"config": {"missing": "name"}},
                ],
                "approval": {"allow": ["read_*"], "deny": ["rm_*"], "scope": "session"},
                "decision_store": "memory",
                "audit": {"enabled": False},
            },
        )

        config = load_host_config(path)

        assert [(e.name, e.enabled) for e in config.extensions] == [("plain", True), ("files", False)]
        assert config.extensions[1].config == {"root": "/srv"}
        assert config.approval.allow == ["read_*"]
        assert config.approval.scope == ApprovalScope.SESSION
        assert config.decision_store == "memory"
        assert config.audit_enabled is False

    def test_invalid_scope_ignored(self, tmp_path):
        path = write_config(tmp_path, {"approval": {"allow": ["*"], "scope": "forever"}})
        assert load_host_config(path).approval.configured is False


class TestBuildHost:
    """Tests for host assembly."""

    def test_defaults_to_deny_all(self, tmp_path, registry):
        host = build_host(write_config(tmp_path, {"audit": {"enabled": False}}), registry=registry)
        assert isinstance(host.gate.strategy, DenyAllStrategy)
        assert isinstance(host.gate.store, InMemoryDecisionStore)

    def test_policy_wraps_interactive_strategy(self, tmp_path, registry):
        interactive = CallbackApprovalStrategy(Mock(return_value=True))
        path = write_config(tmp_path, {"approval": {"allow": ["read_*"]}, "audit": {"enabled": False}})

        host = build_host(path, strategy=interactive, registry=registry)

        assert isinstance(host.gate.strategy, PolicyApprovalStrategy)
        assert host.gate.strategy.fallback is interactive

    def test_approval_hooks_share_manager_dispatcher(self, tmp_path, registry):
        host = build_host(write_config(tmp_path, {"audit": {"enabled": False}}), registry=registry)
        assert host.gate._hooks is host.manager.hooks


@pytest.mark.integration
class TestAgentHost:
    """End-to-end tests through the host facade."""

    @pytest.mark.asyncio
    async def test_start_registers_then_activates(self, host_config, registry, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)

        active = await host.start()

        assert active == ["files", "audit"]
        assert host.manager.get_context("files").config == {"root": "/tmp"}

    @pytest.mark.asyncio
    async def test_only_gated_tools_are_wrapped(self, host_config, registry, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)
        await host.start()

        tools = await host.get_tools()
        raw = await host.aggregator.collect_tools()

        assert sorted(tools) == ["delete_file", "explode", "read_file"]
        assert tools["read_file"] is raw["read_file"]
        assert tools["delete_file"].execute is not raw["delete_file"].execute

    @pytest.mark.asyncio
    async def test_denied_call_becomes_failed_result(self, host_config, registry, log, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)
        await host.start()

        result = await host.execute_tool("delete_file", {"path": "/tmp/x"}, session_id="s1")

        assert isinstance(result, ToolResult)
        assert result.success is False
        assert result.error == "Tool execution denied: delete_file"
        assert result.metadata == {"denied": True}
        assert log == [
            ("hook:before", "delete_file"),
            ("middleware:before", "delete_file"),
            ("hook:after", "delete_file"),
            ("middleware:after", "delete_file", False),
        ]
        events = [r["event"] for r in read_audit_log(tmp_path / "audit.jsonl")]
        assert events[-1] == "approval_denied"

    @pytest.mark.asyncio
    async def test_session_approval_flow(self, host_config, registry, tmp_path):
        strategy = CallbackApprovalStrategy(AsyncMock(return_value="session"))
        host = build_host(host_config, strategy=strategy, registry=registry, workspace_root=tmp_path)
        await host.start()

        first = await host.execute_tool("delete_file", {"path": "/tmp/x"}, session_id="s1")
        second = await host.execute_tool("delete_file", {"path": "/tmp/y"}, session_id="s1")

        assert first.data == "deleted /tmp/x"
        assert second.data == "deleted /tmp/y"
        strategy._callback.assert_awaited_once()
        records = await host.gate.get_auto_approved_tools("s1", "session")
        assert [r.tool_name for r in records] == ["delete_file"]

    @pytest.mark.asyncio
    async def test_ungated_and_failing_tools(self, host_config, registry, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)
        await host.start()

        assert (await host.execute_tool("read_file", {})).data == "contents"

        failed = await host.execute_tool("explode", {})
        assert failed.success is False
        assert "disk on fire" in failed.error

        missing = await host.execute_tool("nope", {})
        assert missing.error == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_generation_hooks_and_middleware(self, host_config, registry, log, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)
        seen = []
        host.manager.hooks.register("agent:before_generate", "observer", lambda ctx: seen.append(ctx["request"]))
        host.manager.hooks.register("agent:after_generate", "observer", Mock(side_effect=RuntimeError("x")))
        await host.start()

        await host.before_generate({"prompt": "hi"})
        await host.after_generate({"prompt": "hi"}, {"text": "hello"})

        assert seen == [{"prompt": "hi"}]
        assert ("middleware:before_generate", "hi") in log

    @pytest.mark.asyncio
    async def test_shutdown_dependents_first(self, host_config, registry, tmp_path):
        host = build_host(host_config, registry=registry, workspace_root=tmp_path)
        await host.start()
        order = []
        host.manager.events.subscribe("extension:deactivated", lambda data: order.append(data["extension_id"]))

        failures = await host.shutdown()

        assert failures == []
        assert order == ["audit", "files"]
        assert host.manager.active_extensions() == []
