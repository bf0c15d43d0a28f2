"""Tests for the provider registry."""

import pytest

from toollink.mcp.client import ClientState
from toollink.mcp.registry import ToolProviderRegistry, UnknownToolError
from toollink.validation.config import Config, MCPServerConfig

BROKEN = MCPServerConfig(command="/nonexistent/toollink-provider")


class TestConnectAll:
    @pytest.mark.asyncio
    async def test_failure_is_not_fatal(self, stub_server):
        registry = ToolProviderRegistry({"broken": BROKEN, "stub": stub_server()})
        try:
            failures = await registry.connect_all()

            assert list(failures) == ["broken"]
            assert registry.get("stub").initialized
        finally:
            await registry.close_all()

    @pytest.mark.asyncio
    async def test_malformed_provider_does_not_stop_the_rest(self, stub_server):
        registry = ToolProviderRegistry({
            "bad": stub_server("--bad-tools"),
            "good": stub_server(),
        })
        async with registry:
            report = {status.name: status for status in registry.status()}
            content = await registry.call_tool("echo", {"text": "ok"})

        assert report["bad"].initialized is False
        assert "non-list 'tools'" in report["bad"].error
        assert report["good"].initialized is True
        assert content == [{"type": "text", "text": "ok"}]

    @pytest.mark.asyncio
    async def test_interrupted_startup_closes_connected_providers(self, stub_server, monkeypatch):
        connect_all = ToolProviderRegistry.connect_all

        async def interrupted(self):
            await connect_all(self)
            raise RuntimeError("startup interrupted")

        monkeypatch.setattr(ToolProviderRegistry, "connect_all", interrupted)
        registry = ToolProviderRegistry({"stub": stub_server()})

        with pytest.raises(RuntimeError, match="startup interrupted"):
            async with registry:
                pass

        assert registry.get("stub").state is ClientState.TERMINATED

    @pytest.mark.asyncio
    async def test_status(self, stub_server):
        registry = ToolProviderRegistry({
            "stub": stub_server(),
            "broken": BROKEN,
            "off": stub_server(enabled=False),
        })
        async with registry:
            report = {status.name: status for status in registry.status()}

        assert report["stub"].initialized is True
        assert report["stub"].tool_names == ["echo", "env", "inspect", "crash"]
        assert report["stub"].tool_count == 4
        assert report["stub"].error is None

        assert report["broken"].initialized is False
        assert report["broken"].tool_count == 0
        assert "Failed to start" in report["broken"].error

        assert report["off"].initialized is False
        assert report["off"].error is None
        assert registry.get("off") is None

    @pytest.mark.asyncio
    async def test_close_all(self, stub_server):
        async with ToolProviderRegistry({"stub": stub_server()}) as registry:
            client = registry.get("stub")

        assert client.state is ClientState.TERMINATED


class TestDispatch:
    @pytest.mark.asyncio
    async def test_routes_by_tool_name(self, stub_server):
        registry = ToolProviderRegistry({
            "alpha": stub_server("--prefix", "alpha_"),
            "beta": stub_server("--prefix", "beta_"),
        })
        async with registry:
            assert registry.find_provider("beta_echo") is registry.get("beta")
            content = await registry.call_tool("beta_echo", {"text": "routed"})

        assert content == [{"type": "text", "text": "routed"}]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, stub_server):
        async with ToolProviderRegistry({"stub": stub_server()}) as registry:
            with pytest.raises(UnknownToolError):
                await registry.call_tool("missing", {})

    @pytest.mark.asyncio
    async def test_function_schemas_from_ready_providers(self, stub_server):
        registry = ToolProviderRegistry({
            "alpha": stub_server("--prefix", "alpha_"),
            "broken": BROKEN,
            "beta": stub_server("--prefix", "beta_", "--no-tools"),
        })
        async with registry:
            names = [schema["function"]["name"] for schema in registry.function_schemas()]

        assert names == ["alpha_echo", "alpha_env", "alpha_inspect", "alpha_crash"]


class TestAddRemove:
    @pytest.mark.asyncio
    async def test_add_replaces_existing(self, stub_server):
        registry = ToolProviderRegistry()
        try:
            first = await registry.add("stub", stub_server())
            second = await registry.add("stub", stub_server("--prefix", "v2_"))

            assert first.state is ClientState.TERMINATED
            assert registry.get("stub") is second
            assert second.has_tool("v2_echo")
        finally:
            await registry.close_all()

    @pytest.mark.asyncio
    async def test_remove(self, stub_server):
        registry = ToolProviderRegistry()
        client = await registry.add("stub", stub_server())

        assert await registry.remove("stub") is True
        assert await registry.remove("stub") is False
        assert client.state is ClientState.TERMINATED
        assert registry.status() == []


class TestFromConfig:
    def test_settings_carry_over(self):
        config = Config(global_config={
            "mcp": {
                "timeout": 5,
                "client_name": "chat",
                "servers": {
                    "on": {"command": "a"},
                    "off": {"command": "b", "enabled": False},
                },
            }
        })

        registry = ToolProviderRegistry.from_config(config)

        assert registry.timeout == 5
        assert registry.client_name == "chat"
        assert [status.name for status in registry.status()] == ["on"]
