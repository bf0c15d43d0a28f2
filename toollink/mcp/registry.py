"""Provider registry: connects configured MCP providers and routes tool calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from toollink import __version__
from toollink.mcp.client import CLIENT_NAME, PROTOCOL_VERSION, MCPError, ToolProviderClient
from toollink.mcp.transport import DEFAULT_TIMEOUT
from toollink.validation.config import Config, MCPServerConfig

logger = logging.getLogger(__name__)


class UnknownToolError(MCPError):
    """No connected provider advertises the requested tool."""


@dataclass
class ProviderStatus:
    """What listing commands show for one provider."""

    name: str
    initialized: bool
    tool_names: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def tool_count(self) -> int:
        return len(self.tool_names)


class ToolProviderRegistry:
    """
    Owns one :class:`ToolProviderClient` per configured provider.

    A provider that fails to connect is logged and remembered, never fatal to
    the others. Tool calls are routed to the first ready provider whose
    cached tool list contains the name.
    """

    def __init__(
        self,
        servers: Optional[Dict[str, MCPServerConfig]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client_name: str = CLIENT_NAME,
        client_version: str = __version__,
        protocol_version: str = PROTOCOL_VERSION,
    ):
        self._servers: Dict[str, MCPServerConfig] = dict(servers or {})
        self._clients: Dict[str, ToolProviderClient] = {}
        self._errors: Dict[str, str] = {}
        self.timeout = timeout
        self.client_name = client_name
        self.client_version = client_version
        self.protocol_version = protocol_version

    @classmethod
    def from_config(cls, config: Config) -> "ToolProviderRegistry":
        mcp = config.merged.mcp
        return cls(
            servers=config.get_servers(),
            timeout=mcp.timeout,
            client_name=mcp.client_name,
            client_version=mcp.client_version,
            protocol_version=mcp.protocol_version,
        )

    # ── Connection Management ─────────────────────────────────────────────

    @property
    def clients(self) -> Dict[str, ToolProviderClient]:
        return dict(self._clients)

    def get(self, name: str) -> Optional[ToolProviderClient]:
        return self._clients.get(name)

    def _build_client(self, name: str, server: MCPServerConfig) -> ToolProviderClient:
        return ToolProviderClient(
            server.to_launch_spec(),
            name=name,
            timeout=self.timeout,
            client_name=self.client_name,
            client_version=self.client_version,
            protocol_version=self.protocol_version,
        )

    async def add(self, name: str, server: MCPServerConfig) -> ToolProviderClient:
        """Connect one provider, replacing any client already under ``name``."""
        previous = self._clients.pop(name, None)
        if previous is not None:
            await previous.close()
        self._servers[name] = server

        client = self._build_client(name, server)
        self._clients[name] = client
        try:
            await client.connect()
        except Exception as exc:
            self._errors[name] = str(exc)
            raise
        self._errors.pop(name, None)
        return client

    async def connect_all(self) -> Dict[str, str]:
        """Connect every enabled provider. Returns ``{name: error}`` for failures."""
        failures: Dict[str, str] = {}
        for name, server in list(self._servers.items()):
            if not server.enabled:
                continue
            try:
                await self.add(name, server)
            except Exception as exc:
                logger.error("MCP provider '%s' failed to connect: %s", name, exc)
                failures[name] = str(exc)
        return failures

    async def remove(self, name: str) -> bool:
        """Close and forget a provider."""
        self._servers.pop(name, None)
        self._errors.pop(name, None)
        client = self._clients.pop(name, None)
        if client is None:
            return False
        await client.close()
        return True

    async def close_all(self) -> None:
        for client in self._clients.values():
            await client.close()

    async def __aenter__(self) -> "ToolProviderRegistry":
        try:
            await self.connect_all()
        except BaseException:
            await self.close_all()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()

    # ── Tools ─────────────────────────────────────────────────────────────

    def function_schemas(self) -> List[Dict[str, Any]]:
        """Function-calling schemas from every ready provider."""
        schemas: List[Dict[str, Any]] = []
        for client in self._clients.values():
            if client.initialized:
                schemas.extend(client.to_function_schemas())
        return schemas

    def find_provider(self, tool_name: str) -> Optional[ToolProviderClient]:
        for client in self._clients.values():
            if client.initialized and client.has_tool(tool_name):
                return client
        return None

    async def call_tool(self, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Route a tool call to the provider that advertises it."""
        client = self.find_provider(tool_name)
        if client is None:
            raise UnknownToolError(f"No connected MCP provider offers tool '{tool_name}'")
        return await client.call_tool(tool_name, arguments)

    # ── Reporting ─────────────────────────────────────────────────────────

    def status(self) -> List[ProviderStatus]:
        names = list(self._servers)
        names.extend(name for name in self._clients if name not in self._servers)

        report: List[ProviderStatus] = []
        for name in names:
            client = self._clients.get(name)
            initialized = client is not None and client.initialized
            report.append(ProviderStatus(
                name=name,
                initialized=initialized,
                tool_names=[tool.name for tool in client.tools] if initialized else [],
                error=self._errors.get(name),
            ))
        return report
