"""
MCP tool-provider client.

Runs the ``initialize`` handshake over a :class:`StdioTransport`, caches the
provider's tools, invokes them, and adapts them to function-calling schemas.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from toollink import __version__
from toollink.mcp.schema import LaunchSpec, ToolDescriptor
from toollink.mcp.transport import DEFAULT_TIMEOUT, ConnectionState, ProtocolError, StdioTransport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "toollink"


class MCPError(Exception):
    """Raised for client-level MCP misuse or lookup failures."""


class ClientStateError(MCPError):
    """An operation was attempted in a state that does not allow it."""


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    TERMINATED = "terminated"


class ToolProviderClient:
    """
    Client for a single MCP tool provider process.

    Example:
        >>> spec = LaunchSpec(command="uvx", args=["mcp-server-time"])
        >>> async with ToolProviderClient(spec, name="time") as client:
        ...     content = await client.call_tool("get_current_time", {"timezone": "UTC"})

    ``call_tool`` and ``refresh_tools`` are only allowed once ``connect()`` has
    finished; before that they raise :class:`ClientStateError` instead of
    queueing.
    """

    def __init__(
        self,
        spec: LaunchSpec,
        name: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client_name: str = CLIENT_NAME,
        client_version: str = __version__,
        protocol_version: str = PROTOCOL_VERSION,
    ):
        self.spec = spec
        self.name = name or spec.command
        self.client_name = client_name
        self.client_version = client_version
        self.protocol_version = protocol_version
        self._transport = StdioTransport(spec, timeout=timeout)
        self._state = ClientState.UNINITIALIZED
        self._tools: Tuple[ToolDescriptor, ...] = ()
        self.server_info: Dict[str, Any] = {}

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> ClientState:
        if self._state is ClientState.READY and self._transport.state is ConnectionState.TERMINATED:
            return ClientState.TERMINATED
        return self._state

    @property
    def initialized(self) -> bool:
        return self.state is ClientState.READY

    @property
    def tools(self) -> Tuple[ToolDescriptor, ...]:
        """Snapshot of the last fetched tool list."""
        return self._tools

    @property
    def transport(self) -> StdioTransport:
        return self._transport

    def has_tool(self, name: str) -> bool:
        return any(tool.name == name for tool in self._tools)

    def _require_ready(self, operation: str) -> None:
        state = self.state
        if state is not ClientState.READY:
            raise ClientStateError(f"Cannot {operation} on MCP provider '{self.name}' while {state.value}")

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Start the provider, perform the handshake and fetch its tools."""
        if self._state is not ClientState.UNINITIALIZED:
            raise ClientStateError(
                f"MCP provider '{self.name}' is {self.state.value}; create a new client to reconnect"
            )

        self._state = ClientState.INITIALIZING
        try:
            await self._transport.spawn()
            result = await self._transport.send_request("initialize", {
                "protocolVersion": self.protocol_version,
                "clientInfo": {"name": self.client_name, "version": self.client_version},
                "capabilities": {"tools": {}},
            })
            if isinstance(result, dict):
                self.server_info = result.get("serverInfo") or {}
            self._transport.mark_initialized()
            await self._fetch_tools()
            self._state = ClientState.READY
            logger.info("Connected to MCP provider '%s'", self.name)
        except BaseException:
            self._state = ClientState.TERMINATED
            await self._transport.close()
            raise

    async def close(self) -> None:
        """Stop the provider process. The client cannot be reused afterwards."""
        self._state = ClientState.TERMINATED
        await self._transport.close()

    async def __aenter__(self) -> "ToolProviderClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── MCP Protocol ──────────────────────────────────────────────────────

    async def refresh_tools(self) -> List[ToolDescriptor]:
        """Re-fetch the provider's tool list, replacing the cache wholesale."""
        self._require_ready("refresh tools")
        return await self._fetch_tools()

    async def _fetch_tools(self) -> List[ToolDescriptor]:
        result = await self._transport.send_request("tools/list", {})

        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if raw_tools is None:
            raw_tools = []
        elif not isinstance(raw_tools, list):
            raise ProtocolError(0, f"MCP provider '{self.name}' sent a non-list 'tools' field: {raw_tools!r}")

        tools: List[ToolDescriptor] = []
        for raw in raw_tools:
            try:
                tools.append(ToolDescriptor.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid tool from MCP provider '%s': %s", self.name, exc)

        self._tools = tuple(tools)
        logger.info("Loaded %d tools from MCP provider '%s'", len(self._tools), self.name)
        return list(self._tools)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Invoke a tool and return the provider's ``content`` array."""
        self._require_ready(f"call tool '{name}'")
        logger.debug("Calling tool '%s' on MCP provider '%s'", name, self.name)
        result = await self._transport.send_request("tools/call", {
            "name": name,
            "arguments": arguments or {},
        })
        if not isinstance(result, dict):
            return []
        return result.get("content") or []

    # ── Adaptation ────────────────────────────────────────────────────────

    def to_function_schemas(self) -> List[Dict[str, Any]]:
        """Cached tools in the ``{"type": "function", ...}`` calling shape."""
        return [tool.to_function_schema() for tool in self._tools]
