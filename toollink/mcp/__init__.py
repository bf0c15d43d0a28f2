"""
ToolLink MCP module.

A minimal Model Context Protocol client: process transport, handshake,
tool discovery and tool invocation. Resources, prompts and cancellation are
not part of this surface.
"""

from toollink.mcp.client import (
    PROTOCOL_VERSION,
    ClientState,
    ClientStateError,
    MCPError,
    ToolProviderClient,
)
from toollink.mcp.registry import ProviderStatus, ToolProviderRegistry, UnknownToolError
from toollink.mcp.schema import LaunchSpec, ToolDescriptor, content_to_text
from toollink.mcp.transport import (
    DEFAULT_TIMEOUT,
    ConnectionState,
    MCPTransportError,
    ProtocolError,
    RequestTimeoutError,
    SpawnError,
    StdioTransport,
    TransportClosedError,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "PROTOCOL_VERSION",
    "ClientState",
    "ClientStateError",
    "ConnectionState",
    "LaunchSpec",
    "MCPError",
    "MCPTransportError",
    "ProtocolError",
    "ProviderStatus",
    "RequestTimeoutError",
    "SpawnError",
    "StdioTransport",
    "ToolDescriptor",
    "ToolProviderClient",
    "ToolProviderRegistry",
    "TransportClosedError",
    "UnknownToolError",
    "content_to_text",
]
