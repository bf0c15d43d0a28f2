"""
ToolLink - MCP tool providers for a command-line chat client.

Launches Model Context Protocol provider processes, speaks JSON-RPC 2.0 to
them over stdio, and exposes their tools as function-calling schemas.

Architecture:
- Transport owns one provider process and correlates responses by id
- Client performs the handshake, caches tools, and invokes them
- Registry connects every configured provider and routes calls by tool name
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from toollink.mcp.client import ToolProviderClient
from toollink.mcp.registry import ToolProviderRegistry
from toollink.mcp.schema import LaunchSpec, ToolDescriptor

__all__ = [
    "LaunchSpec",
    "ToolDescriptor",
    "ToolProviderClient",
    "ToolProviderRegistry",
    "__version__",
]
