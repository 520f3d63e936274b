"""MCP Client - Tool discovery and invocation across MCP servers.

Sessions handle the per-server handshake and raise on failure.
The MCPClient facade and the process-wide registry wrap those
sessions and report outcomes as ClientResponse objects.
"""

from mcp_multiclient.client import MCPClient, create_client, mcp_call, mcp_get_tools
from mcp_multiclient.errors import (
    AggregationError,
    InitializationError,
    MCPClientError,
    MCPTimeoutError,
    NotFoundError,
    ParseError,
    ProtocolError,
    ToolCallError,
    TransportError,
)
from mcp_multiclient.registry import (
    ClientRegistry,
    call_tool,
    get_default_registry,
    get_tools,
    reset_all,
    set_default_registry,
)
from mcp_multiclient.session import MCPSession, SessionState

__all__ = [
    "MCPClient",
    "create_client",
    "mcp_call",
    "mcp_get_tools",
    "MCPSession",
    "SessionState",
    "ClientRegistry",
    "get_default_registry",
    "set_default_registry",
    "get_tools",
    "call_tool",
    "reset_all",
    "MCPClientError",
    "TransportError",
    "MCPTimeoutError",
    "ParseError",
    "ProtocolError",
    "InitializationError",
    "ToolCallError",
    "NotFoundError",
    "AggregationError",
]
