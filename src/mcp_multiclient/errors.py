"""Exception taxonomy for the MCP client library.

Sessions and the codec raise these. The client facade and the registry
catch them at their boundary and turn them into ClientResponse objects,
using ``error_code`` as the machine-readable status.
"""

from typing import Any, Optional


class MCPClientError(Exception):
    """Base exception for MCP Client errors."""
    error_code = "CLIENT_ERROR"


class TransportError(MCPClientError):
    """The endpoint could not be reached or answered with a non-2xx status."""
    error_code = "TRANSPORT_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MCPTimeoutError(TransportError):
    """An exchange did not complete within the configured timeout."""
    error_code = "TIMEOUT"


class ParseError(MCPClientError):
    """The response body held no usable envelope or malformed JSON."""
    error_code = "PARSE_ERROR"


class ProtocolError(MCPClientError):
    """The response envelope carried a JSON-RPC error object."""
    error_code = "PROTOCOL_ERROR"

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"MCP Error: {message} (Code: {code})")
        self.code = code
        self.message = message
        self.data = data


class InitializationError(MCPClientError):
    """The initialize handshake failed; the session stays uninitialized."""
    error_code = "INITIALIZATION_ERROR"


class ToolCallError(MCPClientError):
    """The server rejected a tools/call request."""
    error_code = "TOOL_CALL_ERROR"

    def __init__(self, tool_name: str, error: ProtocolError) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {error}")
        self.tool_name = tool_name
        self.code = error.code
        self.data = error.data


class NotFoundError(MCPClientError):
    """No known endpoint can serve the requested tool or server."""
    error_code = "NOT_FOUND"


class AggregationError(MCPClientError):
    """Every endpoint failed during a multi-endpoint listing."""
    error_code = "AGGREGATION_ERROR"
