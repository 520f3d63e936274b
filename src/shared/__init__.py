"""Shared models, configuration and logging for the MCP client library."""

from shared.models import (
    ClientInfo,
    ClientOptions,
    ClientResponse,
    ContentBlock,
    JSONRPCError,
    JSONRPCRequest,
    JSONRPCResponse,
    ResponseStatus,
    ToolCallResult,
    ToolDescriptor,
)
from shared.config import ClientSettings, Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ClientInfo",
    "ClientOptions",
    "ClientResponse",
    "ContentBlock",
    "JSONRPCError",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "ResponseStatus",
    "ToolCallResult",
    "ToolDescriptor",
    "ClientSettings",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
