"""Process-wide registry of MCP sessions keyed by endpoint.

Lets simple call sites use tools by endpoint string alone:

    tools = await get_tools("http://localhost:8000/mcp")
    result = await call_tool("http://localhost:8000/mcp", "greeting", {"name": "Ada"})

The module functions delegate to a default ClientRegistry. Applications
that want to own the lifecycle construct their own registry at startup
and install it with set_default_registry().
"""

from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.logging import get_logger
from shared.models import ClientOptions, ClientResponse, ToolCallResult
from mcp_multiclient.errors import InitializationError, MCPClientError
from mcp_multiclient.session import MCPSession
from mcp_multiclient.singleflight import SingleFlight

logger = get_logger(__name__)


class ClientRegistry:
    """
    Registry holding at most one session per endpoint.

    Creation and initialization are tracked separately per endpoint, so
    work against one endpoint never waits on another.
    """

    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.options = options
        self._transport = transport
        self._sessions: dict[str, MCPSession] = {}
        self._initialized: set[str] = set()
        self._initializing = SingleFlight()

    @property
    def endpoints(self) -> list[str]:
        return list(self._sessions)

    def is_initialized(self, endpoint: str) -> bool:
        return endpoint in self._initialized

    def session_for(self, endpoint: str) -> MCPSession:
        """Get the endpoint's session, creating it if absent."""
        session = self._sessions.get(endpoint)
        if session is None:
            options = self.options or get_settings().client.to_options()
            session = MCPSession(endpoint, options, transport=self._transport)
            self._sessions[endpoint] = session
            logger.debug("Session created", endpoint=endpoint)
        return session

    async def ensure(self, endpoint: str) -> MCPSession:
        """
        Create and initialize the endpoint's session if needed.

        Concurrent callers for the same endpoint share one handshake.
        If the registry is reset while the handshake is in flight, the
        orphaned session is dropped and the endpoint's current session
        is initialized instead.

        Raises:
            InitializationError: If the handshake fails
        """
        while True:
            session = self.session_for(endpoint)
            if endpoint in self._initialized:
                return session

            try:
                await self._initializing.do(
                    endpoint, lambda session=session: self._initialize(endpoint, session)
                )
            except InitializationError:
                if self._sessions.get(endpoint) is session:
                    raise

            if self._sessions.get(endpoint) is session:
                return session
            logger.debug("Session replaced during initialization", endpoint=endpoint)

    async def get_tools(self, endpoint: str) -> ClientResponse:
        """List the tools of one endpoint."""
        try:
            session = await self.ensure(endpoint)
            tools = await session.list_tools()
        except MCPClientError as e:
            return ClientResponse.failure(e, data=[], server_url=endpoint)
        return ClientResponse.success(tools, server_url=endpoint)

    async def call_tool(
        self,
        endpoint: str,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> ClientResponse:
        """Call a tool on one endpoint."""
        try:
            session = await self.ensure(endpoint)
            result = await session.call_tool(tool_name, arguments)
        except MCPClientError as e:
            return ClientResponse.failure(e, data=ToolCallResult(), server_url=endpoint)
        return ClientResponse.success(result, server_url=endpoint)

    def reset_all(self) -> None:
        """Tear down every session and forget all endpoints."""
        for session in self._sessions.values():
            session.reset()
        self._sessions.clear()
        self._initialized.clear()
        self._initializing.clear()
        logger.info("Registry reset")

    async def _initialize(self, endpoint: str, session: MCPSession) -> None:
        await session.ensure_initialized()
        # A reset while the handshake was in flight orphans this session
        if self._sessions.get(endpoint) is session:
            self._initialized.add(endpoint)


_default_registry: Optional[ClientRegistry] = None


def get_default_registry() -> ClientRegistry:
    """Get the default registry instance, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ClientRegistry()
    return _default_registry


def set_default_registry(registry: Optional[ClientRegistry]) -> None:
    """Install the registry used by the module functions (None restores lazy creation)."""
    global _default_registry
    _default_registry = registry


async def get_tools(endpoint: str) -> ClientResponse:
    """List tools of an endpoint through the default registry."""
    return await get_default_registry().get_tools(endpoint)


async def call_tool(
    endpoint: str,
    tool_name: str,
    arguments: Optional[dict[str, Any]] = None
) -> ClientResponse:
    """Call a tool on an endpoint through the default registry."""
    return await get_default_registry().call_tool(endpoint, tool_name, arguments)


def reset_all() -> None:
    """Reset the default registry."""
    get_default_registry().reset_all()
