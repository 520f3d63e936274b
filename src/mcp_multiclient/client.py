"""MCP Client facade over one or more MCP servers.

Keeps one session per endpoint, aggregates tool listings across
endpoints and routes tool calls to the endpoint that offers the tool.
Public operations return ClientResponse objects instead of raising.
"""

import asyncio
from typing import Any, Optional, Union

import httpx

from shared.config import get_settings
from shared.logging import get_logger
from shared.models import ClientInfo, ClientOptions, ClientResponse, ToolCallResult, ToolDescriptor
from mcp_multiclient.errors import AggregationError, MCPClientError, NotFoundError
from mcp_multiclient.session import MCPSession
from mcp_multiclient.singleflight import SingleFlight

logger = get_logger(__name__)


class MCPClient:
    """
    Client for one or more MCP servers.

    Provides methods for:
    - Connecting to every configured endpoint (partial connectivity is fine)
    - Listing tools across endpoints, tagged with their origin
    - Calling a tool on whichever endpoint offers it

    When several endpoints offer the same tool name, the endpoint
    registered first wins.
    """

    def __init__(
        self,
        endpoints: Union[str, list[str]],
        options: Optional[ClientOptions] = None,
        *,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        client_info: Optional[ClientInfo] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize MCP Client.

        Args:
            endpoints: MCP server URL or list of URLs
            options: Client options; defaults come from settings
            timeout: Override of options.timeout (seconds)
            retries: Override of options.retries
            client_info: Override of options.client_info
            transport: Optional httpx transport (used by tests)
        """
        urls = [endpoints] if isinstance(endpoints, str) else list(endpoints)
        self._endpoints: list[str] = list(dict.fromkeys(urls))

        options = options or get_settings().client.to_options()
        overrides = {
            key: value
            for key, value in (
                ("timeout", timeout),
                ("retries", retries),
                ("client_info", client_info),
            )
            if value is not None
        }
        self.options = options.model_copy(update=overrides) if overrides else options

        self._transport = transport
        self._sessions: dict[str, MCPSession] = {}
        self._connecting = SingleFlight()
        self._initialized = False
        self._generation = 0
        self._removals: dict[str, int] = {}

    @property
    def endpoints(self) -> list[str]:
        """Tracked endpoints in registration order."""
        return list(self._endpoints)

    @property
    def is_initialized(self) -> bool:
        """Whether every tracked endpoint has had a connection attempt."""
        return self._initialized

    async def __aenter__(self) -> "MCPClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.reset()

    async def initialize_all(self) -> None:
        """
        Open a session on every tracked endpoint that lacks one.

        Endpoints are contacted concurrently. A failing endpoint is
        logged and left unconnected; it is retried on the next call.
        """
        generation = self._generation
        await asyncio.gather(*(self._connect(url) for url in list(self._endpoints)))
        if generation == self._generation:
            self._initialized = True

    async def list_tools(self) -> ClientResponse:
        """
        List tools from all connected servers.

        Returns:
            ClientResponse whose data is the list of ToolDescriptor,
            each tagged with its serverUrl
        """
        try:
            tools = await self._list_tools()
        except MCPClientError as e:
            return ClientResponse.failure(e, data=[])
        return ClientResponse.success(tools)

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> ClientResponse:
        """
        Call a tool on the server that offers it.

        Args:
            tool_name: Tool name
            arguments: Tool arguments

        Returns:
            ClientResponse whose data is the ToolCallResult and whose
            server_url is the endpoint that served the call
        """
        server_url: Optional[str] = None
        try:
            tools = await self._list_tools()
            tool = next((t for t in tools if t.name == tool_name), None)
            if tool is None:
                available = ", ".join(t.name for t in tools)
                raise NotFoundError(
                    f"Tool '{tool_name}' not found. Available tools: {available}"
                )

            server_url = tool.server_url
            session = self._sessions.get(server_url)
            if session is None:
                raise NotFoundError(f"Server '{server_url}' is no longer connected")

            result = await session.call_tool(tool_name, arguments)
        except MCPClientError as e:
            return ClientResponse.failure(e, data=ToolCallResult(), server_url=server_url)

        return ClientResponse.success(result, server_url=server_url)

    async def list_tools_from_server(self, endpoint: str) -> ClientResponse:
        """
        List tools from one specific server.

        Args:
            endpoint: A tracked MCP server URL
        """
        try:
            session = await self._require_session(endpoint)
            tools = await session.list_tools()
        except MCPClientError as e:
            return ClientResponse.failure(e, data=[], server_url=endpoint)

        return ClientResponse.success(
            [tool.with_server_url(endpoint) for tool in tools],
            server_url=endpoint
        )

    async def call_tool_on_server(
        self,
        endpoint: str,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> ClientResponse:
        """
        Call a tool on one specific server, skipping tool resolution.

        Args:
            endpoint: A tracked MCP server URL
            tool_name: Tool name
            arguments: Tool arguments
        """
        try:
            session = await self._require_session(endpoint)
            result = await session.call_tool(tool_name, arguments)
        except MCPClientError as e:
            return ClientResponse.failure(e, data=ToolCallResult(), server_url=endpoint)

        return ClientResponse.success(result, server_url=endpoint)

    def get_connected_endpoints(self) -> list[str]:
        """Endpoints with a live session, in registration order."""
        return [url for url in self._endpoints if url in self._sessions]

    def is_connected(self, endpoint: str) -> bool:
        """Check if an endpoint has a live session."""
        return endpoint in self._sessions

    async def add_endpoint(self, endpoint: str) -> bool:
        """
        Start tracking a new endpoint.

        If the client is already initialized the endpoint is connected
        right away.

        Returns:
            True if the endpoint is connected afterwards
        """
        if endpoint not in self._endpoints:
            self._endpoints.append(endpoint)
            logger.info("Endpoint added", endpoint=endpoint)
            if self._initialized:
                await self._connect(endpoint)
        return self.is_connected(endpoint)

    def remove_endpoint(self, endpoint: str) -> None:
        """Stop tracking an endpoint and drop its session."""
        session = self._sessions.pop(endpoint, None)
        if session is not None:
            session.reset()
        self._connecting.forget(endpoint)
        self._removals[endpoint] = self._removals.get(endpoint, 0) + 1
        if endpoint in self._endpoints:
            self._endpoints.remove(endpoint)
            logger.info("Endpoint removed", endpoint=endpoint)

    def reset(self) -> None:
        """Drop every session; the next operation reconnects from scratch."""
        for session in self._sessions.values():
            session.reset()
        self._sessions.clear()
        self._connecting.clear()
        self._initialized = False
        self._generation += 1
        logger.debug("Client reset")

    async def _list_tools(self) -> list[ToolDescriptor]:
        """Aggregate tool listings; raises only when every endpoint fails."""
        await self.initialize_all()

        connected = [(url, self._sessions[url]) for url in self.get_connected_endpoints()]
        results = await asyncio.gather(
            *(session.list_tools() for _, session in connected),
            return_exceptions=True
        )

        tools: list[ToolDescriptor] = []
        succeeded = 0
        for (url, _), result in zip(connected, results):
            if isinstance(result, MCPClientError):
                logger.warning("Failed to get tools", endpoint=url, error=str(result))
                continue
            if isinstance(result, BaseException):
                raise result
            succeeded += 1
            tools.extend(tool.with_server_url(url) for tool in result)

        if self._endpoints and not succeeded:
            raise AggregationError(
                f"No MCP server returned a tool listing ({len(self._endpoints)} tried)"
            )
        return tools

    async def _require_session(self, endpoint: str) -> MCPSession:
        if endpoint not in self._endpoints:
            raise NotFoundError(f"No client found for server: {endpoint}")
        await self.initialize_all()
        session = self._sessions.get(endpoint)
        if session is None:
            raise NotFoundError(f"Server '{endpoint}' is not connected")
        return session

    async def _connect(self, endpoint: str) -> Optional[MCPSession]:
        session = self._sessions.get(endpoint)
        if session is not None:
            return session
        try:
            return await self._connecting.do(endpoint, lambda: self._open_session(endpoint))
        except MCPClientError as e:
            logger.warning("Failed to initialize MCP client", endpoint=endpoint, error=str(e))
            return None

    async def _open_session(self, endpoint: str) -> MCPSession:
        epoch = (self._generation, self._removals.get(endpoint, 0))
        session = MCPSession(endpoint, self.options, transport=self._transport)
        await session.ensure_initialized()

        # Discard sessions finished after a reset or removal
        if epoch == (self._generation, self._removals.get(endpoint, 0)):
            self._sessions[endpoint] = session
            logger.info("Connected to MCP server", endpoint=endpoint)
        return session


def create_client(
    endpoints: Union[str, list[str]],
    options: Optional[ClientOptions] = None,
    **kwargs: Any
) -> MCPClient:
    """Create a new MCP client."""
    return MCPClient(endpoints, options, **kwargs)


async def mcp_call(
    endpoints: Union[str, list[str]],
    tool_name: str,
    arguments: Optional[dict[str, Any]] = None,
    options: Optional[ClientOptions] = None,
    **kwargs: Any
) -> ClientResponse:
    """One-off tool call through a fresh client."""
    async with MCPClient(endpoints, options, **kwargs) as client:
        return await client.call_tool(tool_name, arguments)


async def mcp_get_tools(
    endpoints: Union[str, list[str]],
    options: Optional[ClientOptions] = None,
    **kwargs: Any
) -> ClientResponse:
    """One-off tool listing through a fresh client."""
    async with MCPClient(endpoints, options, **kwargs) as client:
        return await client.list_tools()
