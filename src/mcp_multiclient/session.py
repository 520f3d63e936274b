"""MCP session bound to a single server endpoint.

A session owns the endpoint's session token and its initialization
state. The handshake runs at most once per successful initialization;
tool listing and tool calls initialize on demand.
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.logging import get_logger
from shared.models import ClientInfo, ClientOptions, JSONRPCResponse, ToolCallResult, ToolDescriptor
from mcp_multiclient.codec import (
    PROTOCOL_VERSION,
    build_request,
    decode_response_body,
    send_envelope,
    unwrap_result,
)
from mcp_multiclient.errors import (
    InitializationError,
    MCPClientError,
    ParseError,
    ProtocolError,
    ToolCallError,
    TransportError,
)


INITIALIZE_ID = 1
LIST_TOOLS_ID = 2
CALL_TOOL_ID = 3


class SessionState(str, Enum):
    """Lifecycle state of a session."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class MCPSession:
    """
    Session with one MCP server.

    Requests on a session are sent one at a time; the next request is
    not sent until the previous response has been read.
    """

    def __init__(
        self,
        endpoint: str,
        options: Optional[ClientOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        session_token: Optional[str] = None
    ) -> None:
        """
        Initialize an MCP session.

        Args:
            endpoint: MCP server URL
            options: Timeout, retry and client identity settings
            transport: Optional httpx transport (used by tests)
            session_token: Token to correlate requests; generated if omitted
        """
        self.endpoint = endpoint
        self.options = options or ClientOptions()
        self.session_token = session_token or str(uuid.uuid4())
        self.state = SessionState.UNINITIALIZED
        self._transport = transport
        self._request_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._resets = 0
        self._logger = get_logger(__name__, endpoint=endpoint)

    @property
    def is_initialized(self) -> bool:
        return self.state == SessionState.READY

    def __repr__(self) -> str:
        return f"MCPSession(endpoint={self.endpoint!r}, state={self.state.value})"

    async def ensure_initialized(self, client_info: Optional[ClientInfo] = None) -> None:
        """
        Perform the initialize handshake unless already done.

        Args:
            client_info: Identity to announce; defaults to the options' client_info

        Raises:
            InitializationError: If the handshake fails or the session is
                reset before it completes
        """
        if self.is_initialized:
            return

        async with self._init_lock:
            if self.is_initialized:
                return

            resets = self._resets
            info = client_info or self.options.client_info
            params = {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "clientInfo": info.model_dump(),
            }

            try:
                envelope = await self._exchange("initialize", params, INITIALIZE_ID)
                if envelope is not None:
                    unwrap_result(envelope)
            except MCPClientError as e:
                self._logger.warning("Session initialization failed", error=str(e))
                raise InitializationError(
                    f"Failed to initialize MCP session for {self.endpoint}: {e}"
                ) from e

            if resets != self._resets:
                self._logger.debug("Discarding handshake finished after reset")
                raise InitializationError(
                    f"Session for {self.endpoint} was reset during initialization"
                )

            self.state = SessionState.READY
            self._logger.info("Session initialized", session=self.session_token)

    async def list_tools(self) -> list[ToolDescriptor]:
        """
        List the tools offered by the server.

        Returns:
            Tool descriptors in server order

        Raises:
            InitializationError: If the on-demand handshake fails
            TransportError: If the server is unreachable
            ParseError: If the response holds no usable envelope
            ProtocolError: If the server answers with an error
        """
        await self.ensure_initialized()

        envelope = await self._exchange("tools/list", {}, LIST_TOOLS_ID)
        if envelope is None:
            raise ParseError("No data found in response")

        result = unwrap_result(envelope) or {}
        try:
            return [ToolDescriptor.model_validate(tool) for tool in result.get("tools") or []]
        except (AttributeError, TypeError, ValidationError) as e:
            raise ParseError(f"Invalid tools/list result: {e}") from e

    async def call_tool(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> ToolCallResult:
        """
        Invoke a tool on the server.

        The session does not check that the tool exists; an unknown
        name is reported by the server.

        Args:
            name: Tool name
            arguments: Tool arguments (defaults to an empty object)

        Returns:
            The tool call result

        Raises:
            InitializationError: If the on-demand handshake fails
            ToolCallError: If the server answers with an error
            TransportError: If the server is unreachable
            ParseError: If the response holds no usable envelope
        """
        await self.ensure_initialized()

        self._logger.debug("Calling tool", tool=name)
        envelope = await self._exchange(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            CALL_TOOL_ID
        )
        if envelope is None:
            raise ParseError("No data found in response")

        try:
            result = unwrap_result(envelope)
        except ProtocolError as e:
            raise ToolCallError(name, e) from e

        try:
            return ToolCallResult.model_validate(result or {})
        except ValidationError as e:
            raise ParseError(f"Invalid tools/call result: {e}") from e

    def reset(self) -> None:
        """Return to the uninitialized state without contacting the server."""
        self.state = SessionState.UNINITIALIZED
        self._resets += 1
        self._logger.debug("Session reset")

    async def _exchange(
        self,
        method: str,
        params: dict[str, Any],
        request_id: int
    ) -> Optional[JSONRPCResponse]:
        """Send one request and decode the response, retrying transport failures."""
        envelope = build_request(method, params, request_id)

        async with self._request_lock:
            self._logger.debug("Sending request", method=method, id=request_id)
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.options.retries + 1),
                wait=wait_exponential(
                    multiplier=self.options.retry_wait_min,
                    min=self.options.retry_wait_min,
                    max=self.options.retry_wait_max
                ),
                retry=retry_if_exception_type(TransportError),
                reraise=True
            ):
                with attempt:
                    raw = await send_envelope(
                        self.endpoint,
                        envelope,
                        self.session_token,
                        self.options.timeout,
                        transport=self._transport
                    )

        return decode_response_body(raw)
