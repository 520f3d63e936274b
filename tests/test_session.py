"""Tests for MCP sessions."""

import asyncio

import httpx
import pytest

from shared.models import ClientInfo, ClientOptions
from mcp_multiclient.errors import (
    InitializationError,
    MCPTimeoutError,
    ParseError,
    ProtocolError,
    ToolCallError,
    TransportError,
)
from mcp_multiclient.session import MCPSession, SessionState

from conftest import E1, tool


class TestHandshake:
    """Tests for the initialize handshake."""

    @pytest.mark.asyncio
    async def test_initialize_params(self, server, options):
        """Test protocol version, capabilities and client identity."""
        session = MCPSession(E1, options, transport=server.transport)

        await session.ensure_initialized(ClientInfo(name="tester", version="9.9"))

        _, body, token = server.requests[0]
        assert body["method"] == "initialize"
        assert body["id"] == 1
        assert body["params"] == {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {}},
            "clientInfo": {"name": "tester", "version": "9.9"},
        }
        assert token == session.session_token
        assert session.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_initialize_once(self, server, options):
        """Test that a ready session does not handshake again."""
        session = MCPSession(E1, options, transport=server.transport)

        await session.ensure_initialized()
        await session.ensure_initialized()

        assert server.methods(E1) == ["initialize"]

    @pytest.mark.asyncio
    async def test_concurrent_initialize_shares_handshake(self, server, options):
        """Test that concurrent callers send a single initialize."""
        session = MCPSession(E1, options, transport=server.transport)

        await asyncio.gather(*(session.ensure_initialized() for _ in range(5)))

        assert server.methods(E1) == ["initialize"]

    @pytest.mark.asyncio
    async def test_failed_initialize_is_retryable(self, server, options):
        """Test that a failed handshake leaves the session uninitialized."""
        server.down.add(E1)
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(InitializationError) as exc_info:
            await session.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, TransportError)
        assert session.state == SessionState.UNINITIALIZED

        server.down.clear()
        await session.ensure_initialized()

        assert session.is_initialized

    @pytest.mark.asyncio
    async def test_protocol_error_on_initialize(self, server, options):
        """Test that a remote error fails the handshake."""
        server.overrides[(E1, "initialize")] = httpx.Response(
            200,
            text='data: {"jsonrpc":"2.0","id":1,"error":{"code":-32600,"message":"Bad version"}}',
        )
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(InitializationError, match="Bad version") as exc_info:
            await session.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, ProtocolError)
        assert not session.is_initialized

    @pytest.mark.asyncio
    async def test_timeout_on_initialize(self, server):
        """Test that a timed out handshake fails with InitializationError."""
        server.delays[E1] = 1.0
        session = MCPSession(E1, ClientOptions(timeout=0.05), transport=server.transport)

        with pytest.raises(InitializationError) as exc_info:
            await session.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, MCPTimeoutError)

    @pytest.mark.asyncio
    async def test_empty_initialize_body_is_accepted(self, server, options):
        """Test that a handshake reply without a data line still completes."""
        server.overrides[(E1, "initialize")] = httpx.Response(202, text="")
        session = MCPSession(E1, options, transport=server.transport)

        await session.ensure_initialized()

        assert session.is_initialized


class TestListTools:
    """Tests for tools/list."""

    @pytest.mark.asyncio
    async def test_list_tools_initializes_first(self, server, options):
        """Test that listing never precedes the handshake."""
        server.tools[E1] = [tool("greet"), tool("add")]
        session = MCPSession(E1, options, transport=server.transport)

        tools = await session.list_tools()
        await session.list_tools()

        assert [t.name for t in tools] == ["greet", "add"]
        assert tools[0].input_schema == {"type": "object", "properties": {}}
        assert server.methods(E1) == ["initialize", "tools/list", "tools/list"]

    @pytest.mark.asyncio
    async def test_missing_tools_key(self, server, options):
        """Test that a result without tools yields an empty list."""
        server.overrides[(E1, "tools/list")] = httpx.Response(
            200, text='data: {"jsonrpc":"2.0","id":2,"result":{}}'
        )
        session = MCPSession(E1, options, transport=server.transport)

        assert await session.list_tools() == []

    @pytest.mark.asyncio
    async def test_no_data_found(self, server, options):
        """Test that a body without a data line is reported."""
        server.overrides[(E1, "tools/list")] = httpx.Response(200, text="not a data line")
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(ParseError, match="No data found"):
            await session.list_tools()

    @pytest.mark.asyncio
    async def test_same_token_on_every_request(self, server, options):
        """Test that the session token never changes."""
        server.tools[E1] = [tool("anything")]
        session = MCPSession(E1, options, transport=server.transport)

        await session.list_tools()
        await session.call_tool("anything")

        assert server.sessions(E1) == {session.session_token}


class TestCallTool:
    """Tests for tools/call."""

    @pytest.mark.asyncio
    async def test_call_tool(self, server, options):
        """Test a successful call."""
        server.tools[E1] = [tool("greet")]
        session = MCPSession(E1, options, transport=server.transport)

        result = await session.call_tool("greet", {"name": "Ada"})

        assert result.text == f"greet on {E1}"
        assert result.structured_content == {"result": {"name": "Ada"}}
        assert result.is_error is False
        _, body, _ = server.requests[-1]
        assert body["id"] == 3
        assert body["params"] == {"name": "greet", "arguments": {"name": "Ada"}}

    @pytest.mark.asyncio
    async def test_arguments_default_to_empty_object(self, server, options):
        server.tools[E1] = [tool("ping")]
        session = MCPSession(E1, options, transport=server.transport)

        await session.call_tool("ping")

        _, body, _ = server.requests[-1]
        assert body["params"]["arguments"] == {}

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_by_server(self, server, options):
        """Test that the remote error is wrapped in ToolCallError."""
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(ToolCallError, match="Unknown tool: missing") as exc_info:
            await session.call_tool("missing")

        assert exc_info.value.code == -32602
        assert isinstance(exc_info.value.__cause__, ProtocolError)
        assert "tools/call" in server.methods(E1)

    @pytest.mark.asyncio
    async def test_no_data_found(self, server, options):
        server.overrides[(E1, "tools/call")] = httpx.Response(200, text="event: ping\n\n")
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(ParseError, match="No data found"):
            await session.call_tool("greet")

    @pytest.mark.asyncio
    async def test_tool_level_error_flag(self, server, options):
        """Test that isError results are returned, not raised."""
        server.overrides[(E1, "tools/call")] = httpx.Response(
            200,
            text='data: {"jsonrpc":"2.0","id":3,"result":'
                 '{"content":[{"type":"text","text":"division by zero"}],"isError":true}}',
        )
        session = MCPSession(E1, options, transport=server.transport)

        result = await session.call_tool("divide", {"a": 1, "b": 0})

        assert result.is_error is True
        assert result.text == "division by zero"


class TestReset:
    """Tests for session reset."""

    @pytest.mark.asyncio
    async def test_reset_triggers_new_handshake(self, server, options):
        session = MCPSession(E1, options, transport=server.transport)
        await session.list_tools()
        token = session.session_token

        session.reset()

        assert session.state == SessionState.UNINITIALIZED
        assert session.session_token == token
        assert server.methods(E1) == ["initialize", "tools/list"]

        await session.list_tools()

        assert server.methods(E1) == ["initialize", "tools/list", "initialize", "tools/list"]

    @pytest.mark.asyncio
    async def test_reset_during_handshake_is_not_lost(self, server, options):
        """Test that a handshake finishing after reset leaves the session uninitialized."""
        server.delays[E1] = 0.05
        session = MCPSession(E1, options, transport=server.transport)

        pending = asyncio.ensure_future(session.ensure_initialized())
        await asyncio.sleep(0.01)
        session.reset()

        with pytest.raises(InitializationError, match="reset during initialization"):
            await pending

        assert session.state == SessionState.UNINITIALIZED

        server.delays.clear()
        await session.list_tools()

        assert server.methods(E1) == ["initialize", "initialize", "tools/list"]


class TestRetries:
    """Tests for transport retries."""

    @pytest.mark.asyncio
    async def test_transport_failures_are_retried(self, server):
        """Test that connection failures are retried up to the limit."""
        server.fail_times[E1] = 2
        options = ClientOptions(retries=2, retry_wait_min=0, retry_wait_max=0)
        session = MCPSession(E1, options, transport=server.transport)

        await session.ensure_initialized()

        assert server.methods(E1) == ["initialize"] * 3
        assert session.is_initialized

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, server):
        server.fail_times[E1] = 5
        options = ClientOptions(retries=1, retry_wait_min=0, retry_wait_max=0)
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(InitializationError):
            await session.ensure_initialized()

        assert server.methods(E1) == ["initialize"] * 2

    @pytest.mark.asyncio
    async def test_protocol_errors_are_not_retried(self, server):
        server.overrides[(E1, "tools/call")] = httpx.Response(
            200, text='data: {"jsonrpc":"2.0","id":3,"error":{"code":-32000,"message":"boom"}}'
        )
        options = ClientOptions(retries=3, retry_wait_min=0, retry_wait_max=0)
        session = MCPSession(E1, options, transport=server.transport)

        with pytest.raises(ToolCallError):
            await session.call_tool("explode")

        assert server.methods(E1).count("tools/call") == 1
