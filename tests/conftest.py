"""Shared fixtures: an in-memory MCP server behind httpx.MockTransport."""

import asyncio
import json
from typing import Any, Optional

import httpx
import pytest

from shared.config import get_settings
from shared.models import ClientOptions
from mcp_multiclient.registry import set_default_registry


E1 = "http://server-one/mcp"
E2 = "http://server-two/mcp"


def sse_body(payload: dict[str, Any]) -> str:
    """Frame a JSON-RPC payload the way streamable HTTP servers do."""
    return f"event: message\ndata: {json.dumps(payload)}\n\n"


def tool(name: str, description: str = "") -> dict[str, Any]:
    return {
        "name": name,
        "description": description or f"The {name} tool",
        "inputSchema": {"type": "object", "properties": {}},
    }


class FakeMCPServer:
    """
    Serves any number of MCP endpoints from memory.

    Every request is recorded as (endpoint, body, session token).
    """

    def __init__(self) -> None:
        self.tools: dict[str, list[dict[str, Any]]] = {}
        self.down: set[str] = set()
        self.fail_times: dict[str, int] = {}
        self.delays: dict[str, float] = {}
        self.overrides: dict[tuple[str, str], httpx.Response] = {}
        self.requests: list[tuple[str, dict[str, Any], Optional[str]]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def methods(self, endpoint: str) -> list[str]:
        return [body["method"] for url, body, _ in self.requests if url == endpoint]

    def sessions(self, endpoint: str) -> set[Optional[str]]:
        return {token for url, _, token in self.requests if url == endpoint}

    async def handle(self, request: httpx.Request) -> httpx.Response:
        endpoint = str(request.url).split("?")[0]
        body = json.loads(request.content)
        self.requests.append((endpoint, body, request.url.params.get("session")))

        if endpoint in self.delays:
            await asyncio.sleep(self.delays[endpoint])

        if endpoint in self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        if self.fail_times.get(endpoint, 0) > 0:
            self.fail_times[endpoint] -= 1
            raise httpx.ConnectError("Connection reset", request=request)

        override = self.overrides.get((endpoint, body["method"]))
        if override is not None:
            return override

        return httpx.Response(
            200,
            text=sse_body(self.dispatch(endpoint, body)),
            headers={"content-type": "text/event-stream"},
        )

    def dispatch(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        method = body["method"]
        params = body.get("params") or {}
        reply: dict[str, Any] = {"jsonrpc": "2.0", "id": body["id"]}

        if method == "initialize":
            reply["result"] = {
                "protocolVersion": params["protocolVersion"],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake", "version": "0.0.1"},
            }
        elif method == "tools/list":
            reply["result"] = {"tools": self.tools.get(endpoint, [])}
        elif method == "tools/call":
            names = [t["name"] for t in self.tools.get(endpoint, [])]
            if params["name"] not in names:
                reply["error"] = {"code": -32602, "message": f"Unknown tool: {params['name']}"}
            else:
                reply["result"] = {
                    "content": [{"type": "text", "text": f"{params['name']} on {endpoint}"}],
                    "structuredContent": {"result": params["arguments"]},
                    "isError": False,
                }
        else:
            reply["error"] = {"code": -32601, "message": f"Method not found: {method}"}
        return reply


@pytest.fixture
def server() -> FakeMCPServer:
    return FakeMCPServer()


@pytest.fixture
def options() -> ClientOptions:
    return ClientOptions(timeout=1.0, retries=0, retry_wait_min=0, retry_wait_max=0)


@pytest.fixture(autouse=True)
def _isolate_globals():
    yield
    set_default_registry(None)
    get_settings.cache_clear()
