"""Envelope codec for MCP over streamable HTTP.

Builds JSON-RPC request envelopes, performs the HTTP exchange and
decodes the event-stream framed response back into an envelope.
Every exchange uses a fresh HTTP client; the only state carried
between requests is the session token in the query string.
"""

import asyncio
import json
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import JSONRPCRequest, JSONRPCResponse
from mcp_multiclient.errors import MCPTimeoutError, ParseError, ProtocolError, TransportError

logger = get_logger(__name__)


PROTOCOL_VERSION = "2024-11-05"
SSE_DATA_PREFIX = "data: "

REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
    "Cache-Control": "no-cache",
}


def build_request(
    method: str,
    params: Optional[dict[str, Any]] = None,
    request_id: int = 1
) -> JSONRPCRequest:
    """Build a JSON-RPC request envelope."""
    return JSONRPCRequest(method=method, params=params or {}, id=request_id)


async def send_envelope(
    endpoint: str,
    envelope: JSONRPCRequest,
    session_token: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> str:
    """
    POST an envelope to an MCP endpoint and return the raw response body.

    Args:
        endpoint: MCP server URL
        envelope: Request envelope to send
        session_token: Opaque token sent as the ``session`` query parameter
        timeout: Seconds allowed for the whole exchange
        transport: Optional httpx transport (used by tests)

    Returns:
        Response body text

    Raises:
        MCPTimeoutError: If the exchange exceeds ``timeout``
        TransportError: If the server is unreachable or answers non-2xx
    """
    try:
        return await asyncio.wait_for(
            _post(endpoint, envelope, session_token, timeout, transport),
            timeout=timeout
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise MCPTimeoutError(
            f"Request to {endpoint} timed out after {timeout}s"
        ) from e
    except httpx.HTTPStatusError as e:
        response = e.response
        raise TransportError(
            f"HTTP {response.status_code}: {response.reason_phrase}",
            status_code=response.status_code
        ) from e
    except httpx.HTTPError as e:
        raise TransportError(f"Cannot connect to MCP Server at {endpoint}: {e}") from e


async def _post(
    endpoint: str,
    envelope: JSONRPCRequest,
    session_token: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport]
) -> str:
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.post(
            httpx.URL(endpoint).copy_merge_params({"session": session_token}),
            headers=REQUEST_HEADERS,
            json=envelope.model_dump()
        )
        response.raise_for_status()
        return response.text


def parse_streamed_envelope(raw: str) -> Optional[JSONRPCResponse]:
    """
    Extract the response envelope from an event-stream body.

    Only the first ``data: `` line is consulted.

    Returns:
        The decoded envelope, or None if the body has no data line

    Raises:
        ParseError: If the data line is not a valid JSON-RPC envelope
    """
    for line in raw.splitlines():
        if line.startswith(SSE_DATA_PREFIX):
            return _decode_envelope(line[len(SSE_DATA_PREFIX):])
    return None


def decode_response_body(raw: str) -> Optional[JSONRPCResponse]:
    """
    Decode a response body that is either an event stream or plain JSON.

    Servers may answer with ``application/json`` since both are accepted.
    """
    envelope = parse_streamed_envelope(raw)
    if envelope is None and raw.lstrip().startswith("{"):
        return _decode_envelope(raw)
    return envelope


def _decode_envelope(payload: str) -> JSONRPCResponse:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse response envelope", error=str(e))
        raise ParseError(f"Malformed response data: {e}") from e

    try:
        return JSONRPCResponse.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Invalid response envelope: {e}") from e


def unwrap_result(envelope: JSONRPCResponse) -> Any:
    """
    Return the result payload of an envelope.

    Raises:
        ProtocolError: If the envelope carries an error object
    """
    if envelope.error is not None:
        raise ProtocolError(
            code=envelope.error.code,
            message=envelope.error.message,
            data=envelope.error.data
        )
    return envelope.result
