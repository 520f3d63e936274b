"""Core data models for the MCP client library.

Wire envelopes (JSON-RPC 2.0), tool descriptors and tool call results
as exchanged with MCP servers, plus the result object handed back to
library consumers. Server payloads are validated loosely: unknown keys
are kept so nothing the server sends is lost on the way through.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


JSONRPC_VERSION = "2.0"


class ClientInfo(BaseModel):
    """Identity announced to servers during the handshake."""
    name: str = "mcp-client"
    version: str = "1.0.0"


class ClientOptions(BaseModel):
    """Per-client tuning shared by every session the client opens."""
    timeout: float = Field(default=30.0, gt=0, description="Per-exchange timeout in seconds")
    retries: int = Field(default=0, ge=0, description="Extra attempts on transport failure")
    retry_wait_min: float = Field(default=0.5, ge=0)
    retry_wait_max: float = Field(default=5.0, ge=0)
    client_info: ClientInfo = Field(default_factory=ClientInfo)


class JSONRPCRequest(BaseModel):
    """Outbound request envelope."""
    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: int = 1


class JSONRPCError(BaseModel):
    """Error object carried by a failed response envelope."""
    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCResponse(BaseModel):
    """
    Inbound response envelope.

    A response carries a result or an error, never both.
    """
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[Union[int, str]] = None
    result: Optional[Any] = None
    error: Optional[JSONRPCError] = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> "JSONRPCResponse":
        if self.result is not None and self.error is not None:
            raise ValueError("response carries both result and error")
        return self


class ToolDescriptor(BaseModel):
    """
    A tool as advertised by a server in its tools/list result.

    The facade records which endpoint a tool came from under
    ``_meta.serverUrl``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    description: Optional[str] = None
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    output_schema: Optional[dict[str, Any]] = Field(default=None, alias="outputSchema")
    meta: dict[str, Any] = Field(default_factory=dict, alias="_meta")

    @property
    def server_url(self) -> Optional[str]:
        """Endpoint this tool was listed from, if tagged."""
        return self.meta.get("serverUrl")

    def with_server_url(self, server_url: str) -> "ToolDescriptor":
        """Return a copy tagged with its origin endpoint."""
        return self.model_copy(update={"meta": {**self.meta, "serverUrl": server_url}})


class ContentBlock(BaseModel):
    """One typed block of tool output (text, image, resource...)."""
    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class ToolCallResult(BaseModel):
    """Result payload of a tools/call exchange."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content: list[ContentBlock] = Field(default_factory=list)
    structured_content: Optional[dict[str, Any]] = Field(default=None, alias="structuredContent")
    is_error: bool = Field(default=False, alias="isError")

    @property
    def text(self) -> str:
        """All text blocks joined by newlines."""
        return "\n".join(block.text for block in self.content if block.text is not None)


class ResponseStatus(str, Enum):
    """Status of a client-level operation."""
    SUCCESS = "success"
    ERROR = "error"


class ClientResponse(BaseModel):
    """
    Result object returned by the client facade and the registry.

    Consumers branch on ``status`` instead of catching exceptions.
    """
    status: ResponseStatus
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    server_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.SUCCESS

    @classmethod
    def success(cls, data: Any, server_url: Optional[str] = None) -> "ClientResponse":
        return cls(status=ResponseStatus.SUCCESS, data=data, server_url=server_url)

    @classmethod
    def failure(
        cls,
        error: Exception,
        data: Any = None,
        server_url: Optional[str] = None
    ) -> "ClientResponse":
        """Build an error response from an exception."""
        return cls(
            status=ResponseStatus.ERROR,
            data=data,
            error=str(error),
            error_code=getattr(error, "error_code", None),
            server_url=server_url,
        )
