"""JSON-RPC 2.0 envelope and tool-hosting payload models."""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Any = None
    method: str
    params: Any = None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response carrying exactly one of result or error."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Any = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def check_result_xor_error(self) -> "JsonRpcResponse":
        if (self.result is None) == (self.error is None):
            raise ValueError("Exactly one of result or error must be set")
        return self

    @classmethod
    def success(cls, request_id: Any, result: dict[str, Any]) -> "JsonRpcResponse":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: Any, code: int, message: str, data: Any = None) -> "JsonRpcResponse":
        return cls(id=request_id, error=JsonRpcError(code=code, message=message, data=data))

    def to_dict(self) -> dict[str, Any]:
        """Wire form: id is always present (possibly null), the unused member is omitted."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        return payload


# MCP-style tool payloads


class ToolInfo(BaseModel):
    """Tool entry returned by tools/list."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ToolCallParams(BaseModel):
    """Params of a tools/call request."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class TextContentItem(BaseModel):
    """Text item in a tool call result."""

    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """Result of a tools/call request."""

    content: list[TextContentItem]
    is_error: bool = False
