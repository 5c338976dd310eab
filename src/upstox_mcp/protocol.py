"""
JSON-RPC 2.0 envelope models and codec.

Standard error codes come from the MCP SDK; session failures use a code from
the server-defined range.
"""

import json
from typing import Any, Optional, Union

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
)
from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

from .errors import EnvelopeParseError

JSONRPC_VERSION = "2.0"

SESSION_ERROR = -32000

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "SESSION_ERROR",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "RequestId",
    "error_response",
    "parse_request",
]

RequestId = Union[StrictStr, StrictInt, None]


class JsonRpcRequest(BaseModel):
    """Inbound request envelope.

    ``jsonrpc`` is accepted as any value here so the dispatcher can reject a
    wrong tag as an invalid request rather than a parse error.
    """

    jsonrpc: Any = None
    id: RequestId = None
    method: StrictStr
    params: Optional[dict[str, Any]] = None


class JsonRpcResponse(BaseModel):
    """Outbound response envelope. Exactly one of result/error is emitted."""

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId = None
    result: Any = None
    error: Optional[ErrorData] = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error.model_dump(exclude_none=True)
        else:
            body["result"] = self.result
        return body


def error_response(
    request_id: Union[str, int, None], code: int, message: str, data: Any = None
) -> JsonRpcResponse:
    return JsonRpcResponse(id=request_id, error=ErrorData(code=code, message=message, data=data))


def _salvage_id(raw: Any) -> Union[str, int, None]:
    if isinstance(raw, dict):
        value = raw.get("id")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return value
    return None


def parse_request(data: Union[str, bytes]) -> JsonRpcRequest:
    """
    Decode raw transport input into a request envelope.

    Raises:
        EnvelopeParseError: If the input is not JSON or not envelope-shaped;
            carries whatever id could be recovered
    """
    try:
        raw = json.loads(data)
    except (ValueError, TypeError) as e:
        raise EnvelopeParseError(f"Parse error: {e}") from e

    if not isinstance(raw, dict):
        raise EnvelopeParseError("Parse error: request must be a JSON object")

    try:
        return JsonRpcRequest.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "request" for err in e.errors())
        raise EnvelopeParseError(
            f"Parse error: invalid request envelope ({fields})", request_id=_salvage_id(raw)
        ) from e
