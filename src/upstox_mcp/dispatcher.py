"""
Method registry and request dispatcher.

Every transport funnels into Dispatcher.handle_raw(); nothing in here raises
to the caller, every failure becomes an error envelope.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from .errors import EnvelopeParseError
from .protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SESSION_ERROR,
    JsonRpcRequest,
    JsonRpcResponse,
    error_response,
    parse_request,
)
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


class SessionPolicy(str, Enum):
    """What a method demands of params.session_id."""

    EXEMPT = "exempt"  # no session needed
    REQUIRED = "required"  # must name a live session, which gets touched
    PRESENT = "present"  # must be supplied, need not be live


@dataclass(frozen=True)
class MethodEntry:
    handler: Handler
    params_model: Optional[type[BaseModel]] = None
    session: SessionPolicy = SessionPolicy.REQUIRED


class Dispatcher:
    """Routes request envelopes to registered handlers."""

    def __init__(self, sessions: SessionRegistry):
        self.sessions = sessions
        self._methods: dict[str, MethodEntry] = {}

    def register(
        self,
        method: str,
        handler: Handler,
        params_model: Optional[type[BaseModel]] = None,
        session: SessionPolicy = SessionPolicy.REQUIRED,
    ) -> None:
        """
        Register a handler for a method name.

        Registering the same name again replaces the earlier handler.

        Args:
            method: Exact JSON-RPC method name
            handler: Async callable receiving the params
            params_model: Optional pydantic model the params are validated into
            session: Session requirement for the method
        """
        if method in self._methods:
            logger.debug(f"Replacing handler for {method}")
        self._methods[method] = MethodEntry(handler, params_model, session)

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    async def handle_raw(self, data: Union[str, bytes]) -> dict[str, Any]:
        """Parse raw transport input and dispatch it. Returns the response dict."""
        try:
            request = parse_request(data)
        except EnvelopeParseError as e:
            logger.warning(e.message)
            return error_response(e.request_id, PARSE_ERROR, e.message).to_dict()
        response = await self.handle(request)
        return response.to_dict()

    async def handle(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Dispatch one parsed request envelope."""
        if request.jsonrpc != JSONRPC_VERSION:
            return error_response(request.id, INVALID_REQUEST, "Invalid Request: Not JSON-RPC 2.0")

        entry = self._methods.get(request.method)
        if entry is None:
            return error_response(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        params = request.params or {}
        logger.debug(f"Dispatching {request.method} (id={request.id})")

        if entry.session != SessionPolicy.EXEMPT:
            session_id = params.get("session_id")
            if not session_id:
                return error_response(request.id, SESSION_ERROR, "Session ID is required")
            if entry.session == SessionPolicy.REQUIRED:
                if not isinstance(session_id, str) or not await self.sessions.refresh(session_id):
                    return error_response(request.id, SESSION_ERROR, "Invalid or expired session")

        try:
            args = entry.params_model.model_validate(params) if entry.params_model else params
            result = await entry.handler(args)
        except ValidationError as e:
            logger.info(f"{request.method}: invalid params: {e}")
            return error_response(request.id, INTERNAL_ERROR, f"Invalid params: {_describe(e)}")
        except Exception as e:
            logger.error(f"{request.method} failed: {e}", exc_info=True)
            return error_response(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json", exclude_none=True)
        return JsonRpcResponse(id=request.id, result=result)


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}" for err in error.errors()
    )
