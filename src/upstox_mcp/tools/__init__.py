"""MCP tools that act on the Upstox account."""

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from ..client import UpstoxClient
from ..dispatcher import Dispatcher
from . import orders

logger = logging.getLogger(__name__)

TOOLS: list[dict[str, Any]] = [
    {
        "id": "place-order",
        "name": "Place Order",
        "description": "Place a new trading order",
        "parameters": orders.PLACE_ORDER_SCHEMA,
    },
    {
        "id": "cancel-order",
        "name": "Cancel Order",
        "description": "Cancel an existing order",
        "parameters": orders.CANCEL_ORDER_SCHEMA,
    },
    {
        "id": "get-order",
        "name": "Get Order Details",
        "description": "Get details of a specific order",
        "parameters": orders.GET_ORDER_SCHEMA,
    },
]

ToolHandler = Callable[[UpstoxClient, dict], Awaitable[dict[str, Any]]]

HANDLERS: dict[str, ToolHandler] = {
    "place-order": orders.place_order,
    "cancel-order": orders.cancel_order,
    "get-order": orders.get_order,
}


class ToolExecuteParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    session_id: str
    tool_id: str


def register_tool_methods(dispatcher: Dispatcher, client: UpstoxClient) -> None:
    """Register mcp.tools.list and mcp.tools.execute."""

    async def list_tools(params: dict) -> dict:
        return {"tools": TOOLS}

    async def execute_tool(params: ToolExecuteParams) -> dict:
        logger.info(f"Tool called: {params.tool_id}")
        handler = HANDLERS.get(params.tool_id)
        if handler is None:
            return orders.tool_error("TOOL_EXECUTION_ERROR", f"Tool not found: {params.tool_id}")
        return await handler(client, dict(params.model_extra or {}))

    dispatcher.register("mcp.tools.list", list_tools)
    dispatcher.register("mcp.tools.execute", execute_tool, params_model=ToolExecuteParams)
