"""MCP resources backed by Upstox data."""

import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from ..client import UpstoxClient
from ..dispatcher import Dispatcher
from . import market, portfolio

logger = logging.getLogger(__name__)

RESOURCES: list[dict[str, Any]] = [
    {
        "id": "market-data",
        "name": "Market Data",
        "description": "Real-time market data for specified instruments",
        "metadata": {"parameters": market.MARKET_DATA_PARAMETERS},
    },
    {
        "id": "historical-data",
        "name": "Historical Data",
        "description": "Historical OHLC candle data for a specific instrument and time range",
        "metadata": {"parameters": market.HISTORICAL_DATA_PARAMETERS},
    },
    {
        "id": "positions",
        "name": "Positions",
        "description": "Current positions in the portfolio",
    },
    {
        "id": "holdings",
        "name": "Holdings",
        "description": "Current holdings in the portfolio",
    },
    {
        "id": "orders",
        "name": "Orders",
        "description": "List of orders",
    },
    {
        "id": "profile",
        "name": "User Profile",
        "description": "User profile information",
    },
    {
        "id": "funds",
        "name": "Funds and Balance",
        "description": "User funds, margins, and available balance information",
    },
    {
        "id": "instruments",
        "name": "Instruments",
        "description": "Available trading instruments",
        "metadata": {"parameters": market.INSTRUMENTS_PARAMETERS},
    },
]

ResourceHandler = Callable[[UpstoxClient, dict], Awaitable[dict[str, str]]]

HANDLERS: dict[str, ResourceHandler] = {
    "market-data": market.get_market_data,
    "historical-data": market.get_historical_data,
    "positions": portfolio.get_positions,
    "holdings": portfolio.get_holdings,
    "orders": portfolio.get_orders,
    "profile": portfolio.get_profile,
    "funds": portfolio.get_funds,
    "instruments": market.get_instruments,
}


class ResourceGetParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    session_id: str
    resource_id: str


def register_resource_methods(dispatcher: Dispatcher, client: UpstoxClient) -> None:
    """Register mcp.resources.list and mcp.resources.get."""

    async def list_resources(params: dict) -> dict:
        return {"resources": RESOURCES}

    async def get_resource(params: ResourceGetParams) -> dict:
        handler = HANDLERS.get(params.resource_id)
        if handler is None:
            raise ValueError(f"Resource not found: {params.resource_id}")
        logger.info(f"Resource requested: {params.resource_id}")
        return await handler(client, params.model_extra or {})

    dispatcher.register("mcp.resources.list", list_resources)
    dispatcher.register("mcp.resources.get", get_resource, params_model=ResourceGetParams)
