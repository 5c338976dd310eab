"""Order tools for Upstox MCP Server."""

import logging
from enum import Enum
from typing import Any

from ..client import UpstoxClient, format_instrument

logger = logging.getLogger(__name__)


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    SL = "SL"
    SLM = "SL-M"


class ProductType(str, Enum):
    DELIVERY = "D"
    INTRADAY = "I"
    MARGIN = "M"
    COVER = "CO"
    BRACKET = "OCO"


class Validity(str, Enum):
    DAY = "DAY"
    IOC = "IOC"


# Schema for place-order tool
PLACE_ORDER_SCHEMA = {
    "type": "object",
    "properties": {
        "instrument_token": {
            "type": "string",
            "description": 'Instrument identifier (e.g., "INFY" or "NSE_EQ|INFY")',
        },
        "transaction_type": {
            "type": "string",
            "enum": [t.value for t in TransactionType],
            "description": "Buy or sell order",
        },
        "quantity": {
            "type": "integer",
            "description": "Number of shares",
        },
        "order_type": {
            "type": "string",
            "enum": [t.value for t in OrderType],
            "description": "Type of order",
        },
        "price": {
            "type": "number",
            "description": "Price for limit orders",
        },
        "trigger_price": {
            "type": "number",
            "description": "Trigger price for stop-loss orders",
        },
        "product": {
            "type": "string",
            "enum": [p.value for p in ProductType],
            "description": "Product type: D (Delivery), I (Intraday), M (Margin), CO (Cover Order), OCO (Bracket Order)",
        },
        "validity": {
            "type": "string",
            "enum": [v.value for v in Validity],
            "description": "Order validity: DAY or IOC (Immediate or Cancel)",
        },
        "disclosed_quantity": {
            "type": "integer",
            "description": "Disclosed quantity for iceberg orders",
        },
        "is_amo": {
            "type": "boolean",
            "description": "Whether this is an After Market Order",
        },
    },
    "required": ["instrument_token", "transaction_type", "quantity", "order_type"],
}

# Schema for cancel-order tool
CANCEL_ORDER_SCHEMA = {
    "type": "object",
    "properties": {
        "order_id": {
            "type": "string",
            "description": "ID of the order to cancel",
        }
    },
    "required": ["order_id"],
}

# Schema for get-order tool
GET_ORDER_SCHEMA = {
    "type": "object",
    "properties": {
        "order_id": {
            "type": "string",
            "description": "ID of the order to retrieve",
        }
    },
    "required": ["order_id"],
}


def tool_error(code: str, message: str) -> dict[str, Any]:
    """Result-level error object returned instead of raising."""
    return {"error": {"code": code, "message": message}}


def _require(args: dict, names: list[str]) -> None:
    for name in names:
        if args.get(name) is None:
            raise ValueError(f"Missing required parameter: {name}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _build_order(args: dict) -> dict[str, Any]:
    """
    Validate place-order arguments and build the broker order body.

    Raises:
        ValueError: If a required field is missing or a value is not allowed
    """
    _require(args, ["instrument_token", "transaction_type", "quantity", "order_type"])

    transaction_type = args["transaction_type"]
    if transaction_type not in {t.value for t in TransactionType}:
        raise ValueError(f"Invalid transaction type: {transaction_type}. Must be BUY or SELL.")

    order_type = args["order_type"]
    if order_type not in {t.value for t in OrderType}:
        raise ValueError(f"Invalid order type: {order_type}. Must be MARKET, LIMIT, SL, or SL-M.")

    if order_type in (OrderType.LIMIT.value, OrderType.SL.value) and not _is_number(args.get("price")):
        raise ValueError("Price is required for LIMIT and SL orders")
    if order_type in (OrderType.SL.value, OrderType.SLM.value) and not _is_number(
        args.get("trigger_price")
    ):
        raise ValueError("Trigger price is required for SL and SL-M orders")

    return {
        "instrument_token": format_instrument(str(args["instrument_token"])),
        "transaction_type": transaction_type,
        "quantity": args["quantity"],
        "order_type": order_type,
        "price": args.get("price"),
        "trigger_price": args.get("trigger_price"),
        "product": args.get("product") or ProductType.DELIVERY.value,
        "validity": args.get("validity") or Validity.DAY.value,
        "disclosed_quantity": args.get("disclosed_quantity"),
        "is_amo": args.get("is_amo"),
    }


async def place_order(client: UpstoxClient, args: dict) -> dict[str, Any]:
    """
    Place a new order.

    Args:
        client: UpstoxClient instance
        args: Tool arguments (see PLACE_ORDER_SCHEMA)

    Returns:
        Dict with 'result' on success or 'error' on failure
    """
    try:
        order = _build_order(args)
        result = await client.place_order(order)
    except Exception as e:
        logger.error(f"Error placing order: {e}")
        return tool_error("PLACE_ORDER_ERROR", str(e))
    return {"result": {"status": "success", "order": result}}


async def cancel_order(client: UpstoxClient, args: dict) -> dict[str, Any]:
    """
    Cancel an open order.

    Args:
        client: UpstoxClient instance
        args: Tool arguments with 'order_id'

    Returns:
        Dict with 'result' on success or 'error' on failure
    """
    try:
        _require(args, ["order_id"])
        await client.cancel_order(str(args["order_id"]))
    except Exception as e:
        return tool_error("CANCEL_ORDER_ERROR", str(e))
    return {
        "result": {
            "status": "success",
            "order_id": args["order_id"],
            "message": "Order cancelled successfully",
        }
    }


async def get_order(client: UpstoxClient, args: dict) -> dict[str, Any]:
    """Get details of a specific order."""
    try:
        _require(args, ["order_id"])
        order = await client.get_order(str(args["order_id"]))
    except Exception as e:
        return tool_error("GET_ORDER_ERROR", str(e))
    return {"result": {"status": "success", "order": order}}
