"""Market data resources for Upstox MCP Server."""

import json
import logging
from typing import Any

from ..client import UpstoxClient

logger = logging.getLogger(__name__)

CANDLE_INTERVALS = ("1minute", "30minute", "day", "week", "month")

MARKET_DATA_PARAMETERS = {
    "instruments": {
        "type": "array",
        "description": 'List of instrument symbols (e.g., "INFY" or complete symbol like "NSE_EQ|INFY")',
    }
}

HISTORICAL_DATA_PARAMETERS = {
    "instrument": {
        "type": "string",
        "description": 'Instrument symbol (e.g., "INFY" or "NSE_EQ|INFY")',
    },
    "interval": {
        "type": "string",
        "description": f"Candle interval ({', '.join(CANDLE_INTERVALS)})",
    },
    "from_date": {
        "type": "string",
        "description": "Start date in YYYY-MM-DD format",
    },
    "to_date": {
        "type": "string",
        "description": "End date in YYYY-MM-DD format",
    },
}

INSTRUMENTS_PARAMETERS = {
    "exchange": {
        "type": "string",
        "description": 'Exchange name (e.g., "NSE", "BSE") or complete code (e.g., "NSE_EQ")',
    }
}


def json_content(data: Any, indent: int = 2) -> dict[str, str]:
    """Wrap broker data as resource content."""
    return {
        "content": json.dumps(data, indent=indent, default=str),
        "content_type": "application/json",
    }


async def get_market_data(client: UpstoxClient, args: dict) -> dict[str, str]:
    """
    Get live quotes for one or more instruments.

    Args:
        client: UpstoxClient instance
        args: Resource arguments with 'instruments' (list or single symbol)

    Returns:
        Resource content with the quotes keyed by instrument
    """
    instruments = args.get("instruments")
    if not instruments:
        raise ValueError("No instruments specified. Please provide at least one instrument.")
    if isinstance(instruments, str):
        instruments = [instruments]
    if not isinstance(instruments, list) or not all(isinstance(i, str) for i in instruments):
        raise ValueError("instruments must be a symbol or a list of symbols")

    try:
        quotes = await client.get_market_data(instruments)
    except Exception as e:
        raise ValueError(
            f"Failed to get market data: {e}. Make sure you're using valid instrument "
            f'symbols like "NSE_EQ|INFY" or just "INFY".'
        ) from e

    if not quotes:
        return json_content(
            {
                "message": "No market data returned. This may be due to market hours or invalid instrument symbols.",
                "instruments_requested": instruments,
            }
        )
    return json_content(quotes)


async def get_historical_data(client: UpstoxClient, args: dict) -> dict[str, str]:
    """
    Get OHLC candles for one instrument over a date range.

    Args:
        client: UpstoxClient instance
        args: Resource arguments with 'instrument', 'interval', 'from_date', 'to_date'

    Returns:
        Resource content with the candles
    """
    if not args.get("instrument"):
        raise ValueError("Instrument symbol is required")
    if not args.get("interval"):
        raise ValueError('Interval is required (e.g., "1minute", "30minute", "day")')
    if not args.get("from_date"):
        raise ValueError("Start date (from_date) is required in YYYY-MM-DD format")
    if not args.get("to_date"):
        raise ValueError("End date (to_date) is required in YYYY-MM-DD format")
    if args["interval"] not in CANDLE_INTERVALS:
        raise ValueError(
            f"Invalid interval: {args['interval']}. Valid intervals are: {', '.join(CANDLE_INTERVALS)}"
        )

    try:
        candles = await client.get_historical_data(
            {
                "instrument": args["instrument"],
                "interval": args["interval"],
                "from_date": args["from_date"],
                "to_date": args["to_date"],
            }
        )
    except Exception as e:
        raise ValueError(
            f"Failed to get historical data: {e}. Make sure the instrument, interval, and dates are valid."
        ) from e
    return json_content(candles)


async def get_instruments(client: UpstoxClient, args: dict) -> dict[str, str]:
    """Get tradable instruments for an exchange."""
    exchange = args.get("exchange")
    if not exchange or not isinstance(exchange, str):
        raise ValueError(
            'Exchange parameter is required (e.g., "NSE", "BSE", or complete code like "NSE_EQ")'
        )

    try:
        instruments = await client.get_instruments(exchange)
    except Exception as e:
        raise ValueError(
            f'Failed to get instruments: {e}. Make sure you\'re using a valid exchange like "NSE", "BSE", or "NSE_EQ".'
        ) from e
    return json_content(instruments, indent=None)
