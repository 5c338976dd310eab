"""Account and portfolio resources for Upstox MCP Server."""

from typing import Any

from ..client import UpstoxClient
from .market import json_content


def _funds_summary(funds: Any) -> dict[str, Any]:
    """
    Pull the headline balance figures out of a funds response.

    Upstox reports funds per segment ({"equity": {...}, "commodity": {...}});
    the summary uses the equity segment when present.
    """
    if not isinstance(funds, dict):
        return {"available_balance": 0, "total_margin_used": 0, "available_cash": 0}
    segment = funds.get("equity") if isinstance(funds.get("equity"), dict) else funds

    available_margin = segment.get("available_margin")
    available_cash = segment.get("available_cash")
    return {
        "available_balance": available_margin or available_cash or 0,
        "total_margin_used": segment.get("used_margin") or 0,
        "available_cash": available_cash or 0,
    }


async def get_funds(client: UpstoxClient, args: dict) -> dict[str, str]:
    """
    Get funds and margins with a quick-access summary.

    Args:
        client: UpstoxClient instance
        args: Resource arguments (unused)

    Returns:
        Resource content with funds data plus a 'summary' block
    """
    funds = await client.get_funds()
    data = dict(funds) if isinstance(funds, dict) else {"funds": funds}
    data["summary"] = _funds_summary(funds)
    return json_content(data)


async def get_positions(client: UpstoxClient, args: dict) -> dict[str, str]:
    """Get current positions."""
    return json_content(await client.get_positions(), indent=None)


async def get_holdings(client: UpstoxClient, args: dict) -> dict[str, str]:
    """Get current holdings."""
    return json_content(await client.get_holdings(), indent=None)


async def get_orders(client: UpstoxClient, args: dict) -> dict[str, str]:
    """Get the day's orders."""
    return json_content(await client.get_orders(), indent=None)


async def get_profile(client: UpstoxClient, args: dict) -> dict[str, str]:
    """Get the user profile."""
    return json_content(await client.get_profile(), indent=None)
