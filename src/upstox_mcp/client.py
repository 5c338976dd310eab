"""
Upstox API HTTP client.

Handles all API requests with the current access token. A 401 from Upstox
logs the process out.
"""

import logging
from typing import Any, Optional

import httpx

from .auth import AuthManager
from .errors import BrokerAPIError, upstream_message

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE_SEGMENT = "NSE_EQ"


def format_instrument(instrument: str) -> str:
    """Prefix a bare symbol with the default segment (``INFY`` -> ``NSE_EQ|INFY``)."""
    if "|" in instrument:
        return instrument
    return f"{DEFAULT_EXCHANGE_SEGMENT}|{instrument}"


def format_exchange(exchange: str) -> str:
    """Turn a bare exchange into its equity segment (``nse`` -> ``NSE_EQ``)."""
    if "_" in exchange:
        return exchange
    return f"{exchange.upper()}_EQ"


class UpstoxClient:
    """Async HTTP client for Upstox API."""

    BASE_URL = "https://api.upstox.com/v2"

    def __init__(
        self,
        auth: AuthManager,
        base_url: str = BASE_URL,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize UpstoxClient.

        Args:
            auth: AuthManager supplying access tokens
            base_url: Upstox REST base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _get_headers(self) -> dict[str, str]:
        """Get headers with valid access token."""
        token = await self.auth.access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Api-Version": "2.0",
        }

    @staticmethod
    def _unwrap(data: Any) -> Any:
        """Unwrap the standard Upstox response: { "status": "success", "data": <actual_data> }"""
        if isinstance(data, dict):
            if data.get("status") == "success" and "data" in data:
                return data["data"]
            if data.get("status") == "error":
                raise BrokerAPIError(None, data.get("message") or "Unknown API error", details=data)
        return data

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> Any:
        """
        Make an authenticated request to Upstox API.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: Path relative to the base URL
            params: Optional query parameters
            json_data: Optional JSON body data

        Returns:
            Unwrapped response data

        Raises:
            BrokerAPIError: If the request fails
            NotAuthenticatedError, TokenExpiredError: If no usable token exists
        """
        headers = await self._get_headers()
        url = f"{self.base_url}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=float(self.timeout), transport=self._transport
            ) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    json=json_data,
                )
        except httpx.HTTPError as e:
            raise BrokerAPIError(None, f"{method} {path} failed: {e}") from e

        # Log non-sensitive request info
        logger.debug(f"{method} {path} -> {response.status_code}")

        if response.status_code == 401:
            logger.warning("Upstox rejected the access token, logging out")
            await self.auth.logout()
        if response.is_error:
            raise BrokerAPIError(response.status_code, upstream_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise BrokerAPIError(response.status_code, f"Invalid JSON in response: {e}") from e
        return self._unwrap(data)

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    # ==========================================================================
    # User Endpoints
    # ==========================================================================

    async def get_profile(self) -> dict:
        """Get user profile information."""
        return await self.get("/user/profile")

    async def get_funds(self) -> dict:
        """Get funds, margins and available balance."""
        return await self.get("/user/get-funds-and-margin")

    # ==========================================================================
    # Market Data Endpoints
    # ==========================================================================

    async def get_market_data(self, instruments: list[str]) -> dict:
        """
        Get full market quotes for instruments.

        Args:
            instruments: Symbols or instrument keys (e.g. 'INFY', 'NSE_EQ|INFY')

        Returns:
            Dict of instrument key -> quote data
        """
        if not instruments:
            raise ValueError("No instruments provided")
        symbols = ",".join(format_instrument(i) for i in instruments)
        logger.info(f"Fetching market data for: {symbols}")
        return await self.get("/market-quote/quotes", params={"symbol": symbols})

    async def get_historical_data(self, params: dict) -> dict:
        """
        Get historical candles for an instrument.

        Args:
            params: Dict with 'instrument', 'interval', 'from_date' and 'to_date'
                (dates as YYYY-MM-DD)

        Returns:
            Candle data
        """
        instrument = format_instrument(params["instrument"])
        logger.info(
            f"Fetching historical data for {instrument} ({params['interval']}, "
            f"{params['from_date']} to {params['to_date']})"
        )
        path = (
            f"/historical-candle/{instrument}/{params['interval']}"
            f"/{params['to_date']}/{params['from_date']}"
        )
        return await self.get(path)

    async def get_instruments(self, exchange: str) -> list[dict]:
        """
        Get tradable instruments for an exchange segment.

        Falls back to the instrument master endpoint when the segment listing fails.
        """
        segment = format_exchange(exchange)
        logger.info(f"Fetching instruments for exchange: {segment}")
        try:
            return await self.get("/market/instruments", params={"exchange": segment})
        except BrokerAPIError as e:
            if e.status == 401:
                raise
            logger.info("Falling back to instrument master API...")
            return await self.get("/market/instruments/master", params={"exchange": segment})

    # ==========================================================================
    # Portfolio Endpoints
    # ==========================================================================

    async def get_positions(self) -> list[dict]:
        """Get short-term positions."""
        return await self.get("/portfolio/short-term-positions")

    async def get_holdings(self) -> list[dict]:
        """Get long-term holdings."""
        return await self.get("/portfolio/long-term-holdings")

    # ==========================================================================
    # Order Endpoints
    # ==========================================================================

    async def get_orders(self) -> list[dict]:
        """Get the order book for the day."""
        return await self.get("/order/retrieve-all")

    async def get_order(self, order_id: str) -> dict:
        """Get details of a specific order."""
        return await self.get("/order/details", params={"order_id": order_id})

    async def place_order(self, params: dict) -> dict:
        """
        Place an order.

        Args:
            params: Order fields (instrument_token, transaction_type, quantity,
                order_type, price, trigger_price, product, validity, ...)

        Returns:
            Order acknowledgement (contains 'order_id')
        """
        body = {key: value for key, value in params.items() if value is not None}
        body["instrument_token"] = format_instrument(body["instrument_token"])
        body["quantity"] = int(body["quantity"])
        body.setdefault("price", 0)
        body.setdefault("trigger_price", 0)
        body.setdefault("disclosed_quantity", 0)
        body.setdefault("is_amo", False)
        body.setdefault("tag", "upstox-mcp")
        logger.info(
            f"Placing {body['transaction_type']} {body['order_type']} order: "
            f"{body['quantity']} x {body['instrument_token']}"
        )
        return await self._request("POST", "/order/place", json_data=body)

    async def cancel_order(self, order_id: str) -> dict:
        """Cancel an open order."""
        logger.info(f"Cancelling order {order_id}")
        return await self._request("DELETE", "/order/cancel", params={"order_id": order_id})
