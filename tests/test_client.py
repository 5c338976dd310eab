"""Tests for the Upstox API client."""

import json

import httpx
import pytest

from upstox_mcp.auth import AuthManager
from upstox_mcp.client import UpstoxClient, format_exchange, format_instrument
from upstox_mcp.errors import BrokerAPIError, NotAuthenticatedError


def success(data):
    return httpx.Response(200, json={"status": "success", "data": data})


def make_client(settings, clock, handler):
    """Client on the token method whose requests go to handler."""
    auth = AuthManager(settings, clock=clock)
    client = UpstoxClient(auth, transport=httpx.MockTransport(handler))
    return client, auth


class TestFormatting:
    """Tests for symbol normalization."""

    def test_bare_symbol_prefixed(self):
        """Test bare symbols get the NSE equity segment."""
        assert format_instrument("INFY") == "NSE_EQ|INFY"

    def test_qualified_symbol_unchanged(self):
        """Test qualified keys are left alone."""
        assert format_instrument("BSE_EQ|TCS") == "BSE_EQ|TCS"

    def test_exchange_formatting(self):
        """Test bare exchanges map to their equity segment."""
        assert format_exchange("nse") == "NSE_EQ"
        assert format_exchange("NSE_FO") == "NSE_FO"


class TestRequests:
    """Tests for authenticated requests and unwrapping."""

    @pytest.mark.asyncio
    async def test_headers_and_unwrap(self, make_settings, clock):
        """Test the bearer token is sent and the data envelope unwrapped."""
        seen = []

        def handler(request):
            seen.append(request)
            return success({"user_name": "Test User"})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        profile = await client.get_profile()

        assert profile == {"user_name": "Test User"}
        request = seen[0]
        assert request.url.path == "/v2/user/profile"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["Api-Version"] == "2.0"

    @pytest.mark.asyncio
    async def test_not_authenticated(self, make_settings, clock):
        """Test no request is sent without a token."""
        seen = []
        client, _ = make_client(make_settings(), clock, lambda r: seen.append(r))

        with pytest.raises(NotAuthenticatedError):
            await client.get_positions()
        assert seen == []

    @pytest.mark.asyncio
    async def test_unauthorized_logs_out(self, make_settings, clock):
        """Test a 401 raises and clears the auth state."""

        def handler(request):
            return httpx.Response(
                401,
                json={"status": "error", "errors": [{"message": "Invalid token used to access API"}]},
            )

        client, auth = make_client(make_settings(), clock, handler)
        await auth.set_token("stale")

        with pytest.raises(BrokerAPIError) as exc_info:
            await client.get_holdings()

        assert exc_info.value.status == 401
        assert exc_info.value.message == "API Error 401: Invalid token used to access API"
        assert auth.current_state().is_authorized is False
        assert auth.current_state().access_token is None

    @pytest.mark.asyncio
    async def test_http_error_message(self, make_settings, clock):
        """Test upstream error text is carried in the exception."""

        def handler(request):
            return httpx.Response(500, json={"message": "Something broke"})

        client, auth = make_client(make_settings(upstox_access_token="tok"), clock, handler)

        with pytest.raises(BrokerAPIError, match="API Error 500: Something broke"):
            await client.get_orders()
        assert auth.is_ready() is True

    @pytest.mark.asyncio
    async def test_error_status_body(self, make_settings, clock):
        """Test a 200 with status error is still a failure."""

        def handler(request):
            return httpx.Response(200, json={"status": "error", "message": "Segment closed"})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        with pytest.raises(BrokerAPIError, match="Segment closed"):
            await client.get_funds()

    @pytest.mark.asyncio
    async def test_transport_failure(self, make_settings, clock):
        """Test network errors surface as BrokerAPIError."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        with pytest.raises(BrokerAPIError, match="connection refused"):
            await client.get_profile()


class TestEndpoints:
    """Tests for endpoint paths and parameters."""

    @pytest.mark.asyncio
    async def test_market_data(self, make_settings, clock):
        """Test symbols are normalized and joined."""
        seen = []

        def handler(request):
            seen.append(request)
            return success({"NSE_EQ:INFY": {"last_price": 1500.0}})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        quotes = await client.get_market_data(["INFY", "BSE_EQ|TCS"])

        assert quotes == {"NSE_EQ:INFY": {"last_price": 1500.0}}
        assert seen[0].url.path == "/v2/market-quote/quotes"
        assert seen[0].url.params["symbol"] == "NSE_EQ|INFY,BSE_EQ|TCS"

    @pytest.mark.asyncio
    async def test_market_data_requires_instruments(self, make_settings, clock):
        """Test an empty instrument list is rejected."""
        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, success)
        with pytest.raises(ValueError):
            await client.get_market_data([])

    @pytest.mark.asyncio
    async def test_historical_data_path(self, make_settings, clock):
        """Test the candle path puts the end date before the start date."""
        seen = []

        def handler(request):
            seen.append(request)
            return success({"candles": []})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        await client.get_historical_data(
            {"instrument": "INFY", "interval": "day", "from_date": "2024-01-01", "to_date": "2024-01-31"}
        )

        assert seen[0].url.path == "/v2/historical-candle/NSE_EQ|INFY/day/2024-01-31/2024-01-01"

    @pytest.mark.asyncio
    async def test_instruments_fallback(self, make_settings, clock):
        """Test the master endpoint is used when the segment listing fails."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("/master"):
                return success([{"instrument_key": "NSE_EQ|INFY"}])
            return httpx.Response(404, json={"message": "Not found"})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        instruments = await client.get_instruments("NSE")

        assert instruments == [{"instrument_key": "NSE_EQ|INFY"}]
        assert paths == ["/v2/market/instruments", "/v2/market/instruments/master"]

    @pytest.mark.asyncio
    async def test_place_order_body(self, make_settings, clock):
        """Test order defaults and instrument normalization."""
        seen = []

        def handler(request):
            seen.append(request)
            return success({"order_id": "240115000001"})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        result = await client.place_order(
            {
                "instrument_token": "INFY",
                "transaction_type": "BUY",
                "quantity": 5,
                "order_type": "MARKET",
                "product": "D",
                "validity": "DAY",
                "price": None,
            }
        )

        assert result == {"order_id": "240115000001"}
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v2/order/place"
        body = json.loads(request.content)
        assert body["instrument_token"] == "NSE_EQ|INFY"
        assert body["price"] == 0
        assert body["trigger_price"] == 0
        assert body["disclosed_quantity"] == 0
        assert body["is_amo"] is False
        assert body["tag"] == "upstox-mcp"

    @pytest.mark.asyncio
    async def test_cancel_order(self, make_settings, clock):
        """Test cancel uses DELETE with the order id."""
        seen = []

        def handler(request):
            seen.append(request)
            return success({"order_id": "123"})

        client, _ = make_client(make_settings(upstox_access_token="tok"), clock, handler)
        await client.cancel_order("123")

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/v2/order/cancel"
        assert seen[0].url.params["order_id"] == "123"
