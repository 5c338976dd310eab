"""
Upstox MCP error types.
"""

from typing import Any, Optional, Union


class UpstoxMCPError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details


class AuthError(UpstoxMCPError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class NotAuthenticatedError(AuthError):
    def __init__(self, message: str = "Not authenticated with Upstox. Please authenticate first."):
        super().__init__(message, code="not_authenticated")


class TokenExpiredError(AuthError):
    def __init__(self, message: str = "Upstox token has expired. Re-authorization required."):
        super().__init__(message, code="token_expired")


class AuthExchangeFailedError(AuthError):
    def __init__(self, message: str):
        super().__init__(f"Authentication failed: {message}", code="auth_exchange_failed")


class BrokerAPIError(UpstoxMCPError):
    """Upstream Upstox API failure, carrying the HTTP status when there was one."""

    def __init__(self, status: Optional[int], message: str, details: Optional[dict[str, Any]] = None):
        text = f"API Error {status}: {message}" if status is not None else message
        super().__init__("broker_error", text, details)
        self.status = status


class EnvelopeParseError(UpstoxMCPError):
    """Raw input could not be read as a request envelope."""

    def __init__(self, message: str, request_id: Union[str, int, None] = None):
        super().__init__("parse_error", message)
        self.request_id = request_id


def upstream_message(response: Any) -> str:
    """Best-effort error text from an Upstox error response.

    Upstox answers failures with ``{"status": "error", "errors": [{"message": ...}]}``;
    other shapes fall back to a ``message`` field or the raw body.
    """
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"

    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            return ", ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
        if data.get("message"):
            return str(data["message"])
    return str(data)[:200]
