"""
Upstox MCP Server

A Model Context Protocol (MCP) gateway for the Upstox brokerage API.
Speaks JSON-RPC 2.0 over HTTP, WebSocket and stdio, and exposes market
data, portfolio resources and order tools to MCP clients.
"""

__version__ = "0.1.0"

from .auth import AuthManager, AuthState
from .client import UpstoxClient
from .config import Settings, settings
from .dispatcher import Dispatcher
from .sessions import SessionRegistry

__all__ = [
    "AuthManager",
    "AuthState",
    "UpstoxClient",
    "Settings",
    "settings",
    "Dispatcher",
    "SessionRegistry",
]
