"""Transport adapters feeding the shared dispatcher."""

from .http import create_app
from .stdio import StdioTransport, serve_stdio

__all__ = ["create_app", "StdioTransport", "serve_stdio"]
