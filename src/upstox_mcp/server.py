"""
Upstox MCP Server - Main entry point

Wires the auth manager, broker client, session registry and dispatcher
together and serves them over HTTP/WebSocket and/or stdio.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Optional

import httpx
import uvicorn

from .auth import AuthManager, AuthState
from .client import UpstoxClient
from .config import AuthMethod, Settings, settings
from .core import ServerCapabilities, register_core_methods
from .dispatcher import Dispatcher
from .resources import register_resource_methods
from .sessions import SessionRegistry
from .tools import register_tool_methods
from .transports import create_app, serve_stdio

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Send logs to stderr so stdout stays free for the stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@dataclass
class Services:
    """Process-wide components shared by every transport."""

    settings: Settings
    auth: AuthManager
    client: UpstoxClient
    sessions: SessionRegistry
    dispatcher: Dispatcher


def _log_auth_change(state: AuthState) -> None:
    if state.is_authorized:
        expiry = state.token_expiry.isoformat() if state.token_expiry else "unknown"
        logger.info(f"Upstox API ready (token valid until {expiry})")
    else:
        logger.info("Upstox API not ready, waiting for authorization")


def build_services(
    cfg: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Services:
    """
    Build the auth manager, client, session registry and dispatcher.

    Args:
        cfg: Application settings
        transport: Optional httpx transport shared by all outbound calls

    Returns:
        Services with every MCP method registered
    """
    auth = AuthManager(cfg, transport=transport, timeout=cfg.upstox_timeout)
    client = UpstoxClient(
        auth,
        base_url=cfg.upstox_base_url,
        timeout=cfg.upstox_timeout,
        transport=transport,
    )
    sessions = SessionRegistry()
    dispatcher = Dispatcher(sessions)

    register_core_methods(dispatcher, sessions, ServerCapabilities())
    register_resource_methods(dispatcher, client)
    register_tool_methods(dispatcher, client)

    auth.subscribe(_log_auth_change)
    return Services(cfg, auth, client, sessions, dispatcher)


async def _run_stdio(services: Services, http_server: Optional[uvicorn.Server]) -> None:
    await serve_stdio(services.dispatcher)
    # Client closed stdin; take the HTTP side down with it
    if http_server is not None:
        http_server.should_exit = True


async def run_server(services: Services) -> None:
    """Run the enabled transports until they all stop."""
    cfg = services.settings
    logger.info(
        f"Starting Upstox MCP Server ({cfg.upstox_environment.value} environment, "
        f"{services.auth.method.value} auth)"
    )

    await services.auth.initialize()
    if services.auth.method == AuthMethod.OAUTH and not services.auth.is_ready():
        logger.info(f"Authorization required. Visit: {services.auth.authorization_url()}")

    runners = []
    http_server: Optional[uvicorn.Server] = None
    if cfg.mcp_http_enabled:
        app = create_app(services.dispatcher, services.auth, cfg)
        http_server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=cfg.host,
                port=cfg.port,
                log_config=None,
                log_level=cfg.log_level.lower(),
            )
        )
        logger.info(f"HTTP endpoint: http://{cfg.host}:{cfg.port}/mcp")
        logger.info(f"WebSocket endpoint: ws://{cfg.host}:{cfg.port}/ws")
        runners.append(http_server.serve())
    if cfg.mcp_stdio_enabled:
        runners.append(_run_stdio(services, http_server))

    if not runners:
        logger.error("No transport enabled; set MCP_HTTP_ENABLED or MCP_STDIO_ENABLED")
        return

    services.sessions.start_sweeper()
    try:
        await asyncio.gather(*runners)
    finally:
        await services.sessions.stop_sweeper()
        logger.info("Upstox MCP Server stopped")


def main():
    """Entry point for the server."""
    cfg = settings()
    configure_logging(cfg.log_level)
    asyncio.run(run_server(build_services(cfg)))


if __name__ == "__main__":
    main()
