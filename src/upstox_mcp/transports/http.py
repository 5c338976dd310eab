"""
HTTP and WebSocket front doors.

POST /mcp carries one JSON-RPC envelope per request; the WebSocket routes
dispatch every inbound message independently and answer on the same socket.
The OAuth callback, health check and token notifier live here too.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.websockets import WebSocketDisconnect, WebSocketState

from .. import __version__
from ..auth import AuthManager
from ..config import Settings
from ..dispatcher import Dispatcher
from ..errors import AuthExchangeFailedError

logger = logging.getLogger(__name__)

AUTH_SUCCESS_PAGE = """
<html>
  <body>
    <h1>Authentication Successful</h1>
    <p>You can now close this window and return to the application.</p>
    <script>
      window.close();
    </script>
  </body>
</html>
"""


def create_app(dispatcher: Dispatcher, auth: AuthManager, settings: Settings) -> FastAPI:
    """Build the FastAPI application serving every HTTP and WebSocket route."""
    app = FastAPI(title="Upstox MCP Server", version=__version__)
    # Dispatches outlive their WebSocket; only the response is dropped on disconnect
    inflight: set[asyncio.Task] = set()

    @app.post("/mcp")
    async def mcp_endpoint(request: Request) -> JSONResponse:
        body = await request.body()
        return JSONResponse(await dispatcher.handle_raw(body))

    @app.get("/callback")
    async def oauth_callback(code: Optional[str] = None):
        if not code:
            return PlainTextResponse("Authorization code is missing", status_code=400)
        try:
            await auth.exchange_code(code)
        except AuthExchangeFailedError as e:
            logger.error(f"OAuth callback failed: {e.message}")
            return PlainTextResponse(e.message, status_code=500)
        return HTMLResponse(AUTH_SUCCESS_PAGE)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "healthy",
            "mode": settings.upstox_environment.value,
            "auth_method": auth.method.value,
            "api_ready": auth.is_ready(),
        }

    @app.post("/notifier")
    async def token_notifier(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Body must be JSON"}, status_code=400)
        if not isinstance(payload, dict) or not payload.get("access_token"):
            return JSONResponse({"error": "access_token is required"}, status_code=400)

        client_id = payload.get("client_id")
        api_key = settings.active_credentials().key
        if client_id and api_key and client_id != api_key:
            logger.warning("Rejected token notification for another client id")
            return JSONResponse({"error": "client_id does not match"}, status_code=403)

        expiry_days = payload.get("expiry_days", 1)
        if not isinstance(expiry_days, int) or isinstance(expiry_days, bool) or expiry_days < 0:
            return JSONResponse({"error": "expiry_days must be a non-negative integer"}, status_code=400)

        state = await auth.set_token(str(payload["access_token"]), expiry_days)
        return JSONResponse({"status": "ok", "token_expiry": state.token_expiry.isoformat()})

    async def mcp_websocket(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("WebSocket client connected")
        send_lock = asyncio.Lock()

        async def respond(data) -> None:
            response = await dispatcher.handle_raw(data)
            if websocket.client_state == WebSocketState.DISCONNECTED:
                logger.debug("Dropping response for closed WebSocket")
                return
            try:
                async with send_lock:
                    await websocket.send_text(json.dumps(response))
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug(f"Dropping response for closed WebSocket: {e}")

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    data = message.get("bytes") or b""
                task = asyncio.create_task(respond(data))
                inflight.add(task)
                task.add_done_callback(inflight.discard)
        except WebSocketDisconnect:
            pass
        finally:
            logger.info("WebSocket client disconnected")

    app.add_api_websocket_route("/", mcp_websocket)
    app.add_api_websocket_route("/ws", mcp_websocket)

    return app
