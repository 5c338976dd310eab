"""Discovery, session and client-initialize methods."""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .dispatcher import Dispatcher, SessionPolicy
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)


class CapabilityFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    resources: bool = True
    tools: bool = True
    prompts: bool = False
    sampling: bool = False


class ServerCapabilities(BaseModel):
    """Static descriptor advertised by mcp.discover."""

    model_config = ConfigDict(frozen=True)

    name: str = "upstox-mcp-server"
    version: str = __version__
    vendor: str = "Upstox"
    capabilities: CapabilityFlags = Field(default_factory=CapabilityFlags)


class SessionEndParams(BaseModel):
    session_id: str


class ClientInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    version: str


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    protocolVersion: str
    clientInfo: ClientInfo
    capabilities: dict[str, Any] = Field(default_factory=dict)


def register_core_methods(
    dispatcher: Dispatcher,
    sessions: SessionRegistry,
    capabilities: ServerCapabilities,
) -> None:
    """Register mcp.discover, mcp.session.start/end and initialize."""
    descriptor = capabilities.model_dump()

    async def discover(params: dict) -> dict:
        return descriptor

    async def session_start(params: dict) -> dict:
        session_id = await sessions.start(params)
        return {"session_id": session_id}

    async def session_end(params: SessionEndParams) -> None:
        await sessions.end(params.session_id)

    async def initialize(params: InitializeParams) -> dict:
        # Always a fresh session so a client can bootstrap in one round trip
        logger.info(
            f"Client initialized: {params.clientInfo.name} {params.clientInfo.version} "
            f"(protocol {params.protocolVersion})"
        )
        session_id = await sessions.start(
            {
                "clientInfo": params.clientInfo.model_dump(),
                "protocolVersion": params.protocolVersion,
            }
        )
        return {
            "session_id": session_id,
            "server_info": descriptor,
            "protocol_version": params.protocolVersion,
        }

    dispatcher.register("mcp.discover", discover, session=SessionPolicy.EXEMPT)
    dispatcher.register("mcp.session.start", session_start, session=SessionPolicy.EXEMPT)
    dispatcher.register(
        "mcp.session.end", session_end, params_model=SessionEndParams, session=SessionPolicy.PRESENT
    )
    dispatcher.register(
        "initialize", initialize, params_model=InitializeParams, session=SessionPolicy.EXEMPT
    )
