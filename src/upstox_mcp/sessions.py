"""
In-memory MCP session registry.

Sessions are keyed by an opaque uuid and expire after an hour of inactivity.
A background sweeper drops expired sessions every 30 minutes.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

SESSION_EXPIRY = timedelta(hours=1)
SWEEP_INTERVAL = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """One logical client conversation."""

    id: str
    created_at: datetime
    last_accessed_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def idle_for(self, now: datetime) -> timedelta:
        return now - self.last_accessed_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "metadata": self.metadata,
        }


class SessionRegistry:
    """Creates, validates, touches and expires sessions."""

    def __init__(
        self,
        expiry: timedelta = SESSION_EXPIRY,
        sweep_interval: timedelta = SWEEP_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.expiry = expiry
        self.sweep_interval = sweep_interval
        self._clock = clock or _utcnow
        self._sessions: dict[str, Session] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return session.idle_for(now) >= self.expiry

    async def start(self, metadata: Optional[dict[str, Any]] = None) -> str:
        """Create a new session and return its id."""
        now = self._clock()
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = Session(
            id=session_id,
            created_at=now,
            last_accessed_at=now,
            metadata=dict(metadata or {}),
        )
        logger.info(f"Session started: {session_id}")
        return session_id

    async def end(self, session_id: str) -> None:
        """Remove a session. Ending an unknown session is a no-op."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        async with session.lock:
            if self._sessions.pop(session_id, None) is not None:
                logger.info(f"Session ended: {session_id}")

    def validate(self, session_id: str) -> bool:
        """Check the session exists and has not been idle past the expiry."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        return not self._is_expired(session, self._clock())

    async def touch(self, session_id: str) -> None:
        """Mark a session as used now."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        async with session.lock:
            session.last_accessed_at = self._clock()

    async def refresh(self, session_id: str) -> bool:
        """Validate and touch a session in one step under its lock."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        async with session.lock:
            if session_id not in self._sessions:
                return False
            now = self._clock()
            if self._is_expired(session, now):
                return False
            session.last_accessed_at = now
            return True

    async def sweep(self) -> int:
        """Remove every expired session. Returns how many were removed."""
        removed = 0
        for session_id, session in list(self._sessions.items()):
            async with session.lock:
                if self._is_expired(session, self._clock()):
                    if self._sessions.pop(session_id, None) is not None:
                        removed += 1
        if removed:
            logger.info(f"Swept {removed} expired session(s), {len(self._sessions)} active")
        return removed

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list(self) -> list[Session]:
        return list(self._sessions.values())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval.total_seconds())
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
