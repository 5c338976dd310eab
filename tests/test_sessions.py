"""Tests for the session registry."""

import asyncio
from datetime import timedelta

import pytest

from upstox_mcp.sessions import SessionRegistry


class TestSessionLifecycle:
    """Tests for start, end and lookup."""

    @pytest.mark.asyncio
    async def test_start_creates_session(self, clock):
        """Test a new session is valid and timestamped."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start({"client": "test"})

        session = registry.get(session_id)
        assert registry.validate(session_id) is True
        assert session.created_at == clock.now
        assert session.last_accessed_at == clock.now
        assert session.metadata == {"client": "test"}

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, clock):
        """Test every start yields a distinct id."""
        registry = SessionRegistry(clock=clock)
        ids = {await registry.start() for _ in range(10)}
        assert len(ids) == 10
        assert len(registry.list()) == 10

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, clock):
        """Test ending a session twice is not an error."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()

        await registry.end(session_id)
        await registry.end(session_id)
        await registry.end("never-existed")

        assert registry.get(session_id) is None
        assert registry.validate(session_id) is False

    def test_unknown_session_invalid(self, clock):
        """Test an unknown id does not validate."""
        assert SessionRegistry(clock=clock).validate("nope") is False

    @pytest.mark.asyncio
    async def test_to_dict(self, clock):
        """Test session serialization."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        data = registry.get(session_id).to_dict()
        assert data["id"] == session_id
        assert data["created_at"] == clock.now.isoformat()
        assert data["metadata"] == {}


class TestSessionExpiry:
    """Tests for the one-hour idle expiry."""

    @pytest.mark.asyncio
    async def test_valid_just_before_expiry(self, clock):
        """Test a session idle for just under an hour is still valid."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        clock.advance(minutes=59, seconds=59)
        assert registry.validate(session_id) is True

    @pytest.mark.asyncio
    async def test_invalid_at_expiry(self, clock):
        """Test a session idle for exactly an hour is expired."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        clock.advance(hours=1)
        assert registry.validate(session_id) is False

    @pytest.mark.asyncio
    async def test_touch_extends_life(self, clock):
        """Test touching resets the idle timer."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        clock.advance(minutes=50)
        await registry.touch(session_id)
        clock.advance(minutes=50)
        assert registry.validate(session_id) is True

    @pytest.mark.asyncio
    async def test_touch_unknown_is_noop(self, clock):
        """Test touching an unknown session does nothing."""
        registry = SessionRegistry(clock=clock)
        await registry.touch("nope")
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_refresh(self, clock):
        """Test refresh validates and touches in one step."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        clock.advance(minutes=30)

        assert await registry.refresh(session_id) is True
        assert registry.get(session_id).last_accessed_at == clock.now

        clock.advance(hours=1)
        assert await registry.refresh(session_id) is False
        assert await registry.refresh("nope") is False


class TestSweep:
    """Tests for expired-session sweeping."""

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, clock):
        """Test a session touched a minute ago survives the sweep."""
        registry = SessionRegistry(clock=clock)
        stale = await registry.start()
        fresh = await registry.start()

        clock.advance(minutes=59)
        await registry.touch(fresh)
        clock.advance(minutes=2)

        assert await registry.sweep() == 1
        assert registry.get(stale) is None
        assert registry.get(fresh) is not None

    @pytest.mark.asyncio
    async def test_sweep_empty(self, clock):
        """Test sweeping an empty registry removes nothing."""
        assert await SessionRegistry(clock=clock).sweep() == 0

    @pytest.mark.asyncio
    async def test_sweep_waits_for_session_lock(self, clock):
        """Test a session in use when the sweep starts is re-checked under its lock."""
        registry = SessionRegistry(clock=clock)
        session_id = await registry.start()
        session = registry.get(session_id)

        await session.lock.acquire()
        clock.advance(hours=2)
        sweep = asyncio.create_task(registry.sweep())
        await asyncio.sleep(0)
        assert not sweep.done()

        session.last_accessed_at = clock.now
        session.lock.release()

        assert await sweep == 0
        assert registry.get(session_id) is session

    @pytest.mark.asyncio
    async def test_background_sweeper(self, clock):
        """Test the background task sweeps on its interval."""
        registry = SessionRegistry(sweep_interval=timedelta(milliseconds=10), clock=clock)
        session_id = await registry.start()
        clock.advance(hours=2)

        registry.start_sweeper()
        try:
            await asyncio.sleep(0.1)
        finally:
            await registry.stop_sweeper()

        assert registry.get(session_id) is None

    @pytest.mark.asyncio
    async def test_stop_sweeper_without_start(self, clock):
        """Test stopping a sweeper that never started is harmless."""
        await SessionRegistry(clock=clock).stop_sweeper()
