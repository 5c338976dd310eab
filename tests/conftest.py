"""Shared fixtures for the test suite."""

import os
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from upstox_mcp.auth import BROKER_TIMEZONE as IST
from upstox_mcp.config import Settings

ENV_PREFIXES = ("UPSTOX_", "MCP_", "HOST", "PORT", "LOG_LEVEL")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clean_env():
    """Keep developer environment variables out of Settings."""
    with patch.dict(os.environ):
        for key in list(os.environ):
            if key.startswith(ENV_PREFIXES):
                del os.environ[key]
        yield


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 10, 0, tzinfo=IST))


@pytest.fixture
def make_settings():
    """Factory for Settings that ignores any .env file."""

    def factory(**overrides) -> Settings:
        values = {"upstox_api_key": "test_key", "upstox_api_secret": "test_secret"}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory
