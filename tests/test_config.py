"""Tests for the config module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from upstox_mcp.config import AuthMethod, Environment, Settings


class TestSettings:
    """Tests for the Settings class."""

    def test_settings_with_env_vars(self):
        """Test settings load from environment variables."""
        env = {
            "UPSTOX_API_KEY": "key123",
            "UPSTOX_API_SECRET": "secret456",
            "UPSTOX_REDIRECT_URI": "https://example.com/callback",
            "UPSTOX_TIMEOUT": "60",
            "PORT": "8080",
            "MCP_STDIO_ENABLED": "true",
            "LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)

            assert settings.upstox_api_key == "key123"
            assert settings.upstox_api_secret == "secret456"
            assert settings.upstox_redirect_uri == "https://example.com/callback"
            assert settings.upstox_timeout == 60
            assert settings.port == 8080
            assert settings.mcp_stdio_enabled is True
            assert settings.log_level == "DEBUG"

    def test_settings_defaults(self, make_settings):
        """Test that default values are applied."""
        settings = make_settings()

        assert settings.upstox_environment == Environment.LIVE
        assert settings.upstox_redirect_uri == "http://localhost:3000/callback"
        assert settings.upstox_base_url == "https://api.upstox.com/v2"
        assert settings.upstox_timeout == 30
        assert settings.host == "0.0.0.0"
        assert settings.port == 3000
        assert settings.mcp_http_enabled is True
        assert settings.mcp_stdio_enabled is False
        assert settings.log_level == "INFO"

    def test_settings_ignores_unknown_vars(self):
        """Test that unrelated environment variables are ignored."""
        env = {
            "UPSTOX_API_KEY": "key",
            "UPSTOX_API_SECRET": "secret",
            "UPSTOX_SOMETHING_ELSE": "whatever",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
            assert settings.upstox_api_key == "key"


class TestAuthMethod:
    """Tests for auth method derivation."""

    def test_token_method_derived_from_token(self):
        """Test a configured token implies the token method."""
        settings = Settings(_env_file=None, upstox_access_token="tok")
        assert settings.auth_method == AuthMethod.TOKEN

    def test_oauth_method_derived_without_token(self, make_settings):
        """Test key and secret without a token imply the oauth method."""
        assert make_settings().auth_method == AuthMethod.OAUTH

    def test_explicit_method_wins(self, make_settings):
        """Test an explicit method overrides derivation."""
        settings = make_settings(upstox_access_token="tok", upstox_auth_method="oauth")
        assert settings.auth_method == AuthMethod.OAUTH

    def test_oauth_requires_key_and_secret(self):
        """Test the oauth method fails without a secret."""
        with pytest.raises(ValidationError, match="API key and secret are required"):
            Settings(_env_file=None, upstox_api_key="key")

    def test_token_method_requires_token(self, make_settings):
        """Test the token method fails without a token."""
        with pytest.raises(ValidationError, match="access token is required"):
            make_settings(upstox_auth_method="token")

    def test_invalid_port(self, make_settings):
        """Test out-of-range ports are rejected."""
        with pytest.raises(ValidationError, match="Invalid server port"):
            make_settings(port=70000)


class TestCredentials:
    """Tests for active credential selection."""

    def test_live_credentials(self, make_settings):
        """Test live credentials are used by default."""
        creds = make_settings(upstox_sandbox_api_key="sandbox_key").active_credentials()
        assert creds.key == "test_key"
        assert creds.secret == "test_secret"
        assert creds.token is None

    def test_sandbox_credentials(self):
        """Test sandbox credentials are used in the sandbox environment."""
        settings = Settings(
            _env_file=None,
            upstox_environment="sandbox",
            upstox_api_key="live_key",
            upstox_sandbox_api_key="sandbox_key",
            upstox_sandbox_api_secret="sandbox_secret",
            upstox_sandbox_token="sandbox_token",
        )
        creds = settings.active_credentials()

        assert settings.is_sandbox is True
        assert creds.key == "sandbox_key"
        assert creds.secret == "sandbox_secret"
        assert creds.token == "sandbox_token"
        assert settings.auth_method == AuthMethod.TOKEN

    def test_sandbox_ignores_live_token(self):
        """Test a live token does not satisfy the sandbox environment."""
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                upstox_environment="sandbox",
                upstox_access_token="live_token",
                upstox_auth_method="token",
            )
