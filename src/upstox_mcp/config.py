"""Configuration management for Upstox MCP Server."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Upstox environment the server talks to."""

    LIVE = "live"
    SANDBOX = "sandbox"


class AuthMethod(str, Enum):
    """How the broker access token is obtained."""

    TOKEN = "token"  # access token supplied directly in configuration
    OAUTH = "oauth"  # key + secret, token obtained through the code exchange


@dataclass(frozen=True)
class Credentials:
    """Key/secret/token triple for the active environment."""

    key: Optional[str]
    secret: Optional[str]
    token: Optional[str]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    upstox_environment: Environment = Environment.LIVE
    upstox_auth_method: Optional[AuthMethod] = None

    # Live credentials
    upstox_api_key: Optional[str] = None
    upstox_api_secret: Optional[str] = None
    upstox_access_token: Optional[str] = None

    # Sandbox credentials
    upstox_sandbox_api_key: Optional[str] = None
    upstox_sandbox_api_secret: Optional[str] = None
    upstox_sandbox_token: Optional[str] = None

    upstox_redirect_uri: str = "http://localhost:3000/callback"
    upstox_base_url: str = "https://api.upstox.com/v2"
    upstox_timeout: int = 30

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000
    mcp_http_enabled: bool = True
    mcp_stdio_enabled: bool = False
    log_level: str = "INFO"

    @property
    def is_sandbox(self) -> bool:
        return self.upstox_environment == Environment.SANDBOX

    @property
    def auth_method(self) -> AuthMethod:
        """Configured auth method, or the one implied by the active credentials."""
        if self.upstox_auth_method is not None:
            return self.upstox_auth_method
        if self.active_credentials().token:
            return AuthMethod.TOKEN
        return AuthMethod.OAUTH

    def active_credentials(self) -> Credentials:
        """Get the key/secret/token triple for the configured environment."""
        if self.is_sandbox:
            return Credentials(
                key=self.upstox_sandbox_api_key,
                secret=self.upstox_sandbox_api_secret,
                token=self.upstox_sandbox_token,
            )
        return Credentials(
            key=self.upstox_api_key,
            secret=self.upstox_api_secret,
            token=self.upstox_access_token,
        )

    @model_validator(mode="after")
    def _check_credentials(self) -> "Settings":
        creds = self.active_credentials()
        env = self.upstox_environment.value
        if self.auth_method == AuthMethod.OAUTH:
            if not creds.key or not creds.secret:
                raise ValueError(
                    f"API key and secret are required for the oauth method ({env} environment)"
                )
        elif not creds.token:
            raise ValueError(f"An access token is required for the token method ({env} environment)")

        if not 0 < self.port <= 65535:
            raise ValueError(f"Invalid server port number: {self.port}")
        return self


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings
