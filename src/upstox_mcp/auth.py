"""
OAuth token management for Upstox API.

Holds the single process-wide authentication state and handles direct tokens,
the authorization-code exchange and logout. Upstox has no refresh tokens: every
token dies at the next 03:30 IST cutover.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import httpx

from .config import AuthMethod, Settings
from .errors import (
    AuthExchangeFailedError,
    NotAuthenticatedError,
    TokenExpiredError,
    upstream_message,
)

logger = logging.getLogger(__name__)

BROKER_TIMEZONE = ZoneInfo("Asia/Kolkata")
CUTOVER_HOUR = 3
CUTOVER_MINUTE = 30
SANDBOX_EXTRA_DAYS = 30

AuthListener = Callable[["AuthState"], Any]


def compute_token_expiry(sandbox: bool, days: int = 1, now: Optional[datetime] = None) -> datetime:
    """
    Compute when a freshly issued token expires.

    Tokens expire at 03:30 broker time on the day after issuance. Sandbox tokens
    get 30 extra days.

    Args:
        sandbox: Whether the token belongs to the sandbox environment
        days: Calendar days to add before applying the cutover
        now: Reference instant (defaults to the current time)

    Returns:
        Timezone-aware expiry in broker time
    """
    local_now = (now or datetime.now(timezone.utc)).astimezone(BROKER_TIMEZONE)
    expiry = (local_now + timedelta(days=days)).replace(
        hour=CUTOVER_HOUR, minute=CUTOVER_MINUTE, second=0, microsecond=0
    )
    if expiry < local_now:
        expiry += timedelta(days=1)
    if sandbox:
        expiry += timedelta(days=SANDBOX_EXTRA_DAYS)
    return expiry


@dataclass(frozen=True)
class AuthState:
    """Snapshot of the broker authentication state."""

    access_token: Optional[str] = None
    token_expiry: Optional[datetime] = None
    is_authorized: bool = False

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Check the token is present and its expiry is still ahead."""
        now = now or datetime.now(timezone.utc)
        return bool(self.access_token) and self.token_expiry is not None and self.token_expiry > now

    def to_dict(self) -> dict:
        """Convert state to a dictionary without exposing the token."""
        return {
            "has_token": self.access_token is not None,
            "token_expiry": self.token_expiry.isoformat() if self.token_expiry else None,
            "is_authorized": self.is_authorized,
        }


class AuthManager:
    """Owns the access token and its expiry for the whole process."""

    AUTHORIZE_URL = "https://api.upstox.com/v2/login/authorization/dialog"
    TOKEN_URL = "https://api.upstox.com/v2/login/authorization/token"

    def __init__(
        self,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize AuthManager.

        Args:
            settings: Application settings holding credentials
            clock: Returns the current aware datetime (overridable for tests)
            transport: Optional httpx transport for the code exchange
            timeout: Code exchange timeout in seconds
        """
        self.settings = settings
        self.timeout = timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._transport = transport
        self._state = AuthState()
        self._lock = asyncio.Lock()
        self._listeners: list[AuthListener] = []

    @property
    def method(self) -> AuthMethod:
        return self.settings.auth_method

    def current_state(self) -> AuthState:
        """Get a snapshot of the current authentication state."""
        return self._state

    def is_ready(self) -> bool:
        """Whether an unexpired token is held right now."""
        state = self._state
        return state.is_authorized and state.is_valid(self._clock())

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Add a state-change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def _set_state(self, state: AuthState) -> None:
        self._state = state
        # Listeners run on a later loop iteration, never under the state lock
        loop = asyncio.get_running_loop()
        for listener in list(self._listeners):
            loop.call_soon(_notify, listener, state)

    async def initialize(self) -> None:
        """Load the configured token when running with the token method."""
        if self.method != AuthMethod.TOKEN:
            return
        try:
            await self.access_token()
        except NotAuthenticatedError as e:
            logger.warning(f"Configured token unavailable: {e}")

    async def access_token(self) -> str:
        """
        Get a valid access token.

        Returns:
            Access token string

        Raises:
            NotAuthenticatedError: If no token has ever been obtained
            TokenExpiredError: If the OAuth token lapsed
        """
        async with self._lock:
            now = self._clock()
            state = self._state
            if state.is_valid(now):
                return state.access_token

            if self.method == AuthMethod.TOKEN:
                token = self.settings.active_credentials().token
                if not token:
                    raise NotAuthenticatedError("No access token configured. Please set one first.")
                self._set_state(
                    AuthState(
                        access_token=token,
                        token_expiry=compute_token_expiry(self.settings.is_sandbox, now=now),
                        is_authorized=True,
                    )
                )
                logger.info("Access token loaded from configuration")
                return token

            if state.access_token is None:
                raise NotAuthenticatedError()

            if state.is_authorized:
                logger.warning("Access token expired, re-authorization required")
                self._set_state(
                    AuthState(
                        access_token=state.access_token,
                        token_expiry=state.token_expiry,
                        is_authorized=False,
                    )
                )
            raise TokenExpiredError()

    def authorization_url(self) -> str:
        """Build the Upstox login URL for the OAuth flow."""
        creds = self.settings.active_credentials()
        if not creds.key:
            raise ValueError("API key is not configured")
        params = {
            "response_type": "code",
            "client_id": creds.key,
            "redirect_uri": self.settings.upstox_redirect_uri,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> AuthState:
        """
        Exchange an authorization code for an access token.

        Args:
            code: Authorization code from the OAuth redirect

        Returns:
            The new AuthState

        Raises:
            AuthExchangeFailedError: If Upstox rejects the code or is unreachable
        """
        creds = self.settings.active_credentials()
        logger.info("Exchanging authorization code for access token...")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    headers={
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Accept": "application/json",
                    },
                    data={
                        "code": code,
                        "client_id": creds.key or "",
                        "client_secret": creds.secret or "",
                        "redirect_uri": self.settings.upstox_redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as e:
            raise AuthExchangeFailedError(str(e)) from e

        if response.is_error:
            raise AuthExchangeFailedError(upstream_message(response))

        try:
            token = response.json().get("access_token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise AuthExchangeFailedError("Failed to obtain access token from Upstox")

        async with self._lock:
            state = AuthState(
                access_token=token,
                token_expiry=compute_token_expiry(self.settings.is_sandbox, now=self._clock()),
                is_authorized=True,
            )
            self._set_state(state)

        logger.info(f"Authorized until {state.token_expiry.isoformat()}")
        return state

    async def set_token(self, token: str, expiry_days: int = 1) -> AuthState:
        """Install an externally delivered token, replacing the current state."""
        async with self._lock:
            state = AuthState(
                access_token=token,
                token_expiry=compute_token_expiry(
                    self.settings.is_sandbox, days=expiry_days, now=self._clock()
                ),
                is_authorized=True,
            )
            self._set_state(state)
        logger.info("Access token set via notifier")
        return state

    async def logout(self) -> None:
        """Clear authentication state."""
        async with self._lock:
            self._set_state(AuthState())
        logger.info("Logged out of Upstox")


def _notify(listener: AuthListener, state: AuthState) -> None:
    try:
        result = listener(state)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            task.add_done_callback(_log_listener_failure)
    except Exception as e:
        logger.error(f"Auth listener failed: {e}", exc_info=True)


def _log_listener_failure(task: "asyncio.Future") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Auth listener failed: {task.exception()}")
