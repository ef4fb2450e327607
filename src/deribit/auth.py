"""
OAuth2 session management for the Deribit HTTP API.

AuthManager owns the single active session and hands out immutable AuthToken
snapshots. It is either unauthenticated (no token) or authenticated with
exactly one token; every transition swaps the whole token in one assignment.

Session lifecycle:
- authenticate(): client_credentials grant on /public/auth
- get_token(): returns the current token, refreshing it first when it is
  inside the safety margin of its expiry. Concurrent callers share a single
  in-flight refresh.
- exchange_token() / fork_token(): new session for another subject or under
  a new session name
- logout(): best-effort server invalidation, local state always cleared

API Reference: https://docs.deribit.com/#authentication
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from src.deribit.errors import (
    AuthenticationFailedError,
    ConfigError,
    DeribitError,
    InvalidResponseError,
    NetworkError,
    RequestFailedError,
)
from src.lib.config import ApiCredentials, AuthConfig
from src.lib.constants import (
    AUTH,
    EXCHANGE_TOKEN,
    FORK_TOKEN,
    LOGOUT,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_REFRESH_TOKEN,
    TOKEN_TYPE_BEARER,
)
from src.lib.logging_utils import ApiLogger

logger = logging.getLogger(__name__)

# send(path, params, headers) -> JSON-RPC `result`
RequestSender = Callable[..., Awaitable[Any]]


@dataclass(frozen=True, repr=False)
class AuthToken:
    """One OAuth2 session credential.

    Attributes:
        access_token: Opaque bearer credential
        refresh_token: Credential used to obtain a new access token
        token_type: Token type (always "bearer" on Deribit)
        expires_in: Server-declared lifetime in seconds
        scope: Space-delimited granted scope
        issued_at: Wall-clock time (epoch seconds) the token was requested
        session_id: Server session id, only for session-scoped tokens
    """
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: float
    scope: str
    issued_at: float
    session_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Any, issued_at: float) -> "AuthToken":
        """Create AuthToken from an auth/exchange/fork result."""
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Expected token object, got {type(data).__name__}")

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token or not refresh_token:
            raise InvalidResponseError("Token response missing access_token or refresh_token", response=data)

        try:
            expires_in = float(data.get("expires_in", 0))
        except (TypeError, ValueError) as e:
            raise InvalidResponseError(f"Invalid expires_in: {data.get('expires_in')!r}", response=data) from e
        if expires_in <= 0:
            raise InvalidResponseError(f"Invalid expires_in: {expires_in}", response=data)

        sid = data.get("sid")
        return cls(
            access_token=str(access_token),
            refresh_token=str(refresh_token),
            token_type=str(data.get("token_type") or TOKEN_TYPE_BEARER),
            expires_in=expires_in,
            scope=str(data.get("scope", "")),
            issued_at=issued_at,
            session_id=str(sid) if sid is not None else None,
        )

    @property
    def expires_at(self) -> float:
        """Expiry instant in epoch seconds."""
        return self.issued_at + self.expires_in

    def is_expired(self, now: float, margin: float = 0.0) -> bool:
        """True once `now` is within `margin` seconds of expiry."""
        return now >= self.expires_at - margin

    def seconds_until_expiry(self, now: float) -> float:
        return self.expires_at - now

    @property
    def scopes(self) -> list[str]:
        """Granted scope split into individual capabilities."""
        return self.scope.split()

    @property
    def authorization_header(self) -> str:
        """Value for the Authorization header."""
        token_type = self.token_type.capitalize() if self.token_type.lower() == TOKEN_TYPE_BEARER else self.token_type
        return f"{token_type} {self.access_token}"

    def __repr__(self) -> str:
        return (
            f"AuthToken(token_type={self.token_type!r}, scope={self.scope!r}, "
            f"expires_at={self.expires_at:.0f}, session_id={self.session_id!r})"
        )


def _consume_exception(task: "asyncio.Future") -> None:
    # The failure is delivered to every awaiting caller; this only silences
    # the unretrieved-exception warning when all of them were cancelled.
    if not task.cancelled():
        task.exception()


class AuthManager:
    """Manages the single active OAuth2 session.

    Thread-safety: all methods are coroutines meant to run on one event loop.
    The current token is replaced by a single reference assignment of an
    immutable AuthToken, so readers always observe either the old or the new
    token in full.

    Example:
        manager = AuthManager(client.send, credentials=ApiCredentials("id", "secret"))
        await manager.authenticate()
        token = await manager.get_token()
        headers = {"Authorization": token.authorization_header}
    """

    def __init__(
        self,
        send: RequestSender,
        credentials: Optional[ApiCredentials] = None,
        config: Optional[AuthConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the manager.

        Args:
            send: Coroutine function send(path, params=None, headers=None)
                returning the JSON-RPC result or raising a DeribitError
            credentials: Default client credentials for authenticate()
            config: Session settings (safety margin, refresh retries, scope)
            clock: Wall-clock time source in epoch seconds
        """
        self._send = send
        self._credentials = credentials
        self.config = config or AuthConfig()
        self._clock = clock

        self._token: Optional[AuthToken] = None
        self._refresh_task: Optional[asyncio.Task] = None

        # Serializes every transition that talks to the server
        self._auth_lock = asyncio.Lock()

        self._events = ApiLogger(__name__)

    @property
    def is_authenticated(self) -> bool:
        """True while a session is held, even if its token needs a refresh."""
        return self._token is not None

    @property
    def has_valid_token(self) -> bool:
        """True if the current token is outside the safety margin of its expiry."""
        token = self._token
        return token is not None and not token.is_expired(self._clock(), self.config.token_safety_margin)

    @property
    def current_token(self) -> Optional[AuthToken]:
        """Snapshot of the current token without refreshing."""
        return self._token

    @property
    def session_id(self) -> Optional[str]:
        token = self._token
        return token.session_id if token else None

    def _install(self, token: AuthToken, event: str) -> None:
        self._token = token
        self._events.session(event, scope=token.scope, expires_in=token.expires_in)

    async def _request_token(self, path: str, params: dict, action: str) -> AuthToken:
        """Call a token-issuing endpoint and parse the result.

        A JSON-RPC error from the server becomes AuthenticationFailedError;
        transport failures and 5xx responses become NetworkError. Throttling
        and bare HTTP failures without an error code propagate unchanged.
        """
        issued_at = self._clock()
        try:
            result = await self._send(path, params)
        except RequestFailedError as e:
            if e.status_code is not None and e.status_code >= 500:
                raise NetworkError(
                    f"{action} failed with server error: {e.message}",
                    status_code=e.status_code,
                    code=e.code,
                    response=e.response,
                ) from e
            if e.code is None:
                raise
            raise AuthenticationFailedError(
                f"{action} rejected: {e.message}",
                status_code=e.status_code,
                code=e.code,
                response=e.response,
            ) from e
        return AuthToken.from_api(result, issued_at)

    async def authenticate(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> AuthToken:
        """Authenticate with the client_credentials grant.

        On failure the previous state (authenticated or not) is kept as is.

        Args:
            client_id: Overrides the configured client ID
            client_secret: Overrides the configured client secret
            scope: Requested scope (e.g. "session:bot trade:read_write")

        Returns:
            The new AuthToken

        Raises:
            ConfigError: If no credentials are available
            AuthenticationFailedError: If the server rejects the credentials
            NetworkError: On transport failure
        """
        configured = self._credentials or ApiCredentials()
        client_id = client_id or configured.client_id
        client_secret = client_secret or configured.client_secret
        if not client_id or not client_secret:
            raise ConfigError("Client ID and client secret must be configured for OAuth2 authentication")

        params = {
            "grant_type": GRANT_CLIENT_CREDENTIALS,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        scope = scope or self.config.scope
        if scope:
            params["scope"] = scope

        async with self._auth_lock:
            try:
                token = await self._request_token(AUTH, params, "Authentication")
            except DeribitError as e:
                logger.error(f"Authentication failed: {e.message}")
                raise
            self._install(token, "AUTHENTICATED")
        return token

    def authenticate_api_key(self, *args: Any, **kwargs: Any) -> AuthToken:
        """API key (HMAC signature) authentication is not supported.

        Raises:
            ConfigError: Always
        """
        raise ConfigError("API key authentication is not supported; use OAuth2 client credentials")

    async def get_token(self) -> AuthToken:
        """Return a token that is valid for at least the safety margin.

        Refreshes first if needed. Concurrent callers wait on the same
        refresh and all receive its token or its failure.

        Raises:
            AuthenticationFailedError: If unauthenticated, or the refresh token was rejected
            NetworkError: If the refresh could not reach the server
        """
        token = self._token
        if token is None:
            raise AuthenticationFailedError("Not authenticated")
        if not token.is_expired(self._clock(), self.config.token_safety_margin):
            return token
        return await self._refresh_shared(token)

    async def refresh(self) -> AuthToken:
        """Refresh the current session now, regardless of expiry."""
        token = self._token
        if token is None:
            raise AuthenticationFailedError("Not authenticated")
        return await self._refresh_shared(token)

    async def _refresh_shared(self, stale: AuthToken) -> AuthToken:
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh(stale))
            task.add_done_callback(_consume_exception)
            self._refresh_task = task
        # Cancelling a waiter must not cancel the refresh itself
        return await asyncio.shield(task)

    async def _refresh(self, stale: AuthToken) -> AuthToken:
        attempts = 1 + max(self.config.refresh_retries, 0)
        params = {
            "grant_type": GRANT_REFRESH_TOKEN,
            "refresh_token": stale.refresh_token,
        }

        async with self._auth_lock:
            current = self._token
            if current is not stale:
                if current is None:
                    raise AuthenticationFailedError("Session ended before refresh")
                # Replaced while waiting for the lock (re-authenticated or exchanged)
                return current

            for attempt in range(attempts):
                try:
                    token = await self._request_token(AUTH, params, "Token refresh")
                except NetworkError as e:
                    if attempt < attempts - 1:
                        logger.warning(f"Token refresh failed ({e.message}), retrying")
                        continue
                    logger.error(f"Token refresh failed after {attempts} attempts: {e.message}")
                    raise
                except AuthenticationFailedError as e:
                    logger.error(f"Refresh token rejected, session cleared: {e.message}")
                    if self._token is stale:
                        self._token = None
                        self._events.session("CLEARED")
                    raise

                if self._token is stale:
                    self._install(token, "REFRESHED")
                return token

        raise AuthenticationFailedError("Token refresh failed")

    async def exchange_token(
        self,
        refresh_token: Optional[str],
        subject_id: int,
        scope: Optional[str] = None,
        make_current: bool = True,
    ) -> AuthToken:
        """Issue a session for another subject (e.g. a subaccount).

        The originating session stays valid server-side. Keep the previous
        token yourself if both sessions are needed.

        Args:
            refresh_token: Refresh token to exchange (None = current session's)
            subject_id: Target subject (0 = main account)
            scope: Optional requested scope
            make_current: Replace the manager's current token with the result

        Returns:
            The new AuthToken
        """
        params: dict[str, Any] = {
            "refresh_token": self._resolve_refresh_token(refresh_token),
            "subject_id": subject_id,
        }
        if scope:
            params["scope"] = scope

        async with self._auth_lock:
            token = await self._request_token(EXCHANGE_TOKEN, params, "Token exchange")
            if make_current:
                self._install(token, "EXCHANGED")
        return token

    async def fork_token(
        self,
        refresh_token: Optional[str],
        session_name: str,
        scope: Optional[str] = None,
        make_current: bool = True,
    ) -> AuthToken:
        """Create a new named session inheriting the original's permissions.

        Args:
            refresh_token: Refresh token of the session to fork (None = current session's)
            session_name: Name for the new session
            scope: Optional requested scope
            make_current: Replace the manager's current token with the result

        Returns:
            The new AuthToken
        """
        if not session_name:
            raise ConfigError("session_name is required to fork a token")

        params: dict[str, Any] = {
            "refresh_token": self._resolve_refresh_token(refresh_token),
            "session_name": session_name,
        }
        if scope:
            params["scope"] = scope

        async with self._auth_lock:
            token = await self._request_token(FORK_TOKEN, params, "Token fork")
            if make_current:
                self._install(token, "FORKED")
        return token

    def _resolve_refresh_token(self, refresh_token: Optional[str]) -> str:
        if refresh_token:
            return refresh_token
        token = self._token
        if token is None:
            raise AuthenticationFailedError("Not authenticated and no refresh token given")
        return token.refresh_token

    async def logout(self, invalidate_token: bool = True) -> None:
        """End the session.

        The server call is best effort; local state is cleared even if it fails.

        Args:
            invalidate_token: Ask the server to invalidate all tokens of the session
        """
        token = self._token
        if token is None:
            logger.debug("Logout requested while not authenticated")
            return

        try:
            await self._send(
                LOGOUT,
                {"invalidate_token": invalidate_token},
                {"Authorization": token.authorization_header},
            )
        except DeribitError as e:
            logger.warning(f"Logout request failed, clearing local session anyway: {e.message}")
        finally:
            self._token = None
            self._events.session("LOGGED_OUT")

    def clear(self) -> None:
        """Drop the local session without contacting the server."""
        if self._token is not None:
            self._token = None
            self._events.session("CLEARED")
