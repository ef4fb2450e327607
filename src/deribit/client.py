"""
Deribit HTTP Client with Authentication and Rate Limiting.

This module provides the core client for the Deribit v2 JSON-RPC-over-HTTP
API, handling transport, per-category rate limiting, OAuth2 session
management and error mapping.

Key Features:
- OAuth2 client_credentials authentication with automatic token refresh
- Token bucket rate limiting per endpoint category
- JSON-RPC envelope unwrapping with typed errors
- One limiter and one session per client instance (no shared globals)

API Reference: https://docs.deribit.com/
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import aiohttp

from src.deribit.auth import AuthManager, AuthToken
from src.deribit.errors import (
    AuthenticationFailedError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    RequestFailedError,
)
from src.deribit.rate_limit import RateLimitCategory, RateLimiter, categorize_endpoint
from src.lib.config import ApiCredentials, ClientConfig, load_config, validate_config
from src.lib.constants import AUTH_ERROR_CODES, DEFAULT_RETRY_AFTER_SECONDS, ERROR_TOO_MANY_REQUESTS
from src.lib.logging_utils import ApiLogger

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> float:
    """Seconds to wait from a Retry-After header.

    Accepts delay-seconds or an HTTP-date. Missing or unparseable values
    give the default; dates in the past give 0.
    """
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS

    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SECONDS
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


def encode_params(params: Optional[dict]) -> dict[str, str]:
    """Encode query parameters the way the API expects them.

    Booleans become "true"/"false", None values are dropped and everything
    else is stringified.
    """
    if not params:
        return {}

    encoded = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            encoded[key] = ",".join(str(v) for v in value)
        else:
            encoded[key] = str(value)
    return encoded


def is_private_path(path: str) -> bool:
    return "/private/" in path


class DeribitClient:
    """Base client for the Deribit HTTP API.

    Handles transport, rate limiting, authentication and error mapping.
    All HTTP requests should go through this client.

    Example:
        client = DeribitClient(client_id="id", client_secret="secret")
        await client.authenticate()

        # Public request (rate limited, no auth)
        ticker = await client.request("/public/ticker", {"instrument_name": "BTC-PERPETUAL"})

        # Private request (rate limited, bearer token attached)
        summary = await client.request("/private/get_account_summary", {"currency": "BTC"})

        await client.close()
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initialize the client.

        Args:
            client_id: OAuth2 client ID (overrides config)
            client_secret: OAuth2 client secret (overrides config)
            config: Configuration object (loaded from env if not provided)
            rate_limiter: Limiter to use (built from config if not provided)

        Raises:
            ConfigError: If the configuration is invalid
        """
        self.config = config or load_config()

        if client_id or client_secret:
            # Copy so the caller's config object is left untouched
            credentials = self.config.http.credentials or ApiCredentials()
            http = replace(
                self.config.http,
                credentials=ApiCredentials(
                    client_id=client_id or credentials.client_id,
                    client_secret=client_secret or credentials.client_secret,
                ),
            )
            self.config = replace(self.config, http=http)

        for warning in validate_config(self.config):
            logger.warning(f"Config: {warning}")

        self._base_url = self.config.http.base_url.rstrip("/")

        # HTTP session
        self._session: Optional[aiohttp.ClientSession] = None

        # Rate limiting
        self._rate_limiter = rate_limiter or RateLimiter.from_config(self.config.rate_limits)

        # Authentication
        self._auth = AuthManager(
            self._send_session_call,
            credentials=self.config.http.credentials,
            config=self.config.auth,
        )

        self._events = ApiLogger(__name__)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def testnet(self) -> bool:
        return self.config.http.testnet

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def auth(self) -> AuthManager:
        return self._auth

    @property
    def is_authenticated(self) -> bool:
        """Check if the client holds an OAuth2 session."""
        return self._auth.is_authenticated

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.http.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.config.http.user_agent,
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    # -------------------------------------------------------------------------
    # Session management (delegates to AuthManager)
    # -------------------------------------------------------------------------

    async def authenticate(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> AuthToken:
        """Authenticate with OAuth2 client credentials."""
        return await self._auth.authenticate(client_id, client_secret, scope)

    async def get_token(self) -> AuthToken:
        """Return a valid token, refreshing if needed."""
        return await self._auth.get_token()

    async def exchange_token(
        self,
        refresh_token: Optional[str],
        subject_id: int,
        scope: Optional[str] = None,
        make_current: bool = True,
    ) -> AuthToken:
        """Exchange a refresh token for a session of another subject."""
        return await self._auth.exchange_token(refresh_token, subject_id, scope, make_current)

    async def fork_token(
        self,
        refresh_token: Optional[str],
        session_name: str,
        scope: Optional[str] = None,
        make_current: bool = True,
    ) -> AuthToken:
        """Fork the session under a new session name."""
        return await self._auth.fork_token(refresh_token, session_name, scope, make_current)

    async def logout(self, invalidate_token: bool = True) -> None:
        """Log out; local session state is cleared even if the server is unreachable."""
        await self._auth.logout(invalidate_token)

    async def authorization_header(self) -> str:
        """Authorization header value for the current (refreshed) token."""
        token = await self._auth.get_token()
        return token.authorization_header

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def send(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """Send one JSON-RPC call over HTTP GET and return its `result`.

        This is the raw transport: no rate limiting and no token handling.

        Args:
            path: Method path (e.g., "/public/get_time")
            params: Method parameters, sent as the query string
            headers: Extra request headers

        Returns:
            The `result` member of the JSON-RPC response

        Raises:
            NetworkError: On transport failure or timeout
            RateLimitedError: On HTTP 429 or error code 10028
            AuthenticationFailedError: On HTTP 401 or an authorization error code
            RequestFailedError: On any other non-success status or JSON-RPC error
            InvalidResponseError: On a malformed payload
        """
        session = await self._get_session()
        url = f"{self._base_url}{path}"

        try:
            async with session.get(url, params=encode_params(params), headers=headers or {}) as response:
                status = response.status
                retry_after = response.headers.get("Retry-After") if response.headers else None
                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as e:
                    # Gateways answer throttling and auth failures with HTML bodies
                    if status >= 400:
                        self._raise_for_error(path, status, None, f"{path} failed with HTTP {status}", retry_after)
                    raise InvalidResponseError(f"Invalid JSON from {path}: {e}", status_code=status) from e

        except aiohttp.ClientError as e:
            logger.error(f"Connection error calling {path}: {e}")
            raise NetworkError(f"Connection error: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout calling {path}")
            raise NetworkError(f"Request timed out after {self.config.http.timeout}s") from e

        return self._unwrap(path, status, data, retry_after)

    def _unwrap(self, path: str, status: int, data: Any, retry_after: Optional[str] = None) -> Any:
        """Map a decoded JSON-RPC response to its result or a typed error."""
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Expected JSON object from {path}", status_code=status)

        error = data.get("error")
        if error is not None or status >= 400:
            if not isinstance(error, dict):
                error = {}
            code = error.get("code")
            message = error.get("message") or f"HTTP {status}"
            reason = error.get("data", {}).get("reason") if isinstance(error.get("data"), dict) else None
            if reason:
                message = f"{message} ({reason})"
            if code is not None:
                message = f"API error {code}: {message}"

            self._raise_for_error(path, status, code, message, retry_after, data)

        if "result" not in data:
            raise InvalidResponseError(f"No result in response from {path}", status_code=status, response=data)

        return data["result"]

    def _raise_for_error(
        self,
        path: str,
        status: int,
        code: Optional[int],
        message: str,
        retry_after: Optional[str],
        data: Any = None,
    ) -> None:
        """Raise the typed error for a failed call; `code` is None when the body was not JSON-RPC."""
        if status == 429 or code == ERROR_TOO_MANY_REQUESTS:
            wait = parse_retry_after(retry_after)
            logger.warning(f"Rate limited by server on {path}, retry after {wait}s")
            raise RateLimitedError(
                f"Server rate limit exceeded: {message}",
                retry_after=wait,
                status_code=status,
                code=code,
                response=data,
            )

        if status == 401 or code in AUTH_ERROR_CODES:
            raise AuthenticationFailedError(
                f"Unauthorized: {message}",
                status_code=status,
                code=code,
                response=data,
            )

        raise RequestFailedError(message, status_code=status, code=code, response=data)

    async def request(
        self,
        path: str,
        params: Optional[dict] = None,
        authenticated: Optional[bool] = None,
        block: bool = True,
    ) -> Any:
        """Make a rate-limited API call.

        Args:
            path: Method path (e.g., "/public/ticker")
            params: Method parameters
            authenticated: Attach a bearer token (default: True for /private/ paths)
            block: Wait for rate budget; if False raise RateLimitedError instead

        Returns:
            The JSON-RPC `result`

        Raises:
            RateLimitedError: If block is False and the budget is exhausted
            AuthenticationFailedError: If a private call has no usable session
            NetworkError, RequestFailedError, InvalidResponseError: As for send()
        """
        if authenticated is None:
            authenticated = is_private_path(path)

        category = categorize_endpoint(path)
        await self._admit(category, block)

        headers = {}
        if authenticated:
            token = await self._auth.get_token()
            headers["Authorization"] = token.authorization_header

        start = time.perf_counter()
        result = await self.send(path, params, headers)
        self._events.request(path, category.value, start, time.perf_counter())
        return result

    async def _admit(self, category: RateLimitCategory, block: bool) -> None:
        if not block:
            self._rate_limiter.check(category)
            return

        waited = await self._rate_limiter.acquire_blocking(category)
        if waited > 0:
            self._events.throttled(category.value, waited)

    async def _send_session_call(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """Transport handed to AuthManager: auth calls are charged to the AUTH budget."""
        await self._admit(categorize_endpoint(path), block=True)
        return await self.send(path, params, headers)

    async def public_get(self, path: str, params: Optional[dict] = None, block: bool = True) -> Any:
        """Rate-limited call without authentication."""
        return await self.request(path, params, authenticated=False, block=block)

    async def private_get(self, path: str, params: Optional[dict] = None, block: bool = True) -> Any:
        """Rate-limited call with the bearer token attached."""
        return await self.request(path, params, authenticated=True, block=block)

    async def __aenter__(self) -> "DeribitClient":
        """Async context manager entry; authenticates when credentials are configured."""
        if self.config.http.has_credentials:
            await self.authenticate()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
