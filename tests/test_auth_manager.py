"""
Tests for OAuth2 session management.

Tests cover:
- AuthToken parsing, expiry and masking
- AuthManager.authenticate success/failure and state preservation
- get_token refresh inside the safety margin, single-flight refresh
- Refresh retry on transient failure, session cleared on rejection
- exchange_token / fork_token
- logout (best effort, always clears)
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.deribit.auth import AuthManager, AuthToken
from src.deribit.errors import (
    AuthenticationFailedError,
    ConfigError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    RequestFailedError,
)
from src.lib.config import AuthConfig
from src.lib.constants import AUTH, EXCHANGE_TOKEN, FORK_TOKEN, LOGOUT


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def send():
    """Mocked transport: send(path, params=None, headers=None)."""
    return AsyncMock()


@pytest.fixture
def manager(send, credentials, clock):
    """AuthManager with a 60s safety margin and one refresh retry."""
    return AuthManager(
        send,
        credentials=credentials,
        config=AuthConfig(token_safety_margin=60.0, refresh_retries=1),
        clock=clock,
    )


@pytest_asyncio.fixture
async def authenticated(manager, send, token_payload):
    """Manager holding a fresh 900s session (access-1 / refresh-1)."""
    send.return_value = token_payload()
    await manager.authenticate()
    send.reset_mock(return_value=True)
    return manager


def grant_calls(send, grant_type):
    return [c for c in send.call_args_list if c.args[1].get("grant_type") == grant_type]


# =============================================================================
# AuthToken Tests
# =============================================================================

class TestAuthToken:
    """Tests for AuthToken dataclass."""

    def test_from_api(self, token_payload):
        """Test parsing a token result."""
        token = AuthToken.from_api(token_payload(sid="sess-1"), issued_at=1000.0)

        assert token.access_token == "access-1"
        assert token.refresh_token == "refresh-1"
        assert token.token_type == "bearer"
        assert token.expires_in == 900.0
        assert token.expires_at == 1900.0
        assert token.session_id == "sess-1"
        assert token.scopes == ["connection", "mainaccount"]

    def test_authorization_header(self, token_payload):
        """Bearer tokens render as 'Bearer <token>'."""
        token = AuthToken.from_api(token_payload(), issued_at=0.0)

        assert token.authorization_header == "Bearer access-1"

    def test_expiry_with_margin(self, token_payload):
        """Token counts as expired once inside the margin."""
        token = AuthToken.from_api(token_payload(expires_in=900), issued_at=0.0)

        assert token.is_expired(839.0, margin=60.0) is False
        assert token.is_expired(840.0, margin=60.0) is True
        assert token.seconds_until_expiry(800.0) == 100.0

    def test_repr_masks_secrets(self, token_payload):
        """repr never shows access or refresh tokens."""
        token = AuthToken.from_api(token_payload(), issued_at=0.0)

        assert "access-1" not in repr(token)
        assert "refresh-1" not in repr(token)

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"refresh_token": "r", "expires_in": 10},
        {"access_token": "a", "expires_in": 10},
        {"access_token": "a", "refresh_token": "r", "expires_in": 0},
        {"access_token": "a", "refresh_token": "r", "expires_in": "soon"},
    ])
    def test_invalid_payloads(self, payload):
        """Malformed token results raise InvalidResponseError."""
        with pytest.raises(InvalidResponseError):
            AuthToken.from_api(payload, issued_at=0.0)


# =============================================================================
# Authenticate Tests
# =============================================================================

class TestAuthenticate:
    """Tests for AuthManager.authenticate."""

    @pytest.mark.asyncio
    async def test_authenticate_success(self, manager, send, token_payload, clock):
        """Test client_credentials grant installs the token."""
        send.return_value = token_payload()

        token = await manager.authenticate()

        send.assert_awaited_once()
        path, params = send.call_args.args
        assert path == AUTH
        assert params == {
            "grant_type": "client_credentials",
            "client_id": "test_client_id",
            "client_secret": "test_client_secret",
        }
        assert manager.is_authenticated is True
        assert manager.has_valid_token is True
        assert manager.current_token is token
        assert token.issued_at == clock.now

    @pytest.mark.asyncio
    async def test_get_token_returns_same_token(self, authenticated, send):
        """get_token right after authenticate returns the same object, no call."""
        token = authenticated.current_token

        assert await authenticated.get_token() is token
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_credentials_and_scope(self, manager, send, token_payload):
        """Arguments override configured credentials."""
        send.return_value = token_payload()

        await manager.authenticate("other_id", "other_secret", scope="session:bot")

        params = send.call_args.args[1]
        assert params["client_id"] == "other_id"
        assert params["client_secret"] == "other_secret"
        assert params["scope"] == "session:bot"

    @pytest.mark.asyncio
    async def test_default_scope_from_config(self, send, credentials, clock, token_payload):
        """AuthConfig.scope is requested when no scope is passed."""
        manager = AuthManager(send, credentials=credentials, config=AuthConfig(scope="trade:read"), clock=clock)
        send.return_value = token_payload()

        await manager.authenticate()

        assert send.call_args.args[1]["scope"] == "trade:read"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, send, clock):
        """No credentials is a ConfigError and nothing is sent."""
        manager = AuthManager(send, clock=clock)

        with pytest.raises(ConfigError):
            await manager.authenticate()

        send.assert_not_awaited()
        assert manager.is_authenticated is False

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, manager, send):
        """Server rejection raises and leaves the manager unauthenticated."""
        send.side_effect = RequestFailedError("invalid_credentials", status_code=400, code=13004)

        with pytest.raises(AuthenticationFailedError):
            await manager.authenticate()

        assert manager.is_authenticated is False

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_session(self, authenticated, send):
        """A failed re-authenticate keeps the previous token."""
        previous = authenticated.current_token
        send.side_effect = NetworkError("connection reset")

        with pytest.raises(NetworkError):
            await authenticated.authenticate()

        assert authenticated.current_token is previous

    @pytest.mark.asyncio
    async def test_server_error_is_network_error(self, manager, send):
        """A 5xx during authenticate is treated as transient."""
        send.side_effect = RequestFailedError("bad gateway", status_code=502)

        with pytest.raises(NetworkError):
            await manager.authenticate()

    def test_api_key_not_supported(self, manager):
        """API key authentication always raises ConfigError."""
        with pytest.raises(ConfigError, match="not supported"):
            manager.authenticate_api_key("key", "secret")


# =============================================================================
# Token Refresh Tests
# =============================================================================

class TestGetToken:
    """Tests for AuthManager.get_token and refresh."""

    @pytest.mark.asyncio
    async def test_not_authenticated(self, manager):
        """get_token without a session raises."""
        with pytest.raises(AuthenticationFailedError, match="Not authenticated"):
            await manager.get_token()

    @pytest.mark.asyncio
    async def test_no_refresh_outside_margin(self, authenticated, send, clock):
        """Token is reused until it enters the safety margin."""
        clock.advance(839)

        await authenticated.get_token()

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_inside_margin(self, authenticated, send, clock, token_payload):
        """Token inside the margin is refreshed with the refresh_token grant."""
        clock.advance(840)
        assert authenticated.has_valid_token is False
        assert authenticated.is_authenticated is True
        send.return_value = token_payload("access-2", "refresh-2")

        token = await authenticated.get_token()

        path, params = send.call_args.args
        assert path == AUTH
        assert params == {"grant_type": "refresh_token", "refresh_token": "refresh-1"}
        assert token.access_token == "access-2"
        assert authenticated.current_token is token
        assert authenticated.has_valid_token is True

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, authenticated, send, clock, token_payload):
        """N concurrent get_token calls trigger exactly one refresh."""
        gate = asyncio.Event()

        async def slow_refresh(path, params=None, headers=None):
            await gate.wait()
            return token_payload("access-2", "refresh-2")

        send.side_effect = slow_refresh
        clock.advance(900)

        tasks = [asyncio.create_task(authenticated.get_token()) for _ in range(10)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert len(grant_calls(send, "refresh_token")) == 1
        assert all(r is results[0] for r in results)
        assert results[0].access_token == "access-2"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_refresh(self, authenticated, send, clock, token_payload):
        """Cancelling one caller leaves the shared refresh running for others."""
        gate = asyncio.Event()

        async def slow_refresh(path, params=None, headers=None):
            await gate.wait()
            return token_payload("access-2", "refresh-2")

        send.side_effect = slow_refresh
        clock.advance(900)

        first = asyncio.create_task(authenticated.get_token())
        second = asyncio.create_task(authenticated.get_token())
        await asyncio.sleep(0)
        first.cancel()
        gate.set()

        token = await second
        with pytest.raises(asyncio.CancelledError):
            await first

        assert token.access_token == "access-2"
        assert authenticated.current_token is token

    @pytest.mark.asyncio
    async def test_transient_failure_retried_once(self, authenticated, send, clock, token_payload):
        """A network failure during refresh is retried once."""
        send.side_effect = [NetworkError("timeout"), token_payload("access-2", "refresh-2")]
        clock.advance(900)

        token = await authenticated.get_token()

        assert send.await_count == 2
        assert token.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_server_error_retried(self, authenticated, send, clock, token_payload):
        """A 5xx during refresh counts as transient."""
        send.side_effect = [
            RequestFailedError("unavailable", status_code=503),
            token_payload("access-2", "refresh-2"),
        ]
        clock.advance(900)

        token = await authenticated.get_token()

        assert token.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_transient_failure_exhausted(self, authenticated, send, clock):
        """Repeated network failures propagate and keep the session."""
        previous = authenticated.current_token
        send.side_effect = NetworkError("timeout")
        clock.advance(900)

        with pytest.raises(NetworkError):
            await authenticated.get_token()

        assert send.await_count == 2
        assert authenticated.current_token is previous

    @pytest.mark.asyncio
    async def test_rejected_refresh_clears_session(self, authenticated, send, clock):
        """Server rejecting the refresh token forces Unauthenticated."""
        send.side_effect = RequestFailedError("invalid refresh token", status_code=400, code=13009)
        clock.advance(900)

        with pytest.raises(AuthenticationFailedError):
            await authenticated.get_token()

        assert send.await_count == 1
        assert authenticated.is_authenticated is False
        with pytest.raises(AuthenticationFailedError, match="Not authenticated"):
            await authenticated.get_token()

    @pytest.mark.asyncio
    async def test_throttled_refresh_keeps_session(self, authenticated, send, clock, token_payload):
        """A 429 on the refresh call propagates and the session survives."""
        previous = authenticated.current_token
        send.side_effect = RateLimitedError("Rate limited: /public/auth", status_code=429, retry_after=2.0)
        clock.advance(900)

        with pytest.raises(RateLimitedError):
            await authenticated.get_token()

        assert send.await_count == 1
        assert authenticated.is_authenticated is True
        assert authenticated.current_token is previous

        send.side_effect = None
        send.return_value = token_payload("access-2", "refresh-2")
        token = await authenticated.get_token()
        assert token.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_refresh_http_error_without_code_keeps_session(self, authenticated, send, clock):
        """A bare 4xx without a JSON-RPC code is not a credential rejection."""
        send.side_effect = RequestFailedError("/public/auth failed with HTTP 403", status_code=403)
        clock.advance(900)

        with pytest.raises(RequestFailedError) as exc_info:
            await authenticated.get_token()

        assert not isinstance(exc_info.value, AuthenticationFailedError)
        assert authenticated.is_authenticated is True

    @pytest.mark.asyncio
    async def test_explicit_refresh(self, authenticated, send, token_payload):
        """refresh() refreshes even when the token is still valid."""
        send.return_value = token_payload("access-2", "refresh-2")

        token = await authenticated.refresh()

        assert token.access_token == "access-2"
        assert authenticated.current_token is token

    @pytest.mark.asyncio
    async def test_no_retries_configured(self, send, credentials, clock, token_payload):
        """refresh_retries=0 gives a single attempt."""
        manager = AuthManager(send, credentials=credentials, config=AuthConfig(refresh_retries=0), clock=clock)
        send.return_value = token_payload()
        await manager.authenticate()
        send.reset_mock(return_value=True)
        send.side_effect = NetworkError("down")
        clock.advance(900)

        with pytest.raises(NetworkError):
            await manager.get_token()

        assert send.await_count == 1


# =============================================================================
# Exchange / Fork Tests
# =============================================================================

class TestExchangeAndFork:
    """Tests for exchange_token and fork_token."""

    @pytest.mark.asyncio
    async def test_exchange_token(self, authenticated, send, token_payload):
        """Exchange uses the current refresh token and installs the result."""
        original = authenticated.current_token
        send.return_value = token_payload("access-sub", "refresh-sub")

        token = await authenticated.exchange_token(None, subject_id=42)

        path, params = send.call_args.args
        assert path == EXCHANGE_TOKEN
        assert params == {"refresh_token": "refresh-1", "subject_id": 42}
        assert token.access_token != original.access_token
        assert authenticated.current_token is token
        # The original session is still unexpired for whoever kept it
        assert not original.is_expired(authenticated._clock(), 60.0)

    @pytest.mark.asyncio
    async def test_exchange_without_replacing(self, authenticated, send, token_payload):
        """make_current=False leaves the manager's session untouched."""
        original = authenticated.current_token
        send.return_value = token_payload("access-sub", "refresh-sub")

        token = await authenticated.exchange_token("explicit-refresh", subject_id=7, make_current=False)

        assert send.call_args.args[1]["refresh_token"] == "explicit-refresh"
        assert authenticated.current_token is original
        assert token.access_token == "access-sub"

    @pytest.mark.asyncio
    async def test_fork_token(self, authenticated, send, token_payload):
        """Fork creates a named session with its own session id."""
        send.return_value = token_payload("access-fork", "refresh-fork", scope="session:bot", sid="sid-9")

        token = await authenticated.fork_token(None, session_name="bot", scope="session:bot")

        path, params = send.call_args.args
        assert path == FORK_TOKEN
        assert params == {"refresh_token": "refresh-1", "session_name": "bot", "scope": "session:bot"}
        assert token.session_id == "sid-9"
        assert authenticated.session_id == "sid-9"

    @pytest.mark.asyncio
    async def test_fork_and_exchange_both_valid(self, authenticated, send, token_payload):
        """Forked and exchanged tokens are distinct and both usable."""
        send.return_value = token_payload("access-fork", "refresh-fork")
        forked = await authenticated.fork_token(None, session_name="bot", make_current=False)
        send.return_value = token_payload("access-sub", "refresh-sub")
        exchanged = await authenticated.exchange_token(None, subject_id=3, make_current=False)

        assert forked.access_token != exchanged.access_token
        now = authenticated._clock()
        assert not forked.is_expired(now, 60.0)
        assert not exchanged.is_expired(now, 60.0)

    @pytest.mark.asyncio
    async def test_fork_requires_session_name(self, authenticated, send):
        """Empty session name is a ConfigError."""
        with pytest.raises(ConfigError):
            await authenticated.fork_token(None, session_name="")

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exchange_requires_refresh_token(self, manager, send):
        """No session and no refresh token raises before sending."""
        with pytest.raises(AuthenticationFailedError):
            await manager.exchange_token(None, subject_id=1)

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exchange_rejected(self, authenticated, send):
        """Rejected exchange raises and keeps the session."""
        original = authenticated.current_token
        send.side_effect = RequestFailedError("forbidden", status_code=400, code=13021)

        with pytest.raises(AuthenticationFailedError):
            await authenticated.exchange_token(None, subject_id=99)

        assert authenticated.current_token is original


# =============================================================================
# Logout Tests
# =============================================================================

class TestLogout:
    """Tests for AuthManager.logout."""

    @pytest.mark.asyncio
    async def test_logout(self, authenticated, send):
        """Logout invalidates server-side and clears local state."""
        send.return_value = None

        await authenticated.logout()

        path, params, headers = send.call_args.args
        assert path == LOGOUT
        assert params == {"invalidate_token": True}
        assert headers == {"Authorization": "Bearer access-1"}
        assert authenticated.is_authenticated is False
        with pytest.raises(AuthenticationFailedError):
            await authenticated.get_token()

    @pytest.mark.asyncio
    async def test_logout_failure_still_clears(self, authenticated, send):
        """Server unreachable on logout still clears the session."""
        send.side_effect = NetworkError("unreachable")

        await authenticated.logout()

        assert authenticated.is_authenticated is False

    @pytest.mark.asyncio
    async def test_logout_when_unauthenticated(self, manager, send):
        """Logout without a session is a no-op."""
        await manager.logout()

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear(self, authenticated, send):
        """clear drops the session without contacting the server."""
        authenticated.clear()

        assert authenticated.current_token is None
        send.assert_not_awaited()
