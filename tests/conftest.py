"""
Pytest fixtures for Deribit client tests.

This module provides:
- A manual clock and a sleep that advances it (deterministic time)
- Client configuration with test credentials
- Token payload and aiohttp response factories
- Common test utilities
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.lib.config import ApiCredentials, AuthConfig, ClientConfig, HttpConfig, RateLimitConfig
from src.lib.constants import TESTNET_BASE_URL


class ManualClock:
    """Time source that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Manual clock starting at a fixed epoch."""
    return ManualClock()


@pytest.fixture
def fake_sleep(clock):
    """
    Sleep replacement that advances the manual clock instead of waiting.

    The requested durations are recorded on `fake_sleep.calls`.
    """
    calls = []

    async def sleep(seconds: float) -> None:
        calls.append(seconds)
        clock.advance(seconds)
        await asyncio.sleep(0)

    sleep.calls = calls
    return sleep


@pytest.fixture
def credentials():
    """Test OAuth2 client credentials."""
    return ApiCredentials(client_id="test_client_id", client_secret="test_client_secret")


@pytest.fixture
def client_config(credentials):
    """Create a test client configuration pointing at the testnet."""
    return ClientConfig(
        http=HttpConfig(
            base_url=TESTNET_BASE_URL,
            testnet=True,
            timeout=5.0,
            credentials=credentials,
        ),
        rate_limits=RateLimitConfig(),
        auth=AuthConfig(token_safety_margin=60.0, refresh_retries=1),
    )


@pytest.fixture
def token_payload():
    """
    Factory for /public/auth results.

    Usage:
        token_payload("acc-1", "ref-1", expires_in=900)
    """
    def make(
        access_token: str = "access-1",
        refresh_token: str = "refresh-1",
        expires_in: float = 900,
        scope: str = "connection mainaccount",
        sid=None,
    ) -> dict:
        payload = {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": expires_in,
            "scope": scope,
        }
        if sid is not None:
            payload["sid"] = sid
        return payload

    return make


@pytest.fixture
def make_response():
    """
    Factory for mocked aiohttp responses usable as `async with` targets.

    Usage:
        response = make_response(200, {"jsonrpc": "2.0", "result": 1})
    """
    def make(status: int = 200, payload=None, headers=None, json_error=None):
        response = AsyncMock()
        response.status = status
        response.headers = headers or {}
        if json_error is not None:
            response.json = AsyncMock(side_effect=json_error)
        else:
            response.json = AsyncMock(return_value=payload)
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        return response

    return make


@pytest.fixture
def mock_session():
    """Create a mock aiohttp session."""
    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    return session


def rpc_result(result, testnet: bool = True) -> dict:
    """Wrap a result in a JSON-RPC success envelope."""
    return {
        "jsonrpc": "2.0",
        "result": result,
        "usIn": 1700000000000000,
        "usOut": 1700000000000150,
        "usDiff": 150,
        "testnet": testnet,
    }


def rpc_error(code: int, message: str, reason=None) -> dict:
    """Wrap an error in a JSON-RPC error envelope."""
    error = {"code": code, "message": message}
    if reason:
        error["data"] = {"reason": reason}
    return {"jsonrpc": "2.0", "error": error, "testnet": True}


@pytest.fixture
def rpc():
    """Access to the JSON-RPC envelope builders (rpc.result / rpc.error)."""
    return SimpleNamespace(result=rpc_result, error=rpc_error)
