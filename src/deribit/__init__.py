"""
Deribit HTTP API Integration Module.

This module provides a typed client for the Deribit v2 JSON-RPC-over-HTTP API.

Key Components:
- DeribitClient: Transport with per-category rate limiting and OAuth2 sessions
- RateLimiter: Token bucket budgets keyed by endpoint category
- AuthManager: OAuth2 session lifecycle (authenticate, refresh, exchange, fork, logout)
- DeribitREST: Typed wrappers for market data, trading, account and wallet endpoints

Usage:
    from src.deribit import DeribitClient, DeribitREST

    async with DeribitClient(client_id="id", client_secret="secret") as client:
        rest = DeribitREST(client)
        ticker = await rest.get_ticker("BTC-PERPETUAL")
        summary = await rest.get_account_summary("BTC")

Important Notes:
- Defaults to the testnet; set DERIBIT_TESTNET=false for production
- Tokens are refreshed automatically inside a safety margin before expiry
- API key (HMAC) authentication is not supported
"""

from src.deribit.errors import (
    DeribitError,
    NetworkError,
    RequestFailedError,
    InvalidResponseError,
    AuthenticationFailedError,
    ConfigError,
    RateLimitedError,
)
from src.deribit.rate_limit import (
    RateLimiter,
    RateLimitCategory,
    AcquireResult,
    TokenBucket,
    categorize_endpoint,
)
from src.deribit.auth import (
    AuthManager,
    AuthToken,
)
from src.deribit.client import (
    DeribitClient,
)
from src.deribit.rest import (
    DeribitREST,
    Direction,
    OrderType,
    TimeInForce,
    OrderState,
    InstrumentKind,
    Ticker,
    OrderBook,
    Instrument,
    Trade,
    Order,
    OrderRequest,
    OrderResponse,
    Position,
    AccountSummary,
    Subaccount,
    Page,
    Settlement,
    FundingRate,
    Candles,
    DeliveryPrice,
    TransactionLogEntry,
    Deposit,
    Withdrawal,
    Transfer,
)

__all__ = [
    # Errors
    "DeribitError",
    "NetworkError",
    "RequestFailedError",
    "InvalidResponseError",
    "AuthenticationFailedError",
    "ConfigError",
    "RateLimitedError",
    # Rate limiting
    "RateLimiter",
    "RateLimitCategory",
    "AcquireResult",
    "TokenBucket",
    "categorize_endpoint",
    # Auth
    "AuthManager",
    "AuthToken",
    # Client
    "DeribitClient",
    # REST
    "DeribitREST",
    "Direction",
    "OrderType",
    "TimeInForce",
    "OrderState",
    "InstrumentKind",
    "Ticker",
    "OrderBook",
    "Instrument",
    "Trade",
    "Order",
    "OrderRequest",
    "OrderResponse",
    "Position",
    "AccountSummary",
    "Subaccount",
    "Page",
    "Settlement",
    "FundingRate",
    "Candles",
    "DeliveryPrice",
    "TransactionLogEntry",
    "Deposit",
    "Withdrawal",
    "Transfer",
]
