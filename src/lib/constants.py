"""
Deribit API constants and client defaults.

This module defines all constants used throughout the client:
- Base URLs for production and testnet
- HTTP defaults (timeout, user agent)
- Per-category rate budgets (token bucket capacity and refill rate)
- Authentication session defaults
- Endpoint paths

Rate budgets follow the limits published in the Deribit API documentation
for the matching-engine and non-matching-engine request groups.
"""

# =============================================================================
# Base URLs
# =============================================================================

PRODUCTION_BASE_URL = "https://www.deribit.com/api/v2"
TESTNET_BASE_URL = "https://test.deribit.com/api/v2"


# =============================================================================
# HTTP Defaults
# =============================================================================

CLIENT_VERSION = "0.1.0"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = f"deribit-http/{CLIENT_VERSION}"


# =============================================================================
# Rate Limits (capacity = burst size, refill = tokens per second)
# =============================================================================

TRADING_CAPACITY = 250
TRADING_REFILL_RATE = 200.0

MARKET_DATA_CAPACITY = 500
MARKET_DATA_REFILL_RATE = 400.0

ACCOUNT_CAPACITY = 200
ACCOUNT_REFILL_RATE = 150.0

AUTH_CAPACITY = 50
AUTH_REFILL_RATE = 30.0

GENERAL_CAPACITY = 300
GENERAL_REFILL_RATE = 200.0


# =============================================================================
# Authentication
# =============================================================================

# Tokens are treated as expired this many seconds before the server deadline
DEFAULT_TOKEN_SAFETY_MARGIN = 60.0

# Extra attempts for a refresh that failed on the network
DEFAULT_REFRESH_RETRIES = 1

TOKEN_TYPE_BEARER = "bearer"

GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_REFRESH_TOKEN = "refresh_token"

# Deribit JSON-RPC error codes
ERROR_TOO_MANY_REQUESTS = 10028
ERROR_INVALID_CREDENTIALS = 13004
ERROR_UNAUTHORIZED = 13009
AUTH_ERROR_CODES = frozenset({ERROR_INVALID_CREDENTIALS, ERROR_UNAUTHORIZED})

# Wait suggested by a server throttle without a usable Retry-After header
DEFAULT_RETRY_AFTER_SECONDS = 1.0


# =============================================================================
# Endpoint Paths
# =============================================================================

# Authentication
AUTH = "/public/auth"
EXCHANGE_TOKEN = "/public/exchange_token"
FORK_TOKEN = "/public/fork_token"
LOGOUT = "/private/logout"

# Public
GET_SERVER_TIME = "/public/get_time"
TEST_CONNECTION = "/public/test"
GET_STATUS = "/public/status"
GET_CURRENCIES = "/public/get_currencies"
GET_INDEX_PRICE = "/public/get_index_price"
GET_TICKER = "/public/ticker"
GET_ORDER_BOOK = "/public/get_order_book"
GET_INSTRUMENTS = "/public/get_instruments"
GET_LAST_TRADES_BY_INSTRUMENT = "/public/get_last_trades_by_instrument"
GET_BOOK_SUMMARY_BY_CURRENCY = "/public/get_book_summary_by_currency"
GET_CONTRACT_SIZE = "/public/get_contract_size"
GET_INDEX = "/public/get_index"
GET_INDEX_PRICE_NAMES = "/public/get_index_price_names"
GET_INSTRUMENT = "/public/get_instrument"
GET_BOOK_SUMMARY_BY_INSTRUMENT = "/public/get_book_summary_by_instrument"
GET_LAST_TRADES_BY_INSTRUMENT_AND_TIME = "/public/get_last_trades_by_instrument_and_time"
GET_LAST_TRADES_BY_CURRENCY = "/public/get_last_trades_by_currency"
GET_LAST_TRADES_BY_CURRENCY_AND_TIME = "/public/get_last_trades_by_currency_and_time"
GET_HISTORICAL_VOLATILITY = "/public/get_historical_volatility"
GET_FUNDING_CHART_DATA = "/public/get_funding_chart_data"
GET_FUNDING_RATE_HISTORY = "/public/get_funding_rate_history"
GET_FUNDING_RATE_VALUE = "/public/get_funding_rate_value"
GET_TRADINGVIEW_CHART_DATA = "/public/get_tradingview_chart_data"
GET_DELIVERY_PRICES = "/public/get_delivery_prices"
GET_EXPIRATIONS = "/public/get_expirations"
GET_LAST_SETTLEMENTS_BY_CURRENCY = "/public/get_last_settlements_by_currency"
GET_LAST_SETTLEMENTS_BY_INSTRUMENT = "/public/get_last_settlements_by_instrument"

# Private trading
BUY = "/private/buy"
SELL = "/private/sell"
EDIT = "/private/edit"
CANCEL = "/private/cancel"
CANCEL_ALL = "/private/cancel_all"

# Private account
GET_ACCOUNT_SUMMARY = "/private/get_account_summary"
GET_POSITIONS = "/private/get_positions"
GET_SUBACCOUNTS = "/private/get_subaccounts"
GET_OPEN_ORDERS_BY_INSTRUMENT = "/private/get_open_orders_by_instrument"
GET_ORDER_STATE = "/private/get_order_state"
GET_USER_TRADES_BY_INSTRUMENT = "/private/get_user_trades_by_instrument"
GET_OPEN_ORDERS = "/private/get_open_orders"
GET_ORDER_HISTORY_BY_CURRENCY = "/private/get_order_history_by_currency"

# Private wallet
GET_TRANSACTION_LOG = "/private/get_transaction_log"
GET_DEPOSITS = "/private/get_deposits"
GET_WITHDRAWALS = "/private/get_withdrawals"
SUBMIT_TRANSFER_TO_SUBACCOUNT = "/private/submit_transfer_to_subaccount"
SUBMIT_TRANSFER_TO_USER = "/private/submit_transfer_to_user"
