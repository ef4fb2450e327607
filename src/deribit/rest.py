"""
Deribit REST API Endpoints.

This module provides typed wrappers around the JSON-RPC methods including:
- Market data (ticker, order book, instruments, trades, index prices)
- System endpoints (server time, connectivity test, platform status)
- Order placement and management (buy, sell, edit, cancel)
- Account information (summary, positions, subaccounts, fills, order history)
- Wallet (transaction log, deposits, withdrawals, transfers)
- Volatility, funding, chart data, delivery prices and settlements

All calls go through DeribitClient.request, so they are rate limited by
endpoint category and private calls carry a refreshed bearer token.

API Reference: https://docs.deribit.com/
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Union

from src.deribit.client import DeribitClient
from src.deribit.errors import InvalidResponseError
from src.lib import constants as endpoints

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Order/trade direction."""
    BUY = "buy"
    SELL = "sell"
    ZERO = "zero"


class OrderType(str, Enum):
    """Order types supported by Deribit."""
    LIMIT = "limit"
    MARKET = "market"
    STOP_LIMIT = "stop_limit"
    STOP_MARKET = "stop_market"
    TAKE_LIMIT = "take_limit"
    TAKE_MARKET = "take_market"
    MARKET_LIMIT = "market_limit"
    TRAILING_STOP = "trailing_stop"


class TimeInForce(str, Enum):
    """Order time in force."""
    GOOD_TIL_CANCELLED = "good_til_cancelled"
    GOOD_TIL_DAY = "good_til_day"
    FILL_OR_KILL = "fill_or_kill"
    IMMEDIATE_OR_CANCEL = "immediate_or_cancel"


class OrderState(str, Enum):
    """Order status values."""
    OPEN = "open"
    FILLED = "filled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    UNTRIGGERED = "untriggered"
    TRIGGERED = "triggered"


class InstrumentKind(str, Enum):
    """Instrument kinds."""
    FUTURE = "future"
    OPTION = "option"
    SPOT = "spot"
    FUTURE_COMBO = "future_combo"
    OPTION_COMBO = "option_combo"


_PRICED_ORDER_TYPES = (OrderType.LIMIT, OrderType.STOP_LIMIT, OrderType.TAKE_LIMIT)
_TRIGGER_ORDER_TYPES = (
    OrderType.STOP_LIMIT,
    OrderType.STOP_MARKET,
    OrderType.TAKE_LIMIT,
    OrderType.TAKE_MARKET,
)


def ms_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a millisecond epoch timestamp to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def datetime_to_ms(value: Union[datetime, int, None]) -> Optional[int]:
    """Convert a datetime (naive = UTC) to a millisecond epoch timestamp; ints pass through."""
    if value is None or isinstance(value, int):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    # Market orders report price as the string "market_price"
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _expect(result: Any, kind: Union[type, tuple], what: str) -> Any:
    if not isinstance(result, kind) or isinstance(result, bool):
        raise InvalidResponseError(f"Expected {what}, got {type(result).__name__}")
    return result


def _model(model: Any, data: Any, what: str) -> Any:
    """Build a dataclass from one result object.

    Missing required fields and unknown enum values surface as
    InvalidResponseError rather than KeyError/ValueError.
    """
    try:
        return model.from_api(_expect(data, dict, what))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise InvalidResponseError(f"Malformed {what}: {e!r}") from e


def _models(model: Any, items: Any, what: str) -> list:
    return [_model(model, item, what) for item in _expect(items, list, f"{what} list")]


def _number(data: Any, key: str, what: str) -> float:
    value = _expect(data, dict, what).get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidResponseError(f"Missing or non-numeric {key} in {what}")
    return float(value)


def _continuation(value: Any) -> Optional[str]:
    # Exhausted cursors come back as null or the string "none"
    if value in (None, "", "none"):
        return None
    return str(value)


@dataclass
class Ticker:
    """Ticker snapshot for one instrument.

    Attributes:
        instrument_name: Instrument identifier (e.g., "BTC-PERPETUAL")
        timestamp: Snapshot time (UTC)
        best_bid_price: Best bid
        best_ask_price: Best ask
        last_price: Last traded price
        mark_price: Mark price
        index_price: Underlying index price
        open_interest: Open interest in contracts
        volume_24h: 24h volume from the stats block
        state: Instrument state ("open", "closed")
    """
    instrument_name: str
    timestamp: Optional[datetime]
    best_bid_price: Optional[float]
    best_ask_price: Optional[float]
    last_price: Optional[float]
    mark_price: float
    index_price: Optional[float] = None
    best_bid_amount: float = 0.0
    best_ask_amount: float = 0.0
    open_interest: float = 0.0
    volume_24h: float = 0.0
    state: str = "open"

    @classmethod
    def from_api(cls, data: dict) -> "Ticker":
        """Create Ticker from API response."""
        stats = data.get("stats") or {}
        return cls(
            instrument_name=str(data.get("instrument_name", "")),
            timestamp=ms_to_datetime(data.get("timestamp")),
            best_bid_price=_float(data.get("best_bid_price"), None),
            best_ask_price=_float(data.get("best_ask_price"), None),
            last_price=_float(data.get("last_price"), None),
            mark_price=_float(data.get("mark_price")),
            index_price=_float(data.get("index_price"), None),
            best_bid_amount=_float(data.get("best_bid_amount")),
            best_ask_amount=_float(data.get("best_ask_amount")),
            open_interest=_float(data.get("open_interest")),
            volume_24h=_float(stats.get("volume")),
            state=str(data.get("state", "open")),
        )

    @property
    def spread(self) -> Optional[float]:
        """Best ask minus best bid, None if either side is empty."""
        if self.best_bid_price is None or self.best_ask_price is None:
            return None
        return self.best_ask_price - self.best_bid_price

    @property
    def mid_price(self) -> Optional[float]:
        if self.best_bid_price is None or self.best_ask_price is None:
            return None
        return (self.best_bid_price + self.best_ask_price) / 2


@dataclass
class OrderBook:
    """Order book snapshot.

    bids and asks are lists of (price, amount), best level first.
    """
    instrument_name: str
    timestamp: Optional[datetime]
    bids: list[tuple[float, float]] = field(default_factory=list)
    asks: list[tuple[float, float]] = field(default_factory=list)
    change_id: Optional[int] = None
    mark_price: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> "OrderBook":
        """Create OrderBook from API response."""
        def levels(raw: Any) -> list[tuple[float, float]]:
            return [(float(level[0]), float(level[1])) for level in raw or []]

        return cls(
            instrument_name=str(data.get("instrument_name", "")),
            timestamp=ms_to_datetime(data.get("timestamp")),
            bids=levels(data.get("bids")),
            asks=levels(data.get("asks")),
            change_id=data.get("change_id"),
            mark_price=_float(data.get("mark_price"), None),
        )

    @property
    def best_bid(self) -> Optional[tuple[float, float]]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[tuple[float, float]]:
        return self.asks[0] if self.asks else None


@dataclass
class Instrument:
    """Instrument definition."""
    instrument_name: str
    kind: str
    base_currency: str
    quote_currency: str
    tick_size: float
    min_trade_amount: float
    contract_size: float
    is_active: bool = True
    expiration: Optional[datetime] = None
    strike: Optional[float] = None
    option_type: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Instrument":
        """Create Instrument from API response."""
        return cls(
            instrument_name=str(data.get("instrument_name", "")),
            kind=str(data.get("kind", "")),
            base_currency=str(data.get("base_currency", "")),
            quote_currency=str(data.get("quote_currency", "")),
            tick_size=_float(data.get("tick_size")),
            min_trade_amount=_float(data.get("min_trade_amount")),
            contract_size=_float(data.get("contract_size")),
            is_active=bool(data.get("is_active", True)),
            expiration=ms_to_datetime(data.get("expiration_timestamp")),
            strike=_float(data.get("strike"), None),
            option_type=data.get("option_type"),
        )

    @property
    def is_perpetual(self) -> bool:
        return self.instrument_name.endswith("-PERPETUAL")


@dataclass
class Trade:
    """A public trade or one of the user's fills."""
    trade_id: str
    instrument_name: str
    timestamp: Optional[datetime]
    price: float
    amount: float
    direction: Direction
    order_id: Optional[str] = None
    fee: Optional[float] = None
    index_price: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> "Trade":
        """Create Trade from API response."""
        return cls(
            trade_id=str(data.get("trade_id", "")),
            instrument_name=str(data.get("instrument_name", "")),
            timestamp=ms_to_datetime(data.get("timestamp")),
            price=_float(data.get("price")),
            amount=_float(data.get("amount")),
            direction=Direction(data.get("direction", "buy")),
            order_id=data.get("order_id"),
            fee=_float(data.get("fee"), None),
            index_price=_float(data.get("index_price"), None),
        )


@dataclass
class Order:
    """Order state as reported by the API.

    Attributes:
        order_id: Unique order identifier
        instrument_name: Instrument identifier
        direction: Buy or Sell
        order_type: Order type
        amount: Requested amount
        filled_amount: Amount filled so far
        price: Limit price (None for market orders)
        average_price: Average fill price
        order_state: Order status
        time_in_force: Time in force
        label: User-defined label
        post_only: Post-only flag
        reduce_only: Reduce-only flag
        created_at: Creation time (UTC)
        updated_at: Last update time (UTC)
    """
    order_id: str
    instrument_name: str
    direction: Direction
    order_type: OrderType
    amount: float
    filled_amount: float = 0.0
    price: Optional[float] = None
    average_price: Optional[float] = None
    order_state: OrderState = OrderState.OPEN
    time_in_force: Optional[str] = None
    label: Optional[str] = None
    post_only: bool = False
    reduce_only: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict) -> "Order":
        """Create Order from API response."""
        return cls(
            order_id=str(data.get("order_id", "")),
            instrument_name=str(data.get("instrument_name", "")),
            direction=Direction(data.get("direction", "buy")),
            order_type=OrderType(data.get("order_type", "limit")),
            amount=_float(data.get("amount")),
            filled_amount=_float(data.get("filled_amount")),
            price=_float(data.get("price"), None),
            average_price=_float(data.get("average_price"), None),
            order_state=OrderState(data.get("order_state", "open")),
            time_in_force=data.get("time_in_force"),
            label=data.get("label") or None,
            post_only=bool(data.get("post_only", False)),
            reduce_only=bool(data.get("reduce_only", False)),
            created_at=ms_to_datetime(data.get("creation_timestamp")),
            updated_at=ms_to_datetime(data.get("last_update_timestamp")),
        )

    @property
    def is_filled(self) -> bool:
        return self.order_state == OrderState.FILLED

    @property
    def is_open(self) -> bool:
        return self.order_state in (OrderState.OPEN, OrderState.UNTRIGGERED)

    @property
    def is_rejected(self) -> bool:
        return self.order_state == OrderState.REJECTED


@dataclass
class OrderResponse:
    """Result of buy/sell/edit: the order plus any immediate fills."""
    order: Order
    trades: list[Trade] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "OrderResponse":
        """Create OrderResponse from API response."""
        if not isinstance(data, dict) or not isinstance(data.get("order"), dict):
            raise InvalidResponseError("No order data in response")
        return cls(
            order=Order.from_api(data["order"]),
            trades=[Trade.from_api(t) for t in data.get("trades") or []],
        )


@dataclass
class OrderRequest:
    """Parameters for buy/sell.

    Exactly one of amount or contracts must be given; limit-style orders
    need a price and trigger orders need a trigger price.
    """
    instrument_name: str
    amount: Optional[float] = None
    contracts: Optional[float] = None
    type: OrderType = OrderType.LIMIT
    price: Optional[float] = None
    label: Optional[str] = None
    time_in_force: TimeInForce = TimeInForce.GOOD_TIL_CANCELLED
    post_only: bool = False
    reduce_only: bool = False
    trigger_price: Optional[float] = None
    trigger: Optional[str] = None

    def to_params(self) -> dict:
        """Validate and convert to method parameters.

        Raises:
            ValueError: If the request is inconsistent
        """
        if (self.amount is None) == (self.contracts is None):
            raise ValueError("Exactly one of amount or contracts must be specified")
        if self.type in _PRICED_ORDER_TYPES and self.price is None:
            raise ValueError(f"Price required for {self.type.value} orders")
        if self.type in _TRIGGER_ORDER_TYPES and self.trigger_price is None:
            raise ValueError(f"Trigger price required for {self.type.value} orders")

        params = {
            "instrument_name": self.instrument_name,
            "amount": self.amount,
            "contracts": self.contracts,
            "type": self.type.value,
            "price": self.price,
            "label": self.label,
            "time_in_force": self.time_in_force.value,
            "trigger_price": self.trigger_price,
            "trigger": self.trigger,
        }
        if self.post_only:
            params["post_only"] = True
        if self.reduce_only:
            params["reduce_only"] = True
        return params


@dataclass
class Position:
    """Open position for one instrument.

    size is signed: positive = long, negative = short.
    """
    instrument_name: str
    kind: str
    size: float
    direction: Direction
    average_price: float
    mark_price: float = 0.0
    floating_profit_loss: float = 0.0
    realized_profit_loss: float = 0.0
    total_profit_loss: float = 0.0

    @classmethod
    def from_api(cls, data: dict) -> "Position":
        """Create Position from API response."""
        return cls(
            instrument_name=str(data.get("instrument_name", "")),
            kind=str(data.get("kind", "")),
            size=_float(data.get("size")),
            direction=Direction(data.get("direction", "zero")),
            average_price=_float(data.get("average_price")),
            mark_price=_float(data.get("mark_price")),
            floating_profit_loss=_float(data.get("floating_profit_loss")),
            realized_profit_loss=_float(data.get("realized_profit_loss")),
            total_profit_loss=_float(data.get("total_profit_loss")),
        )

    @property
    def is_long(self) -> bool:
        return self.size > 0

    @property
    def is_short(self) -> bool:
        return self.size < 0

    @property
    def is_flat(self) -> bool:
        return self.size == 0


@dataclass
class AccountSummary:
    """Account summary for one currency."""
    currency: str
    balance: float
    equity: float
    available_funds: float
    margin_balance: float = 0.0
    initial_margin: float = 0.0
    maintenance_margin: float = 0.0
    session_upl: float = 0.0
    session_rpl: float = 0.0
    total_pl: float = 0.0

    @classmethod
    def from_api(cls, data: dict) -> "AccountSummary":
        """Create AccountSummary from API response."""
        return cls(
            currency=str(data.get("currency", "")),
            balance=_float(data.get("balance")),
            equity=_float(data.get("equity")),
            available_funds=_float(data.get("available_funds")),
            margin_balance=_float(data.get("margin_balance")),
            initial_margin=_float(data.get("initial_margin")),
            maintenance_margin=_float(data.get("maintenance_margin")),
            session_upl=_float(data.get("session_upl")),
            session_rpl=_float(data.get("session_rpl")),
            total_pl=_float(data.get("total_pl")),
        )


@dataclass
class Subaccount:
    """Subaccount entry."""
    id: int
    username: str
    email: str = ""
    type: str = "subaccount"
    is_password: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "Subaccount":
        """Create Subaccount from API response."""
        return cls(
            id=int(data.get("id", 0)),
            username=str(data.get("username", "")),
            email=str(data.get("email", "")),
            type=str(data.get("type", "subaccount")),
            is_password=bool(data.get("is_password", False)),
        )


@dataclass
class Page:
    """One page of a paginated result.

    Attributes:
        items: Parsed entries of this page
        continuation: Cursor for the next page (None when exhausted)
        has_more: Server indicated more entries exist (trade queries)
        total: Server-reported record count, where the endpoint reports one
    """
    items: list
    continuation: Optional[str] = None
    has_more: bool = False
    total: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict, key: str, parse: Callable[[Any], Any]) -> "Page":
        """Create Page from a result object holding its entries under `key`."""
        items = data.get(key)
        if not isinstance(items, list):
            raise InvalidResponseError(f"Expected {key} list in paginated result")
        total = data.get("count", data.get("records_total"))
        return cls(
            items=[parse(item) for item in items],
            continuation=_continuation(data.get("continuation")),
            has_more=bool(data.get("has_more", False)),
            total=int(total) if total is not None else None,
        )

    def __iter__(self) -> Iterator:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class Settlement:
    """Settlement, delivery or bankruptcy event."""
    type: str
    timestamp: Optional[datetime]
    instrument_name: Optional[str] = None
    position_size: Optional[float] = None
    mark_price: Optional[float] = None
    index_price: Optional[float] = None
    profit_loss: Optional[float] = None
    funding: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> "Settlement":
        """Create Settlement from API response."""
        return cls(
            type=str(data["type"]),
            timestamp=ms_to_datetime(data.get("timestamp")),
            instrument_name=data.get("instrument_name"),
            position_size=_float(data.get("position"), None),
            mark_price=_float(data.get("mark_price"), None),
            index_price=_float(data.get("index_price"), None),
            profit_loss=_float(data.get("profit_loss"), None),
            funding=_float(data.get("funding"), None),
        )


@dataclass
class FundingRate:
    """Hourly funding record of a perpetual."""
    timestamp: Optional[datetime]
    index_price: float
    prev_index_price: float
    interest_1h: float
    interest_8h: float

    @classmethod
    def from_api(cls, data: dict) -> "FundingRate":
        """Create FundingRate from API response."""
        return cls(
            timestamp=ms_to_datetime(data["timestamp"]),
            index_price=_float(data.get("index_price")),
            prev_index_price=_float(data.get("prev_index_price")),
            interest_1h=_float(data.get("interest_1h")),
            interest_8h=_float(data.get("interest_8h")),
        )


@dataclass
class Candles:
    """OHLCV series from the TradingView chart endpoint.

    All series are aligned with `ticks`.
    """
    status: str
    ticks: list[datetime] = field(default_factory=list)
    open: list[float] = field(default_factory=list)
    high: list[float] = field(default_factory=list)
    low: list[float] = field(default_factory=list)
    close: list[float] = field(default_factory=list)
    volume: list[float] = field(default_factory=list)
    cost: list[float] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "Candles":
        """Create Candles from API response.

        Raises:
            ValueError: If the series lengths disagree
        """
        ticks = [ms_to_datetime(t) for t in data.get("ticks") or []]
        series = {
            name: [float(v) for v in data.get(name) or []]
            for name in ("open", "high", "low", "close", "volume", "cost")
        }
        for name in ("open", "high", "low", "close"):
            if len(series[name]) != len(ticks):
                raise ValueError(f"{name} has {len(series[name])} values for {len(ticks)} ticks")
        return cls(status=str(data.get("status", "ok")), ticks=ticks, **series)

    def __len__(self) -> int:
        return len(self.ticks)

    def rows(self) -> Iterator[tuple[datetime, float, float, float, float]]:
        """(time, open, high, low, close) per bar."""
        return zip(self.ticks, self.open, self.high, self.low, self.close)


@dataclass
class DeliveryPrice:
    """Delivery price of an index on one date."""
    date: str
    delivery_price: float

    @classmethod
    def from_api(cls, data: dict) -> "DeliveryPrice":
        return cls(date=str(data["date"]), delivery_price=float(data["delivery_price"]))


@dataclass
class TransactionLogEntry:
    """One entry of the account transaction log."""
    id: int
    currency: str
    timestamp: Optional[datetime]
    type: str
    amount: Optional[float] = None
    balance: float = 0.0
    change: float = 0.0
    cashflow: float = 0.0
    instrument_name: Optional[str] = None
    info: Any = None

    @classmethod
    def from_api(cls, data: dict) -> "TransactionLogEntry":
        """Create TransactionLogEntry from API response."""
        return cls(
            id=int(data["id"]),
            currency=str(data.get("currency", "")),
            timestamp=ms_to_datetime(data.get("timestamp")),
            type=str(data.get("type", "")),
            amount=_float(data.get("amount"), None),
            balance=_float(data.get("balance")),
            change=_float(data.get("change")),
            cashflow=_float(data.get("cashflow")),
            instrument_name=data.get("instrument_name"),
            info=data.get("info"),
        )


@dataclass
class Deposit:
    """Incoming deposit."""
    address: str
    amount: float
    currency: str
    state: str
    received_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Deposit":
        """Create Deposit from API response."""
        return cls(
            address=str(data.get("address", "")),
            amount=float(data["amount"]),
            currency=str(data.get("currency", "")),
            state=str(data.get("state", "")),
            received_at=ms_to_datetime(data.get("received_timestamp")),
            updated_at=ms_to_datetime(data.get("updated_timestamp")),
            transaction_id=data.get("transaction_id"),
        )


@dataclass
class Withdrawal:
    """Outgoing withdrawal."""
    id: int
    address: str
    amount: float
    currency: str
    state: str
    fee: float = 0.0
    priority: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Withdrawal":
        """Create Withdrawal from API response."""
        return cls(
            id=int(data["id"]),
            address=str(data.get("address", "")),
            amount=float(data["amount"]),
            currency=str(data.get("currency", "")),
            state=str(data.get("state", "")),
            fee=_float(data.get("fee")),
            priority=data.get("priority"),
            created_at=ms_to_datetime(data.get("created_timestamp")),
            updated_at=ms_to_datetime(data.get("updated_timestamp")),
            transaction_id=data.get("transaction_id"),
        )


@dataclass
class Transfer:
    """Transfer between accounts.

    Attributes:
        id: Transfer ID
        currency: Transferred currency
        amount: Transferred amount
        state: "prepared", "confirmed", "cancelled", ...
        type: "subaccount" or "user"
        direction: "payment" (outgoing) or "income"
        other_side: Counterparty (subaccount name or address)
        created_at: Creation time (UTC)
    """
    id: int
    currency: str
    amount: float
    state: str
    type: str = ""
    direction: str = ""
    other_side: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict) -> "Transfer":
        """Create Transfer from API response."""
        return cls(
            id=int(data["id"]),
            currency=str(data.get("currency", "")),
            amount=_float(data.get("amount")),
            state=str(data.get("state", "")),
            type=str(data.get("type", "")),
            direction=str(data.get("direction", "")),
            other_side=str(data.get("other_side", "")),
            created_at=ms_to_datetime(data.get("created_timestamp")),
        )


def _page(result: Any, key: str, model: Any, what: str) -> Page:
    data = _expect(result, dict, what)
    try:
        return Page.from_api(data, key, lambda item: _model(model, item, what))
    except (TypeError, ValueError) as e:
        raise InvalidResponseError(f"Malformed {what}: {e!r}") from e


class DeribitREST:
    """Deribit REST API client.

    Provides typed methods for the JSON-RPC endpoints.

    Example:
        client = DeribitClient(client_id="id", client_secret="secret")
        await client.authenticate()

        rest = DeribitREST(client)

        ticker = await rest.get_ticker("BTC-PERPETUAL")
        book = await rest.get_order_book("BTC-PERPETUAL", depth=5)

        order = await rest.buy(OrderRequest(
            instrument_name="BTC-PERPETUAL",
            amount=10,
            type=OrderType.LIMIT,
            price=50000.0,
            label="entry",
        ))
    """

    def __init__(self, client: DeribitClient):
        """Initialize REST API client.

        Args:
            client: DeribitClient instance (authenticated for private calls)
        """
        self._client = client

    # -------------------------------------------------------------------------
    # System
    # -------------------------------------------------------------------------

    async def get_server_time(self) -> int:
        """Server time in milliseconds since epoch."""
        result = await self._client.public_get(endpoints.GET_SERVER_TIME)
        return int(_expect(result, (int, float), "server time"))

    async def test_connection(self) -> str:
        """Connectivity test; returns the API version string."""
        result = await self._client.public_get(endpoints.TEST_CONNECTION)
        return str(_expect(result, dict, "version object").get("version", ""))

    async def get_status(self) -> dict:
        """Platform lock status."""
        return _expect(await self._client.public_get(endpoints.GET_STATUS), dict, "status object")

    # -------------------------------------------------------------------------
    # Market data
    # -------------------------------------------------------------------------

    async def get_currencies(self) -> list[dict]:
        """All supported currencies."""
        return _expect(await self._client.public_get(endpoints.GET_CURRENCIES), list, "currency list")

    async def get_index(self, currency: str) -> dict[str, float]:
        """Index prices for a currency, plus the estimated delivery price under "edp"."""
        result = await self._client.public_get(endpoints.GET_INDEX, {"currency": currency})
        return {
            key: float(value)
            for key, value in _expect(result, dict, "index object").items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }

    async def get_index_price(self, index_name: str) -> float:
        """Current index price (e.g., index_name="btc_usd")."""
        result = await self._client.public_get(endpoints.GET_INDEX_PRICE, {"index_name": index_name})
        return _number(result, "index_price", "index price object")

    async def get_index_price_names(self) -> list[str]:
        """Names of all price indices."""
        result = await self._client.public_get(endpoints.GET_INDEX_PRICE_NAMES)
        return [str(name) for name in _expect(result, list, "index name list")]

    async def get_ticker(self, instrument_name: str) -> Ticker:
        """Ticker for one instrument."""
        result = await self._client.public_get(endpoints.GET_TICKER, {"instrument_name": instrument_name})
        return _model(Ticker, result, "ticker object")

    async def get_order_book(self, instrument_name: str, depth: Optional[int] = None) -> OrderBook:
        """Order book for one instrument, optionally truncated to `depth` levels."""
        params = {"instrument_name": instrument_name, "depth": depth}
        result = await self._client.public_get(endpoints.GET_ORDER_BOOK, params)
        return _model(OrderBook, result, "order book object")

    async def get_instrument(self, instrument_name: str) -> Instrument:
        """Definition of one instrument."""
        result = await self._client.public_get(endpoints.GET_INSTRUMENT, {"instrument_name": instrument_name})
        return _model(Instrument, result, "instrument object")

    async def get_instruments(
        self,
        currency: str,
        kind: Optional[InstrumentKind] = None,
        expired: bool = False,
    ) -> list[Instrument]:
        """Instruments for a currency, optionally filtered by kind."""
        params = {
            "currency": currency,
            "kind": kind.value if kind else None,
            "expired": expired,
        }
        result = await self._client.public_get(endpoints.GET_INSTRUMENTS, params)
        instruments = _models(Instrument, result, "instrument")
        logger.debug(f"Retrieved {len(instruments)} instruments for {currency}")
        return instruments

    async def get_expirations(
        self,
        currency: str,
        kind: Union[InstrumentKind, str] = "any",
        currency_pair: Optional[str] = None,
    ) -> dict:
        """Expiration codes (e.g. "29MAR24") grouped by kind, or by currency for currency="any"."""
        params = {
            "currency": currency,
            "kind": kind.value if isinstance(kind, InstrumentKind) else kind,
            "currency_pair": currency_pair,
        }
        return _expect(await self._client.public_get(endpoints.GET_EXPIRATIONS, params), dict, "expirations object")

    async def get_contract_size(self, instrument_name: str) -> float:
        """Contract size for an instrument."""
        result = await self._client.public_get(endpoints.GET_CONTRACT_SIZE, {"instrument_name": instrument_name})
        return _number(result, "contract_size", "contract size object")

    async def get_book_summary_by_currency(
        self,
        currency: str,
        kind: Optional[InstrumentKind] = None,
    ) -> list[dict]:
        """Summary (volume, open interest, prices) of every book in a currency."""
        params = {"currency": currency, "kind": kind.value if kind else None}
        return _expect(
            await self._client.public_get(endpoints.GET_BOOK_SUMMARY_BY_CURRENCY, params),
            list,
            "book summary list",
        )

    async def get_book_summary_by_instrument(self, instrument_name: str) -> dict:
        """Summary of one book."""
        result = await self._client.public_get(
            endpoints.GET_BOOK_SUMMARY_BY_INSTRUMENT, {"instrument_name": instrument_name}
        )
        summaries = _expect(result, list, "book summary list")
        if not summaries:
            raise InvalidResponseError(f"No book summary for {instrument_name}")
        return _expect(summaries[0], dict, "book summary object")

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    async def get_last_trades_by_instrument(
        self,
        instrument_name: str,
        count: Optional[int] = None,
        sorting: Optional[str] = None,
    ) -> list[Trade]:
        """Most recent public trades for an instrument."""
        params = {"instrument_name": instrument_name, "count": count, "sorting": sorting}
        result = await self._client.public_get(endpoints.GET_LAST_TRADES_BY_INSTRUMENT, params)
        return _page(result, "trades", Trade, "trade").items

    async def get_last_trades_by_instrument_and_time(
        self,
        instrument_name: str,
        start: Union[datetime, int],
        end: Union[datetime, int],
        count: Optional[int] = None,
        sorting: Optional[str] = None,
    ) -> Page:
        """Public trades for an instrument within [start, end]."""
        params = {
            "instrument_name": instrument_name,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
            "count": count,
            "sorting": sorting,
        }
        result = await self._client.public_get(endpoints.GET_LAST_TRADES_BY_INSTRUMENT_AND_TIME, params)
        return _page(result, "trades", Trade, "trade")

    async def get_last_trades_by_currency(
        self,
        currency: str,
        kind: Optional[InstrumentKind] = None,
        count: Optional[int] = None,
        sorting: Optional[str] = None,
    ) -> Page:
        """Most recent public trades across all instruments of a currency."""
        params = {
            "currency": currency,
            "kind": kind.value if kind else None,
            "count": count,
            "sorting": sorting,
        }
        result = await self._client.public_get(endpoints.GET_LAST_TRADES_BY_CURRENCY, params)
        return _page(result, "trades", Trade, "trade")

    async def get_last_trades_by_currency_and_time(
        self,
        currency: str,
        start: Union[datetime, int],
        end: Union[datetime, int],
        kind: Optional[InstrumentKind] = None,
        count: Optional[int] = None,
        sorting: Optional[str] = None,
    ) -> Page:
        """Public trades of a currency within [start, end]."""
        params = {
            "currency": currency,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
            "kind": kind.value if kind else None,
            "count": count,
            "sorting": sorting,
        }
        result = await self._client.public_get(endpoints.GET_LAST_TRADES_BY_CURRENCY_AND_TIME, params)
        return _page(result, "trades", Trade, "trade")

    # -------------------------------------------------------------------------
    # Volatility, funding and settlement
    # -------------------------------------------------------------------------

    async def get_historical_volatility(self, currency: str) -> list[tuple[datetime, float]]:
        """Hourly realized volatility as (time, volatility) pairs."""
        result = await self._client.public_get(endpoints.GET_HISTORICAL_VOLATILITY, {"currency": currency})
        try:
            return [(ms_to_datetime(point[0]), float(point[1])) for point in _expect(result, list, "volatility list")]
        except (IndexError, TypeError, ValueError) as e:
            raise InvalidResponseError(f"Malformed volatility point: {e!r}") from e

    async def get_funding_chart_data(self, instrument_name: str, length: str = "8h") -> dict:
        """Funding chart for a perpetual over "8h", "24h" or "1m"."""
        params = {"instrument_name": instrument_name, "length": length}
        return _expect(
            await self._client.public_get(endpoints.GET_FUNDING_CHART_DATA, params), dict, "funding chart object"
        )

    async def get_funding_rate_history(
        self,
        instrument_name: str,
        start: Union[datetime, int],
        end: Union[datetime, int],
    ) -> list[FundingRate]:
        """Hourly funding records of a perpetual within [start, end]."""
        params = {
            "instrument_name": instrument_name,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
        }
        result = await self._client.public_get(endpoints.GET_FUNDING_RATE_HISTORY, params)
        return _models(FundingRate, result, "funding rate")

    async def get_funding_rate_value(
        self,
        instrument_name: str,
        start: Union[datetime, int],
        end: Union[datetime, int],
    ) -> float:
        """Accumulated funding rate of a perpetual over [start, end]."""
        params = {
            "instrument_name": instrument_name,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
        }
        result = await self._client.public_get(endpoints.GET_FUNDING_RATE_VALUE, params)
        return float(_expect(result, (int, float), "funding rate value"))

    async def get_tradingview_chart_data(
        self,
        instrument_name: str,
        start: Union[datetime, int],
        end: Union[datetime, int],
        resolution: str = "60",
    ) -> Candles:
        """OHLCV candles; resolution is minutes ("1" .. "720") or "1D"."""
        params = {
            "instrument_name": instrument_name,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
            "resolution": resolution,
        }
        result = await self._client.public_get(endpoints.GET_TRADINGVIEW_CHART_DATA, params)
        return _model(Candles, result, "chart data")

    async def get_delivery_prices(
        self,
        index_name: str,
        count: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Page:
        """Historical delivery prices of an index, newest first."""
        params = {"index_name": index_name, "count": count, "offset": offset}
        result = await self._client.public_get(endpoints.GET_DELIVERY_PRICES, params)
        return _page(result, "data", DeliveryPrice, "delivery price")

    async def get_last_settlements_by_currency(
        self,
        currency: str,
        type: Optional[str] = None,
        count: Optional[int] = None,
        continuation: Optional[str] = None,
        search_start: Union[datetime, int, None] = None,
    ) -> Page:
        """Settlement, delivery and bankruptcy events of a currency.

        Pass the returned page's continuation to fetch the next page.
        """
        params = {
            "currency": currency,
            "type": type,
            "count": count,
            "continuation": continuation,
            "search_start_timestamp": datetime_to_ms(search_start),
        }
        result = await self._client.public_get(endpoints.GET_LAST_SETTLEMENTS_BY_CURRENCY, params)
        return _page(result, "settlements", Settlement, "settlement")

    async def get_last_settlements_by_instrument(
        self,
        instrument_name: str,
        type: Optional[str] = None,
        count: Optional[int] = None,
        continuation: Optional[str] = None,
        search_start: Union[datetime, int, None] = None,
    ) -> Page:
        """Settlement, delivery and bankruptcy events of an instrument."""
        params = {
            "instrument_name": instrument_name,
            "type": type,
            "count": count,
            "continuation": continuation,
            "search_start_timestamp": datetime_to_ms(search_start),
        }
        result = await self._client.public_get(endpoints.GET_LAST_SETTLEMENTS_BY_INSTRUMENT, params)
        return _page(result, "settlements", Settlement, "settlement")

    # -------------------------------------------------------------------------
    # Trading
    # -------------------------------------------------------------------------

    async def buy(self, request: OrderRequest) -> OrderResponse:
        """Place a buy order.

        Raises:
            ValueError: If the request is inconsistent
            RequestFailedError: On API error
        """
        return await self._place(endpoints.BUY, Direction.BUY, request)

    async def sell(self, request: OrderRequest) -> OrderResponse:
        """Place a sell order.

        Raises:
            ValueError: If the request is inconsistent
            RequestFailedError: On API error
        """
        return await self._place(endpoints.SELL, Direction.SELL, request)

    async def _place(self, path: str, direction: Direction, request: OrderRequest) -> OrderResponse:
        params = request.to_params()
        logger.info(
            f"Placing {request.type.value} {direction.value} order: "
            f"{request.amount if request.amount is not None else request.contracts} {request.instrument_name}"
        )

        response = _model(OrderResponse, await self._client.private_get(path, params), "order response")

        logger.info(f"Order placed: {response.order.order_id} ({response.order.order_state.value})")
        return response

    async def edit(
        self,
        order_id: str,
        amount: Optional[float] = None,
        price: Optional[float] = None,
        contracts: Optional[float] = None,
        post_only: Optional[bool] = None,
        reduce_only: Optional[bool] = None,
    ) -> OrderResponse:
        """Change amount and/or price of an open order."""
        if amount is None and contracts is None:
            raise ValueError("Either amount or contracts must be specified")

        params = {
            "order_id": order_id,
            "amount": amount,
            "contracts": contracts,
            "price": price,
            "post_only": post_only,
            "reduce_only": reduce_only,
        }
        logger.info(f"Editing order: {order_id}")
        return _model(OrderResponse, await self._client.private_get(endpoints.EDIT, params), "order response")

    async def cancel(self, order_id: str) -> Order:
        """Cancel an order by ID; returns its final state."""
        logger.info(f"Cancelling order: {order_id}")
        result = await self._client.private_get(endpoints.CANCEL, {"order_id": order_id})
        order = _model(Order, result, "order object")
        logger.info(f"Order cancelled: {order_id}")
        return order

    async def cancel_all(self) -> int:
        """Cancel all open orders; returns the number cancelled."""
        logger.info("Cancelling all orders")
        result = await self._client.private_get(endpoints.CANCEL_ALL)
        count = int(result) if isinstance(result, (int, float)) else 0
        logger.info(f"Cancelled {count} orders")
        return count

    # -------------------------------------------------------------------------
    # Orders and fills
    # -------------------------------------------------------------------------

    async def get_open_orders(
        self,
        kind: Optional[InstrumentKind] = None,
        type: Optional[str] = None,
    ) -> list[Order]:
        """Open orders across all instruments; type is "all", "limit", "trigger_all", ..."""
        params = {"kind": kind.value if kind else None, "type": type}
        result = await self._client.private_get(endpoints.GET_OPEN_ORDERS, params)
        return _models(Order, result, "order")

    async def get_open_orders_by_instrument(self, instrument_name: str) -> list[Order]:
        """Open orders for an instrument."""
        result = await self._client.private_get(
            endpoints.GET_OPEN_ORDERS_BY_INSTRUMENT, {"instrument_name": instrument_name}
        )
        return _models(Order, result, "order")

    async def get_order_history(
        self,
        currency: str,
        kind: Optional[InstrumentKind] = None,
        count: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Order]:
        """Closed (filled or cancelled) orders of a currency, newest first."""
        params = {
            "currency": currency,
            "kind": kind.value if kind else None,
            "count": count,
            "offset": offset,
        }
        result = await self._client.private_get(endpoints.GET_ORDER_HISTORY_BY_CURRENCY, params)
        return _models(Order, result, "order")

    async def get_order_state(self, order_id: str) -> Order:
        """Current state of an order."""
        result = await self._client.private_get(endpoints.GET_ORDER_STATE, {"order_id": order_id})
        return _model(Order, result, "order object")

    async def get_user_trades_by_instrument(
        self,
        instrument_name: str,
        count: Optional[int] = None,
    ) -> list[Trade]:
        """The user's fills for an instrument."""
        params = {"instrument_name": instrument_name, "count": count}
        result = await self._client.private_get(endpoints.GET_USER_TRADES_BY_INSTRUMENT, params)
        return _page(result, "trades", Trade, "trade").items

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    async def get_account_summary(self, currency: str, extended: bool = False) -> AccountSummary:
        """Account summary for a currency."""
        params = {"currency": currency, "extended": extended}
        result = await self._client.private_get(endpoints.GET_ACCOUNT_SUMMARY, params)
        return _model(AccountSummary, result, "account summary object")

    async def get_positions(
        self,
        currency: str,
        kind: Optional[InstrumentKind] = None,
    ) -> list[Position]:
        """Open positions for a currency."""
        params = {"currency": currency, "kind": kind.value if kind else None}
        result = await self._client.private_get(endpoints.GET_POSITIONS, params)
        return _models(Position, result, "position")

    async def get_subaccounts(self, with_portfolio: bool = False) -> list[Subaccount]:
        """Subaccounts of the main account."""
        result = await self._client.private_get(endpoints.GET_SUBACCOUNTS, {"with_portfolio": with_portfolio})
        return _models(Subaccount, result, "subaccount")

    # -------------------------------------------------------------------------
    # Wallet
    # -------------------------------------------------------------------------

    async def get_transaction_log(
        self,
        currency: str,
        start: Union[datetime, int, None] = None,
        end: Union[datetime, int, None] = None,
        count: Optional[int] = None,
        continuation: Optional[str] = None,
    ) -> Page:
        """Account transaction log, one page at a time.

        Pass the returned page's continuation to fetch the next page.
        """
        params = {
            "currency": currency,
            "start_timestamp": datetime_to_ms(start),
            "end_timestamp": datetime_to_ms(end),
            "count": count,
            "continuation": continuation,
        }
        result = await self._client.private_get(endpoints.GET_TRANSACTION_LOG, params)
        return _page(result, "logs", TransactionLogEntry, "transaction log entry")

    async def get_deposits(
        self,
        currency: str,
        count: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Page:
        """Deposits of a currency; page.total is the server's record count."""
        params = {"currency": currency, "count": count, "offset": offset}
        result = await self._client.private_get(endpoints.GET_DEPOSITS, params)
        return _page(result, "data", Deposit, "deposit")

    async def get_withdrawals(
        self,
        currency: str,
        count: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Page:
        """Withdrawals of a currency; page.total is the server's record count."""
        params = {"currency": currency, "count": count, "offset": offset}
        result = await self._client.private_get(endpoints.GET_WITHDRAWALS, params)
        return _page(result, "data", Withdrawal, "withdrawal")

    async def submit_transfer_to_subaccount(self, currency: str, amount: float, destination: int) -> Transfer:
        """Transfer funds to a subaccount (destination = subaccount ID).

        Raises:
            ValueError: If amount is not positive
        """
        return await self._transfer(endpoints.SUBMIT_TRANSFER_TO_SUBACCOUNT, currency, amount, destination)

    async def submit_transfer_to_user(self, currency: str, amount: float, destination: str) -> Transfer:
        """Transfer funds to another user (destination = address from the address book).

        Raises:
            ValueError: If amount is not positive or destination is empty
        """
        if not destination:
            raise ValueError("Transfer destination is required")
        return await self._transfer(endpoints.SUBMIT_TRANSFER_TO_USER, currency, amount, destination)

    async def _transfer(self, path: str, currency: str, amount: float, destination: Union[int, str]) -> Transfer:
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")

        logger.info(f"Transferring {amount} {currency} to {destination}")
        params = {"currency": currency, "amount": amount, "destination": destination}
        transfer = _model(Transfer, await self._client.private_get(path, params), "transfer object")
        logger.info(f"Transfer {transfer.id}: {transfer.state}")
        return transfer
