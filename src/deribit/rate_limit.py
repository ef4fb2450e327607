"""
Per-category token bucket rate limiting for Deribit API requests.

Every endpoint is classified into one of five categories (trading, market
data, account, auth, general) and each category owns an independent token
bucket. Capacity bounds the burst size and the refill rate bounds sustained
throughput, so exhausting the trading budget never holds back market data.

Classification is a fixed list of explicit pattern rules evaluated in order;
the first rule that matches wins and unmatched paths fall back to GENERAL.

Example:
    limiter = RateLimiter()
    category = categorize_endpoint("/private/buy")

    result = limiter.try_acquire(category)
    if not result.admitted:
        print(f"retry in {result.retry_after:.3f}s")

    # Or suspend until a token is available
    await limiter.acquire_blocking(category)
"""

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from src.deribit.errors import ConfigError, RateLimitedError
from src.lib.config import RateLimitConfig

logger = logging.getLogger(__name__)


class RateLimitCategory(str, Enum):
    """Rate budget partitions."""
    TRADING = "trading"
    MARKET_DATA = "market_data"
    ACCOUNT = "account"
    AUTH = "auth"
    GENERAL = "general"


# Evaluated top to bottom, first match wins
CATEGORY_RULES: tuple[tuple[RateLimitCategory, re.Pattern], ...] = (
    (
        RateLimitCategory.AUTH,
        re.compile(r"^/(public/(auth|exchange_token|fork_token)|private/logout)$"),
    ),
    (
        RateLimitCategory.TRADING,
        re.compile(r"^/private/(buy|sell|edit|edit_by_label|cancel|cancel_\w+|close_position)$"),
    ),
    (
        RateLimitCategory.ACCOUNT,
        re.compile(r"^/private/(get_\w+|submit_transfer_\w+|withdraw)$"),
    ),
    (
        RateLimitCategory.MARKET_DATA,
        re.compile(
            r"^/public/(ticker|get_order_book\w*|get_last_trades\w*|get_instruments?"
            r"|get_index\w*|get_book_summary\w*|get_contract_size|get_currencies"
            r"|get_historical_volatility|get_funding\w*|get_tradingview_chart_data"
            r"|get_delivery_prices|get_expirations|get_last_settlements\w*"
            r"|get_apr_history|get_mark_price_history|get_volatility_index_data)$"
        ),
    ),
)

DEFAULT_CATEGORY = RateLimitCategory.GENERAL

_API_PREFIX = re.compile(r"^(https?://[^/]+)?(/api/v\d+)?")


def _normalize_path(path: str) -> str:
    """Strip scheme/host, the /api/vN prefix and any query string."""
    path = path.split("?", 1)[0].strip()
    path = _API_PREFIX.sub("", path, count=1)
    if not path.startswith("/"):
        path = "/" + path
    return path.rstrip("/") or "/"


def categorize_endpoint(path: str) -> RateLimitCategory:
    """Classify an endpoint path into its rate budget category.

    Accepts bare method paths ("/private/buy"), full URLs and paths carrying
    a query string. Pure and deterministic.
    """
    normalized = _normalize_path(path)
    for category, pattern in CATEGORY_RULES:
        if pattern.match(normalized):
            return category
    return DEFAULT_CATEGORY


@dataclass(frozen=True)
class AcquireResult:
    """Outcome of a single admission attempt.

    Attributes:
        category: Category the attempt was charged against
        admitted: True if a token was consumed
        retry_after: Estimated seconds until a token is available (0 if admitted)
    """
    category: RateLimitCategory
    admitted: bool
    retry_after: float = 0.0

    def __bool__(self) -> bool:
        return self.admitted


@dataclass
class TokenBucket:
    """Token bucket state for one category.

    Tokens are real-valued and always kept within [0, capacity].
    """
    capacity: int
    refill_rate: float
    tokens: float
    last_refill: float

    def refill(self, now: float) -> None:
        # A clock stepping backwards yields no tokens and never removes any
        elapsed = max(now - self.last_refill, 0.0)
        self.tokens = min(self.tokens + elapsed * self.refill_rate, float(self.capacity))
        self.last_refill = now

    def try_consume(self, now: float) -> tuple[bool, float]:
        """Refill, then take one token if available.

        Returns:
            (admitted, estimated wait in seconds)
        """
        self.refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True, 0.0
        return False, (1.0 - self.tokens) / self.refill_rate


class RateLimiter:
    """Token bucket rate limiter keyed by endpoint category.

    The bucket table is guarded by a single lock that is never held across
    an await, so try_acquire is safe from any task or thread. Only
    acquire_blocking suspends.
    """

    def __init__(
        self,
        budgets: Optional[dict[RateLimitCategory, tuple[int, float]]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            budgets: {category: (capacity, refill_rate)}; categories not
                listed use the defaults from RateLimitConfig
            clock: Monotonic time source in seconds
            sleep: Coroutine used to suspend between attempts

        Raises:
            ConfigError: If a budget has negative capacity or non-positive refill rate
        """
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

        merged = {
            RateLimitCategory(name): budget
            for name, budget in RateLimitConfig().budgets().items()
        }
        if budgets:
            merged.update({RateLimitCategory(k): v for k, v in budgets.items()})

        now = self._clock()
        self._buckets: dict[RateLimitCategory, TokenBucket] = {}
        for category, (capacity, refill_rate) in merged.items():
            if capacity < 0:
                raise ConfigError(f"{category.value} capacity ({capacity}) cannot be negative")
            if refill_rate <= 0:
                raise ConfigError(f"{category.value} refill rate ({refill_rate}) must be positive")
            self._buckets[category] = TokenBucket(
                capacity=int(capacity),
                refill_rate=float(refill_rate),
                tokens=float(capacity),
                last_refill=now,
            )

    @classmethod
    def from_config(
        cls,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "RateLimiter":
        """Build a limiter from a RateLimitConfig section."""
        budgets = {RateLimitCategory(name): budget for name, budget in config.budgets().items()}
        return cls(budgets, clock=clock, sleep=sleep)

    def _bucket(self, category: RateLimitCategory) -> TokenBucket:
        bucket = self._buckets[category]
        if bucket.capacity == 0:
            raise ConfigError(
                f"Rate budget for {category.value} has zero capacity; "
                f"requests in this category can never be admitted"
            )
        return bucket

    def try_acquire(self, category: RateLimitCategory) -> AcquireResult:
        """Attempt to take one token from the category's bucket without waiting.

        Returns:
            AcquireResult; when rejected, retry_after = (1 - tokens) / refill_rate

        Raises:
            ConfigError: If the category has zero capacity
        """
        category = RateLimitCategory(category)
        with self._lock:
            bucket = self._bucket(category)
            admitted, wait = bucket.try_consume(self._clock())
        return AcquireResult(category=category, admitted=admitted, retry_after=wait)

    def check(self, category: RateLimitCategory) -> None:
        """Take one token or raise.

        Raises:
            RateLimitedError: If the budget is exhausted (retry_after carries the wait hint)
            ConfigError: If the category has zero capacity
        """
        result = self.try_acquire(category)
        if not result.admitted:
            raise RateLimitedError(
                f"Rate limit exceeded for {result.category.value} requests",
                retry_after=result.retry_after,
            )

    async def acquire_blocking(self, category: RateLimitCategory) -> float:
        """Wait until a token is available in the category's bucket and take it.

        Cancelling the waiting task consumes nothing.

        Returns:
            Total seconds spent waiting

        Raises:
            ConfigError: If the category has zero capacity
        """
        waited = 0.0
        while True:
            result = self.try_acquire(category)
            if result.admitted:
                return waited
            logger.debug(f"Rate limit: waiting {result.retry_after:.3f}s for {result.category.value}")
            await self._sleep(result.retry_after)
            waited += result.retry_after

    def available_tokens(self, category: RateLimitCategory) -> float:
        """Current token count for a category, after refilling."""
        with self._lock:
            bucket = self._buckets[RateLimitCategory(category)]
            bucket.refill(self._clock())
            return bucket.tokens

    def capacity(self, category: RateLimitCategory) -> int:
        """Configured burst size for a category."""
        return self._buckets[RateLimitCategory(category)].capacity

    def reset(self, category: Optional[RateLimitCategory] = None) -> None:
        """Refill one category (or all) to capacity."""
        with self._lock:
            now = self._clock()
            targets = [RateLimitCategory(category)] if category is not None else list(self._buckets)
            for target in targets:
                bucket = self._buckets[target]
                bucket.tokens = float(bucket.capacity)
                bucket.last_refill = now
